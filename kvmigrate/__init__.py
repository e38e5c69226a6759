"""
Local Store Migration

Moves keyed records held in a client-side key/value store into rows of a
remote relational store, once per identity.

Supports:
- Declarative mapping of local keys to destination tables
- Array payloads expanded into one row per item
- Pattern-matched (dynamic) key families
- Idempotent upserts with explicit conflict targets
- Per-key failure isolation with retry on the next run
- A remote completion flag that short-circuits repeated runs
"""

__version__ = "0.1.0"
