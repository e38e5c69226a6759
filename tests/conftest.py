import json
from datetime import datetime, timezone

import pytest

from kvmigrate.extractors.stores import InMemoryLocalStore
from kvmigrate.loaders.base import RemoteError, RemoteErrorKind, UpsertResult
from kvmigrate.loaders.memory_loader import InMemoryUpsertClient
from kvmigrate.models.mapping import MappingEntry
from kvmigrate.orchestrator import MigrationOrchestrator
from kvmigrate.services.identity import StaticIdentityProvider
from kvmigrate.services.mapping_registry import MappingRegistry

USER_ID = "user-123"
FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FailingUpsertClient(InMemoryUpsertClient):
    """In-memory store whose upserts into chosen tables are rejected."""

    def __init__(self, failing_tables=(), kind=RemoteErrorKind.PERMISSION_DENIED, fail_when=None, **kwargs):
        super().__init__(**kwargs)
        self.failing_tables = set(failing_tables)
        self.kind = kind
        self.fail_when = fail_when
        self.attempts = []
        self.selects = []

    def upsert(self, table, row, on_conflict):
        self.attempts.append((table, dict(row), tuple(on_conflict)))
        should_fail = table in self.failing_tables or (self.fail_when is not None and self.fail_when(table, row))
        if should_fail:
            return UpsertResult(
                table=table,
                row=row,
                error=RemoteError(kind=self.kind, message=f"rejected write to {table}"),
            )
        return super().upsert(table, row, on_conflict)

    def select_single(self, table, filters, columns="*"):
        self.selects.append((table, dict(filters)))
        return super().select_single(table, filters, columns)


class RaisingUpsertClient(InMemoryUpsertClient):
    """Raises from upsert into chosen tables, as a broken transport would."""

    def __init__(self, raising_tables=(), **kwargs):
        super().__init__(**kwargs)
        self.raising_tables = set(raising_tables)

    def upsert(self, table, row, on_conflict):
        if table in self.raising_tables:
            raise RuntimeError("connection reset before response")
        return super().upsert(table, row, on_conflict)


class RecordingLocalStore(InMemoryLocalStore):
    """Local store that records every remove call."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.removed = []

    def remove(self, key):
        self.removed.append(key)
        super().remove(key)


def dumps(value):
    return json.dumps(value)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def local_store():
    return RecordingLocalStore()


@pytest.fixture
def remote():
    return InMemoryUpsertClient()


@pytest.fixture
def settings_registry():
    return MappingRegistry([
        MappingEntry(key="settings", table="user_settings", payload_field="value"),
    ])


@pytest.fixture
def make_orchestrator(clock):
    def factory(local_store, remote, registry=None, identity_id=USER_ID, **kwargs):
        return MigrationOrchestrator(
            identity_provider=StaticIdentityProvider(identity_id),
            local_store=local_store,
            remote_client=remote,
            registry=registry,
            clock=clock,
            **kwargs,
        )
    return factory
