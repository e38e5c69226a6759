"""Migration orchestrator - moves local store data into the remote store."""

import logging
from typing import Callable, List, Optional, Union
from datetime import datetime, timezone

from .errors import ConfigurationError, PayloadDecodeError, TransformError
from .extractors.base import LocalStore
from .extractors.reader import LocalStoreReader
from .extractors.stores import InMemoryLocalStore, JsonFileLocalStore
from .loaders.base import BaseUpsertClient, RemoteError
from .loaders.memory_loader import InMemoryUpsertClient
from .loaders.postgrest_loader import PostgRESTClient
from .models.mapping import MappingEntry, DynamicMappingEntry
from .models.migration import (
    MigrationConfig,
    MigrationResult,
    MigrationStatus,
    MigrationStatusReport,
)
from .models.record import KeyResult, RawLocalRecord, TransformedRow
from .services.completion_flag import CompletionFlagStore
from .services.identity import (
    Identity,
    IdentityProvider,
    StaticIdentityProvider,
    PostgRESTAuthIdentityProvider,
)
from .services.mapping_registry import MappingRegistry, default_registry
from .services.transformer import TransformEngine

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "User not authenticated"
REMOTE_UNREACHABLE = "Remote store unreachable"


class MigrationOrchestrator:
    """
    Orchestrates the one-time local store to remote store migration.

    Handles:
    - Completion flag check (a finished identity is never migrated twice)
    - Static mappings, one local key each
    - The dynamic key family
    - Per-key failure isolation
    - Removing a local key only after all of its rows were written
    - Marking the identity complete after an error-free run

    A failed key stays in the local store and is retried by the next run.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        local_store: LocalStore,
        remote_client: BaseUpsertClient,
        registry: Optional[MappingRegistry] = None,
        flag_store: Optional[CompletionFlagStore] = None,
        transformer: Optional[TransformEngine] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            identity_provider: Source of the migrating identity
            local_store: Store holding the data to migrate
            remote_client: Client for the destination store
            registry: Mapping registry (defaults to the built-in table)
            flag_store: Completion flag store (defaults to one on remote_client)
            transformer: Transform engine
            clock: Returns the current time; used for last_modified
        """
        self.identity_provider = identity_provider
        self.reader = LocalStoreReader(local_store)
        self.client = remote_client
        self.registry = registry if registry is not None else default_registry()
        self.flag_store = flag_store or CompletionFlagStore(remote_client)
        self.transformer = transformer or TransformEngine()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(
        cls,
        config: MigrationConfig,
        registry: Optional[MappingRegistry] = None,
        transformer: Optional[TransformEngine] = None
    ) -> "MigrationOrchestrator":
        """
        Build an orchestrator and its collaborators from configuration.

        In dry-run mode the local store is copied into memory and rows are
        written to an in-memory remote store, so nothing persistent changes.
        """
        transformer = transformer or TransformEngine()
        if registry is None:
            registry = (
                MappingRegistry.from_json_file(config.mapping_file, transformer)
                if config.mapping_file
                else default_registry()
            )

        local_store = cls._create_local_store(config)
        client = cls._create_client(config)
        flag_store = CompletionFlagStore(
            client,
            table=config.flag_table,
            flag_key=config.flag_key,
            owner_field=config.flag_owner_field,
        )

        return cls(
            identity_provider=cls._create_identity_provider(config),
            local_store=local_store,
            remote_client=client,
            registry=registry,
            flag_store=flag_store,
            transformer=transformer,
        )

    @staticmethod
    def _create_local_store(config: MigrationConfig) -> LocalStore:
        """Create the local store for the configured export file."""
        if not config.local_store_path:
            raise ConfigurationError("local_store_path is required")

        store = JsonFileLocalStore(config.local_store_path)
        if config.dry_run:
            return InMemoryLocalStore(store.snapshot())
        return store

    @staticmethod
    def _create_client(config: MigrationConfig) -> BaseUpsertClient:
        """Create the remote store client."""
        if config.dry_run:
            return InMemoryUpsertClient()

        if not config.remote_url:
            raise ConfigurationError("remote_url is required")

        return PostgRESTClient(
            base_url=config.remote_url,
            api_key=config.api_key,
            access_token=config.access_token,
            timeout=config.timeout,
            max_retries=config.max_retries,
            backoff_factor=config.backoff_factor,
        )

    @staticmethod
    def _create_identity_provider(config: MigrationConfig) -> IdentityProvider:
        """Use the configured identity id, else resolve it from the access token."""
        if config.identity_id:
            return StaticIdentityProvider(config.identity_id)

        if config.dry_run:
            return StaticIdentityProvider("dry-run")

        return PostgRESTAuthIdentityProvider(
            base_url=config.remote_url,
            api_key=config.api_key,
            access_token=config.access_token,
            timeout=config.timeout,
        )

    def run_migration(self) -> MigrationResult:
        """
        Run the complete migration for the current identity.

        Returns:
            MigrationResult with counts, skipped keys and error messages
        """
        identity = self._resolve_identity()
        if identity is None:
            logger.error("Migration aborted: user not authenticated")
            return MigrationResult.failed(NOT_AUTHENTICATED)

        if not self._remote_reachable():
            logger.error("Migration aborted: remote store unreachable")
            return MigrationResult.failed(REMOTE_UNREACHABLE)

        result = MigrationResult(status=MigrationStatus.MIGRATING, started_at=self._clock())
        logger.info(f"Starting local store migration for {identity.id}")

        if self.flag_store.is_complete(identity.id):
            logger.info("Migration already completed, skipping")
            result.status = MigrationStatus.ALREADY_COMPLETED
            result.completed_at = self._clock()
            return result

        try:
            logger.info("=== PHASE 1: STATIC MAPPINGS ===")
            self._migrate_static(identity.id, result)

            logger.info("=== PHASE 2: DYNAMIC KEYS ===")
            self._migrate_dynamic(identity.id, result)

        except KeyboardInterrupt:
            logger.warning("Migration interrupted; keys not yet migrated remain in the local store")
            raise

        logger.info("=== PHASE 3: FINALIZE ===")
        self._finalize(identity.id, result)
        return result

    def get_migration_status(self) -> MigrationStatusReport:
        """Report whether the current identity still needs migrating."""
        identity = self._resolve_identity()
        if identity is None:
            return MigrationStatusReport(is_complete=False, can_migrate=False, error=NOT_AUTHENTICATED)

        is_complete = self.flag_store.is_complete(identity.id)
        return MigrationStatusReport(is_complete=is_complete, can_migrate=not is_complete)

    def migrate_key(
        self,
        entry: Union[MappingEntry, DynamicMappingEntry],
        key: str,
        owner_id: str,
        record: Optional[RawLocalRecord] = None
    ) -> KeyResult:
        """
        Migrate one local key: read, transform, upsert every row, then remove.

        Args:
            entry: Mapping the key belongs to
            key: Local key name
            owner_id: Id of the migrating identity
            record: Already-decoded payload; read from the store when None

        Returns:
            KeyResult for this key
        """
        key_result = KeyResult(key=key)

        if record is None:
            try:
                record = self.reader.read_exact(key)
            except PayloadDecodeError as e:
                key_result.errors.append(f"Failed to migrate {key}: {e.reason}")
                logger.error(f"Failed to migrate {key}: {e.reason}")
                return key_result

            if record is None:
                logger.info(f"Skipping {key} - no data")
                key_result.skipped.append(key)
                return key_result

        logger.info(f"Migrating {key} into {entry.table}...")

        try:
            rows = self.transformer.transform(record, entry, owner_id, key, self._clock())
        except TransformError as e:
            key_result.errors.append(f"Failed to migrate {key}: {e}")
            logger.error(f"Failed to migrate {key}: {e}")
            return key_result

        for row in rows:
            outcome = self.client.upsert_row(row)
            if outcome.success:
                key_result.migrated += 1
            else:
                message = self._row_error(row, outcome.error)
                key_result.errors.append(message)
                logger.error(message)

        if key_result.errors:
            logger.warning(
                f"Keeping {key} in local store: {len(key_result.errors)} of {len(rows)} rows failed"
            )
            return key_result

        # Every row is confirmed, only now is the local copy dropped.
        try:
            self.reader.remove(key)
            key_result.removed = True
        except Exception as e:
            key_result.errors.append(f"Failed to remove {key} after migration: {e}")
            logger.error(f"Failed to remove {key} after migration: {e}")
            return key_result

        logger.info(f"Migrated {key}: {key_result.migrated} items")
        return key_result

    def preview_key(self, key: str, owner_id: str) -> List[TransformedRow]:
        """Transform a key's current value without writing or removing anything."""
        entry = self.registry.entry_for(key)
        if entry is None:
            raise ValueError(f"No mapping found for {key}")

        record = self.reader.read_exact(key)
        if record is None:
            return []

        return self.transformer.transform(record, entry, owner_id, key, self._clock())

    def _migrate_static(self, owner_id: str, result: MigrationResult) -> None:
        """Migrate every static mapping entry in isolation."""
        for entry in self.registry:
            try:
                key_result = self.migrate_key(entry, entry.key, owner_id)
            except Exception as e:
                key_result = KeyResult(key=entry.key, errors=[f"Failed to migrate {entry.key}: {e}"])
                logger.error(f"Failed to migrate {entry.key}: {e}")

            result.merge(key_result)

    def _migrate_dynamic(self, owner_id: str, result: MigrationResult) -> None:
        """Discover and migrate the keys of the dynamic family."""
        entry = self.registry.dynamic_entry
        if entry is None:
            return

        try:
            extraction = self.reader.read_matching(entry.matcher, entry.pattern)
        except Exception as e:
            result.errors.append(f"Failed to migrate {entry.pattern} data: {e}")
            logger.error(f"Failed to list {entry.pattern} keys: {e}")
            return

        if extraction.total_matched == 0:
            logger.info(f"No {entry.pattern} data to migrate")
            result.skipped.append(entry.pattern)
            return

        logger.info(f"Migrating {len(extraction.records)} {entry.pattern} items...")

        for error in extraction.errors:
            result.errors.append(f"Failed to migrate {error['key']}: {error['message']}")
        result.skipped.extend(extraction.skipped)

        for key, record in extraction.records:
            try:
                key_result = self.migrate_key(entry, key, owner_id, record)
            except Exception as e:
                key_result = KeyResult(key=key, errors=[f"Failed to migrate {key}: {e}"])
                logger.error(f"Failed to migrate {key}: {e}")

            result.merge(key_result)

    def _finalize(self, owner_id: str, result: MigrationResult) -> None:
        """Decide the outcome and mark completion after an error-free run."""
        result.completed_at = self._clock()

        if result.errors:
            result.success = False
            result.status = MigrationStatus.PARTIAL
            logger.warning(
                f"Migration incomplete: {result.migrated} items migrated, "
                f"{len(result.errors)} errors; failed keys will be retried on the next run"
            )
            return

        if not result.attempted:
            result.success = False
            result.status = MigrationStatus.FAILED
            result.errors.append("No mappings configured")
            logger.error("Migration did nothing: no mappings configured")
            return

        result.success = True
        result.status = MigrationStatus.COMPLETED
        result.flag_marked = self.flag_store.mark_complete(owner_id, result.completed_at)
        logger.info(
            f"Migration complete: {result.migrated} items migrated, {len(result.skipped)} skipped"
        )

    def _resolve_identity(self) -> Optional[Identity]:
        try:
            return self.identity_provider.get_current_identity()
        except Exception as e:
            logger.error(f"Could not resolve identity: {e}")
            return None

    def _remote_reachable(self) -> bool:
        try:
            return self.client.validate_connection()
        except Exception as e:
            logger.error(f"Remote store connection check failed: {e}")
            return False

    @staticmethod
    def _row_error(row: TransformedRow, error: Optional[RemoteError]) -> str:
        kind = error.kind.value if error else "unknown"
        detail = str(error) if error else "unknown error"
        if row.index is not None:
            return f"Failed to migrate item {row.index} in {row.source_key} [{kind}]: {detail}"
        return f"Failed to migrate {row.source_key} [{kind}]: {detail}"
