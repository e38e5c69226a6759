"""Migration execution models."""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from enum import Enum
from datetime import datetime, timezone

from dateutil import parser as date_parser


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    MIGRATING = "migrating"
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    PARTIAL = "partial"  # Some keys failed, retry by running again
    FAILED = "failed"  # Precondition failed, nothing was touched


@dataclass
class MigrationResult:
    """Aggregate outcome of one orchestration run."""
    success: bool = True
    migrated: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    status: MigrationStatus = MigrationStatus.PENDING
    flag_marked: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def failed(cls, message: str) -> "MigrationResult":
        """Result for a run aborted before any local or remote I/O."""
        now = datetime.now(timezone.utc)
        return cls(
            success=False,
            errors=[message],
            status=MigrationStatus.FAILED,
            started_at=now,
            completed_at=now,
        )

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def attempted(self) -> bool:
        """True once at least one key was migrated or skipped."""
        return self.migrated > 0 or bool(self.skipped)

    def merge(self, key_result) -> None:
        """Fold a per-key outcome into the aggregate."""
        self.migrated += key_result.migrated
        self.errors.extend(key_result.errors)
        self.skipped.extend(key_result.skipped)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "migrated": self.migrated,
            "errors": self.errors,
            "skipped": self.skipped,
            "status": self.status.value,
            "flag_marked": self.flag_marked,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class MigrationStatusReport:
    """Whether an identity still needs migrating."""
    is_complete: bool
    can_migrate: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_complete": self.is_complete,
            "can_migrate": self.can_migrate,
            "error": self.error,
        }


@dataclass
class CompletionFlag:
    """The remote "migration done" record of one identity."""
    identity_id: str
    value: bool
    last_modified: Optional[datetime] = None

    @classmethod
    def from_row(cls, identity_id: str, row: Dict[str, Any]) -> "CompletionFlag":
        last_modified = row.get("last_modified")
        if isinstance(last_modified, str):
            try:
                last_modified = date_parser.isoparse(last_modified)
            except (ValueError, OverflowError):
                last_modified = None
        elif not isinstance(last_modified, datetime):
            last_modified = None
        return cls(
            identity_id=identity_id,
            value=row.get("value") is True,
            last_modified=last_modified,
        )


ENV_PREFIX = "KVMIGRATE_"

ENV_FIELDS = {
    "REMOTE_URL": "remote_url",
    "API_KEY": "api_key",
    "ACCESS_TOKEN": "access_token",
    "IDENTITY_ID": "identity_id",
    "LOCAL_STORE": "local_store_path",
    "MAPPING_FILE": "mapping_file",
}


@dataclass
class MigrationConfig:
    """Configuration for a migration run."""
    # Remote store
    remote_url: str = ""
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    timeout: float = 10.0
    max_retries: int = 3
    backoff_factor: float = 0.5

    # Identity; when unset the identity is resolved from the access token
    identity_id: Optional[str] = None

    # Local store
    local_store_path: Optional[str] = None

    # Mapping; None uses the built-in registry
    mapping_file: Optional[str] = None

    # Completion flag
    flag_table: str = "user_settings"
    flag_key: str = "migration_localstorage_done"
    flag_owner_field: str = "user_id"

    # Execution options
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets omitted)."""
        return {
            "remote_url": self.remote_url,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "backoff_factor": self.backoff_factor,
            "identity_id": self.identity_id,
            "local_store_path": self.local_store_path,
            "mapping_file": self.mapping_file,
            "flag_table": self.flag_table,
            "flag_key": self.flag_key,
            "flag_owner_field": self.flag_owner_field,
            "dry_run": self.dry_run,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        return cls(
            remote_url=data.get("remote_url", ""),
            api_key=data.get("api_key"),
            access_token=data.get("access_token"),
            timeout=float(data.get("timeout", 10.0)),
            max_retries=int(data.get("max_retries", 3)),
            backoff_factor=float(data.get("backoff_factor", 0.5)),
            identity_id=data.get("identity_id"),
            local_store_path=data.get("local_store_path"),
            mapping_file=data.get("mapping_file"),
            flag_table=data.get("flag_table", "user_settings"),
            flag_key=data.get("flag_key", "migration_localstorage_done"),
            flag_owner_field=data.get("flag_owner_field", "user_id"),
            dry_run=data.get("dry_run", False),
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "MigrationConfig":
        """Load configuration from a JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "MigrationConfig":
        """Override fields from ``KVMIGRATE_*`` environment variables."""
        environ = os.environ if environ is None else environ
        for suffix, attr in ENV_FIELDS.items():
            value = environ.get(f"{ENV_PREFIX}{suffix}")
            if value:
                setattr(self, attr, value)
        return self
