"""
Per-model archive configuration.

ArchiveConfig is immutable and hashable: it is resolved once when a model is
registered and then injected into the synchronizer, dispatcher and bulk
archiver. Options arriving as strings (schema-behavior parameters, env
files) go through ArchiveConfig.from_options().
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ImportString, ValidationError, field_validator, model_validator

from archivable.config.constants import ARCHIVE_TABLE_SUFFIX, DEFAULT_ARCHIVED_AT_COLUMN
from archivable.utils.exceptions import ConfigurationConflictError, ConfigurationError


class ArchiveConfig(BaseModel):
    """
    Archive settings for one entity type.

    Attributes:
        archive_on_insert: Archive right after a new entity is inserted.
        archive_on_update: Archive right after an entity is updated.
        archive_on_delete: Archive right before an entity is deleted.
        archive_table: Name of the derived archive table.
        archive_class: Mapped class to use as archive (or "module:Class").
        archived_at_column: Name of the archive timestamp column.
        log_archived_at: Set to False to drop the timestamp column entirely.
        archive_store: Named store holding the archive; None means the
            source model's own database.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    archive_on_insert: bool = False
    archive_on_update: bool = False
    archive_on_delete: bool = True
    archive_table: Optional[str] = None
    archive_class: Optional[ImportString[type]] = None
    archived_at_column: str = DEFAULT_ARCHIVED_AT_COLUMN
    log_archived_at: bool = True
    archive_store: Optional[str] = None

    @field_validator("archive_table", "archive_store", "archived_at_column")
    @classmethod
    def _strip_names(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def _check_archive_target(self) -> "ArchiveConfig":
        if self.archive_table and self.archive_class is not None:
            raise ConfigurationConflictError(self.archive_table, self.archive_class)
        return self

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None) -> "ArchiveConfig":
        """
        Build a configuration from raw option values.

        String booleans ("true", "false", "1", "0") are accepted.

        Raises:
            ConfigurationConflictError: archive_table and archive_class both set.
            ConfigurationError: Unknown option or invalid value.
        """
        try:
            return cls.model_validate(dict(options or {}))
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'options'}: {error['msg']}"
                for error in exc.errors()
            )
            raise ConfigurationError(f"Invalid archive options: {problems}") from exc

    @property
    def timestamp_column(self) -> Optional[str]:
        """Timestamp column name, or None when timestamps are disabled."""
        return self.archived_at_column if self.log_archived_at else None

    def table_name_for(self, source_table: str) -> str:
        """Derived archive table name for a source table."""
        return self.archive_table or f"{source_table}{ARCHIVE_TABLE_SUFFIX}"

    def archives_on(self, event: str) -> bool:
        """Whether the lifecycle event ("insert", "update", "delete") archives by default."""
        return {
            "insert": self.archive_on_insert,
            "update": self.archive_on_update,
            "delete": self.archive_on_delete,
        }[event]
