"""
Centralized exceptions for the archive engine.

Every exception logs itself on construction with structured context, so a
failed archive always leaves a trace even when the caller re-raises it.

Usage:
    from archivable.utils.exceptions import NotPersistedError, ArchiveNotFoundError

    raise NotPersistedError("Book")
    raise ArchiveNotFoundError("Book", (42,))
"""

from typing import Any

from archivable.config.constants import SOURCE_STORE
from archivable.config.logging import get_logger

logger = get_logger(__name__)


class ArchiveError(Exception):
    """
    Base exception with automatic logging.

    All engine exceptions inherit from this class to keep logging and
    message format consistent.
    """

    def __init__(self, detail: str, log_level: str = "warning", **log_context: Any):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, error=type(self).__name__, **log_context)

        super().__init__(detail)
        self.detail = detail
        self.context = log_context


# =============================================================================
# Entity state errors
# =============================================================================


class NotPersistedError(ArchiveError):
    """
    Archive attempted on an entity without an assigned primary key.

    Usage:
        raise NotPersistedError("Book")
    """

    def __init__(self, entity: str, **log_context: Any):
        super().__init__(
            f"{entity} has no primary key yet and cannot be archived",
            entity=entity,
            **log_context,
        )


class ArchiveNotFoundError(ArchiveError):
    """
    No archive row exists for the requested key.

    Usage:
        raise ArchiveNotFoundError("Book", (42,))
    """

    def __init__(self, entity: str, key: tuple | None = None, **log_context: Any):
        if key is not None:
            detail = f"No archive found for {entity} with key {key}"
        else:
            detail = f"No archive found for {entity}"

        super().__init__(detail, entity=entity, key=key, **log_context)


# =============================================================================
# Store errors
# =============================================================================


class StoreUnavailableError(ArchiveError):
    """
    Archive store is unreachable or misconfigured.

    Usage:
        raise StoreUnavailableError("cold", "connection refused")
    """

    def __init__(self, store: str | None, reason: str | None = None, **log_context: Any):
        name = store or SOURCE_STORE
        detail = f"Archive store '{name}' is unavailable"
        if reason:
            detail = f"{detail}: {reason}"

        super().__init__(detail, log_level="error", store=name, **log_context)
        self.store = name


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(ArchiveError):
    """
    Invalid archive configuration, detected at registration time.

    Usage:
        raise ConfigurationError("BookArchive is missing column 'isbn'", model="Book")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="error", **log_context)


class ConfigurationConflictError(ConfigurationError):
    """Both archive_table and archive_class were given."""

    def __init__(self, archive_table: str, archive_class: Any, **log_context: Any):
        class_name = getattr(archive_class, "__name__", str(archive_class))
        super().__init__(
            f"archive_table '{archive_table}' and archive_class '{class_name}' "
            "are mutually exclusive",
            archive_table=archive_table,
            archive_class=class_name,
            **log_context,
        )


# =============================================================================
# Bulk errors
# =============================================================================


class BulkOperationError(ArchiveError):
    """
    An atomic bulk operation failed and its transaction was rolled back.

    Usage:
        raise BulkOperationError("archive", "Book", archived=3, key=(4,))
    """

    def __init__(
        self,
        operation: str,
        entity: str,
        archived: int = 0,
        key: tuple | None = None,
        **log_context: Any,
    ):
        detail = f"Bulk {operation} of {entity} rolled back after {archived} record(s)"
        if key is not None:
            detail = f"{detail}, failed on key {key}"

        super().__init__(
            detail,
            log_level="error",
            operation=operation,
            entity=entity,
            archived=archived,
            key=key,
            **log_context,
        )
        self.operation = operation
        self.archived = archived
        self.key = key
