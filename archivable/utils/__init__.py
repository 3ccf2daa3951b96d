"""
Utilities: exceptions with automatic logging.
"""

from archivable.utils.exceptions import (
    ArchiveError,
    ArchiveNotFoundError,
    BulkOperationError,
    ConfigurationConflictError,
    ConfigurationError,
    NotPersistedError,
    StoreUnavailableError,
)

__all__ = [
    "ArchiveError",
    "ArchiveNotFoundError",
    "BulkOperationError",
    "ConfigurationConflictError",
    "ConfigurationError",
    "NotPersistedError",
    "StoreUnavailableError",
]
