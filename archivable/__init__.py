"""
Archivable: keeps the latest archived snapshot of SQLAlchemy entities.

STRUCTURE:
- archivable.config: settings, structured logging, ArchiveConfig
- archivable.infrastructure: store engines and sessions
- archivable.models: ArchiveRecord, ArchivedAtMixin, schema derivation
- archivable.services.archive: manager, synchronizer, triggers, bulk
- archivable.utils: exceptions

IMPORT EXAMPLES:
    from archivable import ArchiveManager, ArchiveConfig
    from archivable.services.archive import suppress_archive, LifecycleEvent
    from archivable.utils.exceptions import ArchiveNotFoundError
"""

from archivable.config.options import ArchiveConfig
from archivable.services.archive.manager import ArchiveBinding, ArchiveManager
from archivable.services.archive.resolver import ArchiveStoreResolver
from archivable.utils.exceptions import (
    ArchiveError,
    ArchiveNotFoundError,
    BulkOperationError,
    ConfigurationConflictError,
    ConfigurationError,
    NotPersistedError,
    StoreUnavailableError,
)

__version__ = "0.1.0"

__all__ = [
    "ArchiveBinding",
    "ArchiveConfig",
    "ArchiveManager",
    "ArchiveStoreResolver",
    "ArchiveError",
    "ArchiveNotFoundError",
    "BulkOperationError",
    "ConfigurationConflictError",
    "ConfigurationError",
    "NotPersistedError",
    "StoreUnavailableError",
]
