"""
Archive services.

- mapper.py: ArchiveMapping, source/archive field correspondence
- resolver.py: ArchiveStoreResolver, named archive stores
- synchronizer.py: ArchiveSynchronizer, the only writer of archive rows
- repository.py: ArchiveRepository, archive read path
- triggers.py: lifecycle triggers on SQLAlchemy mapper events
- bulk.py: BulkArchiver over query results
- query.py: ArchivableQuery, query-level operations
- manager.py: ArchiveManager, registration and public operations
"""

from archivable.services.archive.bulk import BulkArchiver, BulkResult, FailedRecord
from archivable.services.archive.manager import ArchiveBinding, ArchiveManager
from archivable.services.archive.mapper import ArchiveMapping, FieldPair
from archivable.services.archive.query import ArchivableQuery
from archivable.services.archive.repository import ArchiveRepository
from archivable.services.archive.resolver import ArchiveStoreResolver, ArchiveTarget
from archivable.services.archive.synchronizer import ArchiveSynchronizer, utcnow
from archivable.services.archive.triggers import (
    LifecycleEvent,
    TriggerDispatcher,
    suppress_archive,
)

__all__ = [
    "ArchivableQuery",
    "ArchiveBinding",
    "ArchiveManager",
    "ArchiveMapping",
    "ArchiveRepository",
    "ArchiveStoreResolver",
    "ArchiveSynchronizer",
    "ArchiveTarget",
    "BulkArchiver",
    "BulkResult",
    "FailedRecord",
    "FieldPair",
    "LifecycleEvent",
    "TriggerDispatcher",
    "suppress_archive",
    "utcnow",
]
