"""
Archive record base classes and archive schema derivation.
"""

from archivable.models.base import ArchivedAtMixin, ArchiveRecord
from archivable.models.schema import build_archive_class, derive_archive_table

__all__ = [
    "ArchiveRecord",
    "ArchivedAtMixin",
    "build_archive_class",
    "derive_archive_table",
]
