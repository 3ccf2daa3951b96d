"""
Repository for reading archive records.

Provides the archive-side read path (find by key, find by filter) so
callers can query archives without touching the synchronizer.

Usage:
    repo = ArchiveRepository(mapping, session)

    archive = repo.find_by_key((42,))
    recent = repo.find_all(
        BookArchive.archived_at >= cutoff,
        order_by=BookArchive.archived_at.desc(),
        limit=20,
    )
"""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import exists as sql_exists, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from archivable.services.archive.mapper import ArchiveMapping


class ArchiveRepository:
    """
    Read access to one archive class.

    Writes never go through the repository: archive rows are created and
    overwritten only by the synchronizer.
    """

    def __init__(self, mapping: ArchiveMapping, session: Session):
        self._mapping = mapping
        self._session = session

    @property
    def model(self) -> type:
        """The archive mapped class."""
        return self._mapping.archive_class

    @property
    def session(self) -> Session:
        return self._session

    def _base_query(self, criteria: Sequence[Any]) -> Select:
        query = select(self.model)
        if criteria:
            query = query.where(*criteria)
        return query

    def find_by_key(self, key: tuple, *, refresh: bool = False) -> Any | None:
        """
        Find the archive record for a source primary key.

        Args:
            key: Primary key values in source primary key order.
            refresh: Overwrite an already loaded instance with stored values.

        Returns:
            Archive record or None.
        """
        return self._session.get(
            self.model,
            self._mapping.archive_identity(key),
            populate_existing=refresh,
        )

    def find_all(
        self,
        *criteria: Any,
        limit: int | None = None,
        offset: int | None = None,
        order_by: Any | None = None,
    ) -> Sequence[Any]:
        """
        Find archive records matching filter criteria.

        Args:
            criteria: SQLAlchemy filter expressions on the archive class.
            limit: Maximum number of results.
            offset: Number of results to skip.
            order_by: Column or expression to order by.

        Returns:
            Sequence of archive records.
        """
        query = self._base_query(criteria)

        if order_by is not None:
            query = query.order_by(order_by)
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return self._session.scalars(query).all()

    def count(self, *criteria: Any) -> int:
        """Count archive records matching criteria."""
        query = select(func.count()).select_from(self.model)
        if criteria:
            query = query.where(*criteria)
        return self._session.scalar(query) or 0

    def exists(self, key: tuple) -> bool:
        """Check whether an archive record exists for a key."""
        query = select(sql_exists().where(self._mapping.key_clause(key)))
        return self._session.scalar(query) or False
