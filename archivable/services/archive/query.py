"""
Query-level archive operations.

ArchivableQuery wraps a select() of a registered model together with the
caller's session and runs bulk archive, delete and update over the rows it
matches. Nothing is committed; the caller owns the transaction.

Usage:
    query = manager.query(session, Book).where(Book.price_cents < 500)

    query.archive()                       # archive every match
    query.set_archive_on_delete(False).delete()
    query.update({"price_cents": 0})      # archives first if configured
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from archivable.services.archive.bulk import BulkArchiver, BulkResult


class ArchivableQuery:
    """
    A select() of one registered model with archive-aware bulk operations.

    where() and filter_by() return a new query carrying the same archive
    flags; set_archive_on_delete() and set_archive_on_update() change the
    flags of this query object only.
    """

    def __init__(
        self,
        session: Session,
        bulk: BulkArchiver,
        statement: Optional[Select] = None,
    ):
        self._session = session
        self._bulk = bulk
        self._statement = statement if statement is not None else select(bulk.model)
        self._archive_on_delete: Optional[bool] = None
        self._archive_on_update: Optional[bool] = None

    @property
    def statement(self) -> Select:
        return self._statement

    @property
    def archive_on_delete(self) -> bool:
        """Effective delete flag: the query override, else the model config."""
        if self._archive_on_delete is not None:
            return self._archive_on_delete
        return self._bulk.config.archive_on_delete

    @property
    def archive_on_update(self) -> bool:
        if self._archive_on_update is not None:
            return self._archive_on_update
        return self._bulk.config.archive_on_update

    def _clone(self, statement: Select) -> "ArchivableQuery":
        query = ArchivableQuery(self._session, self._bulk, statement)
        query._archive_on_delete = self._archive_on_delete
        query._archive_on_update = self._archive_on_update
        return query

    # =========================================================================
    # Filtering
    # =========================================================================

    def where(self, *criteria: Any) -> "ArchivableQuery":
        return self._clone(self._statement.where(*criteria))

    def filter_by(self, **kwargs: Any) -> "ArchivableQuery":
        return self._clone(self._statement.filter_by(**kwargs))

    def order_by(self, *clauses: Any) -> "ArchivableQuery":
        """Order of the matched records; decides which rows a limit() keeps."""
        return self._clone(self._statement.order_by(*clauses))

    def limit(self, limit: int) -> "ArchivableQuery":
        return self._clone(self._statement.limit(limit))

    def all(self) -> Sequence[Any]:
        return self._session.scalars(self._statement).all()

    def count(self) -> int:
        query = select(func.count()).select_from(self._statement.subquery())
        return self._session.scalar(query) or 0

    # =========================================================================
    # Flags
    # =========================================================================

    def set_archive_on_delete(self, flag: bool) -> "ArchivableQuery":
        self._archive_on_delete = bool(flag)
        return self

    def set_archive_on_update(self, flag: bool) -> "ArchivableQuery":
        self._archive_on_update = bool(flag)
        return self

    # =========================================================================
    # Bulk operations
    # =========================================================================

    def archive(self) -> BulkResult:
        """Archive every matched record."""
        return self._bulk.archive_matching(self._session, self._statement)

    def delete(self) -> BulkResult:
        """Delete matched records, archiving first when archive_on_delete is set."""
        return self._bulk.delete_matching(
            self._session, self._statement, with_archive=self.archive_on_delete
        )

    def delete_without_archive(self) -> BulkResult:
        return self._bulk.delete_matching(self._session, self._statement, with_archive=False)

    def update(self, values: Mapping[str, Any]) -> BulkResult:
        """Update matched records, archiving first when archive_on_update is set."""
        return self._bulk.update_matching(
            self._session, self._statement, values, with_archive=self.archive_on_update
        )

    def update_without_archive(self, values: Mapping[str, Any]) -> BulkResult:
        return self._bulk.update_matching(
            self._session, self._statement, values, with_archive=False
        )
