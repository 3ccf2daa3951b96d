"""
Bulk archiving over query results.

Cost model for archive_matching() on n matched records: one selection
query, then one existence probe and one write per record (2n + 1 store
round trips). The probe is what keeps repeated runs from creating more
than one archive row per key.

Failure policy:
- Atomic (archive shares the session transaction, i.e. same store): the
  first failure rolls back the session and raises BulkOperationError.
- Non-atomic (named store, each write commits on its own): failures are
  logged per record and returned in BulkResult.failures; BulkResult.count
  only counts records that were archived. Partial completion is the
  expected failure mode here.

Bulk DELETE and UPDATE run as ORM bulk statements, which do not fire the
per-entity lifecycle triggers; archiving is done here, before the
statement, and never twice. The statement only touches the primary keys
the select matched (and, when archiving, that were archived), so limit,
offset and ordering of the select carry over. Selects that join other
tables are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from sqlalchemy import delete, inspect, tuple_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Join, Select

from archivable.config.logging import get_logger
from archivable.config.options import ArchiveConfig
from archivable.services.archive.synchronizer import ArchiveSynchronizer
from archivable.utils.exceptions import ArchiveError, BulkOperationError

logger = get_logger(__name__)

# Primary keys per IN list of a bulk DELETE or UPDATE
KEY_BATCH_SIZE = 500


@dataclass(frozen=True, slots=True)
class FailedRecord:
    """A record whose archive write failed during a non-atomic bulk run."""

    key: tuple
    error: Exception


@dataclass(frozen=True)
class BulkResult:
    """
    Outcome of a bulk operation.

    Attributes:
        count: Records archived (archive) or rows affected (delete, update).
        archived: Records archived before a delete/update, None if the
            operation ran without archive.
        failures: Per-record archive failures (non-atomic runs only).
    """

    count: int
    archived: Optional[int] = None
    failures: tuple[FailedRecord, ...] = field(default_factory=tuple)
    archived_keys: tuple[tuple, ...] = field(default_factory=tuple, repr=False)

    @property
    def complete(self) -> bool:
        return not self.failures

    def __int__(self) -> int:
        return self.count


class BulkArchiver:
    """
    Archive, delete and update every record matched by a statement.

    Args:
        synchronizer: Synchronizer of the registered model.
        atomic: Force the failure policy; by default atomic when the
            archive lives in the source store.
    """

    def __init__(self, synchronizer: ArchiveSynchronizer, atomic: Optional[bool] = None):
        self._synchronizer = synchronizer
        self._atomic = synchronizer.target.shares_source_store if atomic is None else atomic

    @property
    def model(self) -> type:
        return self._synchronizer.mapping.model

    @property
    def config(self) -> ArchiveConfig:
        return self._synchronizer.config

    @property
    def atomic(self) -> bool:
        return self._atomic

    def _check_statement(self, statement: Select) -> None:
        descriptions = statement.column_descriptions
        entity = descriptions[0].get("entity") if len(descriptions) == 1 else None
        # select(Book.id) also reports Book as entity; only whole entities qualify
        if (
            entity is None
            or descriptions[0].get("expr") is not entity
            or not issubclass(entity, self.model)
        ):
            raise ValueError(
                f"Bulk archive statements must select {self.model.__name__} entities only"
            )
        froms = statement.get_final_froms()
        # select(Book).join(Author) reports a single Join
        if len(froms) != 1 or isinstance(froms[0], Join):
            raise ValueError("Bulk archive statements cannot join other tables")

    def archive_matching(self, session: Session, statement: Select) -> BulkResult:
        """
        Archive every entity matched by `statement`.

        Args:
            session: The caller's session.
            statement: A select() of the registered model.

        Returns:
            BulkResult whose count is the number of records archived.

        Raises:
            BulkOperationError: Atomic run failed; the session was rolled back.
        """
        self._check_statement(statement)
        # Archive the stored rows, not stale or unflushed identity map state
        entities = session.scalars(statement.execution_options(populate_existing=True)).all()

        archived_keys: list[tuple] = []
        failures: list[FailedRecord] = []
        for entity in entities:
            key = self._synchronizer.mapping.primary_key_of(entity)
            try:
                self._synchronizer.write(entity, session)
            except (ArchiveError, SQLAlchemyError) as exc:
                if self._atomic:
                    session.rollback()
                    raise BulkOperationError(
                        "archive",
                        self._synchronizer.entity_name,
                        archived=len(archived_keys),
                        key=key,
                    ) from exc
                logger.error(
                    "Bulk archive record failed",
                    model=self._synchronizer.entity_name,
                    key=key,
                    exc_info=True,
                )
                failures.append(FailedRecord(key=key, error=exc))
                continue
            archived_keys.append(key)

        logger.info(
            "Bulk archive finished",
            model=self._synchronizer.entity_name,
            matched=len(entities),
            archived=len(archived_keys),
            failed=len(failures),
        )
        return BulkResult(
            count=len(archived_keys),
            archived=len(archived_keys),
            failures=tuple(failures),
            archived_keys=tuple(archived_keys),
        )

    def delete_matching(
        self,
        session: Session,
        statement: Select,
        with_archive: Optional[bool] = None,
    ) -> BulkResult:
        """
        Delete every record matched by `statement`, archiving first.

        Args:
            with_archive: Archive before deleting; defaults to the model's
                archive_on_delete. Records whose archive failed are not
                deleted.

        Returns:
            BulkResult whose count is the number of deleted rows.
        """
        if with_archive is None:
            with_archive = self.config.archive_on_delete
        return self._apply(session, statement, delete(self.model), "delete", with_archive)

    def update_matching(
        self,
        session: Session,
        statement: Select,
        changes: Mapping[str, Any],
        with_archive: Optional[bool] = None,
    ) -> BulkResult:
        """
        Update every record matched by `statement`, archiving the
        pre-update state first.

        Args:
            changes: Attribute name -> new value.
            with_archive: Defaults to the model's archive_on_update.

        Returns:
            BulkResult whose count is the number of updated rows.
        """
        if not changes:
            raise ValueError("update_matching() needs at least one change")
        if with_archive is None:
            with_archive = self.config.archive_on_update
        return self._apply(
            session, statement, update(self.model).values(dict(changes)), "update", with_archive
        )

    def _apply(
        self,
        session: Session,
        statement: Select,
        dml: Any,
        operation: str,
        with_archive: bool,
    ) -> BulkResult:
        self._check_statement(statement)

        archived: Optional[BulkResult] = None
        if with_archive:
            archived = self.archive_matching(session, statement)
            keys = list(archived.archived_keys)
        else:
            keys = self._matched_keys(session, statement)

        # Restricting to matched keys keeps limit/offset/order of the select
        count = 0
        for start in range(0, len(keys), KEY_BATCH_SIZE):
            batch = keys[start:start + KEY_BATCH_SIZE]
            count += session.execute(dml.where(self._key_filter(batch))).rowcount

        logger.info(
            f"Bulk {operation} finished",
            model=self._synchronizer.entity_name,
            affected=count,
            archived=archived.count if archived is not None else None,
        )
        return BulkResult(
            count=count,
            archived=archived.count if archived is not None else None,
            failures=archived.failures if archived is not None else (),
        )

    def _matched_keys(self, session: Session, statement: Select) -> list[tuple]:
        columns = list(inspect(self.model).primary_key)
        rows = session.execute(statement.with_only_columns(*columns)).all()
        return [tuple(row) for row in rows]

    def _key_filter(self, keys: list[tuple]) -> Any:
        """Restrict a bulk statement to the given source primary keys."""
        columns = list(inspect(self.model).primary_key)
        if len(columns) == 1:
            return columns[0].in_([key[0] for key in keys])
        return tuple_(*columns).in_(keys)
