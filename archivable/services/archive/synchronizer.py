"""
Archive synchronizer: the single place where archive rows are written.

Writes follow one cost model per record: an existence probe on the
archive key, then one write. The write is a dialect-native upsert where
the backend has one (SQLite, PostgreSQL, MySQL), so concurrent archives of
the same key resolve last-write-wins without engine-level locking.

Transactions:
- Same store: writes run on the caller's session connection (or the flush
  connection) and commit or roll back with the caller's transaction.
- Named store: writes run in their own transaction on the archive engine
  and are committed immediately; they are not rolled back if the source
  transaction later fails.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import insert, inspect, literal, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session

from archivable.config.constants import SOURCE_STORE
from archivable.config.logging import get_logger
from archivable.config.options import ArchiveConfig
from archivable.services.archive.mapper import ArchiveMapping
from archivable.services.archive.repository import ArchiveRepository
from archivable.services.archive.resolver import (
    UNAVAILABLE_ERRORS,
    ArchiveStoreResolver,
    ArchiveTarget,
)
from archivable.utils.exceptions import (
    ArchiveNotFoundError,
    NotPersistedError,
    StoreUnavailableError,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current time, used for archived_at."""
    return datetime.now(timezone.utc)


class ArchiveSynchronizer:
    """
    Writes and reads the archive of one registered model.

    Args:
        mapping: Field correspondence built at registration.
        config: The model's archive configuration.
        target: Resolved archive location.
        resolver: Resolver owning the archive store engines.
        clock: Source of archive timestamps.
    """

    def __init__(
        self,
        mapping: ArchiveMapping,
        config: ArchiveConfig,
        target: ArchiveTarget,
        resolver: ArchiveStoreResolver,
        clock: Clock = utcnow,
    ):
        self._mapping = mapping
        self._config = config
        self._target = target
        self._resolver = resolver
        self._clock = clock

    @property
    def mapping(self) -> ArchiveMapping:
        return self._mapping

    @property
    def config(self) -> ArchiveConfig:
        return self._config

    @property
    def target(self) -> ArchiveTarget:
        return self._target

    @property
    def entity_name(self) -> str:
        return self._mapping.model.__name__

    # =========================================================================
    # Writes
    # =========================================================================

    def archive(self, entity: Any, session: Session) -> Any:
        """
        Create or overwrite the archive of an entity.

        Args:
            entity: A persisted entity.
            session: The caller's session.

        Returns:
            The archive record, refreshed from the store.

        Raises:
            NotPersistedError: The entity has no primary key.
            StoreUnavailableError: The archive store cannot be reached.
        """
        self.write(entity, session)
        archive = self.get_archive(entity, session, refresh=True)
        if archive is None:
            # Written in another transaction and already gone
            raise ArchiveNotFoundError(self.entity_name, self._require_key(entity))
        return archive

    def write(self, entity: Any, session: Session) -> bool:
        """
        Archive an entity without loading the archive record back.

        Returns:
            True when a new archive row was created, False when an
            existing one was overwritten.
        """
        key = self._require_key(entity)
        if self._target.shares_source_store:
            try:
                connection = session.connection(
                    bind_arguments={"mapper": inspect(self._mapping.model)}
                )
                return self._upsert(connection, entity, key)
            except UNAVAILABLE_ERRORS as exc:
                raise StoreUnavailableError(None, str(exc.orig or exc)) from exc

        with self._resolver.connect(self._target) as connection:
            return self._upsert(connection, entity, key)

    def write_in_flush(self, entity: Any, connection: Connection) -> bool:
        """
        Archive an entity from a flush-time lifecycle event.

        Args:
            entity: Entity being inserted, updated or deleted.
            connection: The flush connection of the source store.
        """
        key = self._require_key(entity)
        if self._target.shares_source_store:
            try:
                return self._upsert(connection, entity, key, source_connection=connection)
            except UNAVAILABLE_ERRORS as exc:
                raise StoreUnavailableError(None, str(exc.orig or exc)) from exc

        with self._resolver.connect(self._target) as archive_connection:
            return self._upsert(archive_connection, entity, key, source_connection=connection)

    def _require_key(self, entity: Any) -> tuple:
        key = self._mapping.primary_key_of(entity)
        if key is None:
            raise NotPersistedError(self.entity_name)
        return key

    def _upsert(
        self,
        connection: Connection,
        entity: Any,
        key: tuple,
        source_connection: Optional[Connection] = None,
    ) -> bool:
        table = self._mapping.archive_table
        clause = self._mapping.key_clause(key)
        values = self._mapping.archive_values(
            entity, now=self._clock(), connection=source_connection
        )

        exists = connection.execute(
            select(literal(1)).select_from(table).where(clause).limit(1)
        ).first() is not None

        statement = self._native_upsert(connection.dialect.name, values)
        if statement is not None:
            connection.execute(statement)
        elif exists:
            connection.execute(update(table).where(clause).values(values))
        else:
            connection.execute(insert(table).values(values))

        logger.debug(
            "Archive overwritten" if exists else "Archive created",
            model=self.entity_name,
            key=key,
            store=self._target.store or SOURCE_STORE,
        )
        return not exists

    def _native_upsert(self, dialect: str, values: dict[str, Any]) -> Any | None:
        """Insert-or-overwrite statement for backends that support one."""
        table = self._mapping.archive_table
        pk_keys = {pair.archive_column.key for pair in self._mapping.primary_key}
        changes = {key: value for key, value in values.items() if key not in pk_keys}

        if dialect in ("sqlite", "postgresql"):
            module = sqlite if dialect == "sqlite" else postgresql
            statement = module.insert(table).values(values)
            index_elements = [pair.archive_column for pair in self._mapping.primary_key]
            if not changes:
                return statement.on_conflict_do_nothing(index_elements=index_elements)
            return statement.on_conflict_do_update(index_elements=index_elements, set_=changes)

        if dialect in ("mysql", "mariadb"):
            statement = mysql.insert(table).values(values)
            if not changes:
                changes = {key: values[key] for key in pk_keys}
            return statement.on_duplicate_key_update(**changes)

        return None

    # =========================================================================
    # Reads
    # =========================================================================

    def get_archive(self, entity: Any, session: Session, *, refresh: bool = False) -> Any | None:
        """
        Archive record for an entity's key, or None.

        Raises:
            NotPersistedError: The entity has no primary key.
            StoreUnavailableError: The archive store cannot be reached.
        """
        return self.find_archive(self._require_key(entity), session, refresh=refresh)

    def find_archive(self, key: tuple, session: Session, *, refresh: bool = False) -> Any | None:
        """Archive record for a primary key, or None."""
        if self._reads_through(session):
            try:
                return ArchiveRepository(self._mapping, session).find_by_key(key, refresh=refresh)
            except UNAVAILABLE_ERRORS as exc:
                raise StoreUnavailableError(self._target.store, str(exc.orig or exc)) from exc

        with self._resolver.session(self._target) as archive_session:
            return ArchiveRepository(self._mapping, archive_session).find_by_key(key)

    def find_archives(self, session: Session, *criteria: Any, **options: Any) -> list[Any]:
        """Archive records matching filter criteria (see ArchiveRepository.find_all)."""
        if self._reads_through(session):
            try:
                return list(ArchiveRepository(self._mapping, session).find_all(*criteria, **options))
            except UNAVAILABLE_ERRORS as exc:
                raise StoreUnavailableError(self._target.store, str(exc.orig or exc)) from exc

        with self._resolver.session(self._target) as archive_session:
            return list(ArchiveRepository(self._mapping, archive_session).find_all(*criteria, **options))

    def _reads_through(self, session: Session) -> bool:
        """Whether the caller's session reaches the archive store."""
        if self._target.shares_source_store:
            return True
        try:
            bind = session.get_bind(mapper=inspect(self._mapping.archive_class))
        except UnboundExecutionError:
            return False
        return bind is self._target.engine

    def restore(self, entity: Any, session: Session) -> Any:
        """
        Overwrite an entity's fields from its archive.

        The entity only needs its primary key set. It is returned without
        being added to or flushed through the session.

        Raises:
            ArchiveNotFoundError: No archive exists for the key.
        """
        key = self._require_key(entity)
        archive = self.find_archive(key, session, refresh=True)
        if archive is None:
            raise ArchiveNotFoundError(self.entity_name, key)
        return self.populate_from_archive(entity, archive)

    def populate_from_archive(self, entity: Any, archive: Any) -> Any:
        """Copy an archive record's fields onto an entity; no store access."""
        if archive is None:
            raise ValueError("Cannot populate from a None archive")
        return self._mapping.populate(entity, archive)
