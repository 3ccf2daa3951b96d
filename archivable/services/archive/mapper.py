"""
Archive record mapping.

ArchiveMapping pairs each source column with its archive counterpart by
column name. It is built once when a model is registered and never
recomputed; the engine assumes both schemas stay as provisioned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, Table, and_, inspect, select
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Mapper

from archivable.config.options import ArchiveConfig
from archivable.utils.exceptions import ConfigurationError


@dataclass(frozen=True, slots=True, eq=False)
class FieldPair:
    """One source attribute and the archive attribute it is copied to."""

    name: str  # column name, shared by both sides
    source_key: str
    source_column: Column
    archive_key: str
    archive_column: Column


def _columns_by_name(mapper: Mapper) -> dict[str, tuple[str, Column]]:
    """Column name -> (attribute key, table column) for plain column attributes."""
    result: dict[str, tuple[str, Column]] = {}
    for prop in mapper.column_attrs:
        column = prop.columns[0]
        if isinstance(column, Column) and column.table is mapper.local_table:
            result[column.name] = (prop.key, column)
    return result


@dataclass(frozen=True, eq=False)
class ArchiveMapping:
    """
    Field correspondence between a source model and its archive class.

    Attributes:
        model: Source mapped class.
        archive_class: Archive mapped class.
        archive_table: Table written by the synchronizer.
        fields: All copied fields, in source column order.
        primary_key: Primary key fields, in source primary key order.
        timestamp_key: Archive attribute holding archived_at, or None.
        timestamp_column: Archive table column holding archived_at, or None.
    """

    model: type
    archive_class: type
    archive_table: Table
    fields: tuple[FieldPair, ...]
    primary_key: tuple[FieldPair, ...]
    timestamp_key: Optional[str] = None
    timestamp_column: Optional[Column] = None

    @classmethod
    def build(cls, model: type, archive_class: type, config: ArchiveConfig) -> "ArchiveMapping":
        """
        Pair source and archive columns by name.

        Raises:
            ConfigurationError: The archive class lacks a source column or
                the enabled timestamp column.
        """
        source_mapper = inspect(model)
        archive_mapper = inspect(archive_class)
        source_columns = _columns_by_name(source_mapper)
        archive_columns = _columns_by_name(archive_mapper)

        missing = [name for name in source_columns if name not in archive_columns]
        if missing:
            raise ConfigurationError(
                f"{archive_class.__name__} is missing column(s) {', '.join(sorted(missing))} "
                f"of {model.__name__}",
                model=model.__name__,
                archive_class=archive_class.__name__,
            )

        fields = tuple(
            FieldPair(
                name=name,
                source_key=source_key,
                source_column=source_column,
                archive_key=archive_columns[name][0],
                archive_column=archive_columns[name][1],
            )
            for name, (source_key, source_column) in source_columns.items()
        )

        pk_names = [column.name for column in source_mapper.primary_key]
        by_name = {pair.name: pair for pair in fields}
        primary_key = tuple(by_name[name] for name in pk_names)

        timestamp_key = None
        timestamp_column = None
        if config.timestamp_column:
            if config.timestamp_column not in archive_columns:
                raise ConfigurationError(
                    f"{archive_class.__name__} has no '{config.timestamp_column}' column; "
                    "add it or set log_archived_at to false",
                    model=model.__name__,
                    archive_class=archive_class.__name__,
                )
            timestamp_key, timestamp_column = archive_columns[config.timestamp_column]

        return cls(
            model=model,
            archive_class=archive_class,
            archive_table=archive_mapper.local_table,
            fields=fields,
            primary_key=primary_key,
            timestamp_key=timestamp_key,
            timestamp_column=timestamp_column,
        )

    # =========================================================================
    # Keys
    # =========================================================================

    def primary_key_of(self, entity: Any) -> Optional[tuple]:
        """
        Primary key values of an entity, or None if any part is unassigned.

        Reads loaded attribute values first, then the identity key of a
        persistent instance; never triggers a lazy load.
        """
        state = inspect(entity)
        values = tuple(state.dict.get(pair.source_key) for pair in self.primary_key)
        if any(value is None for value in values) and state.has_identity:
            values = tuple(state.identity)
        if any(value is None for value in values):
            return None
        return values

    def key_clause(self, key: tuple) -> Any:
        """WHERE clause selecting the archive row for a key."""
        return and_(*(pair.archive_column == value for pair, value in zip(self.primary_key, key)))

    def source_key_clause(self, key: tuple) -> Any:
        """WHERE clause selecting the source row for a key."""
        return and_(*(pair.source_column == value for pair, value in zip(self.primary_key, key)))

    def archive_identity(self, key: tuple) -> tuple:
        """Reorder a source key into the archive mapper's primary key order."""
        by_name = {pair.name: value for pair, value in zip(self.primary_key, key)}
        return tuple(by_name[column.name] for column in inspect(self.archive_class).primary_key)

    # =========================================================================
    # Values
    # =========================================================================

    def archive_values(
        self,
        entity: Any,
        now: Optional[datetime] = None,
        connection: Optional[Connection] = None,
    ) -> dict[str, Any]:
        """
        Archive table values for an entity, keyed by archive column key.

        Args:
            entity: Source entity.
            now: Archive timestamp; ignored when timestamps are disabled.
            connection: Flush-time connection. When given, attributes that
                are not loaded are read from the stored row instead of
                lazy loading through the session.
        """
        state = inspect(entity)
        loaded = state.dict
        row: dict[str, Any] = {}

        unloaded = [pair for pair in self.fields if pair.source_key not in loaded]
        if unloaded and connection is not None:
            key = self.primary_key_of(entity)
            stored = connection.execute(
                select(*(pair.source_column for pair in unloaded)).where(self.source_key_clause(key))
            ).first()
            if stored is not None:
                row = dict(zip((pair.source_key for pair in unloaded), stored))

        values: dict[str, Any] = {}
        for pair in self.fields:
            if pair.source_key in loaded:
                value = loaded[pair.source_key]
            elif pair.source_key in row:
                value = row[pair.source_key]
            else:
                value = getattr(entity, pair.source_key)
            values[pair.archive_column.key] = value

        if self.timestamp_column is not None:
            values[self.timestamp_column.key] = now
        return values

    def populate(self, entity: Any, archive: Any) -> Any:
        """Copy every mapped field from an archive record onto an entity."""
        for pair in self.fields:
            setattr(entity, pair.source_key, getattr(archive, pair.archive_key))
        return entity
