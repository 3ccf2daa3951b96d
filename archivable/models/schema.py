"""
Archive schema derivation.

Builds the archive table for a source model from its mapped Table:

- every column is copied by name and type;
- primary key columns stay primary key, without autoincrement or identity;
- foreign keys, server defaults and onupdate hooks are dropped;
- indexes are copied as plain (non-unique) indexes;
- an optional timezone-aware timestamp column is appended.

The table is mapped imperatively onto a class deriving from ArchiveRecord.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Column, DateTime, Index, MetaData, Table
from sqlalchemy.orm import registry as orm_registry

from archivable.config.constants import ARCHIVE_CLASS_SUFFIX
from archivable.config.logging import get_logger
from archivable.models.base import ArchiveRecord
from archivable.utils.exceptions import ConfigurationError

logger = get_logger(__name__)


def _copy_column(column: Column) -> Column:
    return Column(
        column.name,
        column.type,
        key=column.key,
        primary_key=column.primary_key,
        nullable=column.nullable,
        autoincrement=False,
    )


def derive_archive_table(
    source: Table,
    metadata: MetaData,
    name: str,
    timestamp_column: Optional[str] = None,
) -> Table:
    """
    Create the archive table for `source` inside `metadata`.

    Args:
        source: The source model's table.
        metadata: MetaData of the store that will hold the archive.
        name: Archive table name.
        timestamp_column: Name of the archived_at column, or None.

    Returns:
        The new archive Table.

    Raises:
        ConfigurationError: A table with that name already exists, or the
            timestamp column clashes with a source column.
    """
    if name in metadata.tables:
        raise ConfigurationError(
            f"Table '{name}' already exists; choose another archive_table",
            table=name,
        )
    if timestamp_column and timestamp_column in source.c:
        raise ConfigurationError(
            f"Source table '{source.name}' already has a column named '{timestamp_column}'",
            table=source.name,
            column=timestamp_column,
        )

    columns = [_copy_column(column) for column in source.columns]
    if timestamp_column:
        columns.append(Column(timestamp_column, DateTime(timezone=True), nullable=True))

    table = Table(name, metadata, *columns, schema=source.schema)

    for index in source.indexes:
        index_columns = [table.c[column.key] for column in index.columns]
        if not index_columns:
            # Functional indexes have no plain columns to copy
            continue
        suffix = "_".join(column.name for column in index_columns)
        Index(f"ix_{name}_{suffix}", *index_columns)

    logger.debug(
        "Derived archive table",
        source=source.name,
        archive=name,
        timestamp_column=timestamp_column,
    )
    return table


def build_archive_class(
    model: type,
    table: Table,
    registry: orm_registry,
) -> type:
    """
    Map a generated `<Model>Archive` class onto the archive table.

    Args:
        model: Source model, used for naming only.
        table: Archive table from derive_archive_table().
        registry: Registry owning the archive store's metadata.

    Returns:
        The mapped archive class.
    """
    archive_class = type(
        f"{model.__name__}{ARCHIVE_CLASS_SUFFIX}",
        (ArchiveRecord,),
        {
            "__module__": model.__module__,
            "__doc__": f"Archived snapshots of {model.__name__} ({table.name}).",
        },
    )
    registry.map_imperatively(archive_class, table)
    return archive_class
