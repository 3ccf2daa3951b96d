"""
Tests for archive schema derivation and the record mapping.
"""

import pytest
from sqlalchemy import DateTime, MetaData, inspect
from sqlalchemy.orm import registry as orm_registry

from archivable.config.options import ArchiveConfig
from archivable.models.base import ArchiveRecord
from archivable.models.schema import build_archive_class, derive_archive_table
from archivable.services.archive.mapper import ArchiveMapping
from archivable.utils.exceptions import ConfigurationError
from tests.models import build_checked_archive


class TestDeriveArchiveTable:
    """Archive table shape derived from the source table."""

    def test_columns_copied_with_timestamp(self, models):
        source = models.Book.__table__
        table = derive_archive_table(source, MetaData(), "books_archive", "archived_at")

        assert [c.name for c in table.columns] == [c.name for c in source.columns] + ["archived_at"]
        assert isinstance(table.c.archived_at.type, DateTime)
        assert table.c.archived_at.type.timezone is True
        assert table.c.archived_at.nullable is True

    def test_no_timestamp_column(self, models):
        table = derive_archive_table(models.Book.__table__, MetaData(), "books_archive", None)
        assert "archived_at" not in table.c

    def test_primary_key_kept_without_autoincrement(self, models):
        table = derive_archive_table(models.Book.__table__, MetaData(), "books_archive")
        assert [c.name for c in table.primary_key] == ["id"]
        assert table.c.id.autoincrement is False

    def test_composite_primary_key(self, models):
        table = derive_archive_table(models.Shelf.__table__, MetaData(), "shelves_archive")
        assert [c.name for c in table.primary_key] == ["room", "position"]

    def test_foreign_keys_dropped(self, models):
        table = derive_archive_table(models.Book.__table__, MetaData(), "books_archive")
        assert "author_id" in table.c
        assert not table.foreign_keys

    def test_indexes_copied_as_non_unique(self, models):
        table = derive_archive_table(models.Book.__table__, MetaData(), "books_archive")
        indexes = {index.name: index for index in table.indexes}
        assert "ix_books_archive_isbn" in indexes
        assert indexes["ix_books_archive_isbn"].unique is False

    def test_existing_table_name_rejected(self, models):
        metadata = models.Base.metadata
        with pytest.raises(ConfigurationError, match="already exists"):
            derive_archive_table(models.Book.__table__, metadata, "authors")

    def test_timestamp_clashing_with_source_column(self, models):
        with pytest.raises(ConfigurationError, match="title"):
            derive_archive_table(models.Book.__table__, MetaData(), "books_archive", "title")


class TestBuildArchiveClass:
    """Imperatively mapped archive classes."""

    def test_class_is_mapped(self, models):
        registry = orm_registry()
        table = derive_archive_table(models.Book.__table__, registry.metadata, "books_archive")
        archive_class = build_archive_class(models.Book, table, registry)

        assert archive_class.__name__ == "BookArchive"
        assert issubclass(archive_class, ArchiveRecord)
        assert inspect(archive_class).local_table is table

        record = archive_class(id=3, title="Dune")
        assert record.title == "Dune"
        assert "BookArchive" in repr(record)


def _derived_mapping(models, model, config=None):
    config = config or ArchiveConfig()
    source_table = model.__table__
    table = derive_archive_table(
        source_table,
        models.Base.metadata,
        config.table_name_for(source_table.name),
        config.timestamp_column,
    )
    archive_class = build_archive_class(model, table, models.Base.registry)
    return ArchiveMapping.build(model, archive_class, config)


class TestArchiveMapping:
    """Field pairing and value extraction."""

    def test_fields_in_source_order(self, models):
        mapping = _derived_mapping(models, models.Book)
        assert [pair.name for pair in mapping.fields] == [
            "id", "title", "isbn", "price_cents", "author_id"
        ]
        assert [pair.name for pair in mapping.primary_key] == ["id"]
        assert mapping.timestamp_key == "archived_at"

    def test_primary_key_of(self, models):
        mapping = _derived_mapping(models, models.Shelf)
        assert mapping.primary_key_of(models.Shelf(room="A", position=2, label="x")) == ("A", 2)
        assert mapping.primary_key_of(models.Shelf(room="A", label="x")) is None

    def test_archive_values_include_timestamp(self, models, clock):
        mapping = _derived_mapping(models, models.Book)
        now = clock()
        values = mapping.archive_values(
            models.Book(id=1, title="Emma", isbn=None, price_cents=5, author_id=None), now=now
        )
        assert values == {
            "id": 1,
            "title": "Emma",
            "isbn": None,
            "price_cents": 5,
            "author_id": None,
            "archived_at": now,
        }

    def test_archive_values_without_timestamp(self, models):
        mapping = _derived_mapping(models, models.Book, ArchiveConfig(log_archived_at=False))
        values = mapping.archive_values(
            models.Book(id=1, title="Emma", isbn=None, price_cents=5, author_id=None)
        )
        assert "archived_at" not in values

    def test_populate_copies_every_field(self, models):
        mapping = _derived_mapping(models, models.Book)
        archive = mapping.archive_class(
            id=9, title="Persuasion", isbn="p-1", price_cents=700, author_id=None
        )
        book = mapping.populate(models.Book(), archive)
        assert (book.id, book.title, book.isbn, book.price_cents) == (9, "Persuasion", "p-1", 700)

    def test_user_class_missing_column(self, models):
        checked = build_checked_archive()

        archive_class = checked.BookArchive
        config = ArchiveConfig(archive_class=archive_class)
        # Shelf columns are not on the Book archive
        with pytest.raises(ConfigurationError, match="missing column"):
            ArchiveMapping.build(models.Shelf, archive_class, config)

    def test_user_class_missing_timestamp(self, models):
        checked = build_checked_archive()
        config = ArchiveConfig(archive_class=checked.BookArchive, archived_at_column="stored_at")
        with pytest.raises(ConfigurationError, match="stored_at"):
            ArchiveMapping.build(models.Book, checked.BookArchive, config)

    def test_user_class_matches(self, models):
        checked = build_checked_archive()
        config = ArchiveConfig(archive_class=checked.BookArchive)
        mapping = ArchiveMapping.build(models.Book, checked.BookArchive, config)
        assert mapping.archive_table.name == "checked_book_archive"
