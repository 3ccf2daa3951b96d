"""
Tests for ArchiveManager registration.
"""

import pytest
from sqlalchemy import inspect as sa_inspect

from archivable.config.options import ArchiveConfig
from archivable.utils.exceptions import ConfigurationConflictError, ConfigurationError
from tests.models import build_checked_archive


class TestRegister:
    """Registration and bindings."""

    def test_register_derives_archive_class(self, models, manager):
        binding = manager.register(models.Book)

        assert binding.archive_class.__name__ == "BookArchive"
        assert binding.derived
        assert binding.target.shares_source_store
        assert "books_archive" in models.Base.metadata.tables
        assert manager.models == [models.Book]

    def test_register_with_config(self, models, manager):
        config = ArchiveConfig(archive_on_update=True)
        binding = manager.register(models.Book, config)
        assert binding.config is config

    def test_config_and_options_are_exclusive(self, models, manager):
        with pytest.raises(ConfigurationError):
            manager.register(models.Book, ArchiveConfig(), archive_on_update=True)

    def test_register_twice(self, models, manager):
        manager.register(models.Book)
        with pytest.raises(ConfigurationError, match="already registered"):
            manager.register(models.Book)

    def test_unmapped_class(self, manager):
        class Plain:
            pass

        with pytest.raises(ConfigurationError, match="not a mapped class"):
            manager.register(Plain)

    def test_conflicting_options(self, models, manager):
        checked = build_checked_archive()
        with pytest.raises(ConfigurationConflictError):
            manager.register(models.Book, archive_table="x", archive_class=checked.BookArchive)

    def test_user_archive_class(self, models, manager):
        checked = build_checked_archive()
        binding = manager.register(models.Book, archive_class=checked.BookArchive)

        assert binding.archive_class is checked.BookArchive
        assert not binding.derived
        assert "books_archive" not in models.Base.metadata.tables

    def test_unmapped_archive_class(self, models, manager):
        with pytest.raises(ConfigurationError, match="not a mapped class"):
            manager.register(models.Book, archive_class=dict)

    def test_binding_for_entity_and_class(self, models, manager):
        binding = manager.register(models.Book)
        assert manager.binding_for(models.Book) is binding
        assert manager.binding_for(models.Book(title="x")) is binding
        assert manager.is_registered(models.Book)
        assert not manager.is_registered(models.Author)

    def test_session_binds_empty_for_source_store(self, models, manager):
        manager.register(models.Book)
        assert manager.session_binds() == {}


class TestProvision:
    """Creating archive tables."""

    def test_provision_source_store_archive_tables(self, models, manager, engine):
        manager.register(models.Book)
        manager.register(models.Shelf)

        manager.provision(bind=engine)

        assert sorted(sa_inspect(engine).get_table_names()) == ["books_archive", "shelves_archive"]

    def test_provision_needs_store_or_bind(self, manager):
        with pytest.raises(ValueError):
            manager.provision()
