"""
Tests for ArchiveConfig and Settings.
"""

import pytest
from pydantic import ValidationError

from archivable.config.options import ArchiveConfig
from archivable.config.settings import Settings
from archivable.utils.exceptions import ConfigurationConflictError, ConfigurationError


class TestArchiveConfig:
    """Option defaults, parsing and validation."""

    def test_defaults(self):
        config = ArchiveConfig()
        assert config.archive_on_insert is False
        assert config.archive_on_update is False
        assert config.archive_on_delete is True
        assert config.archive_table is None
        assert config.archive_class is None
        assert config.archived_at_column == "archived_at"
        assert config.log_archived_at is True
        assert config.archive_store is None

    def test_string_booleans_are_accepted(self):
        config = ArchiveConfig.from_options(
            {"archive_on_insert": "true", "archive_on_delete": "false", "log_archived_at": "0"}
        )
        assert config.archive_on_insert is True
        assert config.archive_on_delete is False
        assert config.log_archived_at is False

    def test_table_and_class_conflict(self):
        with pytest.raises(ConfigurationConflictError):
            ArchiveConfig(archive_table="books_old", archive_class=dict)

    def test_conflict_from_options(self):
        with pytest.raises(ConfigurationConflictError):
            ArchiveConfig.from_options({"archive_table": "books_old", "archive_class": "builtins:dict"})

    def test_conflict_is_a_configuration_error(self):
        assert issubclass(ConfigurationConflictError, ConfigurationError)

    def test_archive_class_import_path(self):
        config = ArchiveConfig.from_options({"archive_class": "collections:OrderedDict"})
        from collections import OrderedDict

        assert config.archive_class is OrderedDict

    def test_unknown_option_rejected(self):
        with pytest.raises(ConfigurationError, match="archive_on_purge"):
            ArchiveConfig.from_options({"archive_on_purge": True})

    def test_blank_names_rejected(self):
        with pytest.raises(ConfigurationError):
            ArchiveConfig.from_options({"archive_table": "   "})

    def test_names_are_stripped(self):
        config = ArchiveConfig(archive_table="  books_old ")
        assert config.archive_table == "books_old"

    def test_is_immutable_and_hashable(self):
        config = ArchiveConfig(archive_on_update=True)
        with pytest.raises(ValidationError):
            config.archive_on_update = False
        assert hash(config) == hash(ArchiveConfig(archive_on_update=True))

    def test_table_name_for(self):
        assert ArchiveConfig().table_name_for("books") == "books_archive"
        assert ArchiveConfig(archive_table="old_books").table_name_for("books") == "old_books"

    def test_timestamp_column_disabled(self):
        assert ArchiveConfig(log_archived_at=False).timestamp_column is None
        assert ArchiveConfig(archived_at_column="stored_at").timestamp_column == "stored_at"

    def test_archives_on(self):
        config = ArchiveConfig(archive_on_insert=True, archive_on_delete=False)
        assert config.archives_on("insert") is True
        assert config.archives_on("update") is False
        assert config.archives_on("delete") is False


class TestSettings:
    """Environment-driven settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ARCHIVABLE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ARCHIVABLE_ARCHIVE_STORES", '{"cold": "sqlite:///cold.db"}')
        settings = Settings(_env_file=None)
        assert settings.log_level == "DEBUG"
        assert settings.archive_stores == {"cold": "sqlite:///cold.db"}

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ARCHIVABLE_ARCHIVE_STORES", raising=False)
        settings = Settings(_env_file=None)
        assert settings.archive_stores == {}
        assert settings.environment == "development"
