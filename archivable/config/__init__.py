"""
Configuration module: settings, logging, constants, archive options.
"""

from archivable.config.settings import Settings, get_settings
from archivable.config.logging import get_logger, setup_logging
from archivable.config.constants import (
    ARCHIVE_CLASS_SUFFIX,
    ARCHIVE_TABLE_SUFFIX,
    DEFAULT_ARCHIVED_AT_COLUMN,
    SOURCE_STORE,
)
from archivable.config.options import ArchiveConfig

__all__ = [
    # settings
    "Settings",
    "get_settings",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "ARCHIVE_CLASS_SUFFIX",
    "ARCHIVE_TABLE_SUFFIX",
    "DEFAULT_ARCHIVED_AT_COLUMN",
    "SOURCE_STORE",
    # options
    "ArchiveConfig",
]
