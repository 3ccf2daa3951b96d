"""
Naming conventions and defaults shared across the archive engine.
"""

# Timestamp column added to archive tables
DEFAULT_ARCHIVED_AT_COLUMN = "archived_at"

# Derived archive tables: "<source_table>_archive"
ARCHIVE_TABLE_SUFFIX = "_archive"

# Derived archive classes: "<Model>Archive"
ARCHIVE_CLASS_SUFFIX = "Archive"

# Key under which the source model's store is addressed
SOURCE_STORE = "source"
