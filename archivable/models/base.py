"""
Base class for archive records and the archived_at mixin.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, inspect
from sqlalchemy.orm import Mapped, mapped_column


class ArchiveRecord:
    """
    Base for archive classes derived at registration.

    Derived classes are mapped imperatively onto the archive table, so
    they get a keyword constructor here instead of the declarative one.
    """

    def __init__(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        state = inspect(self, raiseerr=False)
        key = state.identity if state is not None else None
        return f"<{class_name}(key={key})>"


class ArchivedAtMixin:
    """
    Mixin providing the archive timestamp for user-defined archive classes.

    Usage:
        class BookArchive(ArchivedAtMixin, ColdBase):
            __tablename__ = "book_archive"
            id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
            title: Mapped[str]
    """

    # Written by the synchronizer; never set by callers
    archived_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
