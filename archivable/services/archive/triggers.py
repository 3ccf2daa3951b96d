"""
Lifecycle triggers.

Subscribes to SQLAlchemy mapper events of registered models and archives
through the synchronizer when the model's configuration asks for it:

- before_delete: archive first, then the DELETE statement runs. With the
  archive in the source store both happen in the flush transaction.
- after_insert / after_update: archive once the statement succeeded, so
  generated keys and defaults are present. A failed statement never
  reaches the archive step. Updates archive only when a mapped column
  changed.

suppress_archive() disables archiving for one entity for the duration of a
block, without changing the configuration.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable

from sqlalchemy import event, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Mapper

from archivable.config.logging import get_logger
from archivable.services.archive.synchronizer import ArchiveSynchronizer

logger = get_logger(__name__)

# Instance attribute holding the suppressed events of one entity
SUPPRESSED_ATTR = "_archivable_suppressed"


class LifecycleEvent(str, Enum):
    """Lifecycle points at which archiving may happen."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def mapper_event(self) -> str:
        return {
            LifecycleEvent.INSERT: "after_insert",
            LifecycleEvent.UPDATE: "after_update",
            LifecycleEvent.DELETE: "before_delete",
        }[self]


@contextmanager
def suppress_archive(entity: Any, *events: LifecycleEvent) -> Generator[Any, None, None]:
    """
    Skip archiving of `entity` for the given events inside the block.

    With no events given, all lifecycle events are suppressed.

    Usage:
        with suppress_archive(book, LifecycleEvent.DELETE):
            session.delete(book)
            session.flush()
    """
    events = events or tuple(LifecycleEvent)
    previous = getattr(entity, SUPPRESSED_ATTR, frozenset())
    setattr(entity, SUPPRESSED_ATTR, previous | frozenset(events))
    try:
        yield entity
    finally:
        if previous:
            setattr(entity, SUPPRESSED_ATTR, previous)
        else:
            delattr(entity, SUPPRESSED_ATTR)


def is_suppressed(entity: Any, lifecycle_event: LifecycleEvent) -> bool:
    return lifecycle_event in getattr(entity, SUPPRESSED_ATTR, frozenset())


def _has_column_changes(entity: Any, synchronizer: ArchiveSynchronizer) -> bool:
    state = inspect(entity)
    return any(
        state.attrs[pair.source_key].history.has_changes()
        for pair in synchronizer.mapping.fields
    )


class TriggerDispatcher:
    """
    Attaches and detaches lifecycle listeners per registered model.

    Listeners are attached with propagate=True so mapped subclasses of a
    registered model archive through the same synchronizer.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[tuple[str, Callable[..., None]]]] = {}

    def attach(self, model: type, synchronizer: ArchiveSynchronizer) -> None:
        """Subscribe the model's enabled triggers."""
        if self.is_attached(model):
            raise ValueError(f"Triggers for {model.__name__} are already attached")

        listeners = []
        for lifecycle_event in LifecycleEvent:
            if not synchronizer.config.archives_on(lifecycle_event.value):
                continue
            handler = self._make_handler(lifecycle_event, synchronizer)
            event.listen(model, lifecycle_event.mapper_event, handler, propagate=True)
            listeners.append((lifecycle_event.mapper_event, handler))

        self._listeners[model] = listeners
        logger.debug(
            "Archive triggers attached",
            model=model.__name__,
            events=[name for name, _ in listeners],
        )

    def detach(self, model: type) -> None:
        """Remove the model's listeners."""
        for identifier, handler in self._listeners.pop(model, []):
            event.remove(model, identifier, handler)

    def is_attached(self, model: type) -> bool:
        return model in self._listeners

    def _make_handler(
        self,
        lifecycle_event: LifecycleEvent,
        synchronizer: ArchiveSynchronizer,
    ) -> Callable[[Mapper, Connection, Any], None]:
        def handler(mapper: Mapper, connection: Connection, target: Any) -> None:
            if is_suppressed(target, lifecycle_event):
                logger.debug(
                    "Archive suppressed",
                    model=synchronizer.entity_name,
                    trigger=lifecycle_event.value,
                )
                return
            if lifecycle_event is LifecycleEvent.UPDATE and not _has_column_changes(
                target, synchronizer
            ):
                return
            synchronizer.write_in_flush(target, connection)

        handler.__name__ = f"archive_on_{lifecycle_event.value}"
        return handler
