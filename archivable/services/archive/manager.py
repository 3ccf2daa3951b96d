"""
Archive manager: registration and the public archive operations.

The manager is an injected registry, not module state. Each registered
model gets one ArchiveBinding holding everything built for it at
registration time: resolved target, archive class, field mapping,
synchronizer and bulk archiver. Lifecycle triggers are attached as part of
registration.

Usage:
    manager = ArchiveManager()
    manager.register(Book, archive_on_update=True)
    Base.metadata.create_all(engine)        # includes book_archive

    with Session(engine) as session:
        manager.save(session, book)
        manager.delete(session, book)       # archived, then deleted
        session.commit()

        archive = manager.find_archive(session, Book, (book.id,))

Cross store:
    manager = ArchiveManager(ArchiveStoreResolver({"cold": cold_engine}))
    manager.register(Book, archive_store="cold")
    manager.provision("cold")
    Session = sessionmaker(binds={Book: engine, **manager.session_binds()})
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from archivable.config.constants import SOURCE_STORE
from archivable.config.logging import get_logger
from archivable.config.options import ArchiveConfig
from archivable.config.settings import Settings
from archivable.models.schema import build_archive_class, derive_archive_table
from archivable.services.archive.bulk import BulkArchiver
from archivable.services.archive.mapper import ArchiveMapping
from archivable.services.archive.query import ArchivableQuery
from archivable.services.archive.resolver import ArchiveStoreResolver, ArchiveTarget
from archivable.services.archive.synchronizer import ArchiveSynchronizer, Clock, utcnow
from archivable.services.archive.triggers import (
    LifecycleEvent,
    TriggerDispatcher,
    suppress_archive,
)
from archivable.utils.exceptions import ConfigurationError

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class ArchiveBinding:
    """Everything built for one registered model."""

    model: type
    config: ArchiveConfig
    target: ArchiveTarget
    archive_class: type
    mapping: ArchiveMapping
    synchronizer: ArchiveSynchronizer
    bulk: BulkArchiver
    derived: bool = True  # archive class was generated, not user-supplied


class ArchiveManager:
    """
    Registry of archivable models.

    Args:
        resolver: Named archive stores; defaults to an empty resolver
            (every archive lives next to its source table).
        clock: Source of archive timestamps.
    """

    def __init__(
        self,
        resolver: Optional[ArchiveStoreResolver] = None,
        clock: Clock = utcnow,
    ):
        self._resolver = resolver or ArchiveStoreResolver()
        self._clock = clock
        self._dispatcher = TriggerDispatcher()
        self._bindings: dict[type, ArchiveBinding] = {}

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> "ArchiveManager":
        """Manager whose resolver knows the stores in ARCHIVABLE_ARCHIVE_STORES."""
        return cls(ArchiveStoreResolver.from_settings(settings), **kwargs)

    @property
    def resolver(self) -> ArchiveStoreResolver:
        return self._resolver

    @property
    def models(self) -> list[type]:
        return list(self._bindings)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        model: type,
        config: ArchiveConfig | None = None,
        **options: Any,
    ) -> ArchiveBinding:
        """
        Register a mapped class for archiving.

        Args:
            model: Source mapped class.
            config: Archive configuration; mutually exclusive with options.
            options: Raw option values, as accepted by ArchiveConfig.from_options().

        Returns:
            The model's ArchiveBinding.

        Raises:
            ConfigurationError: Invalid options, unmapped class, already
                registered model, or an archive class that does not match.
            ConfigurationConflictError: archive_table and archive_class both set.
            StoreUnavailableError: archive_store names an unknown store.
        """
        if config is not None and options:
            raise ConfigurationError(
                "Pass either an ArchiveConfig or keyword options, not both",
                model=getattr(model, "__name__", str(model)),
            )
        if config is None:
            config = ArchiveConfig.from_options(options)

        source_mapper = inspect(model, raiseerr=False)
        if source_mapper is None:
            raise ConfigurationError(
                f"{getattr(model, '__name__', model)} is not a mapped class",
                model=str(model),
            )
        if model in self._bindings:
            raise ConfigurationError(
                f"{model.__name__} is already registered for archiving",
                model=model.__name__,
            )

        target = self._resolver.resolve(config)

        derived = config.archive_class is None
        if derived:
            registry = source_mapper.registry if target.shares_source_store else target.registry
            source_table = source_mapper.local_table
            table = derive_archive_table(
                source_table,
                registry.metadata,
                config.table_name_for(source_table.name),
                config.timestamp_column,
            )
            archive_class = build_archive_class(model, table, registry)
        else:
            archive_class = config.archive_class
            if inspect(archive_class, raiseerr=False) is None:
                raise ConfigurationError(
                    f"archive_class {archive_class.__name__} is not a mapped class",
                    model=model.__name__,
                )

        mapping = ArchiveMapping.build(model, archive_class, config)
        synchronizer = ArchiveSynchronizer(
            mapping, config, target, self._resolver, clock=self._clock
        )
        binding = ArchiveBinding(
            model=model,
            config=config,
            target=target,
            archive_class=archive_class,
            mapping=mapping,
            synchronizer=synchronizer,
            bulk=BulkArchiver(synchronizer),
            derived=derived,
        )

        self._dispatcher.attach(model, synchronizer)
        self._bindings[model] = binding

        logger.info(
            "Model registered for archiving",
            model=model.__name__,
            archive=archive_class.__name__,
            table=mapping.archive_table.name,
            store=target.store or SOURCE_STORE,
            on_insert=config.archive_on_insert,
            on_update=config.archive_on_update,
            on_delete=config.archive_on_delete,
        )
        return binding

    def unregister(self, model: type) -> None:
        """
        Stop archiving a model.

        Triggers are detached; the archive table, class and rows stay.
        """
        binding = self._bindings.pop(model, None)
        if binding is None:
            return
        self._dispatcher.detach(model)
        logger.info("Model unregistered from archiving", model=model.__name__)

    def binding_for(self, entity_or_class: Any) -> ArchiveBinding:
        """
        Binding of a registered class or of an entity's class.

        Subclasses of a registered model resolve to the nearest registered
        base class.

        Raises:
            ConfigurationError: Nothing in the class hierarchy is registered.
        """
        cls = entity_or_class if isinstance(entity_or_class, type) else type(entity_or_class)
        for klass in cls.__mro__:
            binding = self._bindings.get(klass)
            if binding is not None:
                return binding
        raise ConfigurationError(
            f"{cls.__name__} is not registered for archiving",
            model=cls.__name__,
        )

    def is_registered(self, entity_or_class: Any) -> bool:
        cls = entity_or_class if isinstance(entity_or_class, type) else type(entity_or_class)
        return any(klass in self._bindings for klass in cls.__mro__)

    def session_binds(self) -> dict[type, Engine]:
        """
        Archive class -> engine for archives on named stores.

        Merge into sessionmaker(binds=...) so one session can read archives
        from their own store.
        """
        return {
            binding.archive_class: binding.target.engine
            for binding in self._bindings.values()
            if not binding.target.shares_source_store
        }

    def provision(self, store: str | None = None, *, bind: Engine | None = None) -> None:
        """
        Create derived archive tables.

        Args:
            store: Named store whose derived tables to create.
            bind: For store=None, the source engine to create the derived
                same-store archive tables on.
        """
        if store is not None:
            self._resolver.provision(store)
            return
        if bind is None:
            raise ValueError("provision() needs a store name or a bind engine")

        tables = [
            binding.mapping.archive_table
            for binding in self._bindings.values()
            if binding.derived and binding.target.shares_source_store
        ]
        for table in tables:
            table.create(bind, checkfirst=True)
        logger.info(
            "Source store archive tables provisioned",
            tables=[table.name for table in tables],
        )

    # =========================================================================
    # Single entity operations
    # =========================================================================

    def archive(self, session: Session, entity: Any) -> Any:
        """Archive an entity now; returns the archive record."""
        return self.binding_for(entity).synchronizer.archive(entity, session)

    def get_archive(self, session: Session, entity: Any) -> Any | None:
        return self.binding_for(entity).synchronizer.get_archive(entity, session)

    def restore_from_archive(self, session: Session, entity: Any) -> Any:
        """
        Overwrite an entity's fields from its archive.

        The entity is returned as is; add and flush it to persist the
        restored state.
        """
        return self.binding_for(entity).synchronizer.restore(entity, session)

    def populate_from_archive(self, entity: Any, archive: Any) -> Any:
        return self.binding_for(entity).synchronizer.populate_from_archive(entity, archive)

    def save(self, session: Session, entity: Any, with_archive: bool = True) -> Any:
        """
        Add and flush an entity.

        With with_archive, the configured insert/update triggers apply;
        without, no archive is written for this save.
        """
        self.binding_for(entity)
        session.add(entity)
        if with_archive:
            session.flush()
        else:
            with suppress_archive(entity, LifecycleEvent.INSERT, LifecycleEvent.UPDATE):
                session.flush()
        return entity

    def save_without_archive(self, session: Session, entity: Any) -> Any:
        return self.save(session, entity, with_archive=False)

    def update_without_archive(self, session: Session, entity: Any) -> Any:
        """Flush pending changes of a persistent entity without archiving."""
        self.binding_for(entity)
        with suppress_archive(entity, LifecycleEvent.UPDATE):
            session.flush()
        return entity

    def delete(self, session: Session, entity: Any, with_archive: bool = True) -> None:
        """
        Delete and flush an entity.

        With with_archive, archive_on_delete applies (archived before the
        DELETE statement); without, no archive is written.
        """
        self.binding_for(entity)
        session.delete(entity)
        if with_archive:
            session.flush()
        else:
            with suppress_archive(entity, LifecycleEvent.DELETE):
                session.flush()

    def delete_without_archive(self, session: Session, entity: Any) -> None:
        self.delete(session, entity, with_archive=False)

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, session: Session, model: type) -> ArchivableQuery:
        """Archive-aware query over a registered model."""
        return ArchivableQuery(session, self.binding_for(model).bulk)

    def find_archive(
        self,
        session: Session,
        model: type,
        key: Any,
        *,
        refresh: bool = False,
    ) -> Any | None:
        """
        Archive record for a primary key of a registered model.

        Args:
            key: Scalar for single-column keys, tuple in source primary key
                order otherwise.
        """
        if not isinstance(key, tuple):
            key = (key,)
        return self.binding_for(model).synchronizer.find_archive(key, session, refresh=refresh)

    def find_archives(
        self,
        session: Session,
        model: type,
        *criteria: Any,
        limit: int | None = None,
        offset: int | None = None,
        order_by: Any | None = None,
    ) -> Sequence[Any]:
        """Archive records of a registered model matching filter criteria."""
        return self.binding_for(model).synchronizer.find_archives(
            session, *criteria, limit=limit, offset=offset, order_by=order_by
        )
