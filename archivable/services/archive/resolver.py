"""
Cross-store resolution.

Routes archive reads and writes to the store named by a model's
configuration. The default target is the source model's own database: the
archive table sits next to the source table and shares its transactions.
A named store gets its own engine, MetaData and mapper registry, so its
archive schema is provisioned and committed independently.

Usage:
    resolver = ArchiveStoreResolver({"cold": "postgresql+psycopg://cold/archive"})
    target = resolver.resolve(ArchiveConfig(archive_store="cold"))

    with resolver.connect(target) as connection:
        ...  # own transaction on the cold store, committed on exit
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from sqlalchemy import MetaData
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, registry as orm_registry

from archivable.config.logging import get_logger
from archivable.config.options import ArchiveConfig
from archivable.config.settings import Settings, get_settings
from archivable.infrastructure.db import create_store_engine, make_session_factory, session_scope
from archivable.utils.exceptions import StoreUnavailableError

logger = get_logger(__name__)

# Errors meaning the store cannot be reached or is not provisioned
UNAVAILABLE_ERRORS = (OperationalError, InterfaceError)


@dataclass(frozen=True, eq=False)
class ArchiveTarget:
    """
    Resolved archive location.

    Attributes:
        store: Store name, or None for the source model's database.
        engine: Engine of a named store; None for the source database.
        registry: Mapper registry for archive classes derived on a named
            store; None for the source database.
    """

    store: Optional[str] = None
    engine: Optional[Engine] = None
    registry: Optional[orm_registry] = None

    @property
    def shares_source_store(self) -> bool:
        """True when archive writes join the source session's transaction."""
        return self.engine is None

    @property
    def metadata(self) -> Optional[MetaData]:
        return self.registry.metadata if self.registry is not None else None


SOURCE_TARGET = ArchiveTarget()


class ArchiveStoreResolver:
    """
    Registry of named archive stores.

    Stores are given as engines or URLs; URLs are turned into engines on
    first use. Resolution results are cached per configuration.
    """

    def __init__(
        self,
        stores: Mapping[str, Union[Engine, str]] | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings
        self._urls: dict[str, str] = {}
        self._engines: dict[str, Engine] = {}
        self._targets: dict[str, ArchiveTarget] = {}
        self._resolved: dict[ArchiveConfig, ArchiveTarget] = {}
        for name, store in (stores or {}).items():
            self.register_store(name, store)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ArchiveStoreResolver":
        """Resolver for the stores listed in ARCHIVABLE_ARCHIVE_STORES."""
        settings = settings or get_settings()
        return cls(settings.archive_stores, settings=settings)

    @property
    def stores(self) -> list[str]:
        """Names of registered stores."""
        return sorted(set(self._urls) | set(self._engines))

    def register_store(self, name: str, store: Union[Engine, str]) -> None:
        """
        Register a named store.

        Raises:
            ValueError: The name is already registered.
        """
        if name in self._urls or name in self._engines:
            raise ValueError(f"Archive store '{name}' is already registered")
        if isinstance(store, Engine):
            self._engines[name] = store
        else:
            self._urls[name] = store

    def engine_for(self, name: str) -> Engine:
        """
        Engine of a named store, created from its URL on first use.

        Raises:
            StoreUnavailableError: The store is not registered.
        """
        engine = self._engines.get(name)
        if engine is not None:
            return engine
        url = self._urls.get(name)
        if url is None:
            raise StoreUnavailableError(name, "store is not registered")
        engine = create_store_engine(url, self._settings)
        self._engines[name] = engine
        logger.info("Archive store engine created", store=name, backend=engine.dialect.name)
        return engine

    def resolve(self, config: ArchiveConfig) -> ArchiveTarget:
        """
        Archive target for a configuration.

        Deterministic and cached; performs no schema validation.

        Raises:
            StoreUnavailableError: archive_store names an unknown store.
        """
        target = self._resolved.get(config)
        if target is not None:
            return target

        if config.archive_store is None:
            target = SOURCE_TARGET
        else:
            target = self._target_for(config.archive_store)
        self._resolved[config] = target
        return target

    def _target_for(self, name: str) -> ArchiveTarget:
        target = self._targets.get(name)
        if target is None:
            target = ArchiveTarget(
                store=name,
                engine=self.engine_for(name),
                registry=orm_registry(metadata=MetaData()),
            )
            self._targets[name] = target
        return target

    # =========================================================================
    # Access
    # =========================================================================

    @contextmanager
    def connect(self, target: ArchiveTarget) -> Generator[Connection, None, None]:
        """
        Connection on a named store inside its own transaction.

        Commits on normal exit, rolls back on error.

        Raises:
            StoreUnavailableError: The store cannot be reached or its
                archive table is missing.
            ValueError: target is the source store.
        """
        if target.shares_source_store:
            raise ValueError("The source store is reached through the caller's session")
        try:
            with target.engine.begin() as connection:
                yield connection
        except UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailableError(target.store, str(exc.orig or exc)) from exc

    @contextmanager
    def session(self, target: ArchiveTarget) -> Generator[Session, None, None]:
        """
        Read session on a named store; closed on exit, never committed.

        Objects loaded here are detached afterwards but keep their loaded
        attribute values.
        """
        if target.shares_source_store:
            raise ValueError("The source store is reached through the caller's session")
        factory = make_session_factory(target.engine, expire_on_commit=False)
        try:
            with session_scope(factory) as db:
                yield db
        except UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailableError(target.store, str(exc.orig or exc)) from exc

    def provision(self, name: str) -> None:
        """Create the derived archive tables of a named store."""
        target = self._target_for(name)
        try:
            target.metadata.create_all(target.engine)
        except UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailableError(name, str(exc.orig or exc)) from exc
        logger.info(
            "Archive store provisioned",
            store=name,
            tables=sorted(target.metadata.tables),
        )

    def dispose(self) -> None:
        """Dispose engines created from URLs."""
        for name in self._urls:
            engine = self._engines.pop(name, None)
            if engine is not None:
                engine.dispose()
        self._targets.clear()
        self._resolved.clear()
