"""Contact store: engine and session-factory lifecycle.

A ``ContactStore`` is created once per process (or once per test), opened
with :meth:`ContactStore.initialize` and disposed with
:meth:`ContactStore.close`.  It is handed to whatever needs it rather than
living in module globals.
"""
from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from reconciler.core.errors import StoreNotInitializedError
from reconciler.core.settings import Settings, get_settings
from reconciler.db.base import Base
from reconciler.db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class ContactStore:
    def __init__(
        self,
        database_url: str | None = None,
        *,
        engine: Engine | None = None,
        echo: bool = False,
        locks_enabled: bool = True,
    ) -> None:
        self.database_url = database_url
        self.echo = echo
        self.locks_enabled = locks_enabled
        self._engine = engine
        self._owns_engine = engine is None
        self._session_factory: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ContactStore:
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            echo=settings.db_echo,
            locks_enabled=settings.identifier_locks_enabled,
        )

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreNotInitializedError("Contact store has no engine; call initialize() first")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            raise StoreNotInitializedError("Contact store not initialised; call initialize() first")
        return self._session_factory

    def initialize(self) -> None:
        if self.is_initialized:
            return
        if self._engine is None:
            if not self.database_url:
                raise StoreNotInitializedError("Contact store needs a database_url or an engine")
            self._engine = create_engine(self.database_url, pool_pre_ping=True, echo=self.echo)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            class_=Session,
        )
        logger.info("Contact store initialised (dialect=%s)", self._engine.dialect.name)

    def create_schema(self) -> None:
        """Create tables directly from metadata; migrations are preferred outside tests."""
        Base.metadata.create_all(bind=self.engine)

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory, locks_enabled=self.locks_enabled)

    def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None
            logger.info("Contact store closed")
        self._session_factory = None
