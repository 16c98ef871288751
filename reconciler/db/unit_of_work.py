"""Transactional unit of work around the contact repository."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from sqlalchemy.orm import Session, sessionmaker

from reconciler.core.errors import StoreNotInitializedError
from reconciler.db.repositories import ContactRepository

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class UnitOfWork:
    """One session, one transaction.

    Entering opens a session and binds a :class:`ContactRepository` to it.
    Leaving with an exception (including cancellation) rolls back; the
    session is closed on every exit path.  Nothing is committed unless
    :meth:`commit` is called explicitly.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, locks_enabled: bool = True) -> None:
        self.session_factory = session_factory
        self.locks_enabled = locks_enabled
        self._session: Session | None = None
        self._contacts: ContactRepository | None = None

    def __enter__(self) -> UnitOfWork:
        if self._session is not None:
            raise StoreNotInitializedError("Unit of work session already initialised")
        self._session = self.session_factory()
        self._contacts = ContactRepository(self._session, locks_enabled=self.locks_enabled)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if exc_type is not None:
                logger.warning("Rolling back unit of work after %s", exc_type.__name__)
                self.rollback()
        finally:
            self.session.close()
            self._session = None
            self._contacts = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StoreNotInitializedError("Unit of work session not initialised")
        return self._session

    @property
    def contacts(self) -> ContactRepository:
        if self._contacts is None:
            raise StoreNotInitializedError("Unit of work session not initialised")
        return self._contacts

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
