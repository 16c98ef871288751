from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.pool import StaticPool

from reconciler.db.base import Base
from reconciler.db.models import Contact, LinkPrecedence
from reconciler.db.session import ContactStore
from reconciler.identity.service import IdentityService


@pytest.fixture()
def engine():
    """In-memory SQLite engine with the contacts table created."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine) -> ContactStore:
    store = ContactStore(engine=engine, locks_enabled=False)
    store.initialize()
    yield store
    store.close()


@pytest.fixture()
def service(store: ContactStore) -> IdentityService:
    return IdentityService(store.unit_of_work)


@pytest.fixture()
def add_contact(store: ContactStore):
    """Insert one contact in its own committed transaction and return its id."""

    def _add(
        *,
        email: str | None = None,
        phone_number: str | None = None,
        linked_id: int | None = None,
        created_at: datetime | None = None,
        deleted_at: datetime | None = None,
    ) -> int:
        precedence = LinkPrecedence.PRIMARY if linked_id is None else LinkPrecedence.SECONDARY
        contact = Contact(
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=precedence.value,
            deleted_at=deleted_at,
        )
        if created_at is not None:
            contact.created_at = created_at
        with store.session_factory() as session:
            session.add(contact)
            session.commit()
            return contact.id

    return _add


@pytest.fixture()
def all_contacts(store: ContactStore):
    """Return a fresh snapshot of every stored contact, ordered by id."""

    def _all() -> list[Contact]:
        with store.session_factory() as session:
            return list(session.execute(select(Contact).order_by(Contact.id)).scalars().all())

    return _all


@pytest.fixture()
def client(store: ContactStore, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """TestClient whose app uses the in-memory contact store."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")

    from reconciler.core.settings import get_settings

    get_settings.cache_clear()

    from reconciler.api.main import create_app

    app = create_app(store=store)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    get_settings.cache_clear()

