from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from typing import Generic, TypeVar

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.orm import Session

from reconciler.db import models
from reconciler.db.models import Contact, LinkPrecedence

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_LOCK_KEY_MASK = 0x7FFF_FFFF_FFFF_FFFF


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: int) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity


def identifier_lock_key(field: str, value: str) -> int:
    """Return a stable signed-bigint-safe advisory lock key for one identifier."""
    digest = hashlib.sha256(f"{field}:{value}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") & _LOCK_KEY_MASK


class ContactRepository(BaseRepository[models.Contact]):
    """Query surface used by identity resolution.

    Every read excludes tombstoned rows (``deleted_at`` set).  Nothing here
    commits; the unit of work owns the transaction boundary.
    """

    model = models.Contact

    def __init__(self, db: Session, *, locks_enabled: bool = True):
        super().__init__(db)
        self.locks_enabled = locks_enabled

    # -- locking ------------------------------------------------------------

    def lock_identifiers(self, email: str | None, phone_number: str | None) -> list[int]:
        """Take transaction-scoped advisory locks on the supplied identifiers.

        Keys are acquired in ascending order so two callers can never wait on
        each other.  Only PostgreSQL has advisory locks; on other dialects this
        is a no-op and an empty list is returned.
        """
        if not self.locks_enabled or self.db.get_bind().dialect.name != "postgresql":
            return []

        keys = []
        if email:
            keys.append(identifier_lock_key("email", email))
        if phone_number:
            keys.append(identifier_lock_key("phone", phone_number))
        keys = sorted(set(keys))
        for key in keys:
            self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
        logger.debug("Acquired %d identifier lock(s)", len(keys))
        return keys

    # -- reads --------------------------------------------------------------

    def find_direct_matches(self, email: str | None, phone_number: str | None) -> list[Contact]:
        """Return live contacts sharing *email* or *phone_number*, oldest first."""
        conditions = []
        if email:
            conditions.append(Contact.email == email)
        if phone_number:
            conditions.append(Contact.phone_number == phone_number)
        if not conditions:
            return []

        stmt = (
            select(Contact)
            .where(or_(*conditions), Contact.deleted_at.is_(None))
            .order_by(Contact.created_at.asc(), Contact.id.asc())
            .with_for_update()
        )
        return list(self.db.execute(stmt).scalars().all())

    def fetch_cluster(self, primary_ids: Iterable[int]) -> list[Contact]:
        """Return every live contact whose id or linked_id is in *primary_ids*.

        One hop is enough because secondaries always point straight at their
        primary.
        """
        ids = sorted(set(primary_ids))
        if not ids:
            return []

        stmt = (
            select(Contact)
            .where(
                or_(Contact.id.in_(ids), Contact.linked_id.in_(ids)),
                Contact.deleted_at.is_(None),
            )
            .order_by(Contact.created_at.asc(), Contact.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_exact_match(self, email: str | None, phone_number: str | None) -> Contact | None:
        """Return a live contact carrying exactly the given fingerprint.

        With both fields, both must match the same row; with one field, that
        field alone decides.
        """
        stmt = select(Contact).where(Contact.deleted_at.is_(None))
        if email and phone_number:
            stmt = stmt.where(Contact.email == email, Contact.phone_number == phone_number)
        elif email:
            stmt = stmt.where(Contact.email == email)
        elif phone_number:
            stmt = stmt.where(Contact.phone_number == phone_number)
        else:
            return None

        return self.db.execute(stmt.order_by(Contact.id.asc()).limit(1)).scalars().first()

    def count(self, *, include_deleted: bool = True) -> int:
        stmt = select(func.count()).select_from(Contact)
        if not include_deleted:
            stmt = stmt.where(Contact.deleted_at.is_(None))
        return self.db.execute(stmt).scalar_one()

    # -- writes -------------------------------------------------------------

    def create_primary(self, email: str | None, phone_number: str | None) -> Contact:
        return self.create(
            email=email,
            phone_number=phone_number,
            linked_id=None,
            link_precedence=LinkPrecedence.PRIMARY.value,
        )

    def create_secondary(self, email: str | None, phone_number: str | None, primary_id: int) -> Contact:
        return self.create(
            email=email,
            phone_number=phone_number,
            linked_id=primary_id,
            link_precedence=LinkPrecedence.SECONDARY.value,
        )

    def reparent_secondaries(self, demoted_id: int, canonical_id: int) -> int:
        """Point every live child of *demoted_id* at *canonical_id*.

        Must run before the demoted primary itself is demoted.
        """
        stmt = (
            update(Contact)
            .where(Contact.linked_id == demoted_id, Contact.deleted_at.is_(None))
            .values(linked_id=canonical_id)
            .execution_options(synchronize_session="evaluate")
        )
        return self.db.execute(stmt).rowcount

    def demote_to_secondary(self, contact: Contact, canonical_id: int) -> Contact:
        return self.update(
            contact,
            link_precedence=LinkPrecedence.SECONDARY.value,
            linked_id=canonical_id,
        )
