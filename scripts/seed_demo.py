#!/usr/bin/env python3
"""Seed demo contacts: one primary with a secondary, two independent primaries.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py

The contacts table is emptied first.  On PostgreSQL the id sequence is reset
so the demo rows get ids 1-4.
"""
from __future__ import annotations

import sys
from datetime import datetime, timezone

from sqlalchemy import create_engine, delete, text
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from reconciler.core.settings import get_settings
from reconciler.db.base import Base
from reconciler.db.models import Contact, LinkPrecedence


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def seed(session: Session) -> list[Contact]:
    """Reset the contacts table and insert the demo rows."""

    session.execute(delete(Contact))
    if session.get_bind().dialect.name == "postgresql":
        session.execute(text("ALTER SEQUENCE contacts_id_seq RESTART WITH 1"))

    # Cluster 1: primary plus one secondary sharing its phone number
    lorraine = Contact(
        email="lorraine@hillvalley.edu",
        phone_number="123456",
        link_precedence=LinkPrecedence.PRIMARY.value,
        created_at=_ts("2023-04-01T00:00:00.374"),
    )
    session.add(lorraine)
    session.flush()

    mcfly = Contact(
        email="mcfly@hillvalley.edu",
        phone_number="123456",
        linked_id=lorraine.id,
        link_precedence=LinkPrecedence.SECONDARY.value,
        created_at=_ts("2023-04-20T05:30:00.110"),
    )

    # Two independent primaries, ready to be bridged by a merge request
    george = Contact(
        email="george@hillvalley.edu",
        phone_number="919191",
        link_precedence=LinkPrecedence.PRIMARY.value,
        created_at=_ts("2023-04-11T00:00:00.374"),
    )
    biff = Contact(
        email="biffsucks@hillvalley.edu",
        phone_number="717171",
        link_precedence=LinkPrecedence.PRIMARY.value,
        created_at=_ts("2023-04-21T05:30:00.110"),
    )
    contacts = [lorraine, mcfly, george, biff]
    session.add_all(contacts[1:])
    session.commit()

    for contact in contacts:
        print(f"  - Contact {contact.id} ({contact.link_precedence}): linked_id={contact.linked_id}")
    print(f"Seeded {len(contacts)} contacts.")
    return contacts


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
