"""Cluster assembly and canonical-primary election."""
from __future__ import annotations

from collections.abc import Iterable

from reconciler.core.errors import InvariantFault
from reconciler.db.models import Contact
from reconciler.db.repositories import ContactRepository


def referenced_primary_ids(seeds: Iterable[Contact]) -> set[int]:
    """Return the primary ids a seed set points at.

    A primary contributes its own id, a secondary its ``linked_id``.
    """
    primary_ids: set[int] = set()
    for contact in seeds:
        if contact.is_primary:
            primary_ids.add(contact.id)
        elif contact.linked_id is not None:
            primary_ids.add(contact.linked_id)
    return primary_ids


def resolve_cluster(contacts: ContactRepository, seeds: Iterable[Contact]) -> list[Contact]:
    """Expand directly matched contacts into every member of their clusters."""
    return contacts.fetch_cluster(referenced_primary_ids(seeds))


def _election_key(contact: Contact) -> tuple:
    return (contact.created_at, contact.id)


def elect_primary(cluster: Iterable[Contact]) -> tuple[Contact, list[Contact]]:
    """Return ``(canonical, demoted)`` for the primaries of *cluster*.

    The oldest primary by ``created_at`` wins; equal timestamps fall back to
    the lower id.  ``demoted`` keeps the same ordering.
    """
    primaries = sorted((c for c in cluster if c.is_primary), key=_election_key)
    if not primaries:
        raise InvariantFault("Invariant violated: no primary in cluster")
    return primaries[0], primaries[1:]
