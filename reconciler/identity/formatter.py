from __future__ import annotations

from collections.abc import Iterable

from reconciler.core.errors import InvariantFault
from reconciler.db.models import Contact
from reconciler.identity.types import IdentifyResult


def _ordered_unique(values: Iterable[str | None]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def format_cluster(cluster: Iterable[Contact]) -> IdentifyResult:
    """Project a resolved cluster into the consolidated identity view.

    The primary's own email and phone come first; secondaries follow in
    ascending id order with blanks and repeats dropped.
    """
    members = list(cluster)
    primaries = [c for c in members if c.is_primary]
    if len(primaries) != 1:
        raise InvariantFault(f"Invariant violated: cluster has {len(primaries)} primaries, expected 1")
    primary = primaries[0]

    secondaries = sorted((c for c in members if not c.is_primary), key=lambda c: c.id)
    ordered = [primary, *secondaries]

    return IdentifyResult(
        primary_contact_id=primary.id,
        emails=_ordered_unique(c.email for c in ordered),
        phone_numbers=_ordered_unique(c.phone_number for c in ordered),
        secondary_contact_ids=[c.id for c in secondaries],
    )
