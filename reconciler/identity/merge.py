from __future__ import annotations

import logging
from collections.abc import Iterable

from reconciler.db.models import Contact
from reconciler.db.repositories import ContactRepository

logger = logging.getLogger(__name__)


def merge_primaries(
    contacts: ContactRepository,
    canonical: Contact,
    demoted: Iterable[Contact],
) -> list[int]:
    """Fold every primary in *demoted* into *canonical*.

    Children are re-parented before their old primary is demoted, so no
    write ever leaves a secondary pointing at another secondary.  Returns the
    ids of the demoted contacts.
    """
    demoted_ids: list[int] = []
    for contact in demoted:
        if contact.id == canonical.id:
            continue
        moved = contacts.reparent_secondaries(contact.id, canonical.id)
        contacts.demote_to_secondary(contact, canonical.id)
        demoted_ids.append(contact.id)
        logger.info(
            "Merged primary %d into %d (%d secondaries re-parented)",
            contact.id,
            canonical.id,
            moved,
        )
    return demoted_ids
