"""Identity resolution orchestrator.

``IdentityService.identify`` runs the whole resolution pass for one
fingerprint inside a single unit of work:

1. lock the supplied identifiers and find direct matches
2. no match: create a fresh primary and return it
3. otherwise expand the matches to their full cluster, elect the oldest
   primary and fold every other primary into it
4. create a secondary only if no live row already carries the exact
   fingerprint
5. refetch the cluster and format the consolidated view

A missing fingerprint is reported as a validation fault in the returned
outcome.  Invariant and store failures propagate and roll the unit of work
back.

Safety rule: raw emails and phone numbers are never logged, only ids.
"""
from __future__ import annotations

import logging
from collections.abc import Callable

from reconciler.core.errors import FaultKind
from reconciler.db.repositories import ContactRepository
from reconciler.db.unit_of_work import UnitOfWork
from reconciler.identity.cluster import elect_primary, resolve_cluster
from reconciler.identity.formatter import format_cluster
from reconciler.identity.merge import merge_primaries
from reconciler.identity.types import Fault, IdentifyInput, IdentifyOutcome

logger = logging.getLogger(__name__)

MISSING_IDENTIFIER_MESSAGE = "At least one of email or phoneNumber must be provided"


class IdentityService:
    """Resolve partial fingerprints against the contact store."""

    def __init__(self, unit_of_work_factory: Callable[[], UnitOfWork]) -> None:
        self.unit_of_work_factory = unit_of_work_factory

    def identify(self, request: IdentifyInput) -> IdentifyOutcome:
        if not request.has_identifier:
            logger.info("Identify request rejected: no identifier supplied")
            return IdentifyOutcome(fault=Fault(FaultKind.VALIDATION, MISSING_IDENTIFIER_MESSAGE))

        email = request.email or None
        phone_number = request.phone_number or None

        with self.unit_of_work_factory() as uow:
            outcome = self._resolve(uow.contacts, email, phone_number)
            uow.commit()
        return outcome

    def _resolve(
        self,
        contacts: ContactRepository,
        email: str | None,
        phone_number: str | None,
    ) -> IdentifyOutcome:
        contacts.lock_identifiers(email, phone_number)
        matches = contacts.find_direct_matches(email, phone_number)

        if not matches:
            created = contacts.create_primary(email, phone_number)
            logger.info("Created primary contact %d", created.id)
            return IdentifyOutcome(result=format_cluster([created]), created_contact_id=created.id)

        cluster = resolve_cluster(contacts, matches)
        canonical, extras = elect_primary(cluster)
        demoted_ids = merge_primaries(contacts, canonical, extras)

        created_id: int | None = None
        if contacts.find_exact_match(email, phone_number) is None:
            created = contacts.create_secondary(email, phone_number, canonical.id)
            created_id = created.id
            logger.info("Created secondary contact %d under primary %d", created.id, canonical.id)
        else:
            logger.debug("Fingerprint already stored under primary %d", canonical.id)

        final_cluster = contacts.fetch_cluster([canonical.id])
        return IdentifyOutcome(
            result=format_cluster(final_cluster),
            created_contact_id=created_id,
            demoted_contact_ids=tuple(demoted_ids),
        )
