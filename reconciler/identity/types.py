from __future__ import annotations

from dataclasses import dataclass, field

from reconciler.core.errors import FaultKind


@dataclass(frozen=True)
class IdentifyInput:
    """A partial fingerprint supplied by the caller.

    Values arrive already trimmed and format-checked; blank strings are
    treated the same as a missing field.
    """

    email: str | None = None
    phone_number: str | None = None

    @property
    def has_identifier(self) -> bool:
        return bool(self.email) or bool(self.phone_number)


@dataclass(frozen=True)
class IdentifyResult:
    primary_contact_id: int
    emails: list[str] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)
    secondary_contact_ids: list[int] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "primaryContactId": self.primary_contact_id,
            "emails": list(self.emails),
            "phoneNumbers": list(self.phone_numbers),
            "secondaryContactIds": list(self.secondary_contact_ids),
        }


@dataclass(frozen=True)
class Fault:
    kind: FaultKind
    message: str


@dataclass(frozen=True)
class IdentifyOutcome:
    """Result of one identify call: either ``result`` or ``fault`` is set."""

    result: IdentifyResult | None = None
    fault: Fault | None = None
    created_contact_id: int | None = None
    demoted_contact_ids: tuple[int, ...] = ()

    @property
    def ok(self) -> bool:
        return self.fault is None
