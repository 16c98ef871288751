"""Tests for reconciler/identity/service.py: end-to-end resolution passes."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from reconciler.core.errors import FaultKind, InvariantFault
from reconciler.db.models import Contact, LinkPrecedence
from reconciler.identity import service as service_module
from reconciler.identity.types import IdentifyInput

T0 = datetime(2023, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2023, 2, 1, tzinfo=timezone.utc)
T2 = datetime(2023, 3, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _identify(service, email=None, phone=None):
    outcome = service.identify(IdentifyInput(email=email, phone_number=phone))
    assert outcome.ok, outcome.fault
    return outcome.result.to_payload()


def _assert_flat(contacts: list[Contact]) -> None:
    live = {c.id: c for c in contacts if c.deleted_at is None}
    for contact in live.values():
        if contact.link_precedence == LinkPrecedence.SECONDARY.value:
            assert live[contact.linked_id].link_precedence == LinkPrecedence.PRIMARY.value, (
                f"contact {contact.id} links to secondary {contact.linked_id}"
            )
        else:
            assert contact.linked_id is None


def _primaries(contacts: list[Contact]) -> list[int]:
    return [c.id for c in contacts if c.link_precedence == LinkPrecedence.PRIMARY.value]


# ===========================================================================
# Scenarios
# ===========================================================================

class TestScenarios:
    def test_a_new_identity_on_empty_store(self, service, all_contacts):
        body = _identify(service, "a@x.com", "1")

        assert body == {
            "primaryContactId": 1,
            "emails": ["a@x.com"],
            "phoneNumbers": ["1"],
            "secondaryContactIds": [],
        }
        assert len(all_contacts()) == 1

    def test_b_new_email_for_known_phone(self, service):
        _identify(service, "a@x.com", "1")
        body = _identify(service, "b@x.com", "1")

        assert body == {
            "primaryContactId": 1,
            "emails": ["a@x.com", "b@x.com"],
            "phoneNumbers": ["1"],
            "secondaryContactIds": [2],
        }

    def test_c_bridging_request_merges_two_primaries(self, service, add_contact, all_contacts):
        older = add_contact(email="e1", phone_number="p1", created_at=T0)
        newer = add_contact(email="e2", phone_number="p2", created_at=T1)

        outcome = service.identify(IdentifyInput(email="e1", phone_number="p2"))
        body = outcome.result.to_payload()

        assert body["primaryContactId"] == older
        assert body["emails"][0] == "e1"
        assert set(body["emails"]) == {"e1", "e2"}
        assert set(body["phoneNumbers"]) == {"p1", "p2"}
        assert newer in body["secondaryContactIds"]
        assert outcome.demoted_contact_ids == (newer,)

        rows = all_contacts()
        assert _primaries(rows) == [older]
        _assert_flat(rows)

    def test_d_repeating_a_request_changes_nothing(self, service, all_contacts):
        _identify(service, "a@x.com", "1")
        first = _identify(service, "b@x.com", "1")
        count = len(all_contacts())

        second = _identify(service, "b@x.com", "1")

        assert second == first
        assert len(all_contacts()) == count

    def test_new_phone_for_known_email(self, service):
        _identify(service, "a@x.com", "1")
        body = _identify(service, "a@x.com", "2")

        assert body["phoneNumbers"] == ["1", "2"]
        assert body["emails"] == ["a@x.com"]
        assert body["secondaryContactIds"] == [2]

    def test_request_matching_a_secondary_resolves_to_its_primary(self, service):
        _identify(service, "a@x.com", "1")
        _identify(service, "b@x.com", "1")

        body = _identify(service, "b@x.com", "9")

        assert body["primaryContactId"] == 1
        assert body["phoneNumbers"] == ["1", "9"]
        assert body["secondaryContactIds"] == [2, 3]

    def test_single_known_field_creates_nothing(self, service, all_contacts):
        _identify(service, "a@x.com", "1")

        assert _identify(service, email="a@x.com")["primaryContactId"] == 1
        assert _identify(service, phone="1")["primaryContactId"] == 1
        assert len(all_contacts()) == 1

    def test_single_new_field_creates_primary(self, service):
        assert _identify(service, email="solo@x.com") == {
            "primaryContactId": 1,
            "emails": ["solo@x.com"],
            "phoneNumbers": [],
            "secondaryContactIds": [],
        }
        assert _identify(service, phone="555")["emails"] == []

    def test_tombstoned_contacts_are_not_matched(self, service, add_contact):
        ghost = add_contact(email="a@x.com", phone_number="1", deleted_at=T2)

        body = _identify(service, "a@x.com", "1")

        assert body["primaryContactId"] != ghost
        assert body["secondaryContactIds"] == []


# ===========================================================================
# Properties
# ===========================================================================

class TestProperties:
    def test_new_identity_is_sole_member(self, service, add_contact):
        add_contact(email="other@x.com", phone_number="7")

        outcome = service.identify(IdentifyInput(email="new@x.com", phone_number="8"))

        assert outcome.result.primary_contact_id == outcome.created_contact_id
        assert outcome.result.secondary_contact_ids == []

    def test_transitive_merges_stay_flat(self, service, add_contact, all_contacts):
        a = add_contact(email="a@x.com", phone_number="111", created_at=T0)
        b = add_contact(email="b@x.com", phone_number="222", created_at=T1)
        c = add_contact(email="c@x.com", phone_number="333", created_at=T2)
        b_child = add_contact(email="b2@x.com", phone_number="222", linked_id=b, created_at=T2)

        first = _identify(service, "b@x.com", "333")
        assert first["primaryContactId"] == b
        _assert_flat(all_contacts())

        second = _identify(service, "a@x.com", "222")
        rows = all_contacts()

        assert second["primaryContactId"] == a
        assert _primaries(rows) == [a]
        _assert_flat(rows)
        assert {b, c, b_child}.issubset(second["secondaryContactIds"])
        assert second["emails"][0] == "a@x.com"
        assert second["phoneNumbers"][0] == "111"

    @pytest.mark.parametrize(
        ("email", "phone"),
        [("old@x.com", "new-phone"), ("new@x.com", "old-phone")],
    )
    def test_merge_direction_does_not_change_canonical(self, service, add_contact, email, phone):
        newer = add_contact(email="new@x.com", phone_number="new-phone", created_at=T1)
        older = add_contact(email="old@x.com", phone_number="old-phone", created_at=T0)

        body = _identify(service, email, phone)

        assert body["primaryContactId"] == older
        assert body["secondaryContactIds"][0] == newer
        assert body["emails"][0] == "old@x.com"
        assert body["phoneNumbers"][0] == "old-phone"

    def test_equal_created_at_elects_lowest_id(self, service, add_contact):
        first = add_contact(email="a@x.com", created_at=T0)
        second = add_contact(phone_number="1", created_at=T0)

        body = _identify(service, "a@x.com", "1")

        assert body["primaryContactId"] == first
        assert second in body["secondaryContactIds"]

    def test_repeated_requests_are_idempotent(self, service, all_contacts):
        _identify(service, "a@x.com", "1")
        baseline = len(all_contacts())

        responses = [_identify(service, "b@x.com", "1") for _ in range(4)]

        assert len(all_contacts()) == baseline + 1
        assert all(r == responses[0] for r in responses)

    def test_response_sets_are_clean(self, service):
        _identify(service, "a@x.com", "1")
        _identify(service, "b@x.com", "1")
        _identify(service, "a@x.com", "2")
        _identify(service, "c@x.com", "3")
        body = _identify(service, "c@x.com", "2")

        ids = body["secondaryContactIds"]
        assert ids == sorted(set(ids))
        assert body["primaryContactId"] not in ids
        assert len(body["emails"]) == len(set(body["emails"]))
        assert len(body["phoneNumbers"]) == len(set(body["phoneNumbers"]))


# ===========================================================================
# Faults
# ===========================================================================

class TestFaults:
    @pytest.mark.parametrize(("email", "phone"), [(None, None), ("", ""), ("", None)])
    def test_missing_identifiers_return_validation_fault(self, service, all_contacts, email, phone):
        outcome = service.identify(IdentifyInput(email=email, phone_number=phone))

        assert not outcome.ok
        assert outcome.result is None
        assert outcome.fault.kind is FaultKind.VALIDATION
        assert all_contacts() == []

    def test_cluster_without_primary_raises_and_writes_nothing(self, service, add_contact, all_contacts):
        gone = add_contact(email="a@x.com", phone_number="1", deleted_at=T1)
        add_contact(email="b@x.com", phone_number="1", linked_id=gone)
        before = len(all_contacts())

        with pytest.raises(InvariantFault):
            service.identify(IdentifyInput(email="b@x.com", phone_number="2"))

        assert len(all_contacts()) == before

    def test_invariant_fault_after_write_rolls_back(self, service, all_contacts, monkeypatch):
        _identify(service, "a@x.com", "1")

        def _broken(_cluster):
            raise InvariantFault("Invariant violated: no primary in cluster")

        monkeypatch.setattr(service_module, "format_cluster", _broken)

        with pytest.raises(InvariantFault):
            service.identify(IdentifyInput(email="b@x.com", phone_number="1"))

        assert [c.email for c in all_contacts()] == ["a@x.com"]

    def test_store_fault_propagates_and_rolls_back(self, service, add_contact, all_contacts, monkeypatch):
        older = add_contact(email="e1", phone_number="p1", created_at=T0)
        newer = add_contact(email="e2", phone_number="p2", created_at=T1)

        from reconciler.db.repositories import ContactRepository

        def _fail(self, *args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        monkeypatch.setattr(ContactRepository, "find_exact_match", _fail)

        with pytest.raises(OperationalError):
            service.identify(IdentifyInput(email="e1", phone_number="p2"))

        rows = {c.id: c for c in all_contacts()}
        assert rows[newer].link_precedence == LinkPrecedence.PRIMARY.value
        assert rows[newer].linked_id is None
        assert _primaries(list(rows.values())) == [older, newer]


# ===========================================================================
# Lock ordering
# ===========================================================================

class _RecordingRepository:
    def __init__(self):
        self.calls: list[str] = []

    def lock_identifiers(self, email, phone_number):
        self.calls.append("lock_identifiers")
        return []

    def find_direct_matches(self, email, phone_number):
        self.calls.append("find_direct_matches")
        return []

    def create_primary(self, email, phone_number):
        self.calls.append("create_primary")
        return Contact(
            id=1,
            email=email,
            phone_number=phone_number,
            link_precedence=LinkPrecedence.PRIMARY.value,
        )


class _RecordingUnitOfWork:
    def __init__(self, contacts):
        self.contacts = contacts
        self.committed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def commit(self):
        self.committed = True


def test_identifiers_are_locked_before_matching():
    contacts = _RecordingRepository()
    uow = _RecordingUnitOfWork(contacts)
    service = service_module.IdentityService(lambda: uow)

    outcome = service.identify(IdentifyInput(email="a@x.com", phone_number="1"))

    assert outcome.ok
    assert contacts.calls == ["lock_identifiers", "find_direct_matches", "create_primary"]
    assert uow.committed
