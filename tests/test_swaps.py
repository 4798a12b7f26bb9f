"""Tests for the swap negotiation state machine"""

import pytest
from sqlalchemy.exc import IntegrityError

from slotswap.domain.events.repository import EventRepository
from slotswap.domain.events.schemas import EventCreate
from slotswap.domain.events.service import EventService
from slotswap.domain.swaps.repository import SwapRequestRepository
from slotswap.domain.swaps.service import SwapService
from slotswap.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from slotswap.models import Event, EventStatus, SwapRequest, SwapStatus, User
from slotswap.services.notification_service import (
    SWAP_REQUESTED,
    SWAP_RESOLVED,
    NotificationDispatcher,
)

from .conftest import hours


@pytest.fixture
def shift1(make_event, alice):
    return make_event(alice, "Shift 1", 1, 2, swappable=True)


@pytest.fixture
def shift2(make_event, bob):
    return make_event(bob, "Shift 2", 3, 4, swappable=True)


def reload(db, model, object_id):
    db.expire_all()
    return db.get(model, object_id)


def statuses(db, *event_ids):
    db.expire_all()
    return [db.get(Event, event_id).status for event_id in event_ids]


def run_before_first_write(monkeypatch, session_factory, competitor):
    """Commit `competitor` from another session just before the first event write"""
    original_compare_and_set = EventRepository.compare_and_set
    raced = []

    def compare_and_set_after_competitor(session, *args, **values):
        if not raced:
            raced.append(True)
            competitor_db = session_factory()
            try:
                competitor(competitor_db)
            finally:
                competitor_db.close()
        return original_compare_and_set(session, *args, **values)

    monkeypatch.setattr(
        EventRepository, "compare_and_set", staticmethod(compare_and_set_after_competitor)
    )


# ==================== propose ====================


def test_propose_locks_both_events(swap_service, db, shift1, shift2, alice, bob, notifier):
    swap_request = swap_service.propose_swap(shift2.id, shift1.id, bob)

    assert swap_request.status == SwapStatus.PENDING
    assert swap_request.requester_id == bob.id
    assert swap_request.receiver_id == alice.id
    assert swap_request.offered_slot_id == shift2.id
    assert swap_request.requested_slot_id == shift1.id
    assert statuses(db, shift1.id, shift2.id) == [EventStatus.SWAP_PENDING] * 2

    assert notifier.sent == [
        (
            alice.id,
            SWAP_REQUESTED,
            {
                "recipient": alice.id,
                "requestId": swap_request.id,
                "offeredTitle": "Shift 2",
                "requestedTitle": "Shift 1",
                "message": "New swap request for: Shift 1",
            },
        )
    ]


def test_propose_requires_both_ids(swap_service, shift1, bob):
    with pytest.raises(ValidationError):
        swap_service.propose_swap(None, shift1.id, bob)


def test_propose_unknown_slot_is_not_found(swap_service, shift1, shift2, bob):
    with pytest.raises(NotFoundError):
        swap_service.propose_swap("missing", shift1.id, bob)
    with pytest.raises(NotFoundError):
        swap_service.propose_swap(shift2.id, "missing", bob)


def test_propose_with_someone_elses_slot_is_forbidden(swap_service, shift1, shift2, carol):
    with pytest.raises(AuthorizationError):
        swap_service.propose_swap(shift2.id, shift1.id, carol)


def test_propose_with_own_slot_is_rejected(swap_service, make_event, shift2, bob):
    other = make_event(bob, "Another of mine", 6, 7, swappable=True)
    with pytest.raises(ValidationError):
        swap_service.propose_swap(shift2.id, other.id, bob)
    with pytest.raises(ValidationError):
        swap_service.propose_swap(shift2.id, shift2.id, bob)


def test_propose_needs_both_slots_swappable(
    swap_service, db, make_event, shift1, shift2, alice, bob, notifier
):
    busy_mine = make_event(bob, "Busy", 6, 7)
    busy_theirs = make_event(alice, "Busy too", 6, 7)

    with pytest.raises(ConflictError):
        swap_service.propose_swap(busy_mine.id, shift1.id, bob)
    with pytest.raises(ConflictError):
        swap_service.propose_swap(shift2.id, busy_theirs.id, bob)

    assert statuses(db, shift1.id, shift2.id, busy_mine.id, busy_theirs.id) == [
        EventStatus.SWAPPABLE,
        EventStatus.SWAPPABLE,
        EventStatus.BUSY,
        EventStatus.BUSY,
    ]
    assert db.query(SwapRequest).count() == 0
    assert notifier.sent == []


def test_second_proposal_for_a_pending_slot_conflicts(
    swap_service, db, make_event, shift1, shift2, bob, carol
):
    swap_service.propose_swap(shift2.id, shift1.id, bob)
    carols = make_event(carol, "Carol shift", 8, 9, swappable=True)

    with pytest.raises(ConflictError):
        swap_service.propose_swap(carols.id, shift1.id, carol)

    assert statuses(db, carols.id) == [EventStatus.SWAPPABLE]
    assert db.query(SwapRequest).count() == 1


def test_racing_proposals_only_one_wins(
    swap_service, db, session_factory, make_event, shift1, shift2, alice, bob, carol, monkeypatch
):
    carols = make_event(carol, "Carol shift", 8, 9, swappable=True)

    # Carol's proposal commits after Bob's checks passed but before Bob writes
    run_before_first_write(
        monkeypatch,
        session_factory,
        lambda competitor_db: SwapService(competitor_db).propose_swap(carols.id, shift1.id, carol),
    )

    with pytest.raises(ConflictError):
        swap_service.propose_swap(shift2.id, shift1.id, bob)

    db.expire_all()
    pending = db.query(SwapRequest).filter(SwapRequest.status == SwapStatus.PENDING).all()
    assert len(pending) == 1
    assert pending[0].requester_id == carol.id
    assert statuses(db, shift1.id, carols.id, shift2.id) == [
        EventStatus.SWAP_PENDING,
        EventStatus.SWAP_PENDING,
        EventStatus.SWAPPABLE,
    ]


def test_proposal_for_slot_deleted_meanwhile_conflicts(
    swap_service, db, session_factory, shift1, shift2, alice, bob, monkeypatch
):
    theirs_id, mine_id, alice_id = shift1.id, shift2.id, alice.id

    # Alice removes her slot after Bob's checks passed but before Bob writes
    run_before_first_write(
        monkeypatch,
        session_factory,
        lambda competitor_db: EventService(competitor_db).delete_event(
            theirs_id, competitor_db.get(User, alice_id)
        ),
    )

    with pytest.raises(ConflictError):
        swap_service.propose_swap(mine_id, theirs_id, bob)

    db.expire_all()
    assert db.query(Event).filter(Event.id == theirs_id).count() == 0
    assert statuses(db, mine_id) == [EventStatus.SWAPPABLE]
    assert db.query(SwapRequest).count() == 0


def test_integrity_error_on_insert_becomes_conflict(
    swap_service, db, shift1, shift2, bob, notifier, monkeypatch
):
    def fail_insert(session, **request_data):
        raise IntegrityError(
            "INSERT INTO swap_requests", {}, Exception("FOREIGN KEY constraint failed")
        )

    monkeypatch.setattr(SwapRequestRepository, "create_swap_request", staticmethod(fail_insert))

    with pytest.raises(ConflictError):
        swap_service.propose_swap(shift2.id, shift1.id, bob)

    assert statuses(db, shift1.id, shift2.id) == [EventStatus.SWAPPABLE] * 2
    assert db.query(SwapRequest).count() == 0
    assert notifier.sent == []


def test_propose_and_respond_lock_both_events(
    swap_service, shift1, shift2, alice, bob, monkeypatch
):
    original_get_events = EventRepository.get_events_by_ids
    reads = []

    def recording_get_events(session, event_ids, for_update=False):
        reads.append((sorted(event_ids), for_update))
        return original_get_events(session, event_ids, for_update=for_update)

    monkeypatch.setattr(EventRepository, "get_events_by_ids", staticmethod(recording_get_events))

    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    swap_service.respond_to_swap(proposal.id, True, alice)

    both = sorted([shift1.id, shift2.id])
    assert reads == [(both, True), (both, True)]


# ==================== respond ====================


def test_accept_exchanges_owners(swap_service, db, shift1, shift2, alice, bob, notifier):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)

    resolved = swap_service.respond_to_swap(proposal.id, True, alice)

    assert resolved.status == SwapStatus.ACCEPTED
    first = reload(db, Event, shift1.id)
    second = reload(db, Event, shift2.id)
    assert first.owner_id == bob.id
    assert second.owner_id == alice.id
    assert first.status == second.status == EventStatus.BUSY

    kind, payload = notifier.sent[-1][1:]
    assert notifier.sent[-1][0] == bob.id
    assert kind == SWAP_RESOLVED
    assert payload["accepted"] is True
    assert payload["counterpartyTitle"] == "Shift 1"
    assert payload["message"] == "Your swap request has been accepted!"


def test_reject_returns_events_to_market(swap_service, db, shift1, shift2, alice, bob, notifier):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)

    resolved = swap_service.respond_to_swap(proposal.id, False, alice)

    assert resolved.status == SwapStatus.REJECTED
    first = reload(db, Event, shift1.id)
    second = reload(db, Event, shift2.id)
    assert (first.owner_id, second.owner_id) == (alice.id, bob.id)
    assert first.status == second.status == EventStatus.SWAPPABLE

    recipient, kind, payload = notifier.sent[-1]
    assert (recipient, kind, payload["accepted"]) == (bob.id, SWAP_RESOLVED, False)
    assert payload["message"] == "Your swap request was rejected."


def test_responding_twice_conflicts_without_second_transfer(
    swap_service, db, shift1, shift2, alice, bob
):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    swap_service.respond_to_swap(proposal.id, True, alice)

    with pytest.raises(ConflictError):
        swap_service.respond_to_swap(proposal.id, True, alice)
    with pytest.raises(ConflictError):
        swap_service.respond_to_swap(proposal.id, False, alice)

    assert reload(db, Event, shift1.id).owner_id == bob.id
    assert reload(db, Event, shift2.id).owner_id == alice.id
    assert reload(db, SwapRequest, proposal.id).status == SwapStatus.ACCEPTED


def test_only_receiver_may_respond(swap_service, shift1, shift2, bob, carol):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)

    with pytest.raises(AuthorizationError):
        swap_service.respond_to_swap(proposal.id, True, bob)
    with pytest.raises(AuthorizationError):
        swap_service.respond_to_swap(proposal.id, False, carol)


def test_respond_to_unknown_request_is_not_found(swap_service, alice):
    with pytest.raises(NotFoundError):
        swap_service.respond_to_swap("missing", True, alice)


def test_respond_requires_boolean(swap_service, shift1, shift2, alice, bob):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    with pytest.raises(ValidationError):
        swap_service.respond_to_swap(proposal.id, "yes", alice)


def test_racing_responses_only_one_resolves(
    swap_service, db, session_factory, shift1, shift2, alice, bob, monkeypatch
):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    original_reject = SwapService._reject
    raced = []

    def reject_after_competitor(self, swap_request, offered, requested):
        # A second tab accepts after this one passed its PENDING check
        if not raced:
            raced.append(True)
            competitor_db = session_factory()
            try:
                SwapService(competitor_db).respond_to_swap(proposal.id, True, alice)
            finally:
                competitor_db.close()
        return original_reject(self, swap_request, offered, requested)

    monkeypatch.setattr(SwapService, "_reject", reject_after_competitor)

    with pytest.raises(ConflictError):
        swap_service.respond_to_swap(proposal.id, False, alice)

    assert reload(db, SwapRequest, proposal.id).status == SwapStatus.ACCEPTED
    first = reload(db, Event, shift1.id)
    second = reload(db, Event, shift2.id)
    assert (first.owner_id, second.owner_id) == (bob.id, alice.id)
    assert first.status == second.status == EventStatus.BUSY


def test_accept_that_would_overlap_is_refused(
    swap_service, event_service, db, shift1, shift2, alice, bob
):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    # Alice books something clashing with Shift 2 while the request is open
    event_service.create_event(
        EventCreate(title="Dentist", startTime=hours(3.5), endTime=hours(5)), alice
    )

    with pytest.raises(ConflictError):
        swap_service.respond_to_swap(proposal.id, True, alice)

    assert reload(db, SwapRequest, proposal.id).status == SwapStatus.PENDING
    assert statuses(db, shift1.id, shift2.id) == [EventStatus.SWAP_PENDING] * 2
    assert reload(db, Event, shift2.id).owner_id == bob.id

    rejected = swap_service.respond_to_swap(proposal.id, False, alice)
    assert rejected.status == SwapStatus.REJECTED


def test_respond_when_event_vanished_is_not_found(swap_service, db, shift1, shift2, alice, bob):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    # Bypass the service to simulate a slot removed behind the negotiator's back
    db.query(SwapRequest).filter(SwapRequest.id == proposal.id).update(
        {SwapRequest.offered_slot_id: None}, synchronize_session=False
    )
    db.commit()

    with pytest.raises(NotFoundError):
        swap_service.respond_to_swap(proposal.id, True, alice)

    assert reload(db, SwapRequest, proposal.id).status == SwapStatus.PENDING


# ==================== queries ====================


def test_incoming_and_outgoing_list_pending_newest_first(
    swap_service, make_event, shift1, shift2, alice, bob, carol
):
    first = swap_service.propose_swap(shift2.id, shift1.id, bob)
    alices_other = make_event(alice, "Shift 3", 10, 11, swappable=True)
    carols = make_event(carol, "Carol shift", 12, 13, swappable=True)
    second = swap_service.propose_swap(carols.id, alices_other.id, carol)

    assert [r.id for r in swap_service.get_incoming(alice)] == [second.id, first.id]
    assert [r.id for r in swap_service.get_outgoing(bob)] == [first.id]
    assert [r.id for r in swap_service.get_outgoing(carol)] == [second.id]
    assert swap_service.get_incoming(bob) == []

    swap_service.respond_to_swap(first.id, False, alice)

    assert [r.id for r in swap_service.get_incoming(alice)] == [second.id]
    assert swap_service.get_outgoing(bob) == []


def test_listings_embed_parties_and_slots(swap_service, shift1, shift2, alice, bob):
    swap_service.propose_swap(shift2.id, shift1.id, bob)

    (incoming,) = swap_service.get_incoming(alice)

    assert incoming.requester.name == "Bob"
    assert incoming.receiver.email == "alice@example.com"
    assert incoming.offered_slot.title == "Shift 2"
    assert incoming.requested_slot.title == "Shift 1"


def test_request_visible_to_parties_only(swap_service, shift1, shift2, alice, bob, carol):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)

    assert swap_service.get_swap_request(proposal.id, alice).id == proposal.id
    assert swap_service.get_swap_request(proposal.id, bob).id == proposal.id
    with pytest.raises(AuthorizationError):
        swap_service.get_swap_request(proposal.id, carol)
    with pytest.raises(NotFoundError):
        swap_service.get_swap_request("missing", alice)


def test_resolved_request_survives_event_deletion(
    swap_service, event_service, db, shift1, shift2, alice, bob
):
    proposal = swap_service.propose_swap(shift2.id, shift1.id, bob)
    swap_service.respond_to_swap(proposal.id, False, alice)

    event_service.delete_event(shift1.id, alice)

    remaining = swap_service.get_swap_request(proposal.id, bob)
    assert remaining.status == SwapStatus.REJECTED
    assert remaining.requested_slot_id is None
    assert remaining.offered_slot.title == "Shift 2"


def test_notifications_disabled_do_not_block_swaps(db, shift1, shift2, alice, bob):
    service = SwapService(db, NotificationDispatcher(None))
    proposal = service.propose_swap(shift2.id, shift1.id, bob)
    assert service.respond_to_swap(proposal.id, True, alice).status == SwapStatus.ACCEPTED
