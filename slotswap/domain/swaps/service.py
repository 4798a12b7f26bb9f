"""Swap service - Negotiation state machine for slot exchanges"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ...models import EventStatus, SwapRequest, SwapStatus, User
from ...services.notification_service import NotificationDispatcher
from ..events.repository import EventRepository
from .repository import SwapRequestRepository

logger = logging.getLogger(__name__)

STALE_STATE_MESSAGE = "The swap changed while it was being processed. Please refresh and retry."


class SwapService:
    """
    Drives SwapRequest negotiation: PENDING → ACCEPTED | REJECTED (terminal).

    propose and respond each touch one request and two events inside a
    single unit of work. Writes are conditional on the state that was read
    (status and owner), so a racing operation that got there first makes
    the loser fail with ConflictError and roll back entirely.
    """

    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None):
        self.db = db
        self.repo = SwapRequestRepository()
        self.event_repo = EventRepository()
        self.dispatcher = dispatcher or NotificationDispatcher(None)

    def propose_swap(self, offered_slot_id: str, requested_slot_id: str, user: User) -> SwapRequest:
        """Offer one of the user's swappable slots for someone else's swappable slot"""
        if not offered_slot_id or not requested_slot_id:
            raise ValidationError("Please provide both slot IDs")

        with unit_of_work(self.db):
            events = self.event_repo.get_events_by_ids(
                self.db, [offered_slot_id, requested_slot_id], for_update=True
            )
            offered = events.get(offered_slot_id)
            requested = events.get(requested_slot_id)

            if not offered:
                raise NotFoundError("Your slot not found")
            if not requested:
                raise NotFoundError("Their slot not found")
            if offered.owner_id != user.id:
                raise AuthorizationError("You do not own this slot")
            if requested.owner_id == user.id:
                raise ValidationError("Cannot swap with your own slot")
            if offered.status != EventStatus.SWAPPABLE:
                raise ConflictError("Your slot is not swappable")
            if requested.status != EventStatus.SWAPPABLE:
                raise ConflictError("Their slot is not swappable")

            receiver_id = requested.owner_id

            # Claim both events before the request row references them
            locked = self.event_repo.compare_and_set(
                self.db,
                offered.id,
                EventStatus.SWAPPABLE,
                user.id,
                status=EventStatus.SWAP_PENDING,
            ) + self.event_repo.compare_and_set(
                self.db,
                requested.id,
                EventStatus.SWAPPABLE,
                receiver_id,
                status=EventStatus.SWAP_PENDING,
            )
            if locked != 2:
                logger.info(
                    f"⚠️ Lost race proposing {offered.id} ↔ {requested.id}: "
                    f"slot no longer swappable"
                )
                raise ConflictError("One of the slots is no longer swappable")

            try:
                swap_request = self.repo.create_swap_request(
                    self.db,
                    requester_id=user.id,
                    receiver_id=receiver_id,
                    offered_slot_id=offered.id,
                    requested_slot_id=requested.id,
                )
            except IntegrityError as e:
                logger.warning(
                    f"⚠️ Swap request for {offered_slot_id} ↔ {requested_slot_id} rejected: {e}"
                )
                raise ConflictError("One of the slots is no longer swappable") from e

            request_id = swap_request.id
            offered_title, requested_title = offered.title, requested.title

        logger.info(f"🔄 Swap request {request_id} created: {user.id} → {receiver_id}")
        self.dispatcher.swap_requested(receiver_id, offered_title, requested_title, request_id)
        return self.repo.get_with_parties(self.db, request_id)

    def respond_to_swap(self, request_id: str, accept: bool, user: User) -> SwapRequest:
        """
        Resolve a pending request as its receiver.

        Rejecting puts both events back on the market (SWAPPABLE). Accepting
        exchanges their owners and marks both BUSY; it is refused with
        ConflictError if either party would end up holding overlapping events.
        """
        if not isinstance(accept, bool):
            raise ValidationError("Acceptance must be a boolean")

        with unit_of_work(self.db):
            swap_request = self.repo.get_by_id(self.db, request_id, for_update=True)
            if not swap_request:
                raise NotFoundError("Swap request not found")
            if swap_request.status != SwapStatus.PENDING:
                raise ConflictError("Swap request is not pending")
            if swap_request.receiver_id != user.id:
                raise AuthorizationError("Not authorized to respond to this request")

            slot_ids = [swap_request.offered_slot_id, swap_request.requested_slot_id]
            events = self.event_repo.get_events_by_ids(
                self.db, [slot_id for slot_id in slot_ids if slot_id], for_update=True
            )
            offered = events.get(swap_request.offered_slot_id)
            requested = events.get(swap_request.requested_slot_id)
            if not offered or not requested:
                raise NotFoundError("One or both slots not found")

            requester_id = swap_request.requester_id
            receiver_id = swap_request.receiver_id

            if accept:
                self._accept(swap_request, offered, requested)
            else:
                self._reject(swap_request, offered, requested)

            counterparty_title = requested.title

        outcome = "accepted" if accept else "rejected"
        logger.info(f"✅ Swap request {request_id} {outcome} by {receiver_id}")
        self.dispatcher.swap_resolved(requester_id, accept, counterparty_title, request_id)
        return self.repo.get_with_parties(self.db, request_id)

    def _claim(self, swap_request: SwapRequest, new_status: SwapStatus) -> None:
        claimed = self.repo.compare_and_set_status(
            self.db, swap_request.id, SwapStatus.PENDING, new_status
        )
        if claimed != 1:
            logger.info(f"⚠️ Swap request {swap_request.id} was resolved concurrently")
            raise ConflictError("Swap request is not pending")

    def _reject(self, swap_request: SwapRequest, offered, requested) -> None:
        self._claim(swap_request, SwapStatus.REJECTED)

        released = self.event_repo.compare_and_set(
            self.db,
            offered.id,
            EventStatus.SWAP_PENDING,
            swap_request.requester_id,
            status=EventStatus.SWAPPABLE,
        ) + self.event_repo.compare_and_set(
            self.db,
            requested.id,
            EventStatus.SWAP_PENDING,
            swap_request.receiver_id,
            status=EventStatus.SWAPPABLE,
        )
        if released != 2:
            raise ConflictError(STALE_STATE_MESSAGE)

    def _accept(self, swap_request: SwapRequest, offered, requested) -> None:
        requester_id = swap_request.requester_id
        receiver_id = swap_request.receiver_id

        self.event_repo.lock_calendars(self.db, requester_id, receiver_id)

        # The requester gives up `offered` and takes `requested`, and vice versa
        if self.event_repo.find_overlapping(
            self.db,
            requester_id,
            requested.start_time,
            requested.end_time,
            exclude_ids=[offered.id, requested.id],
        ):
            raise ConflictError(
                "Accepting would overlap with another event in the requester's calendar"
            )
        if self.event_repo.find_overlapping(
            self.db,
            receiver_id,
            offered.start_time,
            offered.end_time,
            exclude_ids=[offered.id, requested.id],
        ):
            raise ConflictError("Accepting would overlap with another event in your calendar")

        self._claim(swap_request, SwapStatus.ACCEPTED)

        transferred = self.event_repo.compare_and_set(
            self.db,
            offered.id,
            EventStatus.SWAP_PENDING,
            requester_id,
            owner_id=receiver_id,
            status=EventStatus.BUSY,
        ) + self.event_repo.compare_and_set(
            self.db,
            requested.id,
            EventStatus.SWAP_PENDING,
            receiver_id,
            owner_id=requester_id,
            status=EventStatus.BUSY,
        )
        if transferred != 2:
            raise ConflictError(STALE_STATE_MESSAGE)

    def get_swap_request(self, request_id: str, user: User) -> SwapRequest:
        """A request is visible to its two parties only"""
        swap_request = self.repo.get_with_parties(self.db, request_id)
        if not swap_request:
            raise NotFoundError("Swap request not found")
        if user.id not in (swap_request.requester_id, swap_request.receiver_id):
            raise AuthorizationError("Not authorized to view this request")
        return swap_request

    def get_incoming(self, user: User) -> list[SwapRequest]:
        return self.repo.get_pending_incoming(self.db, user.id)

    def get_outgoing(self, user: User) -> list[SwapRequest]:
        return self.repo.get_pending_outgoing(self.db, user.id)
