"""Event service - Business logic for calendar events"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ...models import Event, EventStatus, User
from ...shared.timeutils import Clock, utcnow
from .repository import EventRepository
from .schemas import EventCreate, EventUpdate

logger = logging.getLogger(__name__)

DEFAULT_PAST_GRACE_SECONDS = 60

# Statuses an owner may set directly; SWAP_PENDING belongs to the negotiation
DIRECTLY_SETTABLE_STATUSES = {EventStatus.BUSY, EventStatus.SWAPPABLE}


class EventService:
    """
    Owns Event entities.

    Every write runs in one unit of work and keeps the per-owner
    non-overlap invariant: no two events of one owner may have intersecting
    [start, end) intervals.
    """

    def __init__(
        self,
        db: Session,
        past_grace_seconds: int = DEFAULT_PAST_GRACE_SECONDS,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.repo = EventRepository()
        self.past_grace = timedelta(seconds=past_grace_seconds)
        self.clock = clock or utcnow

    def _check_not_in_past(self, start_time: datetime, message: str) -> None:
        # Exactly `past_grace` ago is still accepted
        earliest = self.clock() - self.past_grace
        if start_time < earliest:
            raise ValidationError(message)

    def _check_no_overlap(
        self, owner_id: str, start_time: datetime, end_time: datetime, message: str, exclude_id=None
    ) -> None:
        overlapping = self.repo.find_overlapping(
            self.db, owner_id, start_time, end_time, exclude_ids=[exclude_id]
        )
        if overlapping:
            logger.info(
                f"⚠️ Overlap for owner {owner_id}: [{start_time}, {end_time}) "
                f"intersects event {overlapping.id}"
            )
            raise ConflictError(message)

    def _get_owned_event(self, event_id: str, user: User, action: str) -> Event:
        event = self.repo.get_event_by_id(self.db, event_id)
        if not event:
            raise NotFoundError("Event not found")
        if event.owner_id != user.id:
            logger.warning(f"⚠️ User {user.id} attempted to {action} event {event_id}")
            raise AuthorizationError(f"Not authorized to {action} this event")
        return event

    def get_event(self, event_id: str, user: User) -> Event:
        return self._get_owned_event(event_id, user, "view")

    def get_my_events(self, user: User) -> list[Event]:
        """Events owned by the user, earliest first"""
        return self.repo.get_events_by_owner(self.db, user.id)

    def find_swappable(self, excluding_owner_id: str) -> list[Event]:
        return self.repo.find_swappable(self.db, excluding_owner_id)

    def create_event(self, data: EventCreate, user: User) -> Event:
        """Create a BUSY event for the user after validating times and overlap"""
        if not data.title or data.startTime is None or data.endTime is None:
            raise ValidationError("Please provide all fields")
        if data.endTime <= data.startTime:
            raise ValidationError("End time must be after start time")
        self._check_not_in_past(data.startTime, "Cannot create an event in the past")

        with unit_of_work(self.db):
            self.repo.lock_calendars(self.db, user.id)
            self._check_no_overlap(
                user.id,
                data.startTime,
                data.endTime,
                "This event overlaps with an existing event in your calendar.",
            )
            event = self.repo.create_event(
                self.db,
                user.id,
                title=data.title,
                start_time=data.startTime,
                end_time=data.endTime,
            )

        logger.info(f"📅 Event {event.id} created for user {user.id}")
        return event

    def update_event(self, event_id: str, data: EventUpdate, user: User) -> Event:
        """Apply a partial update; all changes land together or not at all"""
        patch = data.model_dump(exclude_unset=True)
        if not patch or all(value is None for value in patch.values()):
            raise ValidationError("No changes provided")
        if data.title is not None and not data.title:
            raise ValidationError("Title must not be empty")
        if data.status is not None and data.status not in DIRECTLY_SETTABLE_STATUSES:
            raise ValidationError("Status can only be set to BUSY or SWAPPABLE")

        with unit_of_work(self.db):
            event = self._get_owned_event(event_id, user, "update")
            times_changed = data.startTime is not None or data.endTime is not None

            if event.status == EventStatus.SWAP_PENDING and (
                times_changed or data.status is not None
            ):
                raise ConflictError("Event is part of a pending swap request")

            updates = {}
            if times_changed:
                new_start = data.startTime if data.startTime is not None else event.start_time
                new_end = data.endTime if data.endTime is not None else event.end_time

                if new_end <= new_start:
                    raise ValidationError("End time must be after start time")
                self._check_not_in_past(new_start, "Cannot set event start time in the past")

                self.repo.lock_calendars(self.db, user.id)
                self._check_no_overlap(
                    user.id,
                    new_start,
                    new_end,
                    "This update would create an overlap with an existing event in your calendar.",
                    exclude_id=event.id,
                )
                updates["start_time"] = new_start
                updates["end_time"] = new_end

            if data.title:
                updates["title"] = data.title
            if data.status is not None:
                updates["status"] = data.status.value

            written = self.repo.compare_and_set(
                self.db, event.id, EventStatus(event.status), user.id, **updates
            )
            if written != 1:
                raise ConflictError("Event was changed by another operation. Please retry.")

        logger.info(f"✏️ Event {event_id} updated by user {user.id}: {sorted(updates)}")
        return self.repo.get_event_by_id(self.db, event_id)

    def delete_event(self, event_id: str, user: User) -> dict:
        """Delete an owned event; events in a pending negotiation cannot be deleted"""
        with unit_of_work(self.db):
            event = self._get_owned_event(event_id, user, "delete")
            if event.status == EventStatus.SWAP_PENDING:
                raise ConflictError(
                    "Event is part of a pending swap request. Resolve the request first."
                )
            deleted = self.repo.delete_event(self.db, event.id, EventStatus(event.status), user.id)
            if deleted != 1:
                raise ConflictError("Event was changed by another operation. Please retry.")

        logger.info(f"🗑️ Event {event_id} deleted by user {user.id}")
        return {"message": "Event deleted successfully"}
