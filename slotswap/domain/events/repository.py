"""Event repository - Database operations for events"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Event, EventStatus, User


class EventRepository:
    """Repository for event database operations. Nothing here commits; callers own the transaction."""

    @staticmethod
    def get_event_by_id(db: Session, event_id: str) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def get_events_by_ids(
        db: Session, event_ids: Iterable[str], for_update: bool = False
    ) -> dict[str, Event]:
        """
        Events keyed by id; missing ids are simply absent.

        With for_update the rows are locked in id order.
        """
        query = (
            db.query(Event)
            .filter(Event.id.in_(sorted(set(event_ids))))
            .order_by(Event.id.asc())
        )
        if for_update:
            query = query.with_for_update()
        return {event.id: event for event in query.all()}

    @staticmethod
    def get_events_by_owner(db: Session, owner_id: str) -> list[Event]:
        """All events of an owner, earliest first"""
        return (
            db.query(Event)
            .filter(Event.owner_id == owner_id)
            .order_by(Event.start_time.asc(), Event.id.asc())
            .all()
        )

    @staticmethod
    def find_overlapping(
        db: Session,
        owner_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_ids: Iterable[str] = (),
    ) -> Optional[Event]:
        """First event of the owner whose [start, end) intersects [start_time, end_time)"""
        query = db.query(Event).filter(
            Event.owner_id == owner_id,
            Event.start_time < end_time,
            Event.end_time > start_time,
        )
        exclude_ids = [event_id for event_id in exclude_ids if event_id]
        if exclude_ids:
            query = query.filter(Event.id.notin_(exclude_ids))
        return query.order_by(Event.start_time.asc()).first()

    @staticmethod
    def find_swappable(db: Session, excluding_owner_id: str) -> list[Event]:
        """Events open for swap that belong to someone else, earliest first"""
        return (
            db.query(Event)
            .options(joinedload(Event.owner))
            .filter(
                Event.status == EventStatus.SWAPPABLE.value,
                Event.owner_id != excluding_owner_id,
            )
            .order_by(Event.start_time.asc(), Event.id.asc())
            .all()
        )

    @staticmethod
    def create_event(db: Session, owner_id: str, **event_data) -> Event:
        event = Event(owner_id=owner_id, status=EventStatus.BUSY.value, **event_data)
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def delete_event(
        db: Session, event_id: str, expected_status: EventStatus, expected_owner_id: str
    ) -> int:
        """Delete one event if its status and owner are unchanged; returns rows deleted"""
        return (
            db.query(Event)
            .filter(
                Event.id == event_id,
                Event.status == expected_status.value,
                Event.owner_id == expected_owner_id,
            )
            .delete(synchronize_session=False)
        )

    @staticmethod
    def compare_and_set(
        db: Session,
        event_id: str,
        expected_status: EventStatus,
        expected_owner_id: str,
        **values,
    ) -> int:
        """
        Conditionally update one event.

        The row is only written when it still has the expected status and
        owner. Returns the number of rows written (0 or 1), so a caller can
        tell whether someone else changed the event since it was read.
        """
        values = {
            key: value.value if isinstance(value, EventStatus) else value
            for key, value in values.items()
        }
        return (
            db.query(Event)
            .filter(
                Event.id == event_id,
                Event.status == expected_status.value,
                Event.owner_id == expected_owner_id,
            )
            .update(values, synchronize_session=False)
        )

    @staticmethod
    def lock_calendars(db: Session, *owner_ids: str) -> None:
        """
        Take the write lock on each owner's calendar.

        Bumping the version is a real write, so it serializes concurrent
        writers on every backend (row lock on PostgreSQL, database write lock
        on SQLite). Owners are locked in a fixed order so two writers touching
        the same pair of calendars cannot deadlock.
        """
        for owner_id in sorted(set(owner_ids)):
            db.query(User).filter(User.id == owner_id).update(
                {User.calendar_version: User.calendar_version + 1},
                synchronize_session=False,
            )
