"""Availability index - read projection of events open for swap"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Event
from ..events.service import EventService


class AvailabilityService:
    def __init__(self, db: Session, event_service: Optional[EventService] = None):
        self.db = db
        self.event_service = event_service or EventService(db)

    def list_swappable(self, excluding_owner_id: str) -> list[Event]:
        """Other users' SWAPPABLE events, earliest first, with owners loaded"""
        return self.event_service.find_swappable(excluding_owner_id)
