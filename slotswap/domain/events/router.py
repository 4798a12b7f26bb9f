"""Event router - FastAPI endpoints for calendar events"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...schemas import MessageResponse
from .schemas import EventCreate, EventResponse, EventUpdate, event_response
from .service import EventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["Events"])


def get_event_service(request: Request, db: Session = Depends(get_db)) -> EventService:
    """Dependency injection for EventService"""
    return EventService(
        db,
        past_grace_seconds=request.app.state.settings.past_grace_seconds,
        clock=request.app.state.clock,
    )


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    data: EventCreate,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Create a new event (status BUSY) in the current user's calendar"""
    return event_response(service.create_event(data, current_user))


@router.get("/my-events", response_model=list[EventResponse])
async def get_my_events(
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Get the current user's events ordered by start time"""
    return [event_response(e) for e in service.get_my_events(current_user)]


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    return event_response(service.get_event(event_id, current_user))


@router.put("/{event_id}", response_model=EventResponse)
@router.patch("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: str,
    data: EventUpdate,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Update title, times or status (BUSY/SWAPPABLE) of an owned event"""
    return event_response(service.update_event(event_id, data, current_user))


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    return service.delete_event(event_id, current_user)
