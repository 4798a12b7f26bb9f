"""Availability router - marketplace of slots open for swap"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ..events.schemas import SwappableEventResponse, swappable_event_response
from .service import AvailabilityService

router = APIRouter(prefix="/api", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


@router.get("/swappable-slots", response_model=list[SwappableEventResponse])
async def get_swappable_slots(
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Other users' swappable slots, earliest first, with their owners attached"""
    return [swappable_event_response(e) for e in service.list_swappable(current_user.id)]
