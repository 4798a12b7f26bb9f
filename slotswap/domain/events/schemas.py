"""Event domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import EventStatus
from ...shared.timeutils import to_naive_utc
from ...shared.validators import normalize_title


class EventCreate(BaseModel):
    """Schema for creating a new event; presence of every field is checked by the service"""

    title: Optional[str] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return normalize_title(v)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return to_naive_utc(v)


class EventUpdate(BaseModel):
    """Schema for updating an existing event"""

    title: Optional[str] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    status: Optional[EventStatus] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return normalize_title(v)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return to_naive_utc(v)


class OwnerSummary(BaseModel):
    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class EventResponse(BaseModel):
    """Schema for event response"""

    id: str
    owner: str
    title: str
    startTime: datetime
    endTime: datetime
    status: EventStatus
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class SwappableEventResponse(BaseModel):
    """Event open for swap, with its owner's identity attached"""

    id: str
    owner: OwnerSummary
    title: str
    startTime: datetime
    endTime: datetime
    status: EventStatus


def event_response(event) -> EventResponse:
    return EventResponse(
        id=event.id,
        owner=event.owner_id,
        title=event.title,
        startTime=event.start_time,
        endTime=event.end_time,
        status=event.status,
        createdAt=event.created_at,
        updatedAt=event.updated_at,
    )


def swappable_event_response(event) -> SwappableEventResponse:
    return SwappableEventResponse(
        id=event.id,
        owner=OwnerSummary.model_validate(event.owner),
        title=event.title,
        startTime=event.start_time,
        endTime=event.end_time,
        status=event.status,
    )
