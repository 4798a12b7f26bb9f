"""Swap domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from ...models import EventStatus, SwapStatus
from ..events.schemas import OwnerSummary


class SwapProposal(BaseModel):
    """Schema for proposing a swap of one of my slots for one of theirs"""

    mySlotId: Optional[str] = None
    theirSlotId: Optional[str] = None


class SwapDecision(BaseModel):
    """Schema for answering an incoming swap request; acceptance is type-checked by the service"""

    acceptance: Any = None


class EventSnapshot(BaseModel):
    id: str
    owner: str
    title: str
    startTime: datetime
    endTime: datetime
    status: EventStatus


class SwapRequestResponse(BaseModel):
    """Schema for swap request response with embedded parties and event snapshots"""

    id: str
    requester: OwnerSummary
    receiver: OwnerSummary
    offeredSlot: Optional[EventSnapshot] = None
    requestedSlot: Optional[EventSnapshot] = None
    status: SwapStatus
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class SwapDecisionResponse(BaseModel):
    message: str
    swapRequest: SwapRequestResponse


def _snapshot(event) -> Optional[EventSnapshot]:
    if event is None:
        return None
    return EventSnapshot(
        id=event.id,
        owner=event.owner_id,
        title=event.title,
        startTime=event.start_time,
        endTime=event.end_time,
        status=event.status,
    )


def swap_request_response(swap_request) -> SwapRequestResponse:
    return SwapRequestResponse(
        id=swap_request.id,
        requester=OwnerSummary.model_validate(swap_request.requester),
        receiver=OwnerSummary.model_validate(swap_request.receiver),
        offeredSlot=_snapshot(swap_request.offered_slot),
        requestedSlot=_snapshot(swap_request.requested_slot),
        status=swap_request.status,
        createdAt=swap_request.created_at,
        updatedAt=swap_request.updated_at,
    )
