"""Swap router - FastAPI endpoints for swap negotiation"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import SwapStatus, User
from .schemas import (
    SwapDecision,
    SwapDecisionResponse,
    SwapProposal,
    SwapRequestResponse,
    swap_request_response,
)
from .service import SwapService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Swaps"])


def get_swap_service(request: Request, db: Session = Depends(get_db)) -> SwapService:
    """Dependency injection for SwapService"""
    return SwapService(db, dispatcher=request.app.state.dispatcher)


@router.post("/swap-request", response_model=SwapRequestResponse, status_code=201)
async def create_swap_request(
    data: SwapProposal,
    current_user: User = Depends(get_current_user),
    service: SwapService = Depends(get_swap_service),
):
    """Propose swapping one of my swappable slots for another user's swappable slot"""
    swap_request = service.propose_swap(data.mySlotId, data.theirSlotId, current_user)
    return swap_request_response(swap_request)


@router.post("/swap-response/{request_id}", response_model=SwapDecisionResponse)
async def respond_to_swap_request(
    request_id: str,
    data: SwapDecision,
    current_user: User = Depends(get_current_user),
    service: SwapService = Depends(get_swap_service),
):
    """Accept or reject an incoming swap request"""
    swap_request = service.respond_to_swap(request_id, data.acceptance, current_user)
    accepted = swap_request.status == SwapStatus.ACCEPTED
    return SwapDecisionResponse(
        message="Swap request accepted" if accepted else "Swap request rejected",
        swapRequest=swap_request_response(swap_request),
    )


@router.get("/swap-requests/incoming", response_model=list[SwapRequestResponse])
async def get_incoming_requests(
    current_user: User = Depends(get_current_user),
    service: SwapService = Depends(get_swap_service),
):
    """Pending requests waiting on the current user, newest first"""
    return [swap_request_response(r) for r in service.get_incoming(current_user)]


@router.get("/swap-requests/outgoing", response_model=list[SwapRequestResponse])
async def get_outgoing_requests(
    current_user: User = Depends(get_current_user),
    service: SwapService = Depends(get_swap_service),
):
    """Pending requests the current user sent, newest first"""
    return [swap_request_response(r) for r in service.get_outgoing(current_user)]


@router.get("/swap-requests/{request_id}", response_model=SwapRequestResponse)
async def get_swap_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    service: SwapService = Depends(get_swap_service),
):
    return swap_request_response(service.get_swap_request(request_id, current_user))
