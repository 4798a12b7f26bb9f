"""Swap request repository - Database operations for swap requests"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import SwapRequest, SwapStatus


def _with_parties(query):
    return query.options(
        joinedload(SwapRequest.requester),
        joinedload(SwapRequest.receiver),
        joinedload(SwapRequest.offered_slot),
        joinedload(SwapRequest.requested_slot),
    )


class SwapRequestRepository:
    """Repository for swap request database operations. Nothing here commits."""

    @staticmethod
    def get_by_id(db: Session, request_id: str, for_update: bool = False) -> Optional[SwapRequest]:
        query = db.query(SwapRequest).filter(SwapRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_with_parties(db: Session, request_id: str) -> Optional[SwapRequest]:
        return _with_parties(db.query(SwapRequest)).filter(SwapRequest.id == request_id).first()

    @staticmethod
    def create_swap_request(db: Session, **request_data) -> SwapRequest:
        swap_request = SwapRequest(status=SwapStatus.PENDING.value, **request_data)
        db.add(swap_request)
        db.flush()
        return swap_request

    @staticmethod
    def compare_and_set_status(
        db: Session, request_id: str, expected: SwapStatus, new: SwapStatus
    ) -> int:
        """Move the request from `expected` to `new`; returns 0 when it was no longer `expected`"""
        return (
            db.query(SwapRequest)
            .filter(SwapRequest.id == request_id, SwapRequest.status == expected.value)
            .update({SwapRequest.status: new.value}, synchronize_session=False)
        )

    @staticmethod
    def get_pending_incoming(db: Session, user_id: str) -> list[SwapRequest]:
        """Pending requests waiting on this user's answer, newest first"""
        return (
            _with_parties(db.query(SwapRequest))
            .filter(
                SwapRequest.receiver_id == user_id,
                SwapRequest.status == SwapStatus.PENDING.value,
            )
            .order_by(SwapRequest.created_at.desc())
            .all()
        )

    @staticmethod
    def get_pending_outgoing(db: Session, user_id: str) -> list[SwapRequest]:
        """Pending requests this user sent, newest first"""
        return (
            _with_parties(db.query(SwapRequest))
            .filter(
                SwapRequest.requester_id == user_id,
                SwapRequest.status == SwapStatus.PENDING.value,
            )
            .order_by(SwapRequest.created_at.desc())
            .all()
        )
