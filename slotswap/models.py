import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from .database import Base
from .shared.timeutils import utcnow


def generate_id():
    """Generate an opaque unique ID"""
    return str(uuid.uuid4())


class EventStatus(str, enum.Enum):
    BUSY = "BUSY"
    SWAPPABLE = "SWAPPABLE"
    SWAP_PENDING = "SWAP_PENDING"


class SwapStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)

    # Bumped by every write that changes which events this user holds;
    # writers take the row lock through it before checking for overlaps
    calendar_version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    events = relationship("Event", back_populates="owner")


class Event(Base):
    """A user-owned calendar slot; status governs whether it can be swapped"""

    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=generate_id)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    # BUSY → SWAPPABLE (owner edit) → SWAP_PENDING (proposal) → BUSY/SWAPPABLE (resolution)
    status = Column(String(20), default=EventStatus.BUSY.value, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="events")

    __table_args__ = (Index("ix_events_owner_start", "owner_id", "start_time"),)


class SwapRequest(Base):
    """A proposal to exchange ownership of two events between two users"""

    __tablename__ = "swap_requests"

    id = Column(String(36), primary_key=True, default=generate_id)
    requester_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    # NULL once the event is deleted after the request resolved
    offered_slot_id = Column(
        String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    requested_slot_id = Column(
        String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )

    # PENDING → ACCEPTED | REJECTED (terminal)
    status = Column(String(20), default=SwapStatus.PENDING.value, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    requester = relationship("User", foreign_keys=[requester_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
    offered_slot = relationship("Event", foreign_keys=[offered_slot_id])
    requested_slot = relationship("Event", foreign_keys=[requested_slot_id])

    __table_args__ = (
        Index("ix_swap_requests_requester_status", "requester_id", "status"),
        Index("ix_swap_requests_receiver_status", "receiver_id", "status"),
    )
