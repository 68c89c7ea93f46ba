from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from contact_ledger.db.base import Base


class RequestStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


class ServiceRequest(Base):
    """
    Allocation-side view of a client's service request. Title, category and
    contact details live in the surrounding app under the same id.
    """

    __tablename__ = "service_requests"

    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default=RequestStatus.OPEN.value)
    max_slots = Column(Integer, nullable=False, default=4)
    exclusive_lock = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
