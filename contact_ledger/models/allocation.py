from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from contact_ledger.db.base import Base


class UnlockMode(str, Enum):
    NORMAL = "normal"
    EXCLUSIVE = "exclusive"


class AllocationStatus(str, Enum):
    ACTIVE = "active"
    REFUNDED = "refunded"


class Allocation(Base):
    """A contact unlock: one professional's paid access to one request."""

    __tablename__ = "allocations"
    __table_args__ = (
        UniqueConstraint("request_id", "account_id", name="uq_allocations_request_account"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    request_id = Column(String, ForeignKey("service_requests.id"), nullable=False, index=True)
    account_id = Column(String, ForeignKey("professional_accounts.id"), nullable=False, index=True)
    mode = Column(String, nullable=False, default=UnlockMode.NORMAL.value)
    cost = Column(Integer, nullable=False)  # price snapshot at unlock time
    status = Column(String, nullable=False, default=AllocationStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    refunded_at = Column(DateTime(timezone=True), nullable=True)
