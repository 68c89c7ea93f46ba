from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from contact_ledger.db.base import Base, JSONType


class RefundKind(str, Enum):
    MANUAL = "manual"
    AUTOMATIC_GUARANTEE = "automatic_guarantee"


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class RefundDecision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"


class RefundRequest(Base):
    __tablename__ = "refund_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    # unique: one refund request per allocation, whatever its outcome
    allocation_id = Column(String, ForeignKey("allocations.id"), nullable=False, unique=True)
    account_id = Column(String, ForeignKey("professional_accounts.id"), nullable=False, index=True)
    kind = Column(String, nullable=False, default=RefundKind.MANUAL.value)
    status = Column(String, nullable=False, default=RefundStatus.PENDING.value, index=True)
    reason = Column(Text, nullable=False)
    evidence = Column(JSONType, nullable=False, default=list)
    credited_amount = Column(Integer, nullable=True)
    admin_id = Column(String, nullable=True)
    admin_response = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
