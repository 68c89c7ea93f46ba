from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text

from contact_ledger.db.base import Base


class TransactionReason(str, Enum):
    PURCHASE = "purchase"
    ADMIN_GRANT = "admin_grant"
    UNLOCK_DEBIT = "unlock_debit"
    REFUND_CREDIT = "refund_credit"


class CoinTransaction(Base):
    """Append-only. Rows are never updated or deleted."""

    __tablename__ = "coin_transactions"
    __table_args__ = (
        # A payment id can only be credited once (webhook replays).
        Index(
            "uq_coin_transactions_purchase_reference",
            "reason",
            "reference",
            unique=True,
            postgresql_where=text("reason = 'purchase'"),
            sqlite_where=text("reason = 'purchase'"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    account_id = Column(String, ForeignKey("professional_accounts.id"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    reference = Column(String, nullable=True, index=True)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
