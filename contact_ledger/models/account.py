from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String

from contact_ledger.db.base import Base


class ProfessionalAccount(Base):
    __tablename__ = "professional_accounts"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_professional_accounts_balance_non_negative"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    # Only the Ledger writes this column; it must equal SUM(coin_transactions.delta).
    balance = Column(Integer, nullable=False, default=0)
    approved = Column(Boolean, nullable=False, default=False)
    # Owned by the moderation side of the app; a banned account cannot spend.
    is_banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def can_spend(self) -> bool:
        return bool(self.approved) and not self.is_banned
