from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from contact_ledger.db.base import Base


class PricingSettings(Base):
    """Coin prices and refund policy (single row, id=1). Edited from the admin panel."""

    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, default=1)
    cost_normal = Column(Integer, nullable=False)
    cost_exclusive = Column(Integer, nullable=False)
    max_slots = Column(Integer, nullable=False)
    guarantee_percent = Column(Integer, nullable=False)
    guarantee_window_days = Column(Integer, nullable=False)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
