"""Coin prices and refund policy: admin-editable row with environment defaults."""
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from contact_ledger.core.config import settings
from contact_ledger.core.errors import InvalidAmount
from contact_ledger.db.session import atomic
from contact_ledger.models.allocation import UnlockMode
from contact_ledger.models.pricing_settings import PricingSettings

logger = logging.getLogger(__name__)


class PricingConfig(BaseModel):
    """Snapshot of the pricing row, read once per operation."""

    cost_normal: int
    cost_exclusive: int
    max_slots: int
    guarantee_percent: int
    guarantee_window_days: int

    model_config = {"frozen": True}

    def price(self, mode: UnlockMode) -> int:
        return self.cost_exclusive if mode == UnlockMode.EXCLUSIVE else self.cost_normal

    def guarantee_amount(self, cost: int) -> int:
        return cost * self.guarantee_percent // 100


def get_pricing_defaults() -> dict[str, int]:
    return {
        "cost_normal": settings.cost_normal,
        "cost_exclusive": settings.cost_exclusive,
        "max_slots": settings.max_slots,
        "guarantee_percent": settings.guarantee_percent,
        "guarantee_window_days": settings.guarantee_window_days,
    }


EDITABLE_FIELDS = tuple(PricingConfig.model_fields)


def _validate_field(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidAmount(value)
    if name == "guarantee_percent" and not 0 <= value <= 100:
        raise InvalidAmount(value)
    if name == "guarantee_window_days" and value < 0:
        raise InvalidAmount(value)
    if name in ("cost_normal", "cost_exclusive", "max_slots") and value <= 0:
        raise InvalidAmount(value)


class PricingSettingsService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self) -> PricingSettings | None:
        return self.db.query(PricingSettings).filter(PricingSettings.id == 1).first()

    def get_or_create(self) -> PricingSettings:
        row = self.get()
        if row:
            return row
        row = PricingSettings(id=1, **get_pricing_defaults())
        self.db.add(row)
        self.db.flush()
        return row

    def current(self) -> PricingConfig:
        """Effective config. Falls back to environment defaults until an admin saves the row."""
        row = self.get()
        if row is None:
            return PricingConfig(**get_pricing_defaults())
        return PricingConfig(**{name: getattr(row, name) for name in EDITABLE_FIELDS})

    def as_dict(self) -> dict[str, Any]:
        with atomic(self.db, "pricing_read"):
            row = self.get()
            data = self.current().model_dump()
        data["updated_by"] = row.updated_by if row else None
        data["updated_at"] = row.updated_at.isoformat() if row and row.updated_at else None
        return data

    def update(self, data: dict[str, Any], admin_id: str | None = None) -> dict[str, Any]:
        changes = {name: data[name] for name in EDITABLE_FIELDS if data.get(name) is not None}
        for name, value in changes.items():
            _validate_field(name, value)
        with atomic(self.db, "pricing_update"):
            row = self.get_or_create()
            for name, value in changes.items():
                setattr(row, name, value)
            row.updated_by = admin_id
            row.updated_at = datetime.now(timezone.utc)
            self.db.add(row)
        logger.info("pricing_updated", extra={"admin_id": admin_id})
        return self.as_dict()
