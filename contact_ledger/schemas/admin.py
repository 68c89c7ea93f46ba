"""
Admin API schemas.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GrantIn(BaseModel):
    amount: int = Field(..., description="Coins to credit; must be positive")
    reason: str | None = None
    admin_id: str


class ApprovalIn(BaseModel):
    approved: bool
    admin_id: str


class PricingOut(BaseModel):
    cost_normal: int
    cost_exclusive: int
    max_slots: int
    guarantee_percent: int
    guarantee_window_days: int
    updated_by: str | None = None
    updated_at: str | None = None


class PricingUpdateIn(BaseModel):
    cost_normal: int | None = None
    cost_exclusive: int | None = None
    max_slots: int | None = None
    guarantee_percent: int | None = None
    guarantee_window_days: int | None = None
    admin_id: str | None = None


class RefundStatsOut(BaseModel):
    pending: int
    approved: int
    denied: int
    total: int


class AuditLogOut(BaseModel):
    """Audit log entry."""
    id: str
    actor_type: str
    actor_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    payload: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
