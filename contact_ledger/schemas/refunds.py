from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RefundSubmitIn(BaseModel):
    allocation_id: str
    reason: str
    evidence: list[str] = Field(default_factory=list, description="URLs of uploaded proof")


class AutoGuaranteeIn(BaseModel):
    allocation_id: str


class RefundResolveIn(BaseModel):
    decision: Literal["approve", "deny"]
    admin_comment: str | None = None
    admin_id: str


class RefundOut(BaseModel):
    id: str
    allocation_id: str
    account_id: str
    kind: str
    status: str
    reason: str
    evidence: list[str]
    credited_amount: int | None = None
    admin_id: str | None = None
    admin_response: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RefundListOut(BaseModel):
    items: list[RefundOut]
    total: int
    page: int
    pages: int


class AutoGuaranteeOut(BaseModel):
    refund_id: str
    credited_amount: int
    new_balance: int
