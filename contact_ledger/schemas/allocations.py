from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class RegisterRequestIn(BaseModel):
    """Client published a request; the id is the surrounding app's request id."""
    request_id: str


class UnlockIn(BaseModel):
    request_id: str
    mode: Literal["normal", "exclusive"] = "normal"


class AllocationOut(BaseModel):
    id: str
    request_id: str
    account_id: str
    mode: str
    cost: int
    status: str
    created_at: datetime
    refunded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class UnlockOut(BaseModel):
    allocation: AllocationOut
    new_balance: int


class ServiceRequestOut(BaseModel):
    id: str
    status: str
    max_slots: int
    exclusive_lock: bool

    model_config = ConfigDict(from_attributes=True)


class SlotsOut(BaseModel):
    request_id: str
    status: str
    max_slots: int
    used: int
    remaining: int
    exclusive_lock: bool
