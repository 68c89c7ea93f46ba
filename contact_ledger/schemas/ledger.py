from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PurchaseIn(BaseModel):
    """Payment gateway success callback."""
    account_id: str
    amount: int = Field(..., description="Coins bought; must be positive")
    payment_id: str | None = Field(None, description="Gateway payment id; makes the credit idempotent")


class AccountOpenIn(BaseModel):
    """Registration hook. New accounts start unapproved; approval is an admin action."""
    account_id: str


class BalanceOut(BaseModel):
    account_id: str
    balance: int


class NewBalanceOut(BaseModel):
    account_id: str
    new_balance: int


class CoinTransactionOut(BaseModel):
    id: str
    delta: int
    reason: str
    reference: str | None
    balance_before: int
    balance_after: int
    description: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HistoryOut(BaseModel):
    account_id: str
    items: list[CoinTransactionOut]
    total: int
    page: int
    pages: int


class ReconcileOut(BaseModel):
    account_id: str
    balance: int
    ledger_sum: int
    consistent: bool
