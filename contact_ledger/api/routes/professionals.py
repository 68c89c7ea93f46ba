"""
Professional-facing coin operations: balance, history, contact unlocks, refunds.
The caller (surrounding app) has already authenticated the professional.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from contact_ledger.db.session import get_db
from contact_ledger.schemas.allocations import AllocationOut, ServiceRequestOut, UnlockIn, UnlockOut
from contact_ledger.schemas.ledger import AccountOpenIn, BalanceOut, HistoryOut
from contact_ledger.schemas.refunds import (
    AutoGuaranteeIn,
    AutoGuaranteeOut,
    RefundListOut,
    RefundOut,
    RefundSubmitIn,
)
from contact_ledger.services.allocations.service import AllocationService
from contact_ledger.services.ledger.service import LedgerService
from contact_ledger.services.refunds.service import RefundService

router = APIRouter(prefix="/professionals", tags=["professionals"])


@router.post("", response_model=BalanceOut)
def open_account(body: AccountOpenIn, db: Session = Depends(get_db)):
    account = LedgerService(db).open_account(body.account_id)
    return {"account_id": account.id, "balance": account.balance}


@router.get("/{account_id}/balance", response_model=BalanceOut)
def get_balance(account_id: str, db: Session = Depends(get_db)):
    return {"account_id": account_id, "balance": LedgerService(db).balance(account_id)}


@router.get("/{account_id}/transactions", response_model=HistoryOut)
def get_history(
    account_id: str,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    items, total = LedgerService(db).history(account_id, limit=page_size, offset=(page - 1) * page_size)
    return {
        "account_id": account_id,
        "items": items,
        "total": total,
        "page": page,
        "pages": (total + page_size - 1) // page_size,
    }


@router.post("/{account_id}/unlocks", response_model=UnlockOut)
def unlock_contact(account_id: str, body: UnlockIn, db: Session = Depends(get_db)):
    allocation, new_balance = AllocationService(db).unlock_with_balance(
        account_id, body.request_id, body.mode
    )
    return {"allocation": allocation, "new_balance": new_balance}


@router.get("/{account_id}/unlocks", response_model=list[AllocationOut])
def list_unlocks(account_id: str, status: str | None = None, db: Session = Depends(get_db)):
    return AllocationService(db).list_for_account(account_id, status)


@router.get("/{account_id}/unlocks/{allocation_id}", response_model=AllocationOut)
def get_unlock(account_id: str, allocation_id: str, db: Session = Depends(get_db)):
    return AllocationService(db).get_allocation(allocation_id, account_id)


@router.post("/{account_id}/requests/{request_id}/finalize", response_model=ServiceRequestOut)
def finalize_request(account_id: str, request_id: str, db: Session = Depends(get_db)):
    return AllocationService(db).finalize(account_id, request_id)


@router.post("/{account_id}/refunds", response_model=RefundOut)
def submit_refund(account_id: str, body: RefundSubmitIn, db: Session = Depends(get_db)):
    return RefundService(db).submit(account_id, body.allocation_id, body.reason, body.evidence)


@router.post("/{account_id}/refunds/automatic", response_model=AutoGuaranteeOut)
def auto_guarantee_refund(account_id: str, body: AutoGuaranteeIn, db: Session = Depends(get_db)):
    return RefundService(db).auto_guarantee(account_id, body.allocation_id)


@router.get("/{account_id}/refunds", response_model=RefundListOut)
def list_refunds(
    account_id: str,
    db: Session = Depends(get_db),
    status: str | None = Query(None, description="pending, approved, denied; empty = all"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    items, total = RefundService(db).list_refunds(
        account_id=account_id, status=status, limit=page_size, offset=(page - 1) * page_size
    )
    return {"items": items, "total": total, "page": page, "pages": (total + page_size - 1) // page_size}
