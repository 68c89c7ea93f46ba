"""
Admin API: coin grants, account approval, refund review, pricing settings, audit.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from contact_ledger.api.deps import require_admin_key
from contact_ledger.db.session import get_db
from contact_ledger.schemas.admin import (
    ApprovalIn,
    AuditLogOut,
    GrantIn,
    PricingOut,
    PricingUpdateIn,
    RefundStatsOut,
)
from contact_ledger.schemas.ledger import NewBalanceOut, ReconcileOut
from contact_ledger.schemas.refunds import RefundListOut, RefundOut, RefundResolveIn
from contact_ledger.services.admin_grant.service import AdminGrantService
from contact_ledger.services.audit.service import AuditService
from contact_ledger.services.ledger.service import LedgerService
from contact_ledger.services.pricing.settings_service import PricingSettingsService
from contact_ledger.services.refunds.service import RefundService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


# ---------- Accounts ----------
@router.post("/accounts/{account_id}/grant", response_model=NewBalanceOut)
def grant_coins(account_id: str, body: GrantIn, db: Session = Depends(get_db)):
    new_balance = AdminGrantService(db).grant(account_id, body.amount, body.reason, body.admin_id)
    return {"account_id": account_id, "new_balance": new_balance}


@router.post("/accounts/{account_id}/approval")
def set_approval(account_id: str, body: ApprovalIn, db: Session = Depends(get_db)):
    account = AdminGrantService(db).set_approved(account_id, body.approved, body.admin_id)
    return {"account_id": account.id, "approved": account.approved}


@router.get("/accounts/{account_id}/reconcile", response_model=ReconcileOut)
def reconcile_account(account_id: str, db: Session = Depends(get_db)):
    balance, ledger_sum = LedgerService(db).reconcile(account_id)
    return {
        "account_id": account_id,
        "balance": balance,
        "ledger_sum": ledger_sum,
        "consistent": balance == ledger_sum,
    }


# ---------- Refunds ----------
@router.get("/refunds", response_model=RefundListOut)
def refunds_list(
    db: Session = Depends(get_db),
    status: str = Query("pending", description="pending, approved, denied or all"),
    account_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    items, total = RefundService(db).list_refunds(
        account_id=account_id,
        status=None if status == "all" else status,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return {"items": items, "total": total, "page": page, "pages": (total + page_size - 1) // page_size}


@router.get("/refunds/stats", response_model=RefundStatsOut)
def refunds_stats(db: Session = Depends(get_db)):
    return RefundService(db).stats()


@router.post("/refunds/{refund_id}/resolve", response_model=RefundOut)
def refunds_resolve(refund_id: str, body: RefundResolveIn, db: Session = Depends(get_db)):
    return AdminGrantService(db).resolve_refund(refund_id, body.decision, body.admin_comment, body.admin_id)


# ---------- Settings ----------
@router.get("/settings/pricing", response_model=PricingOut)
def pricing_get(db: Session = Depends(get_db)):
    return PricingSettingsService(db).as_dict()


@router.put("/settings/pricing", response_model=PricingOut)
def pricing_put(body: PricingUpdateIn, db: Session = Depends(get_db)):
    data = body.model_dump(exclude={"admin_id"}, exclude_none=True)
    return PricingSettingsService(db).update(data, admin_id=body.admin_id)


# ---------- Audit ----------
@router.get("/audit", response_model=list[AuditLogOut])
def audit_list(
    db: Session = Depends(get_db),
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    items, _ = AuditService(db).list(entity_type, entity_id, limit=page_size, offset=(page - 1) * page_size)
    return items
