"""
Payment gateway success callback. Gateway integration itself lives outside
this service; once a payment is confirmed it posts here.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from contact_ledger.api.deps import require_admin_key
from contact_ledger.db.session import get_db
from contact_ledger.schemas.ledger import NewBalanceOut, PurchaseIn
from contact_ledger.services.ledger.service import LedgerService

router = APIRouter(prefix="/payments", tags=["payments"], dependencies=[Depends(require_admin_key)])


@router.post("/coins", response_model=NewBalanceOut)
def purchase_coins(body: PurchaseIn, db: Session = Depends(get_db)):
    new_balance = LedgerService(db).purchase(body.account_id, body.amount, body.payment_id)
    return {"account_id": body.account_id, "new_balance": new_balance}
