"""
Service request hooks for the client side of the app: publish, cancel, slot status.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from contact_ledger.db.session import get_db
from contact_ledger.schemas.allocations import RegisterRequestIn, ServiceRequestOut, SlotsOut
from contact_ledger.services.allocations.service import AllocationService

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=ServiceRequestOut)
def register_request(body: RegisterRequestIn, db: Session = Depends(get_db)):
    return AllocationService(db).register_request(body.request_id)


@router.get("/{request_id}/slots", response_model=SlotsOut)
def request_slots(request_id: str, db: Session = Depends(get_db)):
    return AllocationService(db).slots(request_id)


@router.post("/{request_id}/cancel", response_model=ServiceRequestOut)
def cancel_request(request_id: str, db: Session = Depends(get_db)):
    return AllocationService(db).cancel(request_id)
