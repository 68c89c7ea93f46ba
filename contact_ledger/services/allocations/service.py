"""
AllocationService: contact unlocks against service requests.

unlock() is one transaction: lock the request row, then the account row
(always in that order), run every check against the locked rows, debit,
insert the allocation, set the exclusivity flag, commit. Any rejection rolls
the whole unit back. Concurrent callers queue on the request row lock and
see the state the previous winner committed.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contact_ledger.core.errors import (
    AccountNotApproved,
    AlreadyUnlocked,
    ExclusivityConflict,
    LedgerError,
    NotFound,
    NotOwner,
    RequestNotOpen,
    SlotsFull,
)
from contact_ledger.db.session import atomic
from contact_ledger.models.allocation import Allocation, AllocationStatus, UnlockMode
from contact_ledger.models.coin_transaction import TransactionReason
from contact_ledger.models.service_request import RequestStatus, ServiceRequest
from contact_ledger.services.ledger.service import LedgerService
from contact_ledger.services.pricing.settings_service import PricingSettingsService
from contact_ledger.utils.metrics import metrics

logger = logging.getLogger(__name__)

FINALIZABLE = (RequestStatus.OPEN.value, RequestStatus.IN_PROGRESS.value)


class AllocationService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.pricing = PricingSettingsService(db)

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def register_request(self, request_id: str) -> ServiceRequest:
        """Called when a client publishes a request. Idempotent."""
        with atomic(self.db, "register_request"):
            request = self.db.get(ServiceRequest, request_id)
            if request is None:
                request = ServiceRequest(
                    id=request_id,
                    status=RequestStatus.OPEN.value,
                    max_slots=self.pricing.current().max_slots,
                    exclusive_lock=False,
                )
                self.db.add(request)
                self.db.flush()
                logger.info("request_registered", extra={"request_id": request_id})
        return request

    def finalize(self, account_id: str, request_id: str) -> ServiceRequest:
        """Close the deal. Only a professional holding an active unlock on the request may do it."""
        with atomic(self.db, "finalize"):
            request = self._lock_request(request_id)
            holder = (
                self.db.query(Allocation.id)
                .filter(
                    Allocation.request_id == request_id,
                    Allocation.account_id == account_id,
                    Allocation.status == AllocationStatus.ACTIVE.value,
                )
                .first()
            )
            if holder is None:
                raise NotOwner("Service request", request_id)
            if request.status not in FINALIZABLE:
                raise RequestNotOpen(request_id, request.status)
            request.status = RequestStatus.FINALIZED.value
            self.db.add(request)
            self.db.flush()
        logger.info("request_finalized", extra={"request_id": request_id, "account_id": account_id})
        return request

    def cancel(self, request_id: str) -> ServiceRequest:
        """Client withdrew the request. Allocations and their refund eligibility stay as they are."""
        with atomic(self.db, "cancel"):
            request = self._lock_request(request_id)
            if request.status not in FINALIZABLE:
                raise RequestNotOpen(request_id, request.status)
            request.status = RequestStatus.CANCELLED.value
            self.db.add(request)
            self.db.flush()
        logger.info("request_cancelled", extra={"request_id": request_id})
        return request

    # ------------------------------------------------------------------
    # Unlock
    # ------------------------------------------------------------------

    def unlock(self, account_id: str, request_id: str, mode: UnlockMode | str) -> Allocation:
        return self.unlock_with_balance(account_id, request_id, mode)[0]

    def unlock_with_balance(
        self, account_id: str, request_id: str, mode: UnlockMode | str
    ) -> tuple[Allocation, int]:
        """Like unlock(), plus the balance the debit left in the same transaction."""
        mode = UnlockMode(mode)
        try:
            with atomic(self.db, "unlock"):
                allocation, new_balance = self._unlock_locked(account_id, request_id, mode)
        except IntegrityError:
            # lost a race on uq_allocations_request_account
            metrics.inc_unlock(mode.value, AlreadyUnlocked.code)
            raise AlreadyUnlocked(request_id, account_id)
        except LedgerError as exc:
            metrics.inc_unlock(mode.value, exc.code)
            logger.info(
                "unlock_rejected",
                extra={
                    "account_id": account_id,
                    "request_id": request_id,
                    "mode": mode.value,
                    "error_code": exc.code,
                },
            )
            raise
        metrics.inc_unlock(mode.value)
        logger.info(
            "contact_unlocked",
            extra={
                "account_id": account_id,
                "request_id": request_id,
                "allocation_id": allocation.id,
                "mode": mode.value,
                "amount": allocation.cost,
                "new_balance": new_balance,
            },
        )
        return allocation, new_balance

    def _unlock_locked(self, account_id: str, request_id: str, mode: UnlockMode) -> tuple[Allocation, int]:
        config = self.pricing.current()
        request = self._lock_request(request_id)
        account = self.ledger.lock_account(account_id)

        if not account.can_spend():
            raise AccountNotApproved(account_id, bool(account.approved), bool(account.is_banned))

        existing = (
            self.db.query(Allocation.id)
            .filter(Allocation.request_id == request_id, Allocation.account_id == account_id)
            .first()
        )
        if existing is not None:
            raise AlreadyUnlocked(request_id, account_id)

        if request.exclusive_lock:
            raise ExclusivityConflict(request_id, "Request was unlocked exclusively by another professional")

        if request.status != RequestStatus.OPEN.value:
            raise RequestNotOpen(request_id, request.status)

        active = self._active_count(request_id)
        if mode == UnlockMode.EXCLUSIVE:
            if active > 0:
                raise ExclusivityConflict(request_id, "Exclusive unlock needs a request nobody has unlocked yet")
        elif active >= request.max_slots:
            raise SlotsFull(request_id, request.max_slots)

        cost = config.price(mode)
        allocation = Allocation(
            request_id=request_id,
            account_id=account_id,
            mode=mode.value,
            cost=cost,
            status=AllocationStatus.ACTIVE.value,
        )
        self.db.add(allocation)
        self.db.flush()

        new_balance = self.ledger.debit(
            account_id,
            cost,
            TransactionReason.UNLOCK_DEBIT,
            reference=allocation.id,
            description=f"Contact unlock ({mode.value}) - request {request_id[:8]}",
        )

        if mode == UnlockMode.EXCLUSIVE:
            request.exclusive_lock = True
            request.status = RequestStatus.IN_PROGRESS.value
            self.db.add(request)
            self.db.flush()
        return allocation, new_balance

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def get_allocation(self, allocation_id: str, account_id: str | None = None) -> Allocation:
        with atomic(self.db, "get_allocation"):
            allocation = self.db.get(Allocation, allocation_id, populate_existing=True)
        if allocation is None:
            raise NotFound("Allocation", allocation_id)
        if account_id is not None and allocation.account_id != account_id:
            raise NotOwner("Allocation", allocation_id)
        return allocation

    def slots(self, request_id: str) -> dict:
        with atomic(self.db, "slots"):
            request = self.db.get(ServiceRequest, request_id, populate_existing=True)
            if request is None:
                raise NotFound("Service request", request_id)
            used = self._active_count(request_id)
        remaining = 0 if request.exclusive_lock else max(0, request.max_slots - used)
        return {
            "request_id": request.id,
            "status": request.status,
            "max_slots": request.max_slots,
            "used": used,
            "remaining": remaining,
            "exclusive_lock": request.exclusive_lock,
        }

    def list_for_account(self, account_id: str, status: str | None = None) -> list[Allocation]:
        with atomic(self.db, "list_allocations"):
            q = self.db.query(Allocation).filter(Allocation.account_id == account_id)
            if status:
                q = q.filter(Allocation.status == status)
            items = q.order_by(Allocation.created_at.desc()).populate_existing().all()
        return items

    def _lock_request(self, request_id: str) -> ServiceRequest:
        request = (
            self.db.query(ServiceRequest)
            .filter(ServiceRequest.id == request_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if request is None:
            raise NotFound("Service request", request_id)
        return request

    def _active_count(self, request_id: str) -> int:
        return (
            self.db.query(func.count(Allocation.id))
            .filter(
                Allocation.request_id == request_id,
                Allocation.status == AllocationStatus.ACTIVE.value,
            )
            .scalar()
            or 0
        )
