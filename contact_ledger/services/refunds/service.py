"""
RefundService: manual (admin-reviewed) refunds and the one-time automatic guarantee.

One RefundRequest per allocation, whatever its outcome: a denied request is
terminal and the unique allocation_id column enforces it under concurrency.
Refund operations lock the allocation row first, then the account row.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contact_ledger.core.config import settings
from contact_ledger.core.errors import (
    AllocationNotActive,
    AlreadyRequested,
    AlreadyResolved,
    GuaranteeWindowExpired,
    NotFound,
    NotOwner,
    ReasonTooShort,
)
from contact_ledger.db.session import atomic
from contact_ledger.models.allocation import Allocation, AllocationStatus, UnlockMode
from contact_ledger.models.coin_transaction import TransactionReason
from contact_ledger.models.refund_request import RefundDecision, RefundKind, RefundRequest, RefundStatus
from contact_ledger.models.service_request import RequestStatus, ServiceRequest
from contact_ledger.services.ledger.service import LedgerService
from contact_ledger.services.pricing.settings_service import PricingSettingsService
from contact_ledger.utils.metrics import metrics

logger = logging.getLogger(__name__)

AUTO_GUARANTEE_REASON = "No deal closed with this client (automatic guarantee)"


class RefundService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.pricing = PricingSettingsService(db)

    # ------------------------------------------------------------------
    # Manual path
    # ------------------------------------------------------------------

    def submit(
        self,
        account_id: str,
        allocation_id: str,
        reason: str,
        evidence: list[str] | None = None,
    ) -> RefundRequest:
        reason = (reason or "").strip()
        min_length = settings.refund_reason_min_length
        if len(reason) < min_length:
            raise ReasonTooShort(min_length, len(reason))

        try:
            with atomic(self.db, "submit_refund"):
                allocation = self._lock_owned_allocation(account_id, allocation_id)
                self._ensure_no_refund(allocation_id)
                if allocation.status != AllocationStatus.ACTIVE.value:
                    raise AllocationNotActive(allocation_id, allocation.status)
                refund = RefundRequest(
                    allocation_id=allocation_id,
                    account_id=account_id,
                    kind=RefundKind.MANUAL.value,
                    status=RefundStatus.PENDING.value,
                    reason=reason,
                    evidence=list(evidence or []),
                )
                self.db.add(refund)
                self.db.flush()
        except IntegrityError:
            raise AlreadyRequested(allocation_id, RefundStatus.PENDING.value)

        metrics.inc_refund(RefundKind.MANUAL.value, RefundStatus.PENDING.value)
        logger.info(
            "refund_submitted",
            extra={"account_id": account_id, "allocation_id": allocation_id, "refund_id": refund.id},
        )
        return refund

    def resolve(
        self,
        refund_id: str,
        decision: RefundDecision | str,
        admin_comment: str | None = None,
        admin_id: str | None = None,
    ) -> RefundRequest:
        decision = RefundDecision(decision)
        with atomic(self.db, "resolve_refund"):
            refund = self.resolve_locked(refund_id, decision, admin_comment, admin_id)
        self.record_resolution(refund, decision)
        return refund

    def resolve_locked(
        self,
        refund_id: str,
        decision: RefundDecision,
        admin_comment: str | None,
        admin_id: str | None,
    ) -> RefundRequest:
        """Resolution inside the caller's transaction; the caller commits."""
        refund = (
            self.db.query(RefundRequest)
            .filter(RefundRequest.id == refund_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if refund is None:
            raise NotFound("Refund request", refund_id)
        if refund.resolved_at is not None or refund.status != RefundStatus.PENDING.value:
            raise AlreadyResolved(refund_id, refund.status)

        now = datetime.now(timezone.utc)
        if decision == RefundDecision.APPROVE:
            allocation = self._lock_allocation(refund.allocation_id)
            self._close_allocation(allocation, now)
            self.ledger.credit(
                allocation.account_id,
                allocation.cost,
                TransactionReason.REFUND_CREDIT,
                reference=allocation.id,
                description=f"Refund approved - request {allocation.request_id[:8]}",
            )
            refund.status = RefundStatus.APPROVED.value
            refund.credited_amount = allocation.cost
        else:
            refund.status = RefundStatus.DENIED.value
            refund.credited_amount = 0
        refund.admin_response = admin_comment
        refund.admin_id = admin_id
        refund.resolved_at = now
        self.db.add(refund)
        self.db.flush()
        return refund

    def record_resolution(self, refund: RefundRequest, decision: RefundDecision) -> None:
        metrics.inc_refund(refund.kind, refund.status)
        logger.info(
            "refund_resolved",
            extra={
                "refund_id": refund.id,
                "decision": decision.value,
                "admin_id": refund.admin_id,
                "amount": refund.credited_amount,
            },
        )

    # ------------------------------------------------------------------
    # Automatic guarantee
    # ------------------------------------------------------------------

    def auto_guarantee(self, account_id: str, allocation_id: str) -> dict[str, int | str]:
        """
        One-time partial refund without review. Returns credited_amount and new_balance.
        """
        try:
            with atomic(self.db, "auto_guarantee"):
                config = self.pricing.current()
                allocation = self._lock_owned_allocation(account_id, allocation_id)
                self._ensure_no_refund(allocation_id)
                if allocation.status != AllocationStatus.ACTIVE.value:
                    raise AllocationNotActive(allocation_id, allocation.status)

                now = datetime.now(timezone.utc)
                created_at = allocation.created_at
                if created_at.tzinfo is None:
                    created_at = created_at.replace(tzinfo=timezone.utc)
                if now - created_at > timedelta(days=config.guarantee_window_days):
                    raise GuaranteeWindowExpired(allocation_id, config.guarantee_window_days)

                credited = config.guarantee_amount(allocation.cost)
                refund = RefundRequest(
                    allocation_id=allocation_id,
                    account_id=account_id,
                    kind=RefundKind.AUTOMATIC_GUARANTEE.value,
                    status=RefundStatus.APPROVED.value,
                    reason=AUTO_GUARANTEE_REASON,
                    evidence=[],
                    credited_amount=credited,
                    resolved_at=now,
                )
                self.db.add(refund)
                self.db.flush()
                self._close_allocation(allocation, now)
                if credited > 0:
                    new_balance = self.ledger.credit(
                        account_id,
                        credited,
                        TransactionReason.REFUND_CREDIT,
                        reference=allocation_id,
                        description=(
                            f"Automatic guarantee ({config.guarantee_percent}% of {allocation.cost} coins)"
                        ),
                    )
                else:
                    new_balance = self.ledger.lock_account(account_id).balance
        except IntegrityError:
            raise AlreadyRequested(allocation_id, RefundStatus.APPROVED.value)

        metrics.inc_refund(RefundKind.AUTOMATIC_GUARANTEE.value, RefundStatus.APPROVED.value)
        logger.info(
            "auto_guarantee_applied",
            extra={
                "account_id": account_id,
                "allocation_id": allocation_id,
                "refund_id": refund.id,
                "amount": credited,
                "new_balance": new_balance,
            },
        )
        return {"refund_id": refund.id, "credited_amount": credited, "new_balance": new_balance}

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_refunds(
        self,
        account_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RefundRequest], int]:
        """account_id=None is the admin scope. status=None lists every status."""
        with atomic(self.db, "list_refunds"):
            q = self.db.query(RefundRequest)
            if account_id:
                q = q.filter(RefundRequest.account_id == account_id)
            if status:
                q = q.filter(RefundRequest.status == status)
            total = q.count()
            items = (
                q.order_by(RefundRequest.created_at.desc())
                .offset(offset)
                .limit(limit)
                .populate_existing()
                .all()
            )
        return items, total

    def stats(self) -> dict[str, int]:
        with atomic(self.db, "refund_stats"):
            rows = (
                self.db.query(RefundRequest.status, func.count(RefundRequest.id))
                .group_by(RefundRequest.status)
                .all()
            )
        counts = {status.value: 0 for status in RefundStatus}
        counts.update({row[0]: row[1] for row in rows})
        counts["total"] = sum(counts[status.value] for status in RefundStatus)
        return counts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_allocation(self, allocation_id: str) -> Allocation:
        allocation = (
            self.db.query(Allocation)
            .filter(Allocation.id == allocation_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if allocation is None:
            raise NotFound("Allocation", allocation_id)
        return allocation

    def _lock_owned_allocation(self, account_id: str, allocation_id: str) -> Allocation:
        allocation = self._lock_allocation(allocation_id)
        if allocation.account_id != account_id:
            raise NotOwner("Allocation", allocation_id)
        return allocation

    def _ensure_no_refund(self, allocation_id: str) -> None:
        existing = (
            self.db.query(RefundRequest.status)
            .filter(RefundRequest.allocation_id == allocation_id)
            .first()
        )
        if existing is not None:
            raise AlreadyRequested(allocation_id, existing[0])

    def _close_allocation(self, allocation: Allocation, now: datetime) -> None:
        """Mark refunded. An exclusive holder walking away reopens the request."""
        allocation.status = AllocationStatus.REFUNDED.value
        allocation.refunded_at = now
        self.db.add(allocation)
        if allocation.mode == UnlockMode.EXCLUSIVE.value:
            request = (
                self.db.query(ServiceRequest)
                .filter(ServiceRequest.id == allocation.request_id)
                .with_for_update()
                .populate_existing()
                .one()
            )
            request.exclusive_lock = False
            if request.status == RequestStatus.IN_PROGRESS.value:
                request.status = RequestStatus.OPEN.value
            self.db.add(request)
        self.db.flush()
