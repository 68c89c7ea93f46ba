"""
AdminGrantService: privileged entry points for coin grants, refund review and approval.
Every action writes its audit row in the same transaction as the change it
records, so a failed commit leaves neither behind.
"""
import logging

from sqlalchemy.orm import Session

from contact_ledger.core.errors import LedgerError
from contact_ledger.db.session import atomic
from contact_ledger.models.account import ProfessionalAccount
from contact_ledger.models.coin_transaction import TransactionReason
from contact_ledger.models.refund_request import RefundDecision, RefundRequest
from contact_ledger.services.audit.service import AuditService
from contact_ledger.services.ledger.service import LedgerService, validate_amount
from contact_ledger.services.refunds.service import RefundService

logger = logging.getLogger(__name__)


class AdminGrantService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.refunds = RefundService(db)
        self.audit = AuditService(db)

    def grant(self, account_id: str, amount: int, reason_text: str | None, admin_id: str) -> int:
        """Unconditional credit: no approval gating. admin_id goes into the transaction reference."""
        validate_amount(amount)
        with atomic(self.db, "admin_grant"):
            new_balance = self.ledger.credit(
                account_id,
                amount,
                TransactionReason.ADMIN_GRANT,
                reference=admin_id,
                description=reason_text or "Admin grant",
            )
            self.audit.log(
                actor_type="admin",
                actor_id=admin_id,
                action="grant_coins",
                entity_type="account",
                entity_id=account_id,
                payload={"amount": amount, "reason": reason_text, "new_balance": new_balance},
            )
        logger.info(
            "admin_grant",
            extra={"account_id": account_id, "amount": amount, "admin_id": admin_id, "new_balance": new_balance},
        )
        return new_balance

    def resolve_refund(
        self,
        refund_id: str,
        decision: RefundDecision | str,
        admin_comment: str | None,
        admin_id: str,
    ) -> RefundRequest:
        decision = RefundDecision(decision)
        try:
            with atomic(self.db, "admin_resolve_refund"):
                refund = self.refunds.resolve_locked(refund_id, decision, admin_comment, admin_id)
                self.audit.log(
                    actor_type="admin",
                    actor_id=admin_id,
                    action=f"refund_{refund.status}",
                    entity_type="refund_request",
                    entity_id=refund.id,
                    payload={"comment": admin_comment, "credited_amount": refund.credited_amount},
                )
        except LedgerError as exc:
            logger.info(
                "refund_resolve_rejected",
                extra={"refund_id": refund_id, "admin_id": admin_id, "error_code": exc.code},
            )
            raise
        self.refunds.record_resolution(refund, decision)
        return refund

    def set_approved(self, account_id: str, approved: bool, admin_id: str) -> ProfessionalAccount:
        with atomic(self.db, "admin_set_approved"):
            account = self.ledger.lock_account(account_id)
            account.approved = approved
            self.db.add(account)
            self.audit.log(
                actor_type="admin",
                actor_id=admin_id,
                action="approve_account" if approved else "revoke_approval",
                entity_type="account",
                entity_id=account_id,
            )
        logger.info(
            "account_approval_changed",
            extra={"account_id": account_id, "admin_id": admin_id, "decision": "approve" if approved else "revoke"},
        )
        return account
