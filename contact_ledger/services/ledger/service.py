"""
LedgerService: the only writer of ProfessionalAccount.balance.

Every balance change appends a CoinTransaction in the same flush, so
balance == SUM(delta) holds after each commit.

credit/debit are building blocks: they lock the account row and flush, and
the caller owns the transaction (unlock, refund approval, grant).
purchase/open_account/balance/history/reconcile are whole operations and
commit on their own.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contact_ledger.core.errors import InsufficientBalance, InvalidAmount, NotFound
from contact_ledger.db.session import atomic
from contact_ledger.models.account import ProfessionalAccount
from contact_ledger.models.coin_transaction import CoinTransaction, TransactionReason
from contact_ledger.utils.metrics import metrics

logger = logging.getLogger(__name__)


def validate_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)
    return amount


class LedgerService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Building blocks (caller commits)
    # ------------------------------------------------------------------

    def lock_account(self, account_id: str) -> ProfessionalAccount:
        account = (
            self.db.query(ProfessionalAccount)
            .filter(ProfessionalAccount.id == account_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if account is None:
            raise NotFound("Account", account_id)
        return account

    def credit(
        self,
        account_id: str,
        amount: int,
        reason: TransactionReason,
        reference: str | None = None,
        description: str | None = None,
    ) -> int:
        validate_amount(amount)
        account = self.lock_account(account_id)
        self._append(account, amount, reason, reference, description)
        return account.balance

    def debit(
        self,
        account_id: str,
        amount: int,
        reason: TransactionReason,
        reference: str | None = None,
        description: str | None = None,
    ) -> int:
        validate_amount(amount)
        account = self.lock_account(account_id)
        if account.balance < amount:
            raise InsufficientBalance(required=amount, available=account.balance)
        self._append(account, -amount, reason, reference, description)
        return account.balance

    def _append(
        self,
        account: ProfessionalAccount,
        delta: int,
        reason: TransactionReason,
        reference: str | None,
        description: str | None,
    ) -> CoinTransaction:
        before = account.balance
        account.balance = before + delta
        entry = CoinTransaction(
            account_id=account.id,
            delta=delta,
            reason=TransactionReason(reason).value,
            reference=reference,
            balance_before=before,
            balance_after=account.balance,
            description=description,
        )
        self.db.add(account)
        self.db.add(entry)
        self.db.flush()
        metrics.inc_coin_operation(entry.reason, delta)
        logger.info(
            "coins_credited" if delta > 0 else "coins_debited",
            extra={
                "account_id": account.id,
                "amount": abs(delta),
                "reason": entry.reason,
                "new_balance": account.balance,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def open_account(self, account_id: str, approved: bool = False) -> ProfessionalAccount:
        """Registration hook. Idempotent: an existing account is returned unchanged."""
        with atomic(self.db, "open_account"):
            account = self.db.get(ProfessionalAccount, account_id)
            if account is None:
                account = ProfessionalAccount(id=account_id, balance=0, approved=approved)
                self.db.add(account)
                self.db.flush()
                logger.info("account_opened", extra={"account_id": account_id})
        return account

    def purchase(self, account_id: str, amount: int, payment_id: str | None = None) -> int:
        """
        Payment success callback. With a payment_id the credit happens once per
        payment: a replayed webhook returns the current balance.
        """
        validate_amount(amount)
        try:
            with atomic(self.db, "purchase"):
                account = self.lock_account(account_id)
                if payment_id and self._purchase_exists(payment_id):
                    logger.info(
                        "purchase_duplicate_ignored",
                        extra={"account_id": account_id, "payment_id": payment_id},
                    )
                    return account.balance
                self._append(
                    account,
                    amount,
                    TransactionReason.PURCHASE,
                    payment_id,
                    f"Purchase of {amount} coins",
                )
                return account.balance
        except IntegrityError:
            # same payment id credited concurrently
            logger.info(
                "purchase_duplicate_ignored",
                extra={"account_id": account_id, "payment_id": payment_id},
            )
            return self.balance(account_id)

    def balance(self, account_id: str) -> int:
        with atomic(self.db, "balance"):
            value = (
                self.db.query(ProfessionalAccount.balance)
                .filter(ProfessionalAccount.id == account_id)
                .scalar()
            )
        if value is None:
            raise NotFound("Account", account_id)
        return value

    def history(self, account_id: str, limit: int = 50, offset: int = 0) -> tuple[list[CoinTransaction], int]:
        with atomic(self.db, "history"):
            if self.db.get(ProfessionalAccount, account_id) is None:
                raise NotFound("Account", account_id)
            q = self.db.query(CoinTransaction).filter(CoinTransaction.account_id == account_id)
            total = q.count()
            items = (
                q.order_by(CoinTransaction.created_at.desc(), CoinTransaction.balance_after.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        return items, total

    def reconcile(self, account_id: str) -> tuple[int, int]:
        """(stored balance, sum of ledger deltas). Reports drift, never repairs it."""
        with atomic(self.db, "reconcile"):
            stored = (
                self.db.query(ProfessionalAccount.balance)
                .filter(ProfessionalAccount.id == account_id)
                .scalar()
            )
            if stored is None:
                raise NotFound("Account", account_id)
            ledger_sum = (
                self.db.query(func.coalesce(func.sum(CoinTransaction.delta), 0))
                .filter(CoinTransaction.account_id == account_id)
                .scalar()
            )
        if stored != ledger_sum:
            logger.warning(
                "ledger_drift_detected",
                extra={"account_id": account_id, "amount": stored - ledger_sum},
            )
        return stored, int(ledger_sum)

    def _purchase_exists(self, payment_id: str) -> bool:
        stmt = (
            self.db.query(CoinTransaction.id)
            .filter(
                CoinTransaction.reason == TransactionReason.PURCHASE.value,
                CoinTransaction.reference == payment_id,
            )
            .exists()
        )
        return self.db.query(stmt).scalar() or False
