"""Tests for AdminGrantService: grants, approvals and audited refund review."""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from contact_ledger.core.errors import (
    AccountNotApproved,
    AlreadyResolved,
    InvalidAmount,
    NotFound,
    Retryable,
)
from contact_ledger.models import AuditLog, CoinTransaction, TransactionReason
from contact_ledger.services.admin_grant.service import AdminGrantService
from contact_ledger.services.allocations.service import AllocationService
from contact_ledger.services.audit.service import AuditService
from contact_ledger.services.ledger.service import LedgerService
from contact_ledger.services.refunds.service import RefundService


class TestGrant:
    def test_grant_credits_unapproved_account(self, db, make_account):
        account_id = make_account(approved=False)

        new_balance = AdminGrantService(db).grant(account_id, 40, "Welcome bonus", admin_id="admin-7")

        assert new_balance == 40
        entry = (
            db.query(CoinTransaction)
            .filter(CoinTransaction.reason == TransactionReason.ADMIN_GRANT.value)
            .one()
        )
        assert entry.reference == "admin-7"
        assert entry.description == "Welcome bonus"
        db.rollback()

    def test_grant_writes_audit_entry(self, db, make_account):
        account_id = make_account()
        AdminGrantService(db).grant(account_id, 10, None, admin_id="admin-7")

        items, total = AuditService(db).list(entity_type="account", entity_id=account_id)
        assert total == 1
        assert items[0].action == "grant_coins"
        assert items[0].payload["amount"] == 10

    @pytest.mark.parametrize("amount", [0, -10])
    def test_invalid_amount(self, db, make_account, amount):
        account_id = make_account()
        with pytest.raises(InvalidAmount):
            AdminGrantService(db).grant(account_id, amount, None, admin_id="admin-7")
        assert LedgerService(db).balance(account_id) == 0

    def test_unknown_account_leaves_no_audit(self, db):
        with pytest.raises(NotFound):
            AdminGrantService(db).grant("missing", 10, None, admin_id="admin-7")
        assert db.query(AuditLog).count() == 0
        db.rollback()


class TestAdminActions:
    def test_approval_enables_spending(self, db, make_account, make_request):
        account_id = make_account(balance=100, approved=False)
        AdminGrantService(db).set_approved(account_id, True, admin_id="admin-1")

        AllocationService(db).unlock(account_id, make_request(), "normal")
        assert LedgerService(db).balance(account_id) == 85

    def test_resolve_refund_is_audited(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        allocation = AllocationService(db).unlock(account_id, make_request(), "normal")
        refund = RefundService(db).submit(account_id, allocation.id, "Client gave a fake phone number")
        admin = AdminGrantService(db)

        admin.resolve_refund(refund.id, "approve", "Number confirmed invalid", admin_id="admin-1")

        items, _ = AuditService(db).list(entity_type="refund_request", entity_id=refund.id)
        assert [item.action for item in items] == ["refund_approved"]

        with pytest.raises(AlreadyResolved):
            admin.resolve_refund(refund.id, "deny", None, admin_id="admin-2")
        assert AuditService(db).list(entity_type="refund_request")[1] == 1


def _storage_error():
    return OperationalError("INSERT INTO audit_logs", {}, Exception("database is locked"))


class TestAuditSharesTransaction:
    def test_failed_audit_leaves_refund_pending(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        allocation = AllocationService(db).unlock(account_id, make_request(), "normal")
        refund_id = RefundService(db).submit(account_id, allocation.id, "Client gave a fake phone number").id
        admin = AdminGrantService(db)

        with patch.object(admin.audit, "log", side_effect=_storage_error()):
            with pytest.raises(Retryable):
                admin.resolve_refund(refund_id, "approve", None, admin_id="admin-1")

        assert LedgerService(db).balance(account_id) == 85
        items, _ = RefundService(db).list_refunds(account_id=account_id)
        assert items[0].status == "pending"

        # the retry goes through and is audited once
        admin.resolve_refund(refund_id, "approve", None, admin_id="admin-1")
        assert LedgerService(db).balance(account_id) == 100
        assert AuditService(db).list(entity_type="refund_request")[1] == 1

    def test_failed_audit_leaves_account_unapproved(self, db, make_account, make_request):
        account_id = make_account(balance=100, approved=False)
        admin = AdminGrantService(db)

        with patch.object(admin.audit, "log", side_effect=_storage_error()):
            with pytest.raises(Retryable):
                admin.set_approved(account_id, True, admin_id="admin-1")

        with pytest.raises(AccountNotApproved):
            AllocationService(db).unlock(account_id, make_request(), "normal")
        assert AuditService(db).list(entity_type="account", entity_id=account_id)[1] == 0
