"""Tests for AllocationService.unlock: pricing, slots, exclusivity, atomicity."""
import sqlite3
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.orm import sessionmaker

from contact_ledger.core.config import settings
from contact_ledger.core.errors import (
    AccountNotApproved,
    AlreadyUnlocked,
    ExclusivityConflict,
    InsufficientBalance,
    LedgerError,
    NotFound,
    RequestNotOpen,
    Retryable,
    SlotsFull,
)
from contact_ledger.db.session import build_engine
from contact_ledger.models import Allocation, CoinTransaction, ServiceRequest, TransactionReason
from contact_ledger.services.allocations.service import AllocationService
from contact_ledger.services.ledger.service import LedgerService


def _unlock_in_own_session(session_factory, account_id, request_id, mode):
    db = session_factory()
    try:
        AllocationService(db).unlock(account_id, request_id, mode)
        return "ok"
    except LedgerError as exc:
        return exc.code
    finally:
        db.close()


class TestUnlock:
    def test_normal_unlock_debits_cost(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        request_id = make_request()

        allocation = AllocationService(db).unlock(account_id, request_id, "normal")

        assert allocation.cost == 15
        assert allocation.status == "active"
        assert LedgerService(db).balance(account_id) == 85
        debit = (
            db.query(CoinTransaction)
            .filter(CoinTransaction.reason == TransactionReason.UNLOCK_DEBIT.value)
            .one()
        )
        assert debit.delta == -15
        assert debit.reference == allocation.id

    def test_exclusive_unlock_locks_request(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        request_id = make_request()

        allocation = AllocationService(db).unlock(account_id, request_id, "exclusive")

        assert allocation.cost == 50
        assert LedgerService(db).balance(account_id) == 50
        request = db.get(ServiceRequest, request_id, populate_existing=True)
        assert request.exclusive_lock is True
        assert request.status == "in_progress"

    def test_fifth_normal_unlock_is_rejected(self, db, make_account, make_request):
        request_id = make_request()
        svc = AllocationService(db)
        for _ in range(4):
            svc.unlock(make_account(balance=100), request_id, "normal")

        late = make_account(balance=100)
        with pytest.raises(SlotsFull):
            svc.unlock(late, request_id, "normal")

        assert LedgerService(db).balance(late) == 100
        assert svc.slots(request_id)["remaining"] == 0

    def test_exclusive_after_normal_unlock_conflicts(self, db, make_account, make_request):
        request_id = make_request()
        svc = AllocationService(db)
        svc.unlock(make_account(balance=100), request_id, "normal")

        other = make_account(balance=100)
        with pytest.raises(ExclusivityConflict):
            svc.unlock(other, request_id, "exclusive")
        assert LedgerService(db).balance(other) == 100

    def test_normal_after_exclusive_conflicts(self, db, make_account, make_request):
        request_id = make_request()
        svc = AllocationService(db)
        svc.unlock(make_account(balance=100), request_id, "exclusive")

        with pytest.raises(ExclusivityConflict):
            svc.unlock(make_account(balance=100), request_id, "normal")

    def test_same_account_twice(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        request_id = make_request()
        svc = AllocationService(db)
        svc.unlock(account_id, request_id, "normal")

        with pytest.raises(AlreadyUnlocked):
            svc.unlock(account_id, request_id, "normal")
        assert LedgerService(db).balance(account_id) == 85

    def test_unapproved_account(self, db, make_account, make_request):
        account_id = make_account(balance=100, approved=False)
        with pytest.raises(AccountNotApproved):
            AllocationService(db).unlock(account_id, make_request(), "normal")

    def test_insufficient_balance_leaves_no_allocation(self, db, make_account, make_request):
        account_id = make_account(balance=10)
        request_id = make_request()

        with pytest.raises(InsufficientBalance):
            AllocationService(db).unlock(account_id, request_id, "normal")

        assert db.query(Allocation).count() == 0
        assert LedgerService(db).balance(account_id) == 10

    def test_unknown_request(self, db, make_account):
        with pytest.raises(NotFound):
            AllocationService(db).unlock(make_account(balance=100), "no-such-request", "normal")

    def test_cancelled_request_rejects_unlock(self, db, make_account, make_request):
        request_id = make_request()
        svc = AllocationService(db)
        svc.cancel(request_id)
        with pytest.raises(RequestNotOpen):
            svc.unlock(make_account(balance=100), request_id, "normal")

    def test_invalid_mode(self, db, make_account, make_request):
        with pytest.raises(ValueError):
            AllocationService(db).unlock(make_account(balance=100), make_request(), "vip")


    def test_unlock_with_balance_matches_debit_row(self, db, make_account, make_request):
        account_id = make_account(balance=100)

        allocation, new_balance = AllocationService(db).unlock_with_balance(account_id, make_request(), "exclusive")

        debit = db.query(CoinTransaction).filter(CoinTransaction.reference == allocation.id).one()
        assert new_balance == debit.balance_after == 50
        db.rollback()


class TestUnlockConcurrency:
    def test_last_slot_goes_to_exactly_one(self, db, session_factory, make_account, make_request):
        request_id = make_request()
        svc = AllocationService(db)
        for _ in range(3):
            svc.unlock(make_account(balance=100), request_id, "normal")
        contenders = [make_account(balance=100) for _ in range(2)]

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(
                pool.map(
                    lambda acc: _unlock_in_own_session(session_factory, acc, request_id, "normal"),
                    contenders,
                )
            )

        assert sorted(outcomes) == ["SLOTS_FULL", "ok"]
        assert svc.slots(request_id)["used"] == 4
        balances = sorted(LedgerService(db).balance(acc) for acc in contenders)
        assert balances == [85, 100]

    def test_many_contenders_never_exceed_max_slots(self, db, session_factory, make_account, make_request):
        request_id = make_request()
        contenders = [make_account(balance=100) for _ in range(8)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(
                pool.map(
                    lambda acc: _unlock_in_own_session(session_factory, acc, request_id, "normal"),
                    contenders,
                )
            )

        assert outcomes.count("ok") == 4
        assert outcomes.count("SLOTS_FULL") == 4
        debits = (
            db.query(CoinTransaction)
            .filter(CoinTransaction.reason == TransactionReason.UNLOCK_DEBIT.value)
            .count()
        )
        assert debits == 4
        db.rollback()

    def test_concurrent_exclusive_unlocks(self, db, session_factory, make_account, make_request):
        request_id = make_request()
        contenders = [make_account(balance=100) for _ in range(2)]

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(
                pool.map(
                    lambda acc: _unlock_in_own_session(session_factory, acc, request_id, "exclusive"),
                    contenders,
                )
            )

        assert sorted(outcomes) == ["EXCLUSIVITY_CONFLICT", "ok"]


class TestUnlockStorageContention:
    def test_lock_timeout_is_retryable_and_changes_nothing(
        self, db, engine, make_account, make_request, monkeypatch
    ):
        account_id = make_account(balance=100)
        request_id = make_request()

        monkeypatch.setattr(settings, "sqlite_busy_timeout", 0.05)
        impatient = build_engine(str(engine.url))
        writer = sqlite3.connect(engine.url.database, isolation_level=None)
        writer.execute("BEGIN IMMEDIATE")
        session = sessionmaker(bind=impatient, expire_on_commit=False)()
        try:
            with pytest.raises(Retryable) as exc_info:
                AllocationService(session).unlock(account_id, request_id, "normal")
        finally:
            session.close()
            writer.execute("ROLLBACK")
            writer.close()
            impatient.dispose()

        assert exc_info.value.details["operation"] == "unlock"
        assert exc_info.value.http_status == 503
        assert LedgerService(db).balance(account_id) == 100
        assert AllocationService(db).list_for_account(account_id) == []
        assert AllocationService(db).slots(request_id)["used"] == 0


class TestRequestLifecycle:
    def test_register_is_idempotent(self, db):
        svc = AllocationService(db)
        first = svc.register_request("req-1")
        again = svc.register_request("req-1")
        assert first.id == again.id == "req-1"
        assert first.max_slots == 4

    def test_finalize_by_holder(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        request_id = make_request()
        svc = AllocationService(db)
        svc.unlock(account_id, request_id, "exclusive")

        assert svc.finalize(account_id, request_id).status == "finalized"

    def test_finalize_by_stranger(self, db, make_account, make_request):
        from contact_ledger.core.errors import NotOwner

        with pytest.raises(NotOwner):
            AllocationService(db).finalize(make_account(), make_request())

    def test_cancel_twice(self, db, make_request):
        request_id = make_request()
        svc = AllocationService(db)
        svc.cancel(request_id)
        with pytest.raises(RequestNotOpen):
            svc.cancel(request_id)

    def test_list_for_account(self, db, make_account, make_request):
        account_id = make_account(balance=100)
        svc = AllocationService(db)
        svc.unlock(account_id, make_request(), "normal")
        svc.unlock(account_id, make_request(), "normal")

        assert len(svc.list_for_account(account_id)) == 2
        assert svc.list_for_account(account_id, status="refunded") == []

    def test_get_allocation_checks_owner(self, db, make_account, make_request):
        from contact_ledger.core.errors import NotOwner

        account_id = make_account(balance=100)
        svc = AllocationService(db)
        allocation = svc.unlock(account_id, make_request(), "normal")

        assert svc.get_allocation(allocation.id, account_id).cost == 15
        with pytest.raises(NotOwner):
            svc.get_allocation(allocation.id, make_account())
        with pytest.raises(NotFound):
            svc.get_allocation("missing")
