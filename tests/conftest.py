"""
Shared fixtures: every test gets its own SQLite file database with the full schema.
SQLite transactions open with BEGIN IMMEDIATE, so concurrent tests exercise the
same serialization the row locks give on PostgreSQL.
"""
import os
from uuid import uuid4

os.environ.setdefault("DATABASE_URL", "sqlite:///./contact_ledger_test.db")

import pytest
from sqlalchemy.orm import sessionmaker

from contact_ledger.db.session import build_engine, init_db


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_account(db):
    """Open an account and fund it through a purchase so the ledger stays consistent."""
    from contact_ledger.services.ledger.service import LedgerService

    def _make(balance: int = 0, approved: bool = True, account_id: str | None = None) -> str:
        account_id = account_id or str(uuid4())
        ledger = LedgerService(db)
        ledger.open_account(account_id, approved=approved)
        if balance:
            ledger.purchase(account_id, balance, payment_id=f"seed-{account_id}")
        return account_id

    return _make


@pytest.fixture
def make_request(db):
    from contact_ledger.services.allocations.service import AllocationService

    def _make(request_id: str | None = None) -> str:
        return AllocationService(db).register_request(request_id or str(uuid4())).id

    return _make
