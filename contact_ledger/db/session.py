import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from contact_ledger.core.config import settings
from contact_ledger.core.errors import Retryable
from contact_ledger.utils.metrics import metrics

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    PostgreSQL: pooled engine, row locks come from SELECT ... FOR UPDATE.
    SQLite: every transaction opens with BEGIN IMMEDIATE so writers are
    serialized the same way (FOR UPDATE is a no-op there).
    """
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout},
        )

        @event.listens_for(sqlite_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # let SQLAlchemy emit BEGIN itself instead of pysqlite
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(sqlite_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return sqlite_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        connect_args={"connect_timeout": 5},
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def atomic(db: Session, operation: str) -> Iterator[Session]:
    """
    One all-or-nothing unit: commit when the block finishes, roll back on any
    error. Lock timeouts, deadlocks and serialization failures surface as
    Retryable so the caller repeats the whole operation.
    """
    try:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL lock_timeout = '{int(settings.db_lock_timeout_ms)}ms'"))
        yield db
        db.commit()
    except OperationalError as exc:
        db.rollback()
        metrics.inc_retryable(operation)
        logger.warning(
            "transaction_retryable",
            extra={"operation": operation, "error_code": type(exc.orig).__name__},
        )
        raise Retryable(operation, cause=type(exc.orig).__name__) from exc
    except Exception:
        db.rollback()
        raise


def init_db(bind: Engine | None = None) -> None:
    """Create all tables. Production deployments run the same DDL through migrations."""
    from contact_ledger import models  # noqa: F401  (registers mappers)
    from contact_ledger.db.base import Base

    Base.metadata.create_all(bind=bind or engine)
