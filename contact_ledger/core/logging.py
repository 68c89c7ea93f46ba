"""
Structured JSON logs. Services log an event name as the message and put the
identifiers of the coin movement or refund in `extra`; only whitelisted keys
reach the output line.
"""
import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from contact_ledger.core.config import settings

SERVICE_NAME = "contact-ledger"

# Held at WARNING regardless of the root level.
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per record: event, ids and amounts from `extra`, exception text."""

    EXTRA_FIELDS = (
        # who / what
        "account_id", "admin_id", "request_id", "allocation_id", "refund_id", "payment_id",
        # coin movement
        "amount", "reason", "mode", "decision", "new_balance",
        # HTTP and failures
        "path", "method", "status_code", "error_code", "operation",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(
            (field, getattr(record, field))
            for field in self.EXTRA_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_handlers(formatter: logging.Formatter, log_file: str | None) -> list[logging.Handler]:
    console = logging.StreamHandler()
    handlers: list[logging.Handler] = [console]
    if log_file:
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Install JSON handlers on the root logger. Arguments default to settings."""
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    root.handlers = _build_handlers(JsonFormatter(), log_file or settings.log_file)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
