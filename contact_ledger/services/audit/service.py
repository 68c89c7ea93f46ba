from typing import Any

from sqlalchemy.orm import Session

from contact_ledger.db.session import atomic
from contact_ledger.models.audit_log import AuditLog


class AuditService:
    """Audit rows are written inside the caller's transaction; the caller commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def log(
        self,
        actor_type: str,
        actor_id: str | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload or {},
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        with atomic(self.db, "audit_list"):
            q = self.db.query(AuditLog)
            if entity_type:
                q = q.filter(AuditLog.entity_type == entity_type)
            if entity_id:
                q = q.filter(AuditLog.entity_id == entity_id)
            total = q.count()
            items = q.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit).all()
        return items, total
