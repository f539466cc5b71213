"""Append-only audit trail for workflow transitions and match runs.

Entries are flushed into the caller's transaction, so an audit row exists
exactly when the change it describes was committed.
"""
import json
import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


def snapshot(obj: Any, *fields: str) -> dict[str, Any]:
    """JSON-safe dict of the named attributes; UUIDs, Decimals and datetimes become strings."""
    out: dict[str, Any] = {}
    for name in fields:
        value = getattr(obj, name)
        out[name] = value if value is None or isinstance(value, (bool, int, str)) else str(value)
    return out


def log(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | str | None = None,
    before: Any | None = None,
    after: Any | None = None,
    notes: str | None = None,
) -> AuditLog:
    """Write a single audit log entry.

    Args:
        db: Sync SQLAlchemy session. The entry is flushed, not committed.
        action: Dotted verb, e.g. 'purchase_request.submitted', 'match.completed'.
        entity_type: Domain name, e.g. 'purchase_request', 'match_result'.
        entity_id: PK of the affected record.
        actor_id: User who performed the action (None for system actions).
        before: Snapshot of state before the action (JSON-serialisable).
        after: Snapshot of state after the action.
        notes: Free-text annotation, e.g. an approval comment.
    """
    entry = AuditLog(
        actor_id=uuid.UUID(str(actor_id)) if actor_id else None,
        action=action,
        entity_type=entity_type,
        entity_id=uuid.UUID(str(entity_id)) if entity_id else None,
        before_state=json.dumps(before, default=str) if before is not None else None,
        after_state=json.dumps(after, default=str) if after is not None else None,
        notes=notes,
    )
    db.add(entry)
    db.flush()
    logger.debug("Audit: %s %s/%s", action, entity_type, entity_id)
    return entry


def history(db: Session, entity_type: str, entity_id: uuid.UUID, action: str | None = None) -> list[AuditLog]:
    """Entries for one entity, oldest first."""
    stmt = select(AuditLog).where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
    if action is not None:
        stmt = stmt.where(AuditLog.action == action)
    return list(db.execute(stmt.order_by(AuditLog.created_at, AuditLog.id)).scalars().all())
