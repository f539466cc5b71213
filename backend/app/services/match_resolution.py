"""Exception resolution for non-matched three-way results.

Resolving annotates a MatchResult (who, when, notes) and leaves its
classification untouched. A later re-run of the match engine clears the
annotation.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import EntityNotFound, InvalidState
from app.models.matching import MatchResult
from app.services import audit as audit_svc

logger = logging.getLogger(__name__)


def resolve_match_exception(
    db: Session,
    match_result_id: uuid.UUID,
    resolver_id: uuid.UUID,
    notes: str,
) -> MatchResult:
    """Acknowledge a match exception.

    Raises:
        EntityNotFound: No such MatchResult.
        InvalidState: The result is matched, or already resolved.
    """
    mr = db.execute(
        select(MatchResult).where(MatchResult.id == match_result_id).with_for_update()
    ).scalars().first()
    error = None
    if mr is None:
        error = EntityNotFound(f"Match result {match_result_id} not found.")
    elif mr.status == "matched":
        error = InvalidState(f"Match result {match_result_id} is matched; there is nothing to resolve.")
    elif mr.resolved_at is not None:
        error = InvalidState(f"Match result {match_result_id} was already resolved by {mr.resolved_by}.")
    if error is not None:
        db.rollback()
        raise error

    mr.resolved_by = resolver_id
    mr.resolved_at = datetime.now(timezone.utc)
    mr.notes = notes
    db.flush()

    audit_svc.log(
        db=db,
        action="match.exception_resolved",
        entity_type="match_result",
        entity_id=mr.id,
        actor_id=resolver_id,
        before={"status": mr.status, "resolved": False},
        after={"status": mr.status, "resolved": True},
        notes=notes,
    )
    db.commit()

    logger.info("Match result %s (%s) resolved by %s", mr.id, mr.status, resolver_id)
    return mr


def list_match_results(
    db: Session,
    po_id: uuid.UUID | None = None,
    status: str | None = None,
    unresolved_only: bool = False,
) -> list[MatchResult]:
    stmt = select(MatchResult)
    if po_id is not None:
        stmt = stmt.where(MatchResult.po_id == po_id)
    if status is not None:
        stmt = stmt.where(MatchResult.status == status)
    if unresolved_only:
        stmt = stmt.where(MatchResult.status != "matched", MatchResult.resolved_at.is_(None))
    stmt = stmt.order_by(MatchResult.matched_at.desc(), MatchResult.id)
    return list(db.execute(stmt).scalars().all())


def get_match_result(db: Session, match_result_id: uuid.UUID) -> MatchResult:
    mr = db.get(MatchResult, match_result_id)
    if mr is None:
        raise EntityNotFound(f"Match result {match_result_id} not found.")
    return mr
