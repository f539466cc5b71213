"""Three-way match endpoints — trigger a match for a PO, list results, resolve exceptions."""
import logging
import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import PURCHASE_ACCESS, PURCHASE_APPROVAL, require_role
from app.core.limiter import limiter
from app.db.session import get_sync_session
from app.models.user import User
from app.rules.match_engine import run_three_way_match
from app.schemas.match import MatchResultListResponse, MatchResultOut, ResolveRequest, RunMatchRequest
from app.services import match_resolution as resolution_svc

logger = logging.getLogger(__name__)

router = APIRouter()

MatchStatus = Literal[
    "matched", "quantity_mismatch", "price_mismatch", "missing_receipt", "missing_bill", "pending"
]


# ─── POST /match/{po_id} ───

@router.post(
    "/{po_id}",
    response_model=MatchResultOut,
    summary="Run the three-way match for a purchase order",
)
@limiter.limit(settings.MATCH_RATE_LIMIT)
def trigger_match(
    request: Request,
    po_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
    body: RunMatchRequest | None = None,
):
    """Synchronous; overwrites the PO's previous match result.

    Pass gr_id / bill_id to restrict the match to one receipt or bill;
    by default every posted receipt and posted or paid bill on the PO is used.
    """
    body = body or RunMatchRequest()
    mr = run_three_way_match(db, po_id, gr_id=body.gr_id, bill_id=body.bill_id)
    return MatchResultOut.model_validate(mr)


# ─── GET /match ───

@router.get(
    "",
    response_model=MatchResultListResponse,
    summary="List match results",
)
def list_match_results(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
    po_id: uuid.UUID | None = Query(default=None),
    status: MatchStatus | None = Query(default=None),
    unresolved: bool = Query(default=False, description="Only non-matched results nobody has resolved"),
):
    rows = resolution_svc.list_match_results(db, po_id=po_id, status=status, unresolved_only=unresolved)
    return MatchResultListResponse(
        items=[MatchResultOut.model_validate(r) for r in rows],
        total=len(rows),
    )


# ─── GET /match/results/{id} ───

@router.get(
    "/results/{match_result_id}",
    response_model=MatchResultOut,
    summary="Get one match result with its line breakdown",
)
def get_match_result(
    match_result_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    return MatchResultOut.model_validate(resolution_svc.get_match_result(db, match_result_id))


# ─── POST /match/results/{id}/resolve ───

@router.post(
    "/results/{match_result_id}/resolve",
    response_model=MatchResultOut,
    summary="Acknowledge a match exception with resolution notes (admin, finance)",
)
def resolve_match_exception(
    match_result_id: uuid.UUID,
    body: ResolveRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
):
    mr = resolution_svc.resolve_match_exception(
        db, match_result_id, resolver_id=current_user.id, notes=body.notes
    )
    return MatchResultOut.model_validate(mr)
