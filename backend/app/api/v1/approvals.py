"""Approval inbox for the current user."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user
from app.db.session import get_sync_session
from app.models.user import User
from app.schemas.purchase_request import PendingApprovalListResponse, PendingApprovalOut
from app.services import purchase_requests as pr_svc

router = APIRouter()


@router.get(
    "/pending",
    response_model=PendingApprovalListResponse,
    summary="Approval levels the current user can decide now",
)
def list_pending_approvals(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    rows = pr_svc.pending_approvals_for(db, current_user.id)
    return PendingApprovalListResponse(
        items=[PendingApprovalOut.model_validate(r) for r in rows],
        total=len(rows),
    )
