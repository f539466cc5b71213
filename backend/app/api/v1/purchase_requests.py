"""Purchase request endpoints: list, create, submit, decide per level, convert, cancel.

Handlers are plain `def` so the sync workflow service runs in FastAPI's
threadpool.
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import PURCHASE_ACCESS, PURCHASE_APPROVAL, get_current_user, require_role
from app.db.session import get_sync_session
from app.models.user import User
from app.schemas.purchase_request import (
    ApprovalDecisionRequest,
    ConvertRequest,
    PurchaseOrderOut,
    PurchaseRequestCreate,
    PurchaseRequestListResponse,
    PurchaseRequestOut,
    ResolvedLevelOut,
    SubmitResponse,
)
from app.services import purchase_requests as pr_svc

router = APIRouter()


@router.post(
    "",
    response_model=PurchaseRequestOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft purchase request",
)
def create_purchase_request(
    body: PurchaseRequestCreate,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    pr = pr_svc.create_purchase_request(db, requester_id=current_user.id, body=body)
    return PurchaseRequestOut.model_validate(pr)


@router.get(
    "",
    response_model=PurchaseRequestListResponse,
    summary="List purchase requests with optional filters",
)
def list_purchase_requests(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=100),
    pr_status: str | None = Query(default=None, alias="status"),
    requester_id: uuid.UUID | None = Query(default=None),
):
    rows, total = pr_svc.list_purchase_requests(
        db, status=pr_status, requester_id=requester_id, page=page, page_size=page_size
    )
    return PurchaseRequestListResponse(
        items=[PurchaseRequestOut.model_validate(pr) for pr in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{pr_id}",
    response_model=PurchaseRequestOut,
    summary="Get a purchase request with its items and approval levels",
)
def get_purchase_request(
    pr_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    return PurchaseRequestOut.model_validate(pr_svc.get_purchase_request(db, pr_id))


@router.post(
    "/{pr_id}/submit",
    response_model=SubmitResponse,
    summary="Submit a draft for approval; resolves the approval chain",
)
def submit_purchase_request(
    pr_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    chain = pr_svc.submit_purchase_request(db, pr_id, actor_id=current_user.id)
    pr = pr_svc.get_purchase_request(db, pr_id)
    return SubmitResponse(
        purchase_request=PurchaseRequestOut.model_validate(pr),
        levels=[ResolvedLevelOut.from_resolved(lvl) for lvl in chain],
    )


@router.post(
    "/{pr_id}/approvals/{level}/decision",
    response_model=PurchaseRequestOut,
    summary="Approve or reject one approval level",
)
def decide_approval(
    pr_id: uuid.UUID,
    level: int,
    body: ApprovalDecisionRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Any authenticated user may call this; eligibility is checked against
    the approver set frozen at submission."""
    pr = pr_svc.decide_purchase_request_approval(
        db,
        pr_id=pr_id,
        level=level,
        approver_id=current_user.id,
        decision=body.decision,
        comment=body.comment,
    )
    return PurchaseRequestOut.model_validate(pr)


@router.post(
    "/{pr_id}/convert",
    response_model=PurchaseOrderOut,
    summary="Convert an approved purchase request into a purchase order",
)
def convert_purchase_request(
    pr_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
    body: ConvertRequest | None = None,
):
    po = pr_svc.convert_to_order(db, pr_id, overrides=body, actor_id=current_user.id)
    return PurchaseOrderOut.model_validate(po)


@router.post(
    "/{pr_id}/cancel",
    response_model=PurchaseRequestOut,
    summary="Cancel a draft or submitted purchase request",
)
def cancel_purchase_request(
    pr_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    pr = pr_svc.cancel_purchase_request(db, pr_id, actor_id=current_user.id)
    return PurchaseRequestOut.model_validate(pr)
