"""Goods receipt endpoints: record a receipt against a PO, post it, list and fetch."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import PURCHASE_ACCESS, require_role
from app.db.session import get_sync_session
from app.models.user import User
from app.schemas.receiving import GoodsReceiptCreate, GoodsReceiptListResponse, GoodsReceiptOut
from app.services import receiving as receiving_svc

router = APIRouter()


@router.get(
    "",
    response_model=GoodsReceiptListResponse,
    summary="List goods receipts",
)
def list_goods_receipts(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=100),
    po_id: uuid.UUID | None = Query(default=None),
    gr_status: str | None = Query(default=None, alias="status"),
):
    rows, total = receiving_svc.list_goods_receipts(
        db, po_id=po_id, status=gr_status, page=page, page_size=page_size
    )
    return GoodsReceiptListResponse(
        items=[GoodsReceiptOut.model_validate(gr) for gr in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=GoodsReceiptOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record a draft goods receipt",
)
def create_goods_receipt(
    body: GoodsReceiptCreate,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    gr = receiving_svc.create_goods_receipt(db, body, actor_id=current_user.id)
    return GoodsReceiptOut.model_validate(gr)


@router.get(
    "/{gr_id}",
    response_model=GoodsReceiptOut,
    summary="Get a goods receipt with its lines",
)
def get_goods_receipt(
    gr_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    return GoodsReceiptOut.model_validate(receiving_svc.get_goods_receipt(db, gr_id))


@router.post(
    "/{gr_id}/post",
    response_model=GoodsReceiptOut,
    summary="Post a draft receipt; posted receipts count towards matching",
)
def post_goods_receipt(
    gr_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    gr = receiving_svc.post_goods_receipt(db, gr_id, actor_id=current_user.id)
    return GoodsReceiptOut.model_validate(gr)
