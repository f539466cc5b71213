"""Vendor bill endpoints. Recording is open to purchasing roles; posting is finance only."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import PURCHASE_ACCESS, PURCHASE_APPROVAL, require_role
from app.db.session import get_sync_session
from app.models.user import User
from app.schemas.receiving import VendorBillCreate, VendorBillListResponse, VendorBillOut
from app.services import receiving as receiving_svc

router = APIRouter()


@router.get(
    "",
    response_model=VendorBillListResponse,
    summary="List vendor bills",
)
def list_vendor_bills(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=100),
    supplier_id: uuid.UUID | None = Query(default=None),
    po_id: uuid.UUID | None = Query(default=None),
    bill_status: str | None = Query(default=None, alias="status"),
):
    rows, total = receiving_svc.list_vendor_bills(
        db, supplier_id=supplier_id, po_id=po_id, status=bill_status, page=page, page_size=page_size
    )
    return VendorBillListResponse(
        items=[VendorBillOut.model_validate(bill) for bill in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=VendorBillOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record a draft vendor bill",
)
def create_vendor_bill(
    body: VendorBillCreate,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    bill = receiving_svc.create_vendor_bill(db, body, actor_id=current_user.id)
    return VendorBillOut.model_validate(bill)


@router.get(
    "/{bill_id}",
    response_model=VendorBillOut,
    summary="Get a vendor bill with its lines",
)
def get_vendor_bill(
    bill_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_ACCESS))],
):
    return VendorBillOut.model_validate(receiving_svc.get_vendor_bill(db, bill_id))


@router.post(
    "/{bill_id}/post",
    response_model=VendorBillOut,
    summary="Post a draft bill (admin, finance)",
)
def post_vendor_bill(
    bill_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
):
    bill = receiving_svc.post_vendor_bill(db, bill_id, actor_id=current_user.id)
    return VendorBillOut.model_validate(bill)
