"""Goods receipt and vendor bill recording.

Both documents are created as drafts and only count towards a three-way
match once posted:
    goods receipt:  draft → posted
    vendor bill:    draft → posted  (paid / cancelled are set by payables)
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import EntityNotFound, InvalidState
from app.models.goods_receipt import GoodsReceipt, GRLineItem
from app.models.purchase_order import PurchaseOrder
from app.models.vendor_bill import VendorBill, VendorBillLineItem
from app.schemas.receiving import GoodsReceiptCreate, VendorBillCreate
from app.services import audit as audit_svc

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _load_open_po(db: Session, po_id: uuid.UUID) -> PurchaseOrder:
    po = db.get(PurchaseOrder, po_id)
    if po is None:
        raise EntityNotFound(f"Purchase order {po_id} not found.")
    if po.status == "cancelled":
        raise InvalidState(f"Purchase order {po.order_number} is cancelled.")
    return po


def _page(db: Session, stmt, order_by, page: int, page_size: int) -> tuple[list, int]:
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(*order_by).offset((page - 1) * page_size).limit(page_size)
    ).scalars().all()
    return list(rows), total


# ─── Goods receipts ───

def create_goods_receipt(
    db: Session,
    body: GoodsReceiptCreate,
    actor_id: uuid.UUID | None = None,
) -> GoodsReceipt:
    """Record a draft receipt against a PO."""
    po = _load_open_po(db, body.po_id)

    gr_number = body.gr_number or f"GR-{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"
    if db.execute(select(GoodsReceipt.id).where(GoodsReceipt.gr_number == gr_number)).first():
        raise InvalidState(f"Goods receipt number {gr_number} is already in use.")

    gr = GoodsReceipt(
        gr_number=gr_number,
        po_id=po.id,
        warehouse_id=body.warehouse_id,
        status="draft",
        received_by=actor_id,
        received_at=datetime.now(timezone.utc),
        notes=body.notes,
        line_items=[
            GRLineItem(
                product_id=line.product_id,
                quantity=line.quantity,
                batch_number=line.batch_number,
                expiry_date=line.expiry_date,
            )
            for line in body.items
        ],
    )
    db.add(gr)
    db.flush()

    audit_svc.log(
        db=db,
        action="goods_receipt.created",
        entity_type="goods_receipt",
        entity_id=gr.id,
        actor_id=actor_id,
        after={"po_id": str(po.id), "gr_number": gr.gr_number, "lines": len(gr.line_items)},
    )
    db.commit()
    logger.info("Goods receipt %s recorded against %s (%d lines)", gr.gr_number, po.order_number, len(gr.line_items))
    return gr


def post_goods_receipt(db: Session, gr_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> GoodsReceipt:
    """Post a draft receipt so matching picks it up."""
    gr = db.execute(
        select(GoodsReceipt).where(GoodsReceipt.id == gr_id).with_for_update()
    ).scalars().first()
    error = None
    if gr is None:
        error = EntityNotFound(f"Goods receipt {gr_id} not found.")
    elif gr.status != "draft":
        error = InvalidState(f"Goods receipt {gr.gr_number} is {gr.status}; only drafts can be posted.")
    if error is not None:
        db.rollback()
        raise error

    gr.status = "posted"
    db.flush()
    audit_svc.log(
        db=db,
        action="goods_receipt.posted",
        entity_type="goods_receipt",
        entity_id=gr.id,
        actor_id=actor_id,
        before={"status": "draft"},
        after={"status": gr.status},
    )
    db.commit()
    logger.info("Goods receipt %s posted", gr.gr_number)
    return gr


def get_goods_receipt(db: Session, gr_id: uuid.UUID) -> GoodsReceipt:
    gr = db.get(GoodsReceipt, gr_id)
    if gr is None:
        raise EntityNotFound(f"Goods receipt {gr_id} not found.")
    return gr


def list_goods_receipts(
    db: Session,
    po_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[GoodsReceipt], int]:
    stmt = select(GoodsReceipt)
    if po_id is not None:
        stmt = stmt.where(GoodsReceipt.po_id == po_id)
    if status is not None:
        stmt = stmt.where(GoodsReceipt.status == status)
    return _page(db, stmt, (GoodsReceipt.received_at.desc(), GoodsReceipt.id), page, page_size)


# ─── Vendor bills ───

def create_vendor_bill(
    db: Session,
    body: VendorBillCreate,
    actor_id: uuid.UUID | None = None,
) -> VendorBill:
    """Record a draft bill; the total is the sum of its line totals.

    Raises:
        EntityNotFound: po_id does not exist.
        InvalidState: Duplicate bill number, cancelled PO, no supplier, or
            a supplier that differs from the PO's.
    """
    supplier_id = body.supplier_id
    if body.po_id is not None:
        po = _load_open_po(db, body.po_id)
        if supplier_id is not None and supplier_id != po.supplier_id:
            raise InvalidState(f"Bill supplier {supplier_id} does not match purchase order {po.order_number}.")
        supplier_id = po.supplier_id
    if supplier_id is None:
        raise InvalidState("supplier_id is required for a bill without a purchase order.")

    if db.execute(select(VendorBill.id).where(VendorBill.bill_number == body.bill_number)).first():
        raise InvalidState(f"Vendor bill number {body.bill_number} is already recorded.")

    lines = [
        VendorBillLineItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=(line.quantity * line.unit_price).quantize(CENT, rounding=ROUND_HALF_UP),
            description=line.description,
        )
        for line in body.items
    ]
    bill = VendorBill(
        bill_number=body.bill_number,
        supplier_id=supplier_id,
        po_id=body.po_id,
        total_amount=sum((line.line_total for line in lines), Decimal("0")),
        currency=body.currency.upper(),
        status="draft",
        bill_date=body.bill_date,
        due_date=body.due_date,
        created_by=actor_id,
        line_items=lines,
    )
    db.add(bill)
    db.flush()

    audit_svc.log(
        db=db,
        action="vendor_bill.created",
        entity_type="vendor_bill",
        entity_id=bill.id,
        actor_id=actor_id,
        after=audit_svc.snapshot(bill, "bill_number", "po_id", "total_amount", "currency"),
    )
    db.commit()
    logger.info("Vendor bill %s recorded (%s %s)", bill.bill_number, bill.total_amount, bill.currency)
    return bill


def post_vendor_bill(db: Session, bill_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> VendorBill:
    bill = db.execute(
        select(VendorBill).where(VendorBill.id == bill_id).with_for_update()
    ).scalars().first()
    error = None
    if bill is None:
        error = EntityNotFound(f"Vendor bill {bill_id} not found.")
    elif bill.status != "draft":
        error = InvalidState(f"Vendor bill {bill.bill_number} is {bill.status}; only drafts can be posted.")
    if error is not None:
        db.rollback()
        raise error

    bill.status = "posted"
    db.flush()
    audit_svc.log(
        db=db,
        action="vendor_bill.posted",
        entity_type="vendor_bill",
        entity_id=bill.id,
        actor_id=actor_id,
        before={"status": "draft"},
        after={"status": bill.status},
    )
    db.commit()
    logger.info("Vendor bill %s posted", bill.bill_number)
    return bill


def get_vendor_bill(db: Session, bill_id: uuid.UUID) -> VendorBill:
    bill = db.get(VendorBill, bill_id)
    if bill is None:
        raise EntityNotFound(f"Vendor bill {bill_id} not found.")
    return bill


def list_vendor_bills(
    db: Session,
    supplier_id: uuid.UUID | None = None,
    po_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[VendorBill], int]:
    stmt = select(VendorBill)
    if supplier_id is not None:
        stmt = stmt.where(VendorBill.supplier_id == supplier_id)
    if po_id is not None:
        stmt = stmt.where(VendorBill.po_id == po_id)
    if status is not None:
        stmt = stmt.where(VendorBill.status == status)
    return _page(db, stmt, (VendorBill.bill_date.desc(), VendorBill.id), page, page_size)
