"""3-Way Match Engine — deterministic PO vs Goods Receipt vs Vendor Bill matching.

Classification is a pure function of the three line sets and the tolerance
(`classify_three_way`). `run_three_way_match` loads the documents for one PO,
classifies them and overwrites the PO's MatchResult row.

All arithmetic uses Decimal; quantities are compared at 4 dp, unit prices
at 6 dp.
"""
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import EntityNotFound
from app.models.goods_receipt import GoodsReceipt
from app.models.matching import MatchResult
from app.models.purchase_order import PurchaseOrder
from app.models.vendor_bill import VendorBill
from app.schemas.match import MatchDetails, MatchedLine, MatchLine, VarianceLine

logger = logging.getLogger(__name__)

QTY_PLACES = Decimal("0.0001")
PRICE_PLACES = Decimal("0.000001")
ZERO = Decimal("0")

# statuses that feed a match
MATCHABLE_GR_STATUSES = ("posted",)
MATCHABLE_BILL_STATUSES = ("posted", "paid")


# ─── Inputs / outputs ───

@dataclass(frozen=True)
class MatchTolerance:
    quantity: Decimal = ZERO  # absolute, per line
    price: Decimal = ZERO  # absolute unit-price difference, per line

    @classmethod
    def from_settings(cls) -> "MatchTolerance":
        s = get_settings()
        return cls(quantity=Decimal(s.MATCH_QTY_TOLERANCE), price=Decimal(s.MATCH_PRICE_TOLERANCE))


@dataclass(frozen=True)
class DocumentLine:
    product_id: uuid.UUID | None
    quantity: Decimal
    unit_price: Decimal | None = None
    description: str | None = None


@dataclass
class ThreeWayOutcome:
    status: str  # matched, quantity_mismatch, price_mismatch, missing_receipt, missing_bill, pending
    quantity_variance: Decimal = ZERO
    price_variance: Decimal = ZERO
    lines: list[MatchLine] = field(default_factory=list)


# ─── Aggregation ───

@dataclass
class _Bucket:
    quantity: Decimal = ZERO
    extended: Decimal = ZERO  # Σ quantity × unit_price
    priced: bool = False
    description: str | None = None

    def add(self, line: DocumentLine) -> None:
        qty = Decimal(line.quantity or 0)
        self.quantity += qty
        if line.unit_price is not None:
            self.extended += qty * Decimal(line.unit_price)
            self.priced = True
        if self.description is None:
            self.description = line.description

    @property
    def unit_price(self) -> Decimal | None:
        """Quantity-weighted unit price across every line for the product."""
        if not self.priced or self.quantity == 0:
            return None
        return (self.extended / self.quantity).quantize(PRICE_PLACES)


def _aggregate(lines: Sequence[DocumentLine] | None) -> dict[uuid.UUID | None, _Bucket]:
    buckets: dict[uuid.UUID | None, _Bucket] = {}
    for line in lines or ():
        buckets.setdefault(line.product_id, _Bucket()).add(line)
    return buckets


def _line_key(product_id: uuid.UUID | None) -> tuple[bool, str]:
    # unassigned bill lines sort last
    return (product_id is None, str(product_id or ""))


# ─── Classification ───

def classify_three_way(
    po_lines: Sequence[DocumentLine],
    gr_lines: Sequence[DocumentLine] | None,
    bill_lines: Sequence[DocumentLine] | None,
    tolerance: MatchTolerance | None = None,
) -> ThreeWayOutcome:
    """Classify a PO against its receipts and bills.

    gr_lines / bill_lines are None when no such document is linked to the
    PO; an empty sequence means the documents exist but carry no lines.

    Priority (first hit wins): missing_receipt, missing_bill,
    quantity_mismatch (received vs ordered), price_mismatch, pending (PO
    has no lines), matched.

    Billed vs received quantity is reported on the line but does not
    affect the status.
    """
    tolerance = tolerance or MatchTolerance()

    ordered = _aggregate(po_lines)
    received = _aggregate(gr_lines)
    billed = _aggregate(bill_lines)

    lines: list[MatchLine] = []
    total_qty_variance = ZERO
    total_price_variance = ZERO
    any_qty_out = False
    any_price_out = False

    for product_id in sorted(set(ordered) | set(received) | set(billed), key=_line_key):
        o = ordered.get(product_id, _Bucket())
        r = received.get(product_id, _Bucket())
        b = billed.get(product_id, _Bucket())

        ordered_qty = o.quantity.quantize(QTY_PLACES)
        received_qty = r.quantity.quantize(QTY_PLACES)
        billed_qty = b.quantity.quantize(QTY_PLACES)
        po_price = o.unit_price
        bill_price = b.unit_price

        qty_variance = received_qty - ordered_qty
        if po_price is not None and bill_price is not None and billed_qty != 0:
            price_variance = bill_price - po_price
        else:
            price_variance = ZERO.quantize(PRICE_PLACES)

        qty_out = abs(qty_variance) > tolerance.quantity
        billed_out = bill_lines is not None and abs(billed_qty - received_qty) > tolerance.quantity
        price_out = abs(price_variance) > tolerance.price

        common = dict(
            product_id=product_id,
            description=b.description if product_id is None else None,
            ordered_qty=ordered_qty,
            received_qty=received_qty,
            billed_qty=billed_qty,
            po_unit_price=po_price,
            bill_unit_price=bill_price,
            quantity_variance=qty_variance,
            price_variance=price_variance,
        )
        if qty_out or billed_out or price_out:
            lines.append(
                VarianceLine(
                    **common,
                    quantity_out_of_tolerance=qty_out,
                    billed_vs_received_out_of_tolerance=billed_out,
                    price_out_of_tolerance=price_out,
                )
            )
        else:
            lines.append(MatchedLine(**common))

        total_qty_variance += qty_variance
        total_price_variance += price_variance
        any_qty_out = any_qty_out or qty_out
        any_price_out = any_price_out or price_out

    if gr_lines is None:
        status = "missing_receipt"
    elif bill_lines is None:
        status = "missing_bill"
    elif any_qty_out:
        status = "quantity_mismatch"
    elif any_price_out:
        status = "price_mismatch"
    elif not po_lines:
        status = "pending"
    else:
        status = "matched"

    return ThreeWayOutcome(
        status=status,
        quantity_variance=total_qty_variance,
        price_variance=total_price_variance,
        lines=lines,
    )


# ─── Persistence ───

def _load_documents(db: Session, po: PurchaseOrder, gr_id: uuid.UUID | None, bill_id: uuid.UUID | None):
    gr_stmt = select(GoodsReceipt).where(
        GoodsReceipt.po_id == po.id, GoodsReceipt.status.in_(MATCHABLE_GR_STATUSES)
    )
    if gr_id is not None:
        gr_stmt = gr_stmt.where(GoodsReceipt.id == gr_id)
    receipts = db.execute(gr_stmt.order_by(GoodsReceipt.received_at, GoodsReceipt.id)).scalars().all()
    if gr_id is not None and not receipts:
        raise EntityNotFound(f"No posted goods receipt {gr_id} for purchase order {po.order_number}.")

    bill_stmt = select(VendorBill).where(
        VendorBill.po_id == po.id, VendorBill.status.in_(MATCHABLE_BILL_STATUSES)
    )
    if bill_id is not None:
        bill_stmt = bill_stmt.where(VendorBill.id == bill_id)
    bills = db.execute(bill_stmt.order_by(VendorBill.bill_date, VendorBill.id)).scalars().all()
    if bill_id is not None and not bills:
        raise EntityNotFound(f"No posted vendor bill {bill_id} for purchase order {po.order_number}.")

    return list(receipts), list(bills)


def run_three_way_match(
    db: Session,
    po_id: uuid.UUID,
    gr_id: uuid.UUID | None = None,
    bill_id: uuid.UUID | None = None,
    tolerance: MatchTolerance | None = None,
) -> MatchResult:
    """Match a PO against its receipts and bills and persist the outcome.

    Steps:
    1. Lock the PO row so concurrent runs for the same PO serialize
    2. Load posted GRs and posted or paid bills (or just gr_id / bill_id)
    3. Classify with classify_three_way
    4. Overwrite the PO's MatchResult; clear any previous resolution
    5. Write an audit entry carrying the previous status

    Missing receipts or bills are a classification, not an error. Raises
    EntityNotFound only for an unknown PO or a gr_id/bill_id not linked to it.
    """
    from app.services import audit as audit_svc

    tolerance = tolerance or MatchTolerance.from_settings()

    # ── 1. Lock PO ──
    po = db.execute(
        select(PurchaseOrder).where(PurchaseOrder.id == po_id).with_for_update()
    ).scalars().first()
    if po is None:
        raise EntityNotFound(f"Purchase order {po_id} not found.")

    # ── 2. Load documents ──
    try:
        receipts, bills = _load_documents(db, po, gr_id, bill_id)
    except EntityNotFound:
        db.rollback()
        raise

    po_lines = [
        DocumentLine(product_id=pl.product_id, quantity=pl.quantity, unit_price=pl.unit_price)
        for pl in po.line_items
    ]
    gr_lines = None
    if receipts:
        gr_lines = [
            DocumentLine(product_id=gl.product_id, quantity=gl.quantity)
            for gr in receipts for gl in gr.line_items
        ]
    bill_lines = None
    if bills:
        bill_lines = [
            DocumentLine(
                product_id=bl.product_id,
                quantity=bl.quantity,
                unit_price=bl.unit_price,
                description=bl.description,
            )
            for bill in bills for bl in bill.line_items
        ]

    # ── 3. Classify ──
    outcome = classify_three_way(po_lines, gr_lines, bill_lines, tolerance)
    details = MatchDetails(
        qty_tolerance=tolerance.quantity,
        price_tolerance=tolerance.price,
        gr_ids=[gr.id for gr in receipts],
        bill_ids=[bill.id for bill in bills],
        lines=outcome.lines,
    )

    # ── 4. Overwrite MatchResult ──
    now = datetime.now(timezone.utc)
    mr = db.execute(select(MatchResult).where(MatchResult.po_id == po.id)).scalars().first()
    previous = None
    if mr is None:
        mr = MatchResult(po_id=po.id)
        db.add(mr)
    else:
        previous = audit_svc.snapshot(mr, "status", "quantity_variance", "price_variance", "resolved_by")

    mr.gr_id = gr_id or (receipts[0].id if len(receipts) == 1 else None)
    mr.bill_id = bill_id or (bills[0].id if len(bills) == 1 else None)
    mr.status = outcome.status
    mr.quantity_variance = outcome.quantity_variance
    mr.price_variance = outcome.price_variance
    mr.match_details = details.model_dump(mode="json")
    mr.matched_at = now
    mr.resolved_by = None
    mr.resolved_at = None
    mr.notes = None
    db.flush()

    # ── 5. Audit ──
    audit_svc.log(
        db=db,
        action="match.completed",
        entity_type="match_result",
        entity_id=mr.id,
        before=previous,
        after={
            "po_id": str(po.id),
            "status": outcome.status,
            "quantity_variance": str(outcome.quantity_variance),
            "price_variance": str(outcome.price_variance),
            "gr_count": len(receipts),
            "bill_count": len(bills),
        },
    )
    db.commit()

    logger.info(
        "3-way match PO %s: status=%s qty_var=%s price_var=%s (grs=%d, bills=%d)",
        po.order_number, outcome.status, outcome.quantity_variance,
        outcome.price_variance, len(receipts), len(bills),
    )
    return mr
