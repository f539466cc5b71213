"""Tests for the three-way match engine.

`classify_three_way` is exercised directly with in-memory lines;
`run_three_way_match` runs against a SQLite session.
"""
import json
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.errors import EntityNotFound
from app.models.matching import MatchResult
from app.rules.match_engine import (
    DocumentLine,
    MatchTolerance,
    classify_three_way,
    run_three_way_match,
)
from app.schemas.match import MatchDetails, MatchedLine, VarianceLine
from app.services import audit as audit_svc

P = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
Q = uuid.UUID("00000000-0000-0000-0000-0000000000bb")


def _po(qty="100", price="10.00", product=P):
    return [DocumentLine(product_id=product, quantity=Decimal(qty), unit_price=Decimal(price))]


def _gr(qty="100", product=P):
    return [DocumentLine(product_id=product, quantity=Decimal(qty))]


def _bill(qty="100", price="10.00", product=P):
    return [DocumentLine(product_id=product, quantity=Decimal(qty), unit_price=Decimal(price))]


# ─── Classification ───────────────────────────────────────────────────────────

def test_no_receipt_no_bill_is_missing_receipt():
    outcome = classify_three_way(_po(), None, None)
    assert outcome.status == "missing_receipt"


def test_receipt_without_bill_is_missing_bill():
    outcome = classify_three_way(_po(), _gr(), None)
    assert outcome.status == "missing_bill"


def test_bill_without_receipt_is_missing_receipt():
    outcome = classify_three_way(_po(), None, _bill())
    assert outcome.status == "missing_receipt"


def test_full_agreement_is_matched():
    outcome = classify_three_way(_po(), _gr("100"), _bill("100", "10.00"))

    assert outcome.status == "matched"
    assert outcome.quantity_variance == 0
    assert outcome.price_variance == 0
    assert len(outcome.lines) == 1
    assert isinstance(outcome.lines[0], MatchedLine)


def test_short_receipt_is_quantity_mismatch():
    outcome = classify_three_way(_po(), _gr("90"), _bill("90", "10.00"))

    assert outcome.status == "quantity_mismatch"
    assert outcome.quantity_variance == Decimal("-10")
    line = outcome.lines[0]
    assert isinstance(line, VarianceLine)
    assert line.quantity_out_of_tolerance
    assert not line.price_out_of_tolerance


def test_price_increase_is_price_mismatch():
    outcome = classify_three_way(_po(), _gr("100"), _bill("100", "10.50"))

    assert outcome.status == "price_mismatch"
    assert outcome.price_variance == Decimal("0.50")
    assert outcome.quantity_variance == 0
    assert outcome.lines[0].price_out_of_tolerance


def test_quantity_takes_priority_over_price():
    outcome = classify_three_way(_po(), _gr("90"), _bill("90", "12.00"))
    assert outcome.status == "quantity_mismatch"
    assert outcome.price_variance == Decimal("2.00")


def test_short_bill_against_full_receipt_is_matched():
    outcome = classify_three_way(_po(), _gr("100"), _bill("90", "10.00"))

    assert outcome.status == "matched"
    assert outcome.quantity_variance == 0
    assert outcome.price_variance == 0
    line = outcome.lines[0]
    assert isinstance(line, VarianceLine)
    assert line.billed_vs_received_out_of_tolerance
    assert not line.quantity_out_of_tolerance


def test_bill_above_receipt_is_flagged_but_matched():
    outcome = classify_three_way(_po(), _gr("100"), _bill("120", "10.00"))

    assert outcome.status == "matched"
    assert outcome.lines[0].billed_vs_received_out_of_tolerance


def test_po_without_lines_is_pending():
    outcome = classify_three_way([], [], [])
    assert outcome.status == "pending"


def test_receipt_against_empty_po_is_quantity_mismatch():
    outcome = classify_three_way([], _gr("5"), _bill("5", "1.00"))

    assert outcome.status == "quantity_mismatch"
    assert outcome.quantity_variance == Decimal("5")
    assert outcome.lines[0].quantity_out_of_tolerance


def test_missing_documents_win_over_pending():
    assert classify_three_way([], None, None).status == "missing_receipt"
    assert classify_three_way([], [], None).status == "missing_bill"


def test_tolerance_absorbs_small_variances():
    tolerance = MatchTolerance(quantity=Decimal("2"), price=Decimal("0.05"))

    outcome = classify_three_way(_po(), _gr("99"), _bill("99", "10.04"), tolerance)

    assert outcome.status == "matched"
    assert outcome.quantity_variance == Decimal("-1")
    assert outcome.price_variance == Decimal("0.04")


def test_multiple_receipts_are_summed():
    gr_lines = _gr("60") + _gr("40")
    outcome = classify_three_way(_po(), gr_lines, _bill("100", "10.00"))
    assert outcome.status == "matched"
    assert outcome.lines[0].received_qty == Decimal("100")


def test_split_bill_lines_use_weighted_price():
    bill_lines = _bill("50", "10.00") + _bill("50", "11.00")

    outcome = classify_three_way(_po(), _gr("100"), bill_lines)

    assert outcome.status == "price_mismatch"
    assert outcome.lines[0].bill_unit_price == Decimal("10.500000")
    assert outcome.price_variance == Decimal("0.50")


def test_aggregate_variances_sum_lines():
    po_lines = _po("100", "10.00", P) + _po("20", "5.00", Q)
    gr_lines = _gr("95", P) + _gr("20", Q)
    bill_lines = _bill("95", "10.00", P) + _bill("20", "5.25", Q)

    outcome = classify_three_way(po_lines, gr_lines, bill_lines)

    assert outcome.status == "quantity_mismatch"
    assert outcome.quantity_variance == Decimal("-5")
    assert outcome.price_variance == Decimal("0.25")
    assert [line.product_id for line in outcome.lines] == [P, Q]
    assert [line.kind for line in outcome.lines] == ["variance", "variance"]


def test_unassigned_bill_line_is_reported_last():
    bill_lines = _bill() + [DocumentLine(product_id=None, quantity=Decimal("1"), unit_price=Decimal("15"), description="Freight")]

    outcome = classify_three_way(_po(), _gr(), bill_lines)

    assert outcome.status == "matched"
    assert outcome.lines[-1].kind == "variance"
    assert outcome.lines[-1].billed_vs_received_out_of_tolerance
    assert outcome.lines[-1].product_id is None
    assert outcome.lines[-1].description == "Freight"
    assert outcome.lines[-1].billed_qty == Decimal("1")


def test_classification_is_deterministic():
    po_lines = _po("100", "10.00", Q) + _po("5", "1.00", P)
    gr_lines = _gr("5", P) + _gr("100", Q)
    bill_lines = _bill("100", "10.00", Q) + _bill("5", "1.00", P)

    first = classify_three_way(po_lines, gr_lines, bill_lines)
    second = classify_three_way(list(reversed(po_lines)), list(reversed(gr_lines)), list(reversed(bill_lines)))

    assert first.status == second.status == "matched"
    assert [line.model_dump() for line in first.lines] == [line.model_dump() for line in second.lines]


# ─── Persistence ──────────────────────────────────────────────────────────────

def test_example_missing_receipt_persisted(db, make):
    po = make.purchase_order([(P, "100", "10.00")])

    mr = run_three_way_match(db, po.id)

    assert mr.status == "missing_receipt"
    assert mr.gr_id is None and mr.bill_id is None
    assert mr.matched_at is not None


def test_example_matched_persisted(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    gr = make.goods_receipt(po, [(P, "100")])
    bill = make.vendor_bill(po, [(P, "100", "10.00")])

    mr = run_three_way_match(db, po.id)

    assert mr.status == "matched"
    assert mr.quantity_variance == 0
    assert mr.price_variance == 0
    assert mr.gr_id == gr.id
    assert mr.bill_id == bill.id
    details = MatchDetails.model_validate(mr.match_details)
    assert details.gr_ids == [gr.id]
    assert details.bill_ids == [bill.id]
    assert details.lines[0].kind == "matched"


def test_example_quantity_mismatch_persisted(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "90")])
    make.vendor_bill(po, [(P, "90", "10.00")])

    mr = run_three_way_match(db, po.id)

    assert mr.status == "quantity_mismatch"
    assert mr.quantity_variance == Decimal("-10")


def test_example_price_mismatch_persisted(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "100")])
    make.vendor_bill(po, [(P, "100", "10.50")])

    mr = run_three_way_match(db, po.id)

    assert mr.status == "price_mismatch"
    assert mr.price_variance == Decimal("0.50")
    # stored as JSON strings, never floats
    assert mr.match_details["lines"][0]["price_variance"] == "0.500000"


def test_cancelled_bills_are_ignored(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "100")])
    make.vendor_bill(po, [(P, "100", "10.00")], status="cancelled")

    assert run_three_way_match(db, po.id).status == "missing_bill"


def test_draft_receipts_and_bills_are_ignored(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "100")], status="draft")

    assert run_three_way_match(db, po.id).status == "missing_receipt"

    make.goods_receipt(po, [(P, "100")])
    make.vendor_bill(po, [(P, "100", "10.00")], status="draft")

    assert run_three_way_match(db, po.id).status == "missing_bill"


def test_paid_bills_still_match(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "100")])
    make.vendor_bill(po, [(P, "100", "10.00")], status="paid")

    assert run_three_way_match(db, po.id).status == "matched"


def test_specific_draft_receipt_is_not_found(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    draft = make.goods_receipt(po, [(P, "100")], status="draft")

    with pytest.raises(EntityNotFound):
        run_three_way_match(db, po.id, gr_id=draft.id)
    assert not db.in_transaction()


def test_rerun_overwrites_and_clears_resolution(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "90")])
    make.vendor_bill(po, [(P, "90", "10.00")])
    first = run_three_way_match(db, po.id)
    first.resolved_by = uuid.uuid4()
    first.notes = "short shipment accepted"
    db.commit()

    make.goods_receipt(po, [(P, "10")])
    make.vendor_bill(po, [(P, "10", "10.00")])
    second = run_three_way_match(db, po.id)

    assert second.id == first.id
    assert second.status == "matched"
    assert second.resolved_by is None and second.notes is None
    assert second.gr_id is None  # two receipts now
    assert db.execute(select(func.count()).select_from(MatchResult)).scalar_one() == 1
    runs = audit_svc.history(db, "match_result", first.id, action="match.completed")
    assert len(runs) == 2
    assert json.loads(runs[1].before_state)["status"] == "quantity_mismatch"


def test_specific_receipt_and_bill(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    gr1 = make.goods_receipt(po, [(P, "100")])
    make.goods_receipt(po, [(P, "5")])
    bill = make.vendor_bill(po, [(P, "100", "10.00")])

    mr = run_three_way_match(db, po.id, gr_id=gr1.id, bill_id=bill.id)

    assert mr.status == "matched"
    assert mr.gr_id == gr1.id


def test_receipt_from_another_po_is_not_found(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    other = make.purchase_order([(P, "1", "1.00")])
    foreign = make.goods_receipt(other, [(P, "1")])

    with pytest.raises(EntityNotFound):
        run_three_way_match(db, po.id, gr_id=foreign.id)


def test_unknown_po_is_not_found(db):
    with pytest.raises(EntityNotFound):
        run_three_way_match(db, uuid.uuid4())


def test_explicit_tolerance_overrides_settings(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "99")])
    make.vendor_bill(po, [(P, "99", "10.00")])

    mr = run_three_way_match(db, po.id, tolerance=MatchTolerance(quantity=Decimal("1")))

    assert mr.status == "matched"
    assert mr.match_details["qty_tolerance"] == "1"
