"""Tests for match exception resolution."""
import uuid

import pytest

from app.core.errors import EntityNotFound, InvalidState
from app.rules.match_engine import run_three_way_match
from app.services.match_resolution import (
    get_match_result,
    list_match_results,
    resolve_match_exception,
)

P = uuid.uuid4()


@pytest.fixture
def short_shipment(db, make):
    po = make.purchase_order([(P, "100", "10.00")])
    make.goods_receipt(po, [(P, "90")])
    make.vendor_bill(po, [(P, "90", "10.00")])
    return run_three_way_match(db, po.id)


@pytest.fixture
def clean_match(db, make):
    po = make.purchase_order([(P, "10", "1.00")])
    make.goods_receipt(po, [(P, "10")])
    make.vendor_bill(po, [(P, "10", "1.00")])
    return run_three_way_match(db, po.id)


def test_resolve_annotates_without_reclassifying(db, make, short_shipment):
    finance = make.user("finance")

    mr = resolve_match_exception(db, short_shipment.id, finance.id, "Supplier confirmed back-order")

    assert mr.status == "quantity_mismatch"
    assert mr.resolved_by == finance.id
    assert mr.resolved_at is not None
    assert mr.notes == "Supplier confirmed back-order"


def test_resolving_matched_result_is_invalid(db, make, clean_match):
    finance = make.user("finance")

    with pytest.raises(InvalidState):
        resolve_match_exception(db, clean_match.id, finance.id, "nothing to do")

    assert get_match_result(db, clean_match.id).resolved_at is None


def test_resolving_twice_is_invalid(db, make, short_shipment):
    finance = make.user("finance")
    resolve_match_exception(db, short_shipment.id, finance.id, "first")

    with pytest.raises(InvalidState):
        resolve_match_exception(db, short_shipment.id, finance.id, "second")
    assert not db.in_transaction()
    assert get_match_result(db, short_shipment.id).notes == "first"


def test_resolve_unknown_result_raises_not_found(db):
    with pytest.raises(EntityNotFound):
        resolve_match_exception(db, uuid.uuid4(), uuid.uuid4(), "notes")


def test_list_filters(db, make, short_shipment, clean_match):
    assert {r.id for r in list_match_results(db)} == {short_shipment.id, clean_match.id}
    assert [r.id for r in list_match_results(db, status="matched")] == [clean_match.id]
    assert [r.id for r in list_match_results(db, po_id=short_shipment.po_id)] == [short_shipment.id]
    assert [r.id for r in list_match_results(db, unresolved_only=True)] == [short_shipment.id]

    resolve_match_exception(db, short_shipment.id, make.user("admin").id, "ok")

    assert list_match_results(db, unresolved_only=True) == []
