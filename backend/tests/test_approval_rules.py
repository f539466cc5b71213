"""Tests for approval chain resolution."""
import logging
from decimal import Decimal

import pytest

from app.core.errors import NoApprovalRuleConfigured
from app.models.approval_rule import ApprovalEntityType
from app.services.approval_rules import (
    PurchaseOrderRuleResolver,
    PurchaseRequestRuleResolver,
    preview_chain,
    resolver_for,
)


def _resolve(db, amount: str, currency: str = "USD"):
    return PurchaseRequestRuleResolver().resolve(db, Decimal(amount), currency)


# ─── Window selection ─────────────────────────────────────────────────────────

def test_single_role_rule_resolves_eligible_set(db, make):
    f1 = make.user("finance")
    f2 = make.user("finance")
    make.user("sales")
    rule = make.rule(level=1, approver_role="finance")

    chain = _resolve(db, "500.00")

    assert len(chain) == 1
    assert chain[0].level == 1
    assert chain[0].rule_id == rule.id
    assert chain[0].eligible_approver_ids == frozenset({f1.id, f2.id})


def test_window_is_half_open(db, make):
    make.user("finance")
    admin = make.user("admin")
    make.rule(level=1, amount_min="0", amount_max="10000", approver_role="finance")
    make.rule(level=2, amount_min="10000", approver_role="admin")

    below = _resolve(db, "9999.99")
    at_boundary = _resolve(db, "10000.00")

    assert [lvl.rule_level for lvl in below] == [1]
    assert [lvl.rule_level for lvl in at_boundary] == [2]
    assert at_boundary[0].level == 1
    assert at_boundary[0].eligible_approver_ids == frozenset({admin.id})


def test_levels_are_contiguous_from_one(db, make):
    finance = make.user("finance")
    admin = make.user("admin")
    make.rule(level=5, approver_role="admin")
    make.rule(level=2, approver_role="finance")
    make.rule(level=9, specific_approver_id=finance.id)

    chain = _resolve(db, "250000")

    assert [lvl.level for lvl in chain] == [1, 2, 3]
    assert [lvl.rule_level for lvl in chain] == [2, 5, 9]
    assert chain[1].eligible_approver_ids == frozenset({admin.id})
    assert chain[2].specific_approver_id == finance.id
    assert chain[2].eligible_approver_ids == frozenset({finance.id})


def test_inactive_rules_are_ignored(db, make):
    make.user("finance")
    make.rule(level=1, approver_role="finance", is_active=False)

    with pytest.raises(NoApprovalRuleConfigured):
        _resolve(db, "100")


def test_no_rule_for_amount_raises(db, make):
    make.user("finance")
    make.rule(level=1, amount_min="0", amount_max="1000", approver_role="finance")

    with pytest.raises(NoApprovalRuleConfigured):
        _resolve(db, "5000")


def test_currency_must_match_exactly(db, make):
    make.user("finance")
    make.rule(level=1, approver_role="finance", currency="USD")

    with pytest.raises(NoApprovalRuleConfigured):
        _resolve(db, "100", currency="EUR")

    # lower-case input is normalised
    assert len(_resolve(db, "100", currency="usd")) == 1


def test_entity_kinds_do_not_share_rules(db, make):
    make.user("finance")
    make.rule(level=1, approver_role="finance", entity_type=ApprovalEntityType.purchase_order)

    with pytest.raises(NoApprovalRuleConfigured):
        _resolve(db, "100")
    assert len(PurchaseOrderRuleResolver().resolve(db, Decimal("100"), "USD")) == 1


# ─── Eligibility ──────────────────────────────────────────────────────────────

def test_role_level_without_active_members_raises(db, make):
    make.user("finance", is_active=False)
    make.rule(level=1, approver_role="finance")

    with pytest.raises(NoApprovalRuleConfigured):
        _resolve(db, "100")


def test_inactive_specific_approver_raises(db, make):
    gone = make.user("admin", is_active=False)
    make.rule(level=1, specific_approver_id=gone.id)

    with pytest.raises(NoApprovalRuleConfigured):
        _resolve(db, "100")


# ─── Overlap ──────────────────────────────────────────────────────────────────

def test_overlapping_rules_pick_most_specific(db, make, caplog):
    make.user("finance")
    admin = make.user("admin")
    make.rule(level=1, amount_min="0", approver_role="finance")
    narrow = make.rule(level=1, amount_min="1000", amount_max="5000", approver_role="admin")

    with caplog.at_level(logging.WARNING, logger="app.services.approval_rules"):
        chain = _resolve(db, "2000")

    assert len(chain) == 1
    assert chain[0].rule_id == narrow.id
    assert chain[0].eligible_approver_ids == frozenset({admin.id})
    assert "Overlapping" in caplog.text


def test_overlap_same_window_prefers_specific_approver(db, make):
    make.user("finance")
    cfo = make.user("finance")
    make.rule(level=1, approver_role="finance")
    specific = make.rule(level=1, specific_approver_id=cfo.id)

    chain = _resolve(db, "100")

    assert chain[0].rule_id == specific.id
    assert chain[0].eligible_approver_ids == frozenset({cfo.id})


# ─── Helpers ──────────────────────────────────────────────────────────────────

def test_resolver_for_accepts_enum_or_value():
    assert isinstance(resolver_for("purchase_request"), PurchaseRequestRuleResolver)
    assert isinstance(resolver_for(ApprovalEntityType.purchase_order), PurchaseOrderRuleResolver)


def test_resolver_for_unknown_kind_raises():
    with pytest.raises(ValueError):
        resolver_for("vendor_bill")


def test_preview_chain_writes_nothing(db, make):
    make.user("finance")
    make.rule(level=1, approver_role="finance")

    chain = preview_chain(db, "purchase_request", Decimal("10"), "USD")

    assert len(chain) == 1
    assert not db.new and not db.dirty
