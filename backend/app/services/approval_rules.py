"""Approval chain resolution.

Given an entity kind, an amount and a currency, select the active
approval rules whose half-open amount window [amount_min, amount_max)
covers the amount, collapse them to one rule per configured level and
freeze the set of principals allowed to decide each level.

The frozen set is what the workflow checks at decision time; role
membership is never re-read after resolution.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.errors import NoApprovalRuleConfigured
from app.models.approval_rule import ApprovalEntityType, ApprovalRule
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedLevel:
    level: int  # contiguous position in the chain, starting at 1
    rule_id: uuid.UUID
    rule_level: int  # level as configured on the rule
    approver_role: str | None
    specific_approver_id: uuid.UUID | None
    eligible_approver_ids: frozenset[uuid.UUID]


def _specificity(rule: ApprovalRule) -> tuple:
    """Sort key: the first element after sorting is the most specific rule."""
    amount_min = Decimal(rule.amount_min or 0)
    width = None if rule.amount_max is None else Decimal(rule.amount_max) - amount_min
    return (
        -amount_min,
        width is None,
        width if width is not None else Decimal("0"),
        rule.specific_approver_id is None,
        str(rule.id),
    )


class RuleResolver:
    """Base resolver; subclasses bind an entity kind and know how to price it."""

    entity_type: ApprovalEntityType

    def amount_and_currency(self, entity) -> tuple[Decimal, str]:
        raise NotImplementedError

    def resolve_for(self, db: Session, entity) -> list[ResolvedLevel]:
        amount, currency = self.amount_and_currency(entity)
        return self.resolve(db, amount, currency)

    def resolve(self, db: Session, amount: Decimal, currency: str) -> list[ResolvedLevel]:
        amount = Decimal(amount)
        currency = currency.upper()

        rules = self._matching_rules(db, amount, currency)
        if not rules:
            raise NoApprovalRuleConfigured(
                f"No active {self.entity_type.value} approval rule covers "
                f"{amount} {currency}."
            )

        by_level: dict[int, list[ApprovalRule]] = {}
        for rule in rules:
            by_level.setdefault(rule.level, []).append(rule)

        chain: list[ResolvedLevel] = []
        for position, rule_level in enumerate(sorted(by_level), start=1):
            candidates = sorted(by_level[rule_level], key=_specificity)
            rule = candidates[0]
            if len(candidates) > 1:
                logger.warning(
                    "Overlapping %s approval rules at level %s for %s %s: %s; using %s",
                    self.entity_type.value, rule_level, amount, currency,
                    [str(c.id) for c in candidates], rule.id,
                )

            eligible = self._eligible_approvers(db, rule)
            if not eligible:
                raise NoApprovalRuleConfigured(
                    f"Approval level {rule_level} (rule {rule.id}) has no active approver."
                )

            chain.append(
                ResolvedLevel(
                    level=position,
                    rule_id=rule.id,
                    rule_level=rule_level,
                    approver_role=rule.approver_role,
                    specific_approver_id=rule.specific_approver_id,
                    eligible_approver_ids=eligible,
                )
            )

        logger.info(
            "Resolved %s approval chain for %s %s: %d level(s)",
            self.entity_type.value, amount, currency, len(chain),
        )
        return chain

    def _matching_rules(self, db: Session, amount: Decimal, currency: str) -> list[ApprovalRule]:
        stmt = (
            select(ApprovalRule)
            .where(
                ApprovalRule.entity_type == self.entity_type,
                ApprovalRule.is_active.is_(True),
                ApprovalRule.currency == currency,
                ApprovalRule.amount_min <= amount,
                or_(ApprovalRule.amount_max.is_(None), ApprovalRule.amount_max > amount),
            )
            .order_by(ApprovalRule.level)
        )
        return list(db.execute(stmt).scalars().all())

    def _eligible_approvers(self, db: Session, rule: ApprovalRule) -> frozenset[uuid.UUID]:
        stmt = select(User.id).where(User.is_active.is_(True), User.deleted_at.is_(None))
        if rule.specific_approver_id is not None:
            stmt = stmt.where(User.id == rule.specific_approver_id)
        else:
            stmt = stmt.where(User.role == rule.approver_role)
        return frozenset(db.execute(stmt).scalars().all())


class PurchaseRequestRuleResolver(RuleResolver):
    entity_type = ApprovalEntityType.purchase_request

    def amount_and_currency(self, entity) -> tuple[Decimal, str]:
        return Decimal(entity.total_amount or 0), entity.currency


class PurchaseOrderRuleResolver(RuleResolver):
    entity_type = ApprovalEntityType.purchase_order

    def amount_and_currency(self, entity) -> tuple[Decimal, str]:
        return Decimal(entity.total_amount or 0), entity.currency


_RESOLVERS: dict[ApprovalEntityType, type[RuleResolver]] = {
    PurchaseRequestRuleResolver.entity_type: PurchaseRequestRuleResolver,
    PurchaseOrderRuleResolver.entity_type: PurchaseOrderRuleResolver,
}


def resolver_for(entity_type: ApprovalEntityType | str) -> RuleResolver:
    return _RESOLVERS[ApprovalEntityType(entity_type)]()


def preview_chain(
    db: Session,
    entity_type: ApprovalEntityType | str,
    amount: Decimal,
    currency: str,
) -> list[ResolvedLevel]:
    """Resolve a chain without touching any workflow state."""
    return resolver_for(entity_type).resolve(db, amount, currency)
