"""Approval rule administration and chain preview."""
import logging
import uuid
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from app.core.deps import PURCHASE_APPROVAL, require_role
from app.db.session import get_session, get_sync_session
from app.models.approval_rule import ApprovalEntityType, ApprovalRule
from app.models.user import User
from app.schemas.approval_rule import (
    ApprovalRuleIn,
    ApprovalRuleOut,
    ApprovalRuleUpdate,
    ChainPreviewOut,
)
from app.schemas.purchase_request import ResolvedLevelOut
from app.services.approval_rules import preview_chain

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=list[ApprovalRuleOut],
    summary="List approval rules (admin, finance)",
)
async def list_rules(
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
    entity_type: ApprovalEntityType | None = Query(default=None),
    include_inactive: bool = Query(default=False),
):
    stmt = select(ApprovalRule)
    if entity_type is not None:
        stmt = stmt.where(ApprovalRule.entity_type == entity_type)
    if not include_inactive:
        stmt = stmt.where(ApprovalRule.is_active.is_(True))
    result = await db.execute(
        stmt.order_by(ApprovalRule.entity_type, ApprovalRule.level, ApprovalRule.amount_min)
    )
    return [ApprovalRuleOut.model_validate(r) for r in result.scalars().all()]


@router.post(
    "",
    response_model=ApprovalRuleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval rule (admin, finance)",
)
async def create_rule(
    body: ApprovalRuleIn,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
):
    rule = ApprovalRule(**body.model_dump())
    db.add(rule)
    await db.commit()
    await db.refresh(rule)
    logger.info("Approval rule %s created by %s", rule.id, current_user.id)
    return ApprovalRuleOut.model_validate(rule)


@router.patch(
    "/{rule_id}",
    response_model=ApprovalRuleOut,
    summary="Update amount window, level or active flag of a rule (admin, finance)",
)
async def update_rule(
    rule_id: uuid.UUID,
    body: ApprovalRuleUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
):
    result = await db.execute(select(ApprovalRule).where(ApprovalRule.id == rule_id))
    rule = result.scalars().first()
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found.")

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(rule, field, value)
    if rule.amount_max is not None and rule.amount_max <= rule.amount_min:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="amount_max must be greater than amount_min.",
        )

    await db.commit()
    await db.refresh(rule)
    return ApprovalRuleOut.model_validate(rule)


@router.get(
    "/preview",
    response_model=ChainPreviewOut,
    summary="Show the approval chain an amount would resolve to",
)
def preview(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_role(*PURCHASE_APPROVAL))],
    amount: Decimal = Query(ge=0),
    currency: str = Query(default="USD", min_length=3, max_length=3),
    entity_type: ApprovalEntityType = Query(default=ApprovalEntityType.purchase_request),
):
    chain = preview_chain(db, entity_type, amount, currency)
    return ChainPreviewOut(
        entity_type=entity_type,
        amount=amount,
        currency=currency.upper(),
        levels=[ResolvedLevelOut.from_resolved(lvl) for lvl in chain],
    )
