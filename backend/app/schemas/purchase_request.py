"""Pydantic schemas for purchase requests, their approval chain and PO conversion."""
import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings


class ApprovalDecision(str, enum.Enum):
    approve = "approve"
    reject = "reject"


# ─── Input ───

class PurchaseRequestItemIn(BaseModel):
    product_id: uuid.UUID
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class PurchaseRequestCreate(BaseModel):
    supplier_id: uuid.UUID | None = None
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    notes: str | None = None
    items: list[PurchaseRequestItemIn] = Field(min_length=1)


class ApprovalDecisionRequest(BaseModel):
    decision: ApprovalDecision
    comment: str | None = None


class ConvertRequest(BaseModel):
    """Optional overrides applied to the PO created from an approved PR."""

    order_number: str | None = None
    supplier_id: uuid.UUID | None = None
    order_date: date | None = None
    expected_delivery_date: date | None = None
    payment_terms: int | None = Field(default=None, ge=0)
    notes: str | None = None


# ─── Output ───

class PurchaseRequestItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: Decimal
    unit_price: Decimal | None
    line_total: Decimal | None
    notes: str | None


class PurchaseRequestApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    level: int
    rule_id: uuid.UUID
    rule_level: int
    approver_role: str | None
    approver_id: uuid.UUID | None
    eligible_approver_ids: list[uuid.UUID]
    status: str
    decided_at: datetime | None
    comment: str | None


class PurchaseRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pr_number: str
    requester_id: uuid.UUID
    supplier_id: uuid.UUID | None
    total_amount: Decimal
    currency: str
    status: str
    notes: str | None
    submitted_at: datetime | None
    approved_at: datetime | None
    converted_to_po: uuid.UUID | None
    created_at: datetime
    items: list[PurchaseRequestItemOut] = []
    approvals: list[PurchaseRequestApprovalOut] = []


class ResolvedLevelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: int
    rule_id: uuid.UUID
    rule_level: int
    approver_role: str | None
    specific_approver_id: uuid.UUID | None
    eligible_approver_ids: list[uuid.UUID]

    @classmethod
    def from_resolved(cls, resolved) -> "ResolvedLevelOut":
        return cls(
            level=resolved.level,
            rule_id=resolved.rule_id,
            rule_level=resolved.rule_level,
            approver_role=resolved.approver_role,
            specific_approver_id=resolved.specific_approver_id,
            eligible_approver_ids=sorted(resolved.eligible_approver_ids, key=str),
        )


class SubmitResponse(BaseModel):
    purchase_request: PurchaseRequestOut
    levels: list[ResolvedLevelOut]


class POLineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


class PurchaseOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    pr_id: uuid.UUID | None
    supplier_id: uuid.UUID
    order_date: date
    expected_delivery_date: date | None
    status: str
    payment_terms: int
    currency: str
    subtotal: Decimal
    total_amount: Decimal
    notes: str | None
    line_items: list[POLineItemOut] = []


class PendingApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pr_id: uuid.UUID
    level: int
    approver_role: str | None
    status: str
    created_at: datetime


class PendingApprovalListResponse(BaseModel):
    items: list[PendingApprovalOut]
    total: int


class PurchaseRequestListResponse(BaseModel):
    items: list[PurchaseRequestOut]
    total: int
    page: int
    page_size: int
