import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin

PR_STATUSES = ("draft", "submitted", "approved", "rejected", "converted", "cancelled")
APPROVAL_STATUSES = ("pending", "approved", "rejected")


class PurchaseRequest(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "purchase_requests"

    pr_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    supplier_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="draft", index=True
    )  # draft, submitted, approved, rejected, converted, cancelled
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    converted_to_po: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("purchase_orders.id"), nullable=True
    )

    items: Mapped[list["PurchaseRequestItem"]] = relationship(
        "PurchaseRequestItem", back_populates="purchase_request", cascade="all, delete-orphan"
    )
    approvals: Mapped[list["PurchaseRequestApproval"]] = relationship(
        "PurchaseRequestApproval",
        back_populates="purchase_request",
        order_by="PurchaseRequestApproval.level",
        cascade="all, delete-orphan",
    )


class PurchaseRequestItem(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "purchase_request_items"

    pr_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    line_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    purchase_request: Mapped["PurchaseRequest"] = relationship("PurchaseRequest", back_populates="items")


class PurchaseRequestApproval(Base, UUIDMixin, TimestampMixin):
    """One level of a PR's approval chain, materialized at submission.

    eligible_approver_ids is frozen when the PR is submitted; later role
    changes do not grant or revoke the right to decide this level.
    """

    __tablename__ = "purchase_request_approvals"
    __table_args__ = (UniqueConstraint("pr_id", "level", name="uq_pr_approvals_pr_level"),)

    pr_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approval_rules.id"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True
    )  # specific approver, or whoever decided a role level
    eligible_approver_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending, approved, rejected
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    purchase_request: Mapped["PurchaseRequest"] = relationship("PurchaseRequest", back_populates="approvals")
