import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin

MATCH_STATUSES = (
    "matched",
    "quantity_mismatch",
    "price_mismatch",
    "missing_receipt",
    "missing_bill",
    "pending",
)


class MatchResult(Base, UUIDMixin, TimestampMixin):
    """Current three-way match outcome for a PO (overwritten on re-run)."""

    __tablename__ = "match_results"

    po_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("purchase_orders.id"), nullable=False, index=True, unique=True
    )
    gr_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("goods_receipts.id"), nullable=True
    )
    bill_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendor_bills.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    quantity_variance: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    price_variance: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    match_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # see app.schemas.match.MatchDetails
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
