"""Approval ladder configuration."""
import enum
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin


class ApprovalEntityType(str, enum.Enum):
    purchase_request = "purchase_request"
    purchase_order = "purchase_order"


class ApprovalRule(Base, UUIDMixin, TimestampMixin):
    """One rung of an approval ladder for an entity kind and amount window.

    The window is half-open: amount_min <= amount < amount_max, with a null
    amount_max meaning unbounded.
    """

    __tablename__ = "approval_rules"
    __table_args__ = (
        CheckConstraint("level >= 1", name="ck_approval_rules_level_positive"),
        CheckConstraint(
            "(approver_role IS NULL) <> (specific_approver_id IS NULL)",
            name="ck_approval_rules_one_approver",
        ),
    )

    entity_type: Mapped[ApprovalEntityType] = mapped_column(
        SAEnum(ApprovalEntityType, name="approval_entity_type", native_enum=False),
        nullable=False,
        index=True,
    )
    amount_min: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    amount_max: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    approver_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    specific_approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
