import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.approval_rule import ApprovalEntityType
from app.models.user import ROLES
from app.schemas.purchase_request import ResolvedLevelOut


class ApprovalRuleIn(BaseModel):
    entity_type: ApprovalEntityType = ApprovalEntityType.purchase_request
    amount_min: Decimal = Field(default=Decimal("0"), ge=0)
    amount_max: Decimal | None = None
    currency: str = Field(default="USD", min_length=3, max_length=3)
    level: int = Field(ge=1)
    approver_role: str | None = None
    specific_approver_id: uuid.UUID | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_rule(self) -> "ApprovalRuleIn":
        if (self.approver_role is None) == (self.specific_approver_id is None):
            raise ValueError("Set exactly one of approver_role or specific_approver_id.")
        if self.approver_role is not None and self.approver_role not in ROLES:
            raise ValueError(f"Unknown role '{self.approver_role}'.")
        if self.amount_max is not None and self.amount_max <= self.amount_min:
            raise ValueError("amount_max must be greater than amount_min.")
        self.currency = self.currency.upper()
        return self


class ApprovalRuleUpdate(BaseModel):
    amount_min: Decimal | None = Field(default=None, ge=0)
    amount_max: Decimal | None = None
    level: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class ApprovalRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entity_type: ApprovalEntityType
    amount_min: Decimal
    amount_max: Decimal | None
    currency: str
    level: int
    approver_role: str | None
    specific_approver_id: uuid.UUID | None
    is_active: bool
    created_at: datetime


class ChainPreviewOut(BaseModel):
    entity_type: ApprovalEntityType
    amount: Decimal
    currency: str
    levels: list[ResolvedLevelOut]

