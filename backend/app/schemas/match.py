import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ─── match_details document ───

class _LineBase(BaseModel):
    product_id: uuid.UUID | None  # None for bill lines with no product assigned
    description: str | None = None
    ordered_qty: Decimal
    received_qty: Decimal
    billed_qty: Decimal
    po_unit_price: Decimal | None
    bill_unit_price: Decimal | None
    quantity_variance: Decimal
    price_variance: Decimal


class MatchedLine(_LineBase):
    kind: Literal["matched"] = "matched"


class VarianceLine(_LineBase):
    kind: Literal["variance"] = "variance"
    quantity_out_of_tolerance: bool = False
    billed_vs_received_out_of_tolerance: bool = False
    price_out_of_tolerance: bool = False


MatchLine = Annotated[Union[MatchedLine, VarianceLine], Field(discriminator="kind")]


class MatchDetails(BaseModel):
    """Line-level breakdown stored on MatchResult.match_details."""

    qty_tolerance: Decimal
    price_tolerance: Decimal
    gr_ids: list[uuid.UUID] = []
    bill_ids: list[uuid.UUID] = []
    lines: list[MatchLine] = []


# ─── API ───

class MatchResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    po_id: uuid.UUID
    gr_id: uuid.UUID | None
    bill_id: uuid.UUID | None
    status: str
    quantity_variance: Decimal
    price_variance: Decimal
    match_details: MatchDetails
    matched_at: datetime | None
    resolved_by: uuid.UUID | None
    resolved_at: datetime | None
    notes: str | None


class MatchResultListResponse(BaseModel):
    items: list[MatchResultOut]
    total: int


class RunMatchRequest(BaseModel):
    gr_id: uuid.UUID | None = None
    bill_id: uuid.UUID | None = None


class ResolveRequest(BaseModel):
    notes: str = Field(min_length=1)
