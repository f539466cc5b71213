"""Pydantic schemas for goods receipts and vendor bills."""
import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings


# ─── Goods receipts ───

class GoodsReceiptLineIn(BaseModel):
    product_id: uuid.UUID
    quantity: Decimal = Field(gt=0)
    batch_number: str | None = Field(default=None, max_length=100)
    expiry_date: date | None = None


class GoodsReceiptCreate(BaseModel):
    po_id: uuid.UUID
    gr_number: str | None = Field(default=None, max_length=100)  # generated when omitted
    warehouse_id: uuid.UUID | None = None
    notes: str | None = None
    items: list[GoodsReceiptLineIn] = Field(min_length=1)


class GoodsReceiptLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: Decimal
    batch_number: str | None
    expiry_date: date | None


class GoodsReceiptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    gr_number: str
    po_id: uuid.UUID
    warehouse_id: uuid.UUID | None
    status: str
    received_by: uuid.UUID | None
    received_at: datetime
    notes: str | None
    line_items: list[GoodsReceiptLineOut] = []


class GoodsReceiptListResponse(BaseModel):
    items: list[GoodsReceiptOut]
    total: int
    page: int
    page_size: int


# ─── Vendor bills ───

class VendorBillLineIn(BaseModel):
    product_id: uuid.UUID | None = None
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    description: str | None = None


class VendorBillCreate(BaseModel):
    """A supplier invoice. supplier_id defaults to the linked PO's supplier."""

    bill_number: str = Field(min_length=1, max_length=100)
    supplier_id: uuid.UUID | None = None
    po_id: uuid.UUID | None = None
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    bill_date: date
    due_date: date | None = None
    items: list[VendorBillLineIn] = Field(min_length=1)


class VendorBillLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID | None
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    description: str | None


class VendorBillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    bill_number: str
    supplier_id: uuid.UUID
    po_id: uuid.UUID | None
    total_amount: Decimal
    currency: str
    status: str
    bill_date: date
    due_date: date | None
    line_items: list[VendorBillLineOut] = []


class VendorBillListResponse(BaseModel):
    items: list[VendorBillOut]
    total: int
    page: int
    page_size: int
