"""Seed script — creates tables, directory users, approval rules and a sample PO/GR/bill.

Idempotent: checks for existing records before inserting.
Run: python backend/scripts/seed.py
"""
import asyncio
import os
import sys
from datetime import date, datetime, timezone
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401
from app.core.config import settings
from app.db.base import Base
from app.models.approval_rule import ApprovalEntityType, ApprovalRule
from app.models.goods_receipt import GoodsReceipt, GRLineItem
from app.models.purchase_order import POLineItem, PurchaseOrder
from app.models.user import User
from app.models.vendor_bill import VendorBill, VendorBillLineItem

NOW = datetime.now(timezone.utc)

# Paracetamol 500mg, Amoxicillin 250mg
PRODUCT_PARACETAMOL = "7d2a4f6e-0c8b-4a51-9a55-3f0e8f1a0001"
PRODUCT_AMOXICILLIN = "7d2a4f6e-0c8b-4a51-9a55-3f0e8f1a0002"
SUPPLIER_ID = "5b1c3e9a-2d4f-4c6a-8e0b-1a2b3c4d0001"


# ─── Upsert helpers ───────────────────────────────────────────────────────────

async def _upsert_user(db: AsyncSession, email: str, name: str, role: str) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(email=email, name=name, role=role, is_active=True)
    db.add(user)
    await db.flush()
    print(f"  [new]  User {email} ({role})")
    return user


async def _upsert_rule(
    db: AsyncSession,
    level: int,
    amount_min: str,
    amount_max: str | None,
    approver_role: str | None = None,
    specific_approver: User | None = None,
) -> None:
    result = await db.execute(
        select(ApprovalRule).where(
            ApprovalRule.entity_type == ApprovalEntityType.purchase_request,
            ApprovalRule.level == level,
            ApprovalRule.amount_min == Decimal(amount_min),
        )
    )
    if result.scalars().first():
        print(f"  [skip] Rule level {level} from {amount_min}")
        return
    db.add(
        ApprovalRule(
            entity_type=ApprovalEntityType.purchase_request,
            amount_min=Decimal(amount_min),
            amount_max=Decimal(amount_max) if amount_max else None,
            currency="USD",
            level=level,
            approver_role=approver_role,
            specific_approver_id=specific_approver.id if specific_approver else None,
        )
    )
    await db.flush()
    print(f"  [new]  Rule level {level} [{amount_min}, {amount_max or '∞'})")


async def _seed_sample_po(db: AsyncSession, buyer: User) -> None:
    import uuid

    result = await db.execute(select(PurchaseOrder).where(PurchaseOrder.order_number == "PO-SEED-0001"))
    if result.scalars().first():
        print("  [skip] PO-SEED-0001")
        return

    para, amox = uuid.UUID(PRODUCT_PARACETAMOL), uuid.UUID(PRODUCT_AMOXICILLIN)
    po = PurchaseOrder(
        order_number="PO-SEED-0001",
        supplier_id=uuid.UUID(SUPPLIER_ID),
        order_date=date.today(),
        currency="USD",
        subtotal=Decimal("1625.00"),
        total_amount=Decimal("1625.00"),
        created_by=buyer.id,
        line_items=[
            POLineItem(product_id=para, quantity=Decimal("500"), unit_price=Decimal("1.25"), total_price=Decimal("625.00")),
            POLineItem(product_id=amox, quantity=Decimal("200"), unit_price=Decimal("5.00"), total_price=Decimal("1000.00")),
        ],
    )
    db.add(po)
    await db.flush()

    # short receipt on amoxicillin so the sample match shows a variance
    db.add(
        GoodsReceipt(
            gr_number="GR-SEED-0001",
            po_id=po.id,
            status="posted",
            received_by=buyer.id,
            received_at=NOW,
            line_items=[
                GRLineItem(product_id=para, quantity=Decimal("500"), batch_number="PCM-24-117"),
                GRLineItem(product_id=amox, quantity=Decimal("180"), batch_number="AMX-24-031"),
            ],
        )
    )
    db.add(
        VendorBill(
            bill_number="BILL-SEED-0001",
            supplier_id=po.supplier_id,
            po_id=po.id,
            total_amount=Decimal("1525.00"),
            status="posted",
            bill_date=date.today(),
            line_items=[
                VendorBillLineItem(product_id=para, quantity=Decimal("500"), unit_price=Decimal("1.25"), line_total=Decimal("625.00")),
                VendorBillLineItem(product_id=amox, quantity=Decimal("180"), unit_price=Decimal("5.00"), line_total=Decimal("900.00")),
            ],
        )
    )
    await db.flush()
    print("  [new]  PO-SEED-0001 with GR-SEED-0001 and BILL-SEED-0001")


async def main() -> None:
    engine = create_async_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as db:
        print("Users:")
        await _upsert_user(db, "admin@pharma.local", "System Admin", "admin")
        cfo = await _upsert_user(db, "cfo@pharma.local", "Chief Financial Officer", "finance")
        await _upsert_user(db, "finance@pharma.local", "Finance Analyst", "finance")
        buyer = await _upsert_user(db, "buyer@pharma.local", "Inventory Buyer", "inventory")

        print("Approval rules:")
        await _upsert_rule(db, 1, "0", None, approver_role="finance")
        await _upsert_rule(db, 2, "10000", None, approver_role="admin")
        await _upsert_rule(db, 3, "50000", None, specific_approver=cfo)

        print("Sample documents:")
        await _seed_sample_po(db, buyer)

        await db.commit()
    await engine.dispose()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
