"""Shared fixtures: SQLite-backed sync sessions and small record factories."""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.limiter import limiter
from app.db.base import Base
from app.models.approval_rule import ApprovalEntityType, ApprovalRule
from app.models.goods_receipt import GoodsReceipt, GRLineItem
from app.models.purchase_order import POLineItem, PurchaseOrder
from app.models.purchase_request import PurchaseRequest, PurchaseRequestItem
from app.models.user import User
from app.models.vendor_bill import VendorBill, VendorBillLineItem
from app.services import notifications


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset notification subscribers and the rate limiter between tests."""
    limiter.reset()
    yield
    notifications._subscribers.clear()


@pytest.fixture
def events():
    """Capture dispatched workflow events."""
    captured: list[notifications.WorkflowEvent] = []
    notifications.subscribe(captured.append)
    return captured


class Factory:
    def __init__(self, db: Session):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def user(self, role: str = "finance", is_active: bool = True) -> User:
        n = self._next()
        user = User(email=f"user{n}@pharma.test", name=f"User {n}", role=role, is_active=is_active)
        self.db.add(user)
        self.db.commit()
        return user

    def rule(
        self,
        level: int,
        amount_min: str = "0",
        amount_max: str | None = None,
        approver_role: str | None = None,
        specific_approver_id: uuid.UUID | None = None,
        currency: str = "USD",
        entity_type: ApprovalEntityType = ApprovalEntityType.purchase_request,
        is_active: bool = True,
    ) -> ApprovalRule:
        rule = ApprovalRule(
            entity_type=entity_type,
            amount_min=Decimal(amount_min),
            amount_max=Decimal(amount_max) if amount_max is not None else None,
            currency=currency,
            level=level,
            approver_role=approver_role,
            specific_approver_id=specific_approver_id,
            is_active=is_active,
        )
        self.db.add(rule)
        self.db.commit()
        return rule

    def purchase_request(
        self,
        requester: User,
        lines: list[tuple[str, str]] = (("10", "100.00"),),
        currency: str = "USD",
        supplier_id: uuid.UUID | None = None,
    ) -> PurchaseRequest:
        """Draft PR; lines are (quantity, unit_price) pairs."""
        items = []
        total = Decimal("0")
        for qty, price in lines:
            line_total = Decimal(qty) * Decimal(price)
            total += line_total
            items.append(
                PurchaseRequestItem(
                    product_id=uuid.uuid4(),
                    quantity=Decimal(qty),
                    unit_price=Decimal(price),
                    line_total=line_total,
                )
            )
        pr = PurchaseRequest(
            pr_number=f"PR-TEST-{self._next():04d}",
            requester_id=requester.id,
            supplier_id=supplier_id or uuid.uuid4(),
            currency=currency,
            total_amount=total,
            status="draft",
            items=items,
        )
        self.db.add(pr)
        self.db.commit()
        return pr

    def purchase_order(self, lines: list[tuple[uuid.UUID, str, str]]) -> PurchaseOrder:
        """PO with (product_id, quantity, unit_price) lines."""
        po = PurchaseOrder(
            order_number=f"PO-TEST-{self._next():04d}",
            supplier_id=uuid.uuid4(),
            order_date=date(2024, 3, 1),
            line_items=[
                POLineItem(
                    product_id=pid,
                    quantity=Decimal(qty),
                    unit_price=Decimal(price),
                    total_price=Decimal(qty) * Decimal(price),
                )
                for pid, qty, price in lines
            ],
        )
        self.db.add(po)
        self.db.commit()
        return po

    def goods_receipt(
        self,
        po: PurchaseOrder,
        lines: list[tuple[uuid.UUID, str]],
        status: str = "posted",
    ) -> GoodsReceipt:
        gr = GoodsReceipt(
            gr_number=f"GR-TEST-{self._next():04d}",
            po_id=po.id,
            status=status,
            received_at=datetime(2024, 3, 5, tzinfo=timezone.utc),
            line_items=[GRLineItem(product_id=pid, quantity=Decimal(qty)) for pid, qty in lines],
        )
        self.db.add(gr)
        self.db.commit()
        return gr

    def vendor_bill(
        self,
        po: PurchaseOrder,
        lines: list[tuple[uuid.UUID | None, str, str]],
        status: str = "posted",
    ) -> VendorBill:
        bill_lines = [
            VendorBillLineItem(
                product_id=pid,
                quantity=Decimal(qty),
                unit_price=Decimal(price),
                line_total=Decimal(qty) * Decimal(price),
                description=None if pid else "Unmapped OCR line",
            )
            for pid, qty, price in lines
        ]
        bill = VendorBill(
            bill_number=f"BILL-TEST-{self._next():04d}",
            supplier_id=po.supplier_id,
            po_id=po.id,
            total_amount=sum((bl.line_total for bl in bill_lines), Decimal("0")),
            status=status,
            bill_date=date(2024, 3, 10),
            line_items=bill_lines,
        )
        self.db.add(bill)
        self.db.commit()
        return bill


@pytest.fixture
def make(db) -> Factory:
    return Factory(db)


@pytest.fixture
def factory_for():
    """Build a Factory bound to a session the test manages itself."""
    return Factory
