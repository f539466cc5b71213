"""Purchase request lifecycle service.

State machine:
    draft → submitted → approved | rejected
    approved → converted
    draft | submitted → cancelled

All functions accept a sync SQLAlchemy Session and commit their own
transaction. Workflow events are dispatched only after the commit.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.errors import (
    EntityNotFound,
    InvalidState,
    NoApprovalRuleConfigured,
    StaleApprovalDecision,
    UnauthorizedApprover,
)
from app.models.approval_rule import ApprovalEntityType
from app.models.purchase_order import POLineItem, PurchaseOrder
from app.models.purchase_request import PurchaseRequest, PurchaseRequestApproval, PurchaseRequestItem
from app.schemas.purchase_request import ApprovalDecision, ConvertRequest, PurchaseRequestCreate
from app.services import audit as audit_svc
from app.services import notifications
from app.services.approval_rules import ResolvedLevel, resolver_for

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _abort(db: Session, exc: Exception) -> Exception:
    """Release the row lock before a guard failure propagates."""
    db.rollback()
    return exc


def _load_pr(db: Session, pr_id: uuid.UUID, lock: bool = False) -> PurchaseRequest:
    stmt = select(PurchaseRequest).where(PurchaseRequest.id == pr_id)
    if lock:
        stmt = stmt.with_for_update()
    pr = db.execute(stmt).scalars().first()
    if pr is None:
        raise _abort(db, EntityNotFound(f"Purchase request {pr_id} not found."))
    return pr


def _notify(event_type: str, pr: PurchaseRequest, recipients, **payload) -> None:
    notifications.dispatch(
        notifications.WorkflowEvent(
            event_type=event_type,
            entity_type="purchase_request",
            entity_id=pr.id,
            recipient_ids=sorted({uuid.UUID(str(r)) for r in recipients}, key=str),
            payload={"pr_number": pr.pr_number, "status": pr.status, **payload},
        )
    )


# ─── Create ───

def create_purchase_request(
    db: Session,
    requester_id: uuid.UUID,
    body: PurchaseRequestCreate,
) -> PurchaseRequest:
    """Create a draft PR; line totals and the PR total are derived from the items."""
    total = Decimal("0")
    items: list[PurchaseRequestItem] = []
    for line in body.items:
        line_total = None
        if line.unit_price is not None:
            line_total = _money(line.quantity * line.unit_price)
            total += line_total
        items.append(
            PurchaseRequestItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line_total,
                notes=line.notes,
            )
        )

    today = datetime.now(timezone.utc)
    pr = PurchaseRequest(
        pr_number=f"PR-{today:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}",
        requester_id=requester_id,
        supplier_id=body.supplier_id,
        currency=body.currency.upper(),
        total_amount=total,
        status="draft",
        notes=body.notes,
        items=items,
    )
    db.add(pr)
    db.flush()

    audit_svc.log(
        db=db,
        action="purchase_request.created",
        entity_type="purchase_request",
        entity_id=pr.id,
        actor_id=requester_id,
        after=audit_svc.snapshot(pr, "status", "total_amount", "currency", "supplier_id"),
    )
    db.commit()
    logger.info("Purchase request %s created (%s %s)", pr.pr_number, total, pr.currency)
    return pr


# ─── Submit ───

def submit_purchase_request(
    db: Session,
    pr_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> list[ResolvedLevel]:
    """Resolve the approval chain and materialize one pending row per level.

    Raises:
        NoApprovalRuleConfigured: No rule covers the PR; nothing is written
            and the PR stays draft.
        InvalidState: The PR is not a draft.
    """
    pr = _load_pr(db, pr_id, lock=True)
    if pr.status != "draft":
        raise _abort(db, InvalidState(
            f"Purchase request {pr.pr_number} is {pr.status}; only drafts can be submitted."
        ))

    try:
        chain = resolver_for(ApprovalEntityType.purchase_request).resolve_for(db, pr)
    except NoApprovalRuleConfigured:
        db.rollback()
        logger.warning("Submission blocked for %s: no approval rule configured.", pr_id)
        raise

    now = datetime.now(timezone.utc)
    for resolved in chain:
        pr.approvals.append(
            PurchaseRequestApproval(
                rule_id=resolved.rule_id,
                level=resolved.level,
                rule_level=resolved.rule_level,
                approver_role=resolved.approver_role,
                approver_id=resolved.specific_approver_id,
                eligible_approver_ids=sorted(str(u) for u in resolved.eligible_approver_ids),
                status="pending",
                notified_at=now if resolved.level == 1 else None,
            )
        )
    pr.status = "submitted"
    pr.submitted_at = now
    db.flush()

    audit_svc.log(
        db=db,
        action="purchase_request.submitted",
        entity_type="purchase_request",
        entity_id=pr.id,
        actor_id=actor_id,
        before={"status": "draft"},
        after={
            "status": pr.status,
            "levels": [
                {"level": r.level, "rule_id": str(r.rule_id), "eligible": len(r.eligible_approver_ids)}
                for r in chain
            ],
        },
    )
    db.commit()

    logger.info("Purchase request %s submitted with %d approval level(s)", pr.pr_number, len(chain))
    _notify("pr_submitted", pr, chain[0].eligible_approver_ids, level=1)
    return chain


# ─── Decide ───

def decide_purchase_request_approval(
    db: Session,
    pr_id: uuid.UUID,
    level: int,
    approver_id: uuid.UUID,
    decision: ApprovalDecision | str,
    comment: str | None = None,
) -> PurchaseRequest:
    """Record one approver's decision on one level of a submitted PR.

    A rejection ends the workflow immediately; later levels are never
    evaluated. The PR becomes approved once every level is approved.

    Raises:
        InvalidState: PR is not submitted, or a lower level is still open.
        EntityNotFound: PR or level does not exist.
        StaleApprovalDecision: The level was already decided, possibly by a
            concurrent request that won the conditional update.
        UnauthorizedApprover: approver_id was not eligible when the PR was
            submitted.
    """
    decision = ApprovalDecision(decision)

    pr = _load_pr(db, pr_id, lock=True)
    if pr.status != "submitted":
        raise _abort(db, InvalidState(
            f"Purchase request {pr.pr_number} is {pr.status}; decisions are only accepted while submitted."
        ))

    approvals = sorted(pr.approvals, key=lambda a: a.level)
    row = next((a for a in approvals if a.level == level), None)
    if row is None:
        raise _abort(db, EntityNotFound(f"Purchase request {pr.pr_number} has no approval level {level}."))
    if row.status != "pending":
        raise _abort(db, StaleApprovalDecision(
            f"Approval level {level} of {pr.pr_number} is already {row.status}."
        ))

    open_below = [a.level for a in approvals if a.level < level and a.status != "approved"]
    if open_below:
        raise _abort(db, InvalidState(
            f"Level {open_below[0]} must be approved before level {level} can be decided."
        ))

    if str(approver_id) not in row.eligible_approver_ids:
        raise _abort(db, UnauthorizedApprover(
            f"User {approver_id} may not decide level {level} of {pr.pr_number}."
        ))

    now = datetime.now(timezone.utc)
    new_status = "approved" if decision is ApprovalDecision.approve else "rejected"

    result = db.execute(
        update(PurchaseRequestApproval)
        .where(
            PurchaseRequestApproval.id == row.id,
            PurchaseRequestApproval.status == "pending",
        )
        .values(status=new_status, approver_id=approver_id, decided_at=now, comment=comment)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning("Lost decision race on %s level %s (approver=%s)", pr_id, level, approver_id)
        raise StaleApprovalDecision(
            f"Approval level {level} of purchase request {pr_id} was decided concurrently; refetch and retry."
        )
    db.refresh(row)

    before = {"status": pr.status, "level": level, "level_status": "pending"}
    recipients: list = [pr.requester_id]

    if decision is ApprovalDecision.reject:
        pr.status = "rejected"
        event_type = "pr_rejected"
    elif all(a.status == "approved" for a in approvals):
        pr.status = "approved"
        pr.approved_at = now
        event_type = "pr_approved"
    else:
        next_row = next(a for a in approvals if a.status == "pending")
        next_row.notified_at = now
        recipients.extend(next_row.eligible_approver_ids)
        event_type = "pr_level_approved"

    db.flush()
    audit_svc.log(
        db=db,
        action=f"purchase_request.level_{new_status}",
        entity_type="purchase_request",
        entity_id=pr.id,
        actor_id=approver_id,
        before=before,
        after={"status": pr.status, "level": level, "level_status": new_status},
        notes=comment,
    )
    db.commit()

    logger.info(
        "Approval decision: pr=%s level=%s decision=%s approver=%s → pr.status=%s",
        pr.pr_number, level, decision.value, approver_id, pr.status,
    )
    _notify(event_type, pr, recipients, level=level, decision=decision.value)
    return pr


# ─── Cancel ───

def cancel_purchase_request(
    db: Session,
    pr_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> PurchaseRequest:
    pr = _load_pr(db, pr_id, lock=True)
    if pr.status not in ("draft", "submitted"):
        raise _abort(db, InvalidState(
            f"Purchase request {pr.pr_number} is {pr.status} and can no longer be cancelled."
        ))

    before = pr.status
    recipients: list = []
    for approval in pr.approvals:
        if approval.status == "pending" and approval.notified_at is not None:
            recipients.extend(approval.eligible_approver_ids)

    pr.status = "cancelled"
    db.flush()
    audit_svc.log(
        db=db,
        action="purchase_request.cancelled",
        entity_type="purchase_request",
        entity_id=pr.id,
        actor_id=actor_id,
        before={"status": before},
        after={"status": pr.status},
    )
    db.commit()

    logger.info("Purchase request %s cancelled (was %s)", pr.pr_number, before)
    _notify("pr_cancelled", pr, recipients)
    return pr


# ─── Convert ───

def convert_to_order(
    db: Session,
    pr_id: uuid.UUID,
    overrides: ConvertRequest | None = None,
    actor_id: uuid.UUID | None = None,
) -> PurchaseOrder:
    """Create a PO snapshot from an approved PR.

    Converting an already converted PR returns the PO created the first
    time instead of creating another one.
    """
    overrides = overrides or ConvertRequest()
    pr = _load_pr(db, pr_id, lock=True)

    if pr.status == "converted" and pr.converted_to_po is not None:
        po = db.get(PurchaseOrder, pr.converted_to_po)
        if po is None:
            raise _abort(db, EntityNotFound(
                f"Purchase order {pr.converted_to_po} for {pr.pr_number} not found."
            ))
        db.commit()
        logger.info("Purchase request %s already converted to %s", pr.pr_number, po.order_number)
        return po

    if pr.status != "approved":
        raise _abort(db, InvalidState(
            f"Purchase request {pr.pr_number} is {pr.status}; only approved requests convert."
        ))

    supplier_id = overrides.supplier_id or pr.supplier_id
    if supplier_id is None:
        raise _abort(db, InvalidState(
            f"Purchase request {pr.pr_number} has no supplier; pass supplier_id to convert."
        ))

    lines: list[POLineItem] = []
    for item in pr.items:
        if item.unit_price is None:
            raise _abort(db, InvalidState(f"Item {item.id} on {pr.pr_number} has no unit price."))
        lines.append(
            POLineItem(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=_money(item.quantity * item.unit_price),
            )
        )
    total = sum((line.total_price for line in lines), Decimal("0"))

    po = PurchaseOrder(
        order_number=overrides.order_number or f"PO-{pr.pr_number.removeprefix('PR-')}",
        pr_id=pr.id,
        supplier_id=supplier_id,
        order_date=overrides.order_date or date.today(),
        expected_delivery_date=overrides.expected_delivery_date,
        status="draft",
        payment_terms=overrides.payment_terms if overrides.payment_terms is not None else 30,
        currency=pr.currency,
        subtotal=total,
        total_amount=total,
        notes=overrides.notes if overrides.notes is not None else pr.notes,
        created_by=actor_id,
        line_items=lines,
    )
    db.add(po)
    db.flush()

    pr.status = "converted"
    pr.converted_to_po = po.id
    db.flush()

    audit_svc.log(
        db=db,
        action="purchase_request.converted",
        entity_type="purchase_request",
        entity_id=pr.id,
        actor_id=actor_id,
        before={"status": "approved"},
        after={"status": pr.status, "po_id": str(po.id), "order_number": po.order_number},
    )
    db.commit()

    logger.info("Purchase request %s converted to %s", pr.pr_number, po.order_number)
    _notify("pr_converted", pr, [pr.requester_id], po_id=str(po.id))
    return po


# ─── Queries ───

def pending_approvals_for(db: Session, user_id: uuid.UUID) -> list[PurchaseRequestApproval]:
    """Pending levels the user may decide right now (the lowest open level of each PR)."""
    stmt = (
        select(PurchaseRequestApproval)
        .join(PurchaseRequest, PurchaseRequest.id == PurchaseRequestApproval.pr_id)
        .where(
            PurchaseRequest.status == "submitted",
            PurchaseRequestApproval.status == "pending",
        )
        .order_by(
            PurchaseRequest.submitted_at,
            PurchaseRequestApproval.pr_id,
            PurchaseRequestApproval.level,
        )
    )

    seen: set[uuid.UUID] = set()
    actionable: list[PurchaseRequestApproval] = []
    for row in db.execute(stmt).scalars().all():
        if row.pr_id in seen:
            continue
        seen.add(row.pr_id)
        if str(user_id) in row.eligible_approver_ids:
            actionable.append(row)
    return actionable


def get_purchase_request(db: Session, pr_id: uuid.UUID) -> PurchaseRequest:
    return _load_pr(db, pr_id)


def list_purchase_requests(
    db: Session,
    status: str | None = None,
    requester_id: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[PurchaseRequest], int]:
    """Newest first."""
    stmt = select(PurchaseRequest)
    if status is not None:
        stmt = stmt.where(PurchaseRequest.status == status)
    if requester_id is not None:
        stmt = stmt.where(PurchaseRequest.requester_id == requester_id)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()
    return list(rows), total
