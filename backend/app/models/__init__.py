from app.models.user import User
from app.models.approval_rule import ApprovalEntityType, ApprovalRule
from app.models.purchase_order import PurchaseOrder, POLineItem
from app.models.purchase_request import PurchaseRequest, PurchaseRequestItem, PurchaseRequestApproval
from app.models.goods_receipt import GoodsReceipt, GRLineItem
from app.models.vendor_bill import VendorBill, VendorBillLineItem
from app.models.matching import MatchResult
from app.models.audit import AuditLog

__all__ = [
    "User",
    "ApprovalEntityType", "ApprovalRule",
    "PurchaseOrder", "POLineItem",
    "PurchaseRequest", "PurchaseRequestItem", "PurchaseRequestApproval",
    "GoodsReceipt", "GRLineItem",
    "VendorBill", "VendorBillLineItem",
    "MatchResult",
    "AuditLog",
]
