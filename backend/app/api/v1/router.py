from fastapi import APIRouter

from app.api.v1 import approval_rules, approvals, goods_receipts, match, purchase_requests, vendor_bills

api_router = APIRouter()

api_router.include_router(purchase_requests.router, prefix="/purchase-requests", tags=["purchase-requests"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(approval_rules.router, prefix="/approval-rules", tags=["approval-rules"])
api_router.include_router(goods_receipts.router, prefix="/goods-receipts", tags=["goods-receipts"])
api_router.include_router(vendor_bills.router, prefix="/vendor-bills", tags=["vendor-bills"])
api_router.include_router(match.router, prefix="/match", tags=["match"])
