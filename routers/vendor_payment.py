from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
import logging

from database.connection import get_db
from routers.auth import require_admin, require_vendor
from schemas.user import Principal
from schemas.payment import VendorPaymentResponse, ProcessPaymentRequest, BulkProcessRequest
from models.payment import VendorPaymentStatus
from services.commission import CommissionService
from services.notification import NotificationService
from core.response import success_response, paginated_response

logger = logging.getLogger(__name__)
router = APIRouter()

def get_commission(db: Session = Depends(get_db)) -> CommissionService:
    return CommissionService(db, NotificationService(db))

@router.get("")
def list_vendor_payments(
    status_filter: Optional[VendorPaymentStatus] = Query(None, alias="status"),
    vendor_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(require_admin),
    commission: CommissionService = Depends(get_commission)
):
    payments, total = commission.list_payments(vendor_id, status_filter, date_from, date_to, page, per_page)
    return paginated_response(
        data=[VendorPaymentResponse.model_validate(p) for p in payments],
        page=page,
        per_page=per_page,
        total_items=total,
        message="Vendor payments retrieved successfully"
    )

@router.get("/mine")
def my_vendor_payments(
    status_filter: Optional[VendorPaymentStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(require_vendor),
    commission: CommissionService = Depends(get_commission)
):
    payments, total = commission.list_payments(current_user.user_id, status_filter, page=page, per_page=per_page)
    return paginated_response(
        data=[VendorPaymentResponse.model_validate(p) for p in payments],
        page=page,
        per_page=per_page,
        total_items=total,
        message="Vendor payments retrieved successfully"
    )

@router.get("/cod-summary")
def cod_summary(
    current_user: Principal = Depends(require_admin),
    commission: CommissionService = Depends(get_commission)
):
    return success_response(data=commission.cod_summary(), message="COD payments summary retrieved successfully")

@router.get("/vendor/{vendor_id}/summary")
def vendor_summary(
    vendor_id: str,
    current_user: Principal = Depends(require_admin),
    commission: CommissionService = Depends(get_commission)
):
    return success_response(data=commission.vendor_summary(vendor_id), message="Vendor payment summary retrieved successfully")

@router.put("/bulk-process")
def bulk_process(
    request: BulkProcessRequest,
    current_user: Principal = Depends(require_admin),
    commission: CommissionService = Depends(get_commission)
):
    result = commission.bulk_process(request.payment_ids, request.payment_method, request.notes)
    return success_response(data=result, message=f"{result['processed_count']} vendor payment(s) processed")

@router.put("/{payment_id}/approve")
def approve_payment(
    payment_id: str,
    current_user: Principal = Depends(require_admin),
    commission: CommissionService = Depends(get_commission)
):
    payment = commission.approve(payment_id)
    return success_response(data=VendorPaymentResponse.model_validate(payment), message="Vendor payment approved")

@router.put("/{payment_id}/process")
def process_payment(
    payment_id: str,
    request: Optional[ProcessPaymentRequest] = None,
    current_user: Principal = Depends(require_admin),
    commission: CommissionService = Depends(get_commission)
):
    request = request or ProcessPaymentRequest()
    payment = commission.process(payment_id, request.payment_method, request.transaction_id, request.notes)
    return success_response(data=VendorPaymentResponse.model_validate(payment), message="Vendor payment processed successfully")
