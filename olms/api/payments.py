"""
Payment endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import RecordPaymentRequest, PageParams, page_params, paginated
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_payments(
    loan_id: Optional[str] = Query(None, alias="loanId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    payment_type: Optional[str] = Query(None, alias="paymentType"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(require_permission(Permission.VIEW_PAYMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    """List payments, newest first, with their loan reference"""
    payments, total = system.payment_processor.list_payments(
        loan_id=loan_id, customer_id=customer_id, payment_type=payment_type,
        page=paging.page, limit=paging.limit
    )
    items = []
    for payment in payments:
        data = payment.to_dict()
        loan = system.loan_manager.get_loan(payment.loan_id)
        data["loan_reference_number"] = loan.loan_reference_number if loan else None
        customer = system.customer_manager.get_customer(payment.customer_id)
        data["customer"] = customer.summary() if customer else None
        items.append(data)
    return paginated(items, total, paging.page, paging.limit)


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_payment(
    request: RecordPaymentRequest,
    user: User = Depends(require_permission(Permission.RECORD_PAYMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Record a payment and apply it to the loan"""
    payment = system.payment_processor.record_payment(
        loan_id=request.loan_id,
        amount=request.amount,
        payment_type=request.payment_type,
        payment_method=request.payment_method,
        principal_amount=request.principal_amount,
        interest_amount=request.interest_amount,
        penalty_amount=request.penalty_amount,
        transaction_id=request.transaction_id,
        notes=request.notes,
        user_id=user.id
    )
    loan = system.loan_manager.get_loan(payment.loan_id)
    return {
        "payment": payment.to_dict(),
        "loan": loan.to_dict() if loan else None,
        "message": "Payment recorded successfully"
    }


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    user: User = Depends(require_permission(Permission.VIEW_PAYMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    payment = system.payment_processor.get_payment(payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment.to_dict()
