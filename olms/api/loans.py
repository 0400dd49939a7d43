"""
Loan lifecycle endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import CreateLoanRequest, UpdateLoanRequest, PageParams, page_params, paginated
from ..logging_config import get_logger, log_action
from ..rbac import Permission, User


logger = get_logger("olms.api.loans")

router = APIRouter()


@router.get("")
async def list_loans(
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    risk_zone: Optional[str] = Query(None, alias="riskZone"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(require_permission(Permission.VIEW_LOAN)),
    system: LoanManagementSystem = Depends(get_system)
):
    """List loans with customer summary and ornament count"""
    loans, total = system.loan_manager.list_loans(
        search=search, status=status_filter, risk_zone=risk_zone, customer_id=customer_id,
        page=paging.page, limit=paging.limit
    )
    items = []
    for loan in loans:
        data = loan.to_dict()
        customer = system.customer_manager.get_customer(loan.customer_id)
        data["customer"] = customer.summary() if customer else None
        data["ornament_count"] = len(system.ornament_manager.for_loan(loan.id))
        items.append(data)
    return paginated(items, total, paging.page, paging.limit)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    user: User = Depends(require_permission(Permission.MANAGE_LOAN)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Originate a loan against available ornaments"""
    loan = system.loan_manager.create_loan(
        customer_id=request.customer_id,
        principal_amount=request.principal_amount,
        ornament_ids=request.ornament_ids,
        interest_rate=request.interest_rate,
        interest_type=request.interest_type,
        tenure_months=request.tenure_months,
        branch_id=request.branch_id or user.branch_id,
        user_id=user.id
    )
    return {"loan": loan.to_dict(), "message": "Loan created successfully"}


@router.post("/refresh-risk")
async def refresh_risk(
    user: User = Depends(require_permission(Permission.REFRESH_RISK)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Re-evaluate LTV, overdue status and risk zone of every open loan"""
    summary = system.loan_manager.refresh_risk(user_id=user.id)
    log_action(
        logger, "info", "Risk refresh requested",
        user_id=user.id, action="refresh_risk", resource="loans", extra=summary
    )
    return summary


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    user: User = Depends(require_permission(Permission.VIEW_LOAN)),
    system: LoanManagementSystem = Depends(get_system)
):
    return system.loan_manager.get_loan_detail(loan_id)


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    user: User = Depends(require_permission(Permission.MANAGE_LOAN)),
    system: LoanManagementSystem = Depends(get_system)
):
    loan = system.loan_manager.update_loan(loan_id, request.changes(), user_id=user.id)
    return {"loan": loan.to_dict(), "message": "Loan updated successfully"}


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    user: User = Depends(require_permission(Permission.MANAGE_LOAN)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Delete a loan that is not ACTIVE"""
    system.loan_manager.delete_loan(loan_id, user_id=user.id)
    return {"message": "Loan deleted successfully"}


@router.post("/{loan_id}/reevaluate")
async def reevaluate_loan(
    loan_id: str,
    user: User = Depends(require_permission(Permission.REFRESH_RISK)),
    system: LoanManagementSystem = Depends(get_system)
):
    loan = system.loan_manager.reevaluate_loan(loan_id, user_id=user.id)
    return {"loan": loan.to_dict()}
