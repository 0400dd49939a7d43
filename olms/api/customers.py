"""
Customer management endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import (
    CreateCustomerRequest,
    UpdateCustomerRequest,
    PageParams,
    page_params,
    paginated
)
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_customers(
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(require_permission(Permission.VIEW_CUSTOMER)),
    system: LoanManagementSystem = Depends(get_system)
):
    """List customers, newest first"""
    customers, total = system.customer_manager.list_customers(
        search=search, status=status_filter, page=paging.page, limit=paging.limit
    )
    items = []
    for customer in customers:
        data = customer.to_dict()
        data["active_loans"] = system.customer_manager.active_loan_count(customer.id)
        items.append(data)
    return paginated(items, total, paging.page, paging.limit)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CreateCustomerRequest,
    user: User = Depends(require_permission(Permission.MANAGE_CUSTOMER)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Create a new customer"""
    fields = request.model_dump()
    customer = system.customer_manager.create_customer(
        first_name=fields.pop("first_name"),
        last_name=fields.pop("last_name"),
        phone=fields.pop("phone"),
        user_id=user.id,
        branch_id=fields.pop("branch_id") or user.branch_id,
        date_of_birth=fields.pop("date_of_birth"),
        annual_income=fields.pop("annual_income"),
        **fields
    )
    return {"customer": customer.to_dict(), "message": "Customer created successfully"}


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    user: User = Depends(require_permission(Permission.VIEW_CUSTOMER)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Customer with ornaments, loans and latest notes"""
    customer = system.customer_manager.require_customer(customer_id)
    ornaments, _ = system.ornament_manager.list_ornaments(customer_id=customer_id, limit=1000)
    loans, _ = system.loan_manager.list_loans(customer_id=customer_id, limit=1000)
    notes = system.note_manager.list_notes(customer_id=customer_id, limit=10)

    data = customer.to_dict()
    data["ornaments"] = [o.to_dict() for o in ornaments]
    data["loans"] = [loan.to_dict() for loan in loans]
    data["notes"] = [n.to_dict() for n in notes]
    return data


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    request: UpdateCustomerRequest,
    user: User = Depends(require_permission(Permission.MANAGE_CUSTOMER)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Update customer information"""
    customer = system.customer_manager.update_customer(customer_id, request.changes(), user_id=user.id)
    return {"customer": customer.to_dict(), "message": "Customer updated successfully"}


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    user: User = Depends(require_permission(Permission.MANAGE_CUSTOMER)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Delete a customer without active loans"""
    system.customer_manager.delete_customer(customer_id, user_id=user.id)
    return {"message": "Customer deleted successfully"}
