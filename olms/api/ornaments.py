"""
Ornament endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import (
    CreateOrnamentRequest,
    UpdateOrnamentRequest,
    PageParams,
    page_params,
    paginated
)
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_ornaments(
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(require_permission(Permission.VIEW_ORNAMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    ornaments, total = system.ornament_manager.list_ornaments(
        search=search, status=status_filter, customer_id=customer_id,
        page=paging.page, limit=paging.limit
    )
    customers = {}
    items = []
    for ornament in ornaments:
        if ornament.customer_id not in customers:
            customer = system.customer_manager.get_customer(ornament.customer_id)
            customers[ornament.customer_id] = customer.summary() if customer else None
        data = ornament.to_dict()
        data["customer"] = customers[ornament.customer_id]
        items.append(data)
    return paginated(items, total, paging.page, paging.limit)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ornament(
    request: CreateOrnamentRequest,
    user: User = Depends(require_permission(Permission.MANAGE_ORNAMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Register and appraise an ornament"""
    ornament = system.ornament_manager.create_ornament(
        customer_id=request.customer_id,
        name=request.name,
        type=request.type,
        metal_type=request.metal_type,
        gross_weight=request.gross_weight,
        karat=request.karat,
        net_weight=request.net_weight,
        stone_weight=request.stone_weight,
        valuation_amount=request.valuation_amount,
        description=request.description,
        user_id=user.id
    )
    return {"ornament": ornament.to_dict(), "message": "Ornament created successfully"}


@router.get("/{ornament_id}")
async def get_ornament(
    ornament_id: str,
    user: User = Depends(require_permission(Permission.VIEW_ORNAMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    ornament = system.ornament_manager.require_ornament(ornament_id)
    data = ornament.to_dict()
    customer = system.customer_manager.get_customer(ornament.customer_id)
    data["customer"] = customer.summary() if customer else None
    loan = system.loan_manager.get_loan(ornament.loan_id) if ornament.loan_id else None
    data["loan"] = {
        "id": loan.id,
        "loan_reference_number": loan.loan_reference_number,
        "status": loan.status.value
    } if loan else None
    return data


@router.put("/{ornament_id}")
async def update_ornament(
    ornament_id: str,
    request: UpdateOrnamentRequest,
    user: User = Depends(require_permission(Permission.MANAGE_ORNAMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    ornament = system.ornament_manager.update_ornament(ornament_id, request.changes(), user_id=user.id)
    return {"ornament": ornament.to_dict(), "message": "Ornament updated successfully"}


@router.delete("/{ornament_id}")
async def delete_ornament(
    ornament_id: str,
    user: User = Depends(require_permission(Permission.MANAGE_ORNAMENT)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Delete an ornament that is not pledged"""
    system.ornament_manager.delete_ornament(ornament_id, user_id=user.id)
    return {"message": "Ornament deleted successfully"}
