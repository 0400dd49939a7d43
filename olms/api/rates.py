"""
Metal rate endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import AddRateRequest
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_rates(
    metal_type: Optional[str] = Query(None, alias="metalType"),
    limit: int = Query(30, ge=1, le=365),
    user: User = Depends(require_permission(Permission.VIEW_RATES)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Rate history (newest first) and the latest rate per metal and karat"""
    rates = system.rate_manager.list_rates(metal_type=metal_type, limit=limit)
    return {
        "rates": [r.to_dict() for r in rates],
        "latest": [r.to_dict() for r in system.rate_manager.latest_rates()]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_rate(
    request: AddRateRequest,
    user: User = Depends(require_permission(Permission.MANAGE_RATES)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Record the day's rate for a metal and karat"""
    rate = system.rate_manager.add_rate(
        metal_type=request.metal_type,
        karat=request.karat,
        rate_per_gram=request.rate_per_gram,
        rate_date=request.rate_date,
        source=request.source,
        user_id=user.id
    )
    return {"rate": rate.to_dict(), "message": "Rate saved successfully"}
