"""
Dashboard endpoint
"""

from fastapi import APIRouter, Depends

from .auth import LoanManagementSystem, get_system, require_permission
from ..rbac import Permission, User
from ..storage import to_storable


router = APIRouter()


@router.get("")
async def get_dashboard(
    user: User = Depends(require_permission(Permission.VIEW_DASHBOARD)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Portfolio statistics, breakdowns, recent activity and monthly trend"""
    return to_storable(system.dashboard.get_dashboard())
