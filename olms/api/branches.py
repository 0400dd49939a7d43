"""
Branch endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import CreateBranchRequest
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_branches(
    user: User = Depends(require_permission(Permission.VIEW_BRANCHES)),
    system: LoanManagementSystem = Depends(get_system)
):
    return {"branches": system.branch_manager.list_branches()}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_branch(
    request: CreateBranchRequest,
    user: User = Depends(require_permission(Permission.MANAGE_BRANCHES)),
    system: LoanManagementSystem = Depends(get_system)
):
    branch = system.branch_manager.create_branch(
        name=request.name,
        address=request.address,
        phone=request.phone,
        email=request.email,
        status=request.status,
        user_id=user.id
    )
    return {"branch": branch.to_dict(), "message": "Branch created successfully"}
