"""
Audit log endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import PageParams, page_params, paginated
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_audit_entries(
    module: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[str] = Query(None, alias="userId"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(require_permission(Permission.VIEW_AUDIT_LOG)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Audit entries newest first, with decoded snapshots"""
    entries, total = system.audit_trail.list_entries(
        module=module, action=action, user_id=user_id, page=paging.page, limit=paging.limit
    )
    items = []
    for entry in entries:
        data = entry.to_dict()
        data["old_values"] = entry.old_snapshot
        data["new_values"] = entry.new_snapshot
        items.append(data)
    return paginated(items, total, paging.page, paging.limit)


@router.get("/verify")
async def verify_audit_trail(
    user: User = Depends(require_permission(Permission.VIEW_AUDIT_LOG)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Check the hash chain for tampering"""
    return system.audit_trail.verify_integrity()
