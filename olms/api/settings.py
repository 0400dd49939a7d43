"""
Business settings endpoints
"""

from typing import Any, Dict
from fastapi import APIRouter, Body, Depends

from .auth import LoanManagementSystem, get_system, require_permission
from ..logging_config import get_logger, log_action
from ..rbac import Permission, User


logger = get_logger("olms.api.settings")

router = APIRouter()


@router.get("")
async def get_settings(
    user: User = Depends(require_permission(Permission.VIEW_SETTINGS)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Settings as a key/value map plus the full records"""
    return {
        "settings": system.settings.get_all(),
        "settings_list": [s.to_dict() for s in system.settings.list_settings()]
    }


@router.put("")
async def update_settings(
    values: Dict[str, Any] = Body(...),
    user: User = Depends(require_permission(Permission.MANAGE_SETTINGS)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Upsert every key in the body"""
    settings = system.settings.update(values, user_id=user.id)
    log_action(
        logger, "info", "Settings updated",
        user_id=user.id, action="update_settings", resource="settings",
        extra={"keys": sorted(values)}
    )
    return {"success": True, "settings": settings}
