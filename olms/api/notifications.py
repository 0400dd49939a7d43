"""
Notification endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import CreateNotificationRequest
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_notifications(
    type_filter: Optional[str] = Query(None, alias="type"),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(require_permission(Permission.MANAGE_NOTIFICATIONS)),
    system: LoanManagementSystem = Depends(get_system)
):
    notifications = system.notification_manager.list_notifications(
        type=type_filter, status=status_filter, limit=limit
    )
    return {"notifications": [n.to_dict() for n in notifications]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    request: CreateNotificationRequest,
    user: User = Depends(require_permission(Permission.MANAGE_NOTIFICATIONS)),
    system: LoanManagementSystem = Depends(get_system)
):
    notification = system.notification_manager.create_notification(
        title=request.title,
        message=request.message,
        type=request.type,
        priority=request.priority,
        channel=request.channel,
        loan_id=request.loan_id,
        customer_id=request.customer_id
    )
    return {"notification": notification.to_dict(), "message": "Notification created successfully"}
