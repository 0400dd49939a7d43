"""
Login and user management endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .auth import LoanManagementSystem, get_system, get_current_user, require_permission, create_token
from .schemas import LoginRequest, CreateUserRequest
from ..exceptions import OLMSError
from ..logging_config import get_logger, log_action
from ..rbac import Permission, User


logger = get_logger("olms.api.users")

auth_router = APIRouter()
users_router = APIRouter()


@auth_router.post("/login")
async def login(
    request: LoginRequest,
    system: LoanManagementSystem = Depends(get_system)
):
    """Authenticate user and return JWT token"""
    try:
        user = system.user_manager.authenticate(request.username, request.password)
    except OLMSError as e:
        log_action(
            logger, "warning", f"Authentication failed: {e}",
            action="login_failed", resource="auth",
            extra={"username": request.username}
        )
        raise

    log_action(
        logger, "info", "User authenticated successfully",
        user_id=user.id, action="login", resource="auth"
    )
    token = create_token(user)
    token["user"] = user.to_public_dict()
    token["message"] = "Login successful"
    return token


@auth_router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    """Currently authenticated user"""
    return user.to_public_dict()


@users_router.get("")
async def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    user: User = Depends(require_permission(Permission.MANAGE_USERS)),
    system: LoanManagementSystem = Depends(get_system)
):
    users = system.user_manager.list_users(search=search, role=role)
    return {"users": [u.to_public_dict() for u in users]}


@users_router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    user: User = Depends(require_permission(Permission.MANAGE_USERS)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Create a staff user"""
    created = system.user_manager.create_user(
        username=request.username,
        email=request.email,
        password=request.password,
        role=request.role,
        name=request.name,
        status=request.status,
        branch_id=request.branch_id,
        created_by=user.id
    )
    return {"user": created.to_public_dict(), "message": "User created successfully"}
