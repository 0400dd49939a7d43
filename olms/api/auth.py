"""
Authentication and authorization dependencies
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..identifiers import IdentifierGenerator
from ..settings_store import SettingsStore
from ..rbac import UserManager, User, UserRole, Permission
from ..branches import BranchManager
from ..customers import CustomerManager
from ..rates import RateManager
from ..ornaments import OrnamentManager
from ..interest_ledger import InterestLedger
from ..loans import LoanManager
from ..payments import PaymentProcessor
from ..dashboard import DashboardAggregator
from ..imports import ImportEngine
from ..notes import NoteManager
from ..notifications import NotificationManager
from ..config import get_config
from ..logging_config import get_logger


logger = get_logger("olms.api.auth")

security = HTTPBearer(auto_error=False)


class LoanManagementSystem:
    """Ornament loan system with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None):
        config = get_config()
        self.storage = storage or create_storage(config.database_url)

        # Shared services
        self.audit_trail = AuditTrail(self.storage)
        self.identifiers = IdentifierGenerator(self.storage)
        self.settings = SettingsStore(self.storage, self.audit_trail)
        self.user_manager = UserManager(self.storage, self.audit_trail)
        self.branch_manager = BranchManager(self.storage, self.audit_trail)

        # Ledger entities
        self.customer_manager = CustomerManager(self.storage, self.audit_trail, self.identifiers)
        self.rate_manager = RateManager(self.storage, self.audit_trail)
        self.ornament_manager = OrnamentManager(
            self.storage, self.audit_trail, self.identifiers, self.rate_manager
        )
        self.interest_ledger = InterestLedger(self.storage)
        self.loan_manager = LoanManager(
            self.storage, self.audit_trail, self.identifiers, self.settings,
            self.ornament_manager, self.rate_manager, self.interest_ledger
        )
        self.payment_processor = PaymentProcessor(
            self.storage, self.audit_trail, self.identifiers,
            self.loan_manager, self.interest_ledger
        )

        # Reporting and bulk operations
        self.dashboard = DashboardAggregator(self.storage)
        self.import_engine = ImportEngine(
            self.storage, self.audit_trail, self.identifiers,
            self.customer_manager, self.loan_manager
        )
        self.note_manager = NoteManager(self.storage)
        self.notification_manager = NotificationManager(self.storage)

        self._bootstrap(config)

    def _bootstrap(self, config) -> None:
        """Seed default settings, the main branch and the first admin"""
        self.settings.seed_defaults()
        self.branch_manager.ensure_default_branch()
        self.user_manager.ensure_admin(
            config.bootstrap_admin_username,
            config.bootstrap_admin_password
        )


# Global system instance, created on first use
_system: Optional[LoanManagementSystem] = None


# Dependency to get the loan system
def get_system() -> LoanManagementSystem:
    global _system
    if _system is None:
        _system = LoanManagementSystem()
    return _system


def create_token(user: User) -> Dict[str, Any]:
    """Issue a signed bearer token for an authenticated user"""
    config = get_config()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=config.jwt_expiry_hours)
    token_payload = {
        "sub": user.id,
        "username": user.username,
        "role": user.role.value,
        "exp": expires_at,
        "iat": now
    }
    token = jwt.encode(token_payload, config.jwt_secret, algorithm=config.jwt_algorithm)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_at": expires_at.isoformat()
    }


def _test_user() -> User:
    now = datetime.now(timezone.utc)
    return User(
        id="test_user",
        created_at=now,
        updated_at=now,
        username="test_user",
        email="test_user@olms.local",
        name="Test User",
        role=UserRole.ADMIN
    )


# Authentication dependencies
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LoanManagementSystem = Depends(get_system)
) -> User:
    """Dependency that validates the JWT and returns the active user"""
    config = get_config()
    if not config.auth_enabled:
        return _test_user()  # For tests when auth is disabled

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials, config.jwt_secret, algorithms=[config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = system.user_manager.get_user(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def require_permission(permission: Permission):
    """Dependency factory for permission checking"""
    def check(user: User = Depends(get_current_user)) -> User:
        if not user.has_permission(permission):
            logger.warning("Permission denied", extra={
                'user_id': user.id, 'action': permission.value
            })
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return check
