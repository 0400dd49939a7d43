"""
Role-Based Access Control (RBAC) Module

Staff users, roles and the central permission policy. Every role-gated
operation is checked against ROLE_PERMISSIONS rather than by comparing role
names at the call site.
"""

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set, Any

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import (
    ValidationError, ConflictError, AuthenticationError, PermissionDeniedError
)
from .logging_config import get_logger
from .storage import StorageInterface, StorageRecord, parse_datetime


logger = get_logger("olms.rbac")


class UserRole(Enum):
    """Staff roles"""
    ADMIN = "ADMIN"
    BRANCH_MANAGER = "BRANCH_MANAGER"
    LOAN_OFFICER = "LOAN_OFFICER"


class UserStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class Permission(Enum):
    """System permissions"""
    # Customer and ornament permissions
    VIEW_CUSTOMER = "view_customer"
    MANAGE_CUSTOMER = "manage_customer"
    VIEW_ORNAMENT = "view_ornament"
    MANAGE_ORNAMENT = "manage_ornament"

    # Loan and payment permissions
    VIEW_LOAN = "view_loan"
    MANAGE_LOAN = "manage_loan"
    REFRESH_RISK = "refresh_risk"
    VIEW_PAYMENT = "view_payment"
    RECORD_PAYMENT = "record_payment"

    # Reference data permissions
    VIEW_RATES = "view_rates"
    MANAGE_RATES = "manage_rates"
    VIEW_SETTINGS = "view_settings"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_BRANCHES = "view_branches"
    MANAGE_BRANCHES = "manage_branches"

    # Notes, notifications and reports
    MANAGE_NOTES = "manage_notes"
    MANAGE_NOTIFICATIONS = "manage_notifications"
    VIEW_DASHBOARD = "view_dashboard"

    # Admin permissions
    BULK_IMPORT = "bulk_import"
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOG = "view_audit_log"


# Operations every staff member may perform
_STAFF_PERMISSIONS: Set[Permission] = {
    Permission.VIEW_CUSTOMER,
    Permission.MANAGE_CUSTOMER,
    Permission.VIEW_ORNAMENT,
    Permission.MANAGE_ORNAMENT,
    Permission.VIEW_LOAN,
    Permission.MANAGE_LOAN,
    Permission.VIEW_PAYMENT,
    Permission.RECORD_PAYMENT,
    Permission.VIEW_RATES,
    Permission.MANAGE_RATES,
    Permission.VIEW_SETTINGS,
    Permission.VIEW_BRANCHES,
    Permission.MANAGE_NOTES,
    Permission.MANAGE_NOTIFICATIONS,
    Permission.VIEW_DASHBOARD,
}

ROLE_PERMISSIONS: Dict[UserRole, Set[Permission]] = {
    UserRole.ADMIN: set(Permission),
    UserRole.BRANCH_MANAGER: _STAFF_PERMISSIONS | {Permission.REFRESH_RISK},
    UserRole.LOAN_OFFICER: set(_STAFF_PERMISSIONS),
}


def is_allowed(role: UserRole, permission: Permission) -> bool:
    """Look up (role, permission) in the policy table"""
    return permission in ROLE_PERMISSIONS.get(role, set())


@dataclass
class User(StorageRecord):
    """Staff user"""
    username: str
    email: str
    name: Optional[str] = None
    role: UserRole = UserRole.LOAN_OFFICER
    status: UserStatus = UserStatus.ACTIVE
    branch_id: Optional[str] = None
    last_login: Optional[datetime] = None
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def has_permission(self, permission: Permission) -> bool:
        return is_allowed(self.role, permission)

    def to_public_dict(self) -> Dict[str, Any]:
        """User fields safe to return from the API"""
        data = self.to_dict()
        data.pop('password_hash', None)
        data.pop('password_salt', None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            username=data['username'],
            email=data['email'],
            name=data.get('name'),
            role=UserRole(data['role']),
            status=UserStatus(data.get('status', 'ACTIVE')),
            branch_id=data.get('branch_id'),
            last_login=parse_datetime(data.get('last_login')),
            password_hash=data.get('password_hash'),
            password_salt=data.get('password_salt')
        )


class UserManager:
    """
    Manages staff users and credential checks
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "users"

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role: Any,
        name: Optional[str] = None,
        status: Any = None,
        branch_id: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> User:
        """
        Create a staff user

        Raises:
            ValidationError: missing fields or unknown role/status
            ConflictError: username or email already taken
        """
        if not username or not email or not password or not role:
            raise ValidationError("Username, email, password, and role are required")

        try:
            role = UserRole(role)
            status = UserStatus(status) if status else UserStatus.ACTIVE
        except ValueError as e:
            raise ValidationError(str(e))

        if self.storage.find(self.table_name, {'username': username}):
            raise ConflictError("Username already exists")
        if self.storage.find(self.table_name, {'email': email}):
            raise ConflictError("Email already exists")

        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            username=username,
            email=email,
            name=name,
            role=role,
            status=status,
            branch_id=branch_id
        )
        self._set_password(user, password)

        with self.storage.atomic():
            self.storage.save(self.table_name, user.id, user.to_dict())
            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.USER,
                record_id=user.id,
                user_id=created_by,
                new_values=user.to_public_dict()
            )

        logger.info("User created", extra={'user_id': created_by, 'extra_data': {'username': username, 'role': role.value}})
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return User.from_dict(data)
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        users = self.storage.find(self.table_name, {'username': username})
        if not users:
            return None
        return User.from_dict(users[0])

    def list_users(self, search: Optional[str] = None, role: Optional[str] = None) -> List[User]:
        """List users newest first, optionally filtered by text and role"""
        users = [User.from_dict(d) for d in self.storage.load_all(self.table_name)]

        if role:
            users = [u for u in users if u.role.value == role]
        if search:
            needle = search.lower()
            users = [
                u for u in users
                if needle in u.username.lower()
                or needle in (u.name or "").lower()
                or needle in u.email.lower()
            ]

        return sorted(users, key=lambda u: u.created_at, reverse=True)

    def authenticate(self, username: str, password: str) -> User:
        """
        Check credentials and return the user

        Raises:
            ValidationError: username or password missing
            AuthenticationError: unknown user or wrong password
            PermissionDeniedError: user is not ACTIVE
        """
        if not username or not password:
            raise ValidationError("Username and password are required")

        user = self.get_user_by_username(username)
        if not user or not self._verify_password(user, password):
            logger.warning("Login failed", extra={'action': 'login_failed', 'extra_data': {'username': username}})
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            raise PermissionDeniedError("Account is inactive or suspended")

        user.last_login = datetime.now(timezone.utc)
        user.updated_at = user.last_login
        self.storage.save(self.table_name, user.id, user.to_dict())
        return user

    def ensure_admin(self, username: str, password: str) -> Optional[User]:
        """Create the bootstrap ADMIN user when no user exists yet"""
        if self.storage.count(self.table_name) > 0:
            return None
        logger.info("Creating bootstrap admin user", extra={'extra_data': {'username': username}})
        return self.create_user(
            username=username,
            email=f"{username}@olms.local",
            password=password,
            role=UserRole.ADMIN,
            name="Administrator"
        )

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _set_password(self, user: User, password: str):
        if not user.password_salt:
            user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(password, user.password_salt)

    def _verify_password(self, user: User, password: str) -> bool:
        if not user.password_hash or not user.password_salt:
            return False
        expected = self._hash_password(password, user.password_salt)
        return secrets.compare_digest(user.password_hash, expected)
