"""
Branch records
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError
from .storage import StorageInterface, StorageRecord


class BranchStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@dataclass
class Branch(StorageRecord):
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: BranchStatus = BranchStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Branch':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            address=data.get('address'),
            phone=data.get('phone'),
            email=data.get('email'),
            status=BranchStatus(data.get('status', 'ACTIVE'))
        )


class BranchManager:
    """Branch registry"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "branches"

    def create_branch(self, name: str, address: Optional[str] = None, phone: Optional[str] = None,
                      email: Optional[str] = None, status: Optional[str] = None,
                      user_id: Optional[str] = None) -> Branch:
        if not name:
            raise ValidationError("Branch name is required")
        try:
            branch_status = BranchStatus(status) if status else BranchStatus.ACTIVE
        except ValueError:
            raise ValidationError(f"Invalid branch status: {status}")

        now = datetime.now(timezone.utc)
        branch = Branch(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            address=address or None,
            phone=phone or None,
            email=email or None,
            status=branch_status
        )
        with self.storage.atomic():
            self.storage.save(self.table_name, branch.id, branch.to_dict())
            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.BRANCH,
                record_id=branch.id,
                user_id=user_id,
                new_values=branch
            )
        return branch

    def get_branch(self, branch_id: str) -> Optional[Branch]:
        data = self.storage.load(self.table_name, branch_id)
        if data:
            return Branch.from_dict(data)
        return None

    def list_branches(self) -> List[Dict[str, Any]]:
        """Branches by name, each with user, customer and loan counts"""
        counts: Dict[str, Dict[str, int]] = {}
        for table, key in (("users", "users"), ("customers", "customers"), ("loans", "loans")):
            for record in self.storage.load_all(table):
                branch_id = record.get('branch_id')
                if branch_id:
                    counts.setdefault(branch_id, {}).setdefault(key, 0)
                    counts[branch_id][key] += 1

        branches = sorted(
            (Branch.from_dict(d) for d in self.storage.load_all(self.table_name)),
            key=lambda b: b.name
        )
        result = []
        for branch in branches:
            data = branch.to_dict()
            branch_counts = counts.get(branch.id, {})
            data['counts'] = {key: branch_counts.get(key, 0) for key in ("users", "customers", "loans")}
            result.append(data)
        return result

    def ensure_default_branch(self) -> Optional[Branch]:
        """Create "Main Branch" when no branch exists yet"""
        if self.storage.count(self.table_name) > 0:
            return None
        return self.create_branch(
            name="Main Branch",
            address="Default Branch Address",
            email="main@olms.local"
        )
