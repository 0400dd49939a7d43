"""
Audit Trail Module

Hash-chained, append-only audit log with SHA-256 for tamper detection.
Every mutation of a customer, ornament, loan, payment, user, branch, rate or
setting is logged here with serialized before/after snapshots.
"""

import hashlib
import json
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, to_storable


class AuditAction(Enum):
    """Kinds of audited mutation"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    IMPORT = "IMPORT"


class AuditModule(Enum):
    """Record family affected by the mutation"""
    CUSTOMER = "CUSTOMER"
    ORNAMENT = "ORNAMENT"
    LOAN = "LOAN"
    PAYMENT = "PAYMENT"
    USER = "USER"
    BRANCH = "BRANCH"
    RATE = "RATE"
    SETTING = "SETTING"
    # Bulk import batches
    CUSTOMERS = "CUSTOMERS"
    LOANS = "LOANS"


def serialize_snapshot(values: Any) -> Optional[str]:
    """Serialize a record snapshot to a deterministic JSON string"""
    if values is None:
        return None
    if isinstance(values, StorageRecord):
        values = values.to_dict()
    return json.dumps(to_storable(values), sort_keys=True, default=str)


@dataclass
class AuditEntry(StorageRecord):
    """
    Immutable audit entry with hash chaining for tamper detection
    """
    sequence: int            # Position in the chain
    action: AuditAction
    module: AuditModule
    record_id: Optional[str]
    user_id: Optional[str]   # Staff user who made the change
    old_values: Optional[str]  # Serialized snapshot before the change
    new_values: Optional[str]  # Serialized snapshot after the change
    previous_hash: str
    current_hash: str

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this entry
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'action': self.action.value,
            'module': self.module.value,
            'record_id': self.record_id,
            'user_id': self.user_id,
            'old_values': self.old_values,
            'new_values': self.new_values,
            'previous_hash': self.previous_hash
        }

        # Create deterministic JSON string
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    @property
    def old_snapshot(self) -> Optional[Dict[str, Any]]:
        return json.loads(self.old_values) if self.old_values else None

    @property
    def new_snapshot(self) -> Optional[Dict[str, Any]]:
        return json.loads(self.new_values) if self.new_values else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        """Create AuditEntry from dictionary with proper enum deserialization"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sequence=data['sequence'],
            action=AuditAction(data['action']),
            module=AuditModule(data['module']),
            record_id=data.get('record_id'),
            user_id=data.get('user_id'),
            old_values=data.get('old_values'),
            new_values=data.get('new_values'),
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash']
        )


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_logs"):
        self.storage = storage
        self.table_name = table_name
        # Single row tracking the chain tail
        self.head_table = f"{table_name}_head"

    def _last_link(self) -> Tuple[int, str]:
        """Sequence and hash of the most recent entry"""
        head = self.storage.load(self.head_table, "tail")
        if head:
            return head['sequence'], head['current_hash']

        # Stores written before the tail row existed
        entries = self.storage.load_all(self.table_name)
        if not entries:
            return 0, ""
        last = max(entries, key=lambda e: e['sequence'])
        return last['sequence'], last['current_hash']

    def log(
        self,
        action: AuditAction,
        module: AuditModule,
        record_id: Optional[str] = None,
        user_id: Optional[str] = None,
        old_values: Any = None,
        new_values: Any = None
    ) -> AuditEntry:
        """
        Append an audit entry to the chain

        Args:
            action: Kind of mutation
            module: Record family affected
            record_id: Internal ID of the affected record (None for batches)
            user_id: Staff user who made the change
            old_values: Snapshot before the change (record or dict)
            new_values: Snapshot after the change (record or dict)

        Returns:
            Created AuditEntry
        """
        # Joins the caller's unit of work, which also serialises chain appends
        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            # Re-read the tail so a rolled back unit never leaves a stale link
            last_sequence, last_hash = self._last_link()

            entry = AuditEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=last_sequence + 1,
                action=action,
                module=module,
                record_id=record_id,
                user_id=user_id,
                old_values=serialize_snapshot(old_values),
                new_values=serialize_snapshot(new_values),
                previous_hash=last_hash,
                current_hash=""  # Calculated below
            )
            entry.current_hash = entry.calculate_hash()

            self.storage.save(self.table_name, entry.id, entry.to_dict())
            self.storage.save(self.head_table, "tail", {
                'id': "tail",
                'sequence': entry.sequence,
                'current_hash': entry.current_hash,
            })
            return entry

    def list_entries(
        self,
        module: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[AuditEntry], int]:
        """
        List audit entries newest first

        Returns:
            (entries on the requested page, total matching entries)
        """
        filters: Dict[str, Any] = {}
        if module:
            filters['module'] = module
        if action:
            filters['action'] = action
        if user_id:
            filters['user_id'] = user_id

        entries = [AuditEntry.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        entries.sort(key=lambda e: e.sequence, reverse=True)

        start = (page - 1) * limit
        return entries[start:start + limit], len(entries)

    def entries_for_record(self, module: AuditModule, record_id: str) -> List[AuditEntry]:
        """All entries for one record, oldest first"""
        entries = [
            AuditEntry.from_dict(d) for d in self.storage.find(
                self.table_name, {'module': module.value, 'record_id': record_id}
            )
        ]
        entries.sort(key=lambda e: e.sequence)
        return entries

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_entries': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        entries = [AuditEntry.from_dict(d) for d in self.storage.load_all(self.table_name)]
        entries.sort(key=lambda e: e.sequence)
        result['total_entries'] = len(entries)

        previous_hash = ""
        for position, entry in enumerate(entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'entry_id': entry.id,
                    'position': position,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })
            if entry.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'entry_id': entry.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result

    def count_entries(self) -> int:
        """Get total number of audit entries"""
        return self.storage.count(self.table_name)
