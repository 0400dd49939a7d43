"""
Free-text notes attached to a loan or a customer
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import uuid

from .exceptions import ValidationError
from .storage import StorageInterface, StorageRecord


@dataclass
class Note(StorageRecord):
    content: str
    user_id: Optional[str] = None
    loan_id: Optional[str] = None
    customer_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Note':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            content=data['content'],
            user_id=data.get('user_id'),
            loan_id=data.get('loan_id'),
            customer_id=data.get('customer_id')
        )


class NoteManager:

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "notes"

    def add_note(self, content: str, loan_id: Optional[str] = None,
                 customer_id: Optional[str] = None, user_id: Optional[str] = None) -> Note:
        if not content:
            raise ValidationError("Note content is required")
        now = datetime.now(timezone.utc)
        note = Note(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            content=content,
            user_id=user_id,
            loan_id=loan_id or None,
            customer_id=customer_id or None
        )
        self.storage.save(self.table_name, note.id, note.to_dict())
        return note

    def list_notes(self, loan_id: Optional[str] = None, customer_id: Optional[str] = None,
                   limit: int = 50) -> List[Note]:
        """Newest notes first"""
        filters: Dict[str, Any] = {}
        if loan_id:
            filters['loan_id'] = loan_id
        if customer_id:
            filters['customer_id'] = customer_id
        notes = [Note.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        notes.sort(key=lambda n: n.created_at, reverse=True)
        return notes[:limit]
