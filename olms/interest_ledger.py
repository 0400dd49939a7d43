"""
Interest Ledger Module

One billing-period record per loan period: interest owed, interest paid and
the period status. A loan gets its first entry at disbursement; interest
payments settle the oldest PENDING entry.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .logging_config import get_logger
from .money import ZERO, HUNDRED, quantize_money
from .storage import StorageInterface, StorageRecord, parse_datetime


logger = get_logger("olms.interest_ledger")

MONTHS_PER_YEAR = Decimal('12')


class LedgerStatus(Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


@dataclass
class InterestLedgerEntry(StorageRecord):
    """Interest billed for one period of a loan"""
    loan_id: str
    from_date: datetime
    to_date: datetime
    interest_rate: Decimal
    interest_amount: Decimal
    paid_amount: Decimal = ZERO
    status: LedgerStatus = LedgerStatus.PENDING
    paid_at: Optional[datetime] = None

    @property
    def balance(self) -> Decimal:
        return max(self.interest_amount - self.paid_amount, ZERO)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterestLedgerEntry':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            from_date=parse_datetime(data['from_date']),
            to_date=parse_datetime(data['to_date']),
            interest_rate=Decimal(data['interest_rate']),
            interest_amount=Decimal(data['interest_amount']),
            paid_amount=Decimal(data['paid_amount']),
            status=LedgerStatus(data['status']),
            paid_at=parse_datetime(data.get('paid_at'))
        )


def monthly_interest(principal: Decimal, annual_rate: Decimal) -> Decimal:
    """Simple monthly accrual: principal x rate / 100 / 12"""
    return quantize_money(principal * annual_rate / HUNDRED / MONTHS_PER_YEAR)


class InterestLedger:
    """
    Interest ledger service; callers own the unit of work
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "interest_ledger"

    def _save(self, entry: InterestLedgerEntry) -> None:
        self.storage.save(self.table_name, entry.id, entry.to_dict())

    def seed_entry(self, loan_id: str, principal: Decimal, from_date: datetime,
                   to_date: datetime, interest_rate: Decimal) -> InterestLedgerEntry:
        """Create the first billing period of a newly disbursed loan"""
        now = datetime.now(timezone.utc)
        entry = InterestLedgerEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            from_date=from_date,
            to_date=to_date,
            interest_rate=interest_rate,
            interest_amount=monthly_interest(principal, interest_rate)
        )
        self._save(entry)
        return entry

    def entries_for_loan(self, loan_id: str) -> List[InterestLedgerEntry]:
        """Entries of one loan, oldest first"""
        entries = [
            InterestLedgerEntry.from_dict(d)
            for d in self.storage.find(self.table_name, {'loan_id': loan_id})
        ]
        entries.sort(key=lambda e: e.created_at)
        return entries

    def apply_interest_payment(self, loan_id: str, amount: Decimal) -> Optional[InterestLedgerEntry]:
        """
        Credit an interest payment to the oldest PENDING entry

        A PARTIALLY_PAID entry is not picked up again, and when no entry is
        PENDING the payment is not reflected in the ledger at all.

        Returns:
            The updated entry, or None when nothing was updated
        """
        if amount <= ZERO:
            return None

        pending = [e for e in self.entries_for_loan(loan_id) if e.status == LedgerStatus.PENDING]
        if not pending:
            logger.info("No pending interest period for payment", extra={'resource': loan_id, 'extra_data': {
                'amount': str(amount)
            }})
            return None

        entry = pending[0]
        now = datetime.now(timezone.utc)
        entry.paid_amount += amount
        if entry.paid_amount >= entry.interest_amount:
            entry.status = LedgerStatus.PAID
            entry.paid_at = now
        else:
            entry.status = LedgerStatus.PARTIALLY_PAID
            entry.paid_at = None
        entry.updated_at = now
        self._save(entry)
        return entry

    def delete_for_loan(self, loan_id: str) -> int:
        entries = self.storage.find(self.table_name, {'loan_id': loan_id})
        for entry in entries:
            self.storage.delete(self.table_name, entry['id'])
        return len(entries)
