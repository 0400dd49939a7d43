"""
Bulk Import Module

Record-at-a-time ingestion of customers and loans from already parsed JSON
records. Each record succeeds or fails on its own; failures are counted and
described, and the batch always runs to the end.

Imported loans take a deliberately looser path than interactive creation:
no ornaments are pledged, no interest period is seeded, and the collateral
value is synthesised from an assumed 75% LTV.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Any
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .customers import CustomerManager, Customer, PROFILE_FIELDS
from .exceptions import ValidationError, OLMSError
from .identifiers import IdentifierGenerator
from .loans import (
    Loan, LoanManager, LoanStatus, InterestType, RiskZone,
    add_months, parse_enum, parse_timestamp, DEFAULT_TENURE_MONTHS
)
from .logging_config import get_logger
from .money import ZERO, to_decimal, quantize_money
from .storage import StorageInterface


logger = get_logger("olms.imports")

IMPORT_TYPES = ("customers", "loans")

IMPORT_DEFAULT_INTEREST_RATE = Decimal('12')
IMPORT_LTV = Decimal('75')
IMPORT_COLLATERAL_FACTOR = Decimal('1.33')


@dataclass
class ImportResult:
    """Outcome of one import batch"""
    success: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.success, 'failed': self.failed, 'errors': list(self.errors)}


class ImportEngine:
    """
    Runs bulk imports of customers and loans
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        identifiers: IdentifierGenerator,
        customer_manager: CustomerManager,
        loan_manager: LoanManager
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.identifiers = identifiers
        self.customer_manager = customer_manager
        self.loan_manager = loan_manager

    def import_records(self, import_type: str, records: List[Dict[str, Any]],
                       user_id: Optional[str] = None) -> ImportResult:
        """
        Import a batch of records

        Args:
            import_type: "customers" or "loans"
            records: Records with snake_case keys
            user_id: Admin running the import

        Returns:
            ImportResult with success and failure counts and error messages

        Raises:
            ValidationError: unknown type or records not a list
        """
        if not import_type or records is None or not isinstance(records, list):
            raise ValidationError("Type and records array are required")
        if import_type not in IMPORT_TYPES:
            raise ValidationError("Invalid import type. Supported: customers, loans")

        result = ImportResult()
        importer = self._import_customer if import_type == "customers" else self._import_loan

        for position, record in enumerate(records, start=1):
            if isinstance(record, dict):
                message = importer(record, user_id)
            else:
                message = f"Record {position} is not an object"
            if message:
                result.failed += 1
                result.errors.append(message)
            else:
                result.success += 1

        self.audit_trail.log(
            AuditAction.IMPORT,
            AuditModule(import_type.upper()),
            user_id=user_id,
            new_values={'type': import_type, 'success': result.success, 'failed': result.failed}
        )
        logger.info("Import finished", extra={'user_id': user_id, 'action': 'IMPORT', 'extra_data': {
            'type': import_type, 'success': result.success, 'failed': result.failed
        }})
        return result

    def _import_customer(self, record: Dict[str, Any], user_id: Optional[str]) -> Optional[str]:
        """Create one customer; returns an error message on failure"""
        try:
            self.customer_manager.create_customer(
                first_name=record.get('first_name'),
                last_name=record.get('last_name'),
                phone=record.get('phone'),
                user_id=user_id,
                branch_id=record.get('branch_id'),
                date_of_birth=record.get('date_of_birth'),
                annual_income=record.get('annual_income'),
                **{key: record.get(key) for key in PROFILE_FIELDS if key in record}
            )
        except (OLMSError, ValueError) as e:
            return f"Failed to import customer: {record.get('first_name')} {record.get('last_name')} - {e}"
        return None

    def _resolve_customer(self, record: Dict[str, Any]) -> Optional[Customer]:
        reference = record.get('customer_id')
        if reference:
            reference = str(reference)
            customer = (self.customer_manager.get_by_code(reference)
                        or self.customer_manager.get_customer(reference))
            if customer:
                return customer
        phone = record.get('customer_phone')
        if phone:
            return self.customer_manager.get_by_phone(str(phone))
        return None

    def _import_loan(self, record: Dict[str, Any], user_id: Optional[str]) -> Optional[str]:
        """Create one loan without collateral checks; returns an error message on failure"""
        customer = self._resolve_customer(record)
        if not customer:
            reference = record.get('customer_id') or record.get('customer_phone')
            return f"Customer not found for loan: {reference}"

        try:
            principal = to_decimal(record.get('principal_amount'), "principal_amount")
            if principal <= ZERO:
                raise ValidationError("Principal amount must be greater than 0")
            rate = to_decimal(record.get('interest_rate') or None, "interest_rate",
                              default=IMPORT_DEFAULT_INTEREST_RATE)
            tenure = int(to_decimal(record.get('tenure_months') or None, "tenure_months",
                                    default=Decimal(DEFAULT_TENURE_MONTHS)))
            kind = parse_enum(InterestType, record.get('interest_type') or InterestType.MONTHLY.value,
                              "interest type")
            status = parse_enum(LoanStatus, record.get('status') or LoanStatus.ACTIVE.value, "loan status")

            now = datetime.now(timezone.utc)
            disbursed = now
            if record.get('disbursement_date'):
                disbursed = parse_timestamp(record['disbursement_date'], "disbursement_date")

            closed = status == LoanStatus.CLOSED

            with self.storage.atomic():
                loan = Loan(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    loan_reference_number=self.identifiers.next_id("loan"),
                    customer_id=customer.id,
                    principal_amount=principal,
                    interest_rate=rate,
                    interest_type=kind,
                    tenure_months=tenure,
                    disbursement_date=disbursed,
                    due_date=add_months(disbursed, 1),
                    maturity_date=add_months(disbursed, tenure),
                    total_ornament_value=quantize_money(principal * IMPORT_COLLATERAL_FACTOR),
                    loan_to_value_ratio=IMPORT_LTV,
                    outstanding_principal=ZERO if closed else principal,
                    total_principal_paid=principal if closed else ZERO,
                    branch_id=record.get('branch_id') or customer.branch_id,
                    status=status,
                    risk_zone=RiskZone.GREEN,
                    closed_at=now if closed else None,
                    created_by=user_id
                )
                self.loan_manager.save_loan(loan)
        except (OLMSError, ValueError) as e:
            return f"Failed to import loan: {record.get('loan_reference_number') or 'unknown'} - {e}"
        return None
