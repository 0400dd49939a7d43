"""
Payment Module

Records loan payments and applies them to the loan balances and the interest
ledger. Payments are append-only: there is no update or delete path.

The caller supplies the split of ``amount`` into principal, interest and
penalty components; the split is recorded as given. Only a FULL_CLOSURE
payment that leaves no outstanding principal closes a loan, and a closed
loan is never reopened by a later payment.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError
from .identifiers import IdentifierGenerator
from .interest_ledger import InterestLedger
from .loans import LoanManager, LoanStatus, parse_enum
from .logging_config import get_logger
from .money import ZERO, to_decimal, floor_at_zero
from .storage import StorageInterface, StorageRecord, paginate


logger = get_logger("olms.payments")


class PaymentType(Enum):
    INTEREST = "INTEREST"
    PRINCIPAL = "PRINCIPAL"
    BOTH = "BOTH"
    PENALTY = "PENALTY"
    PARTIAL_RELEASE = "PARTIAL_RELEASE"
    FULL_CLOSURE = "FULL_CLOSURE"


class PaymentMethod(Enum):
    CASH = "CASH"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CARD = "CARD"


@dataclass
class Payment(StorageRecord):
    """
    Immutable record of money received against a loan
    """
    payment_code: str
    receipt_number: str
    loan_id: str
    customer_id: str
    payment_type: PaymentType
    payment_method: PaymentMethod
    amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    penalty_amount: Decimal
    received_by: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            payment_code=data['payment_code'],
            receipt_number=data['receipt_number'],
            loan_id=data['loan_id'],
            customer_id=data['customer_id'],
            payment_type=PaymentType(data['payment_type']),
            payment_method=PaymentMethod(data['payment_method']),
            amount=Decimal(data['amount']),
            principal_amount=Decimal(data['principal_amount']),
            interest_amount=Decimal(data['interest_amount']),
            penalty_amount=Decimal(data['penalty_amount']),
            received_by=data.get('received_by'),
            transaction_id=data.get('transaction_id'),
            notes=data.get('notes')
        )


def _component(value: Any, field_name: str) -> Decimal:
    amount = to_decimal(value, field_name, default=ZERO)
    if amount < ZERO:
        raise ValidationError(f"{field_name} can not be negative")
    return amount


class PaymentProcessor:
    """
    Applies payments to loans inside a single unit of work
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        identifiers: IdentifierGenerator,
        loan_manager: LoanManager,
        interest_ledger: InterestLedger
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.identifiers = identifiers
        self.loan_manager = loan_manager
        self.interest_ledger = interest_ledger
        self.table_name = "payments"

    def record_payment(
        self,
        loan_id: str,
        amount: Any,
        payment_type: Any,
        payment_method: Any,
        principal_amount: Any = None,
        interest_amount: Any = None,
        penalty_amount: Any = None,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Payment:
        """
        Record a payment and apply it to the loan

        Args:
            loan_id: Loan being paid
            amount: Total amount received
            payment_type: PaymentType value
            payment_method: PaymentMethod value
            principal_amount: Part of ``amount`` applied to principal
            interest_amount: Part of ``amount`` applied to interest
            penalty_amount: Part of ``amount`` applied to penalty
            transaction_id: External reference (UPI/bank)
            notes: Free text
            user_id: Staff user receiving the payment

        Returns:
            The recorded Payment

        Raises:
            ValidationError: missing or invalid input
            NotFoundError: unknown loan
        """
        if not loan_id or not amount or not payment_type or not payment_method:
            raise ValidationError("Loan, amount, payment type, and payment method are required")

        total = to_decimal(amount, "amount")
        if total <= ZERO:
            raise ValidationError("Amount must be greater than 0")
        kind = parse_enum(PaymentType, payment_type, "payment type")
        method = parse_enum(PaymentMethod, payment_method, "payment method")
        principal = _component(principal_amount, "principal_amount")
        interest = _component(interest_amount, "interest_amount")
        penalty = _component(penalty_amount, "penalty_amount")

        # The store lock is held for the whole unit, so two payments on the
        # same loan never read the same outstanding balance.
        with self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            now = datetime.now(timezone.utc)

            payment = Payment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                payment_code=self.identifiers.next_id("payment"),
                receipt_number=self.identifiers.receipt_number(),
                loan_id=loan.id,
                customer_id=loan.customer_id,
                payment_type=kind,
                payment_method=method,
                amount=total,
                principal_amount=principal,
                interest_amount=interest,
                penalty_amount=penalty,
                received_by=user_id,
                transaction_id=transaction_id or None,
                notes=notes or None
            )
            self.storage.save(self.table_name, payment.id, payment.to_dict())

            remaining_principal = loan.outstanding_principal - principal
            loan.outstanding_principal = floor_at_zero(remaining_principal)
            loan.outstanding_interest = floor_at_zero(loan.outstanding_interest - interest)
            loan.total_principal_paid += principal
            loan.total_interest_paid += interest

            closed_now = False
            if kind == PaymentType.FULL_CLOSURE and remaining_principal <= ZERO and not loan.is_closed:
                loan.status = LoanStatus.CLOSED
                loan.closed_at = now
                closed_now = True

            loan.updated_at = now
            self.loan_manager.save_loan(loan)

            if interest > ZERO:
                self.interest_ledger.apply_interest_payment(loan.id, interest)

            if closed_now:
                self.loan_manager.ornament_manager.release(loan.id)

            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.PAYMENT,
                record_id=payment.id,
                user_id=user_id,
                new_values=payment
            )

        logger.info("Payment recorded", extra={'user_id': user_id, 'resource': payment.payment_code, 'extra_data': {
            'loan': loan.loan_reference_number, 'amount': str(total), 'type': kind.value
        }})
        if closed_now:
            logger.info("Loan closed", extra={'user_id': user_id, 'resource': loan.loan_reference_number})
        return payment

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        data = self.storage.load(self.table_name, payment_id)
        if data:
            return Payment.from_dict(data)
        return None

    def list_payments(
        self,
        loan_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        payment_type: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Payment], int]:
        """List payments newest first"""
        filters: Dict[str, Any] = {}
        if loan_id:
            filters['loan_id'] = loan_id
        if customer_id:
            filters['customer_id'] = customer_id
        if payment_type:
            filters['payment_type'] = payment_type

        payments = [Payment.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return paginate(payments, page, limit)
