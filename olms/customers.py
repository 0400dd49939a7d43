"""
Customer Management Module

Customer profiles keyed by a sequential display code (CUS######). Phone
numbers are unique; a customer that owns an ACTIVE loan can not be deleted.
"""

from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError, NotFoundError, ConflictError
from .identifiers import IdentifierGenerator
from .logging_config import get_logger
from .money import to_decimal, decimal_or_none
from .storage import StorageInterface, StorageRecord, paginate


logger = get_logger("olms.customers")


class CustomerStatus(Enum):
    """Customer status"""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    BLACKLISTED = "BLACKLISTED"


# Optional profile fields accepted on create and update
PROFILE_FIELDS = (
    "email", "alternate_phone", "address", "city", "state", "pincode",
    "gender", "occupation",
)


@dataclass
class Customer(StorageRecord):
    """
    Customer profile
    """
    customer_code: str
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    alternate_phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    annual_income: Optional[Decimal] = None
    status: CustomerStatus = CustomerStatus.ACTIVE
    branch_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Get customer's full name"""
        return f"{self.first_name} {self.last_name}"

    def summary(self) -> Dict[str, Any]:
        """Minimal fields embedded in loan and payment views"""
        return {
            'id': self.id,
            'customer_code': self.customer_code,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_code=data['customer_code'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            phone=data['phone'],
            email=data.get('email'),
            alternate_phone=data.get('alternate_phone'),
            address=data.get('address'),
            city=data.get('city'),
            state=data.get('state'),
            pincode=data.get('pincode'),
            date_of_birth=date.fromisoformat(data['date_of_birth']) if data.get('date_of_birth') else None,
            gender=data.get('gender'),
            occupation=data.get('occupation'),
            annual_income=decimal_or_none(data.get('annual_income')),
            status=CustomerStatus(data.get('status', 'ACTIVE')),
            branch_id=data.get('branch_id')
        )


def _parse_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date, got {value!r}")


def _text(value: Any, field_name: str) -> Optional[str]:
    """Read a text field; whole numbers such as imported phones become strings"""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise ValidationError(f"{field_name} must be text, got {value!r}")


class CustomerManager:
    """
    Manages customer lifecycle
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 identifiers: IdentifierGenerator):
        self.storage = storage
        self.audit_trail = audit_trail
        self.identifiers = identifiers
        self.table_name = "customers"

    def create_customer(
        self,
        first_name: str,
        last_name: str,
        phone: str,
        user_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        date_of_birth: Any = None,
        annual_income: Any = None,
        **profile: Any
    ) -> Customer:
        """
        Create a new customer

        Args:
            first_name: Customer's first name
            last_name: Customer's last name
            phone: Primary phone number, unique across customers
            user_id: Staff user recording the customer
            branch_id: Owning branch
            date_of_birth: Optional ISO date
            annual_income: Optional decimal amount
            **profile: Any of PROFILE_FIELDS

        Returns:
            Created Customer object
        """
        first_name = _text(first_name, "first_name")
        last_name = _text(last_name, "last_name")
        phone = _text(phone, "phone")
        if not first_name or not last_name or not phone:
            raise ValidationError("First name, last name, and phone are required")

        unknown = set(profile) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown customer fields: {', '.join(sorted(unknown))}")
        profile = {key: _text(value, key) for key, value in profile.items()}

        dob = _parse_date(date_of_birth, "date_of_birth")
        income = to_decimal(annual_income, "annual_income") if annual_income not in (None, "") else None

        with self.storage.atomic():
            if self.get_by_phone(phone):
                raise ConflictError("A customer with this phone number already exists")

            now = datetime.now(timezone.utc)
            customer = Customer(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                customer_code=self.identifiers.next_id("customer"),
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                date_of_birth=dob,
                annual_income=income,
                branch_id=branch_id,
                **profile
            )

            self.storage.save(self.table_name, customer.id, customer.to_dict())
            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.CUSTOMER,
                record_id=customer.id,
                user_id=user_id,
                new_values=customer
            )

        logger.info("Customer created", extra={'user_id': user_id, 'resource': customer.customer_code})
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        data = self.storage.load(self.table_name, customer_id)
        if data:
            return Customer.from_dict(data)
        return None

    def get_by_code(self, customer_code: str) -> Optional[Customer]:
        """Get customer by display code (CUS######)"""
        matches = self.storage.find(self.table_name, {'customer_code': customer_code})
        if matches:
            return Customer.from_dict(matches[0])
        return None

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        matches = self.storage.find(self.table_name, {'phone': phone})
        if matches:
            return Customer.from_dict(matches[0])
        return None

    def require_customer(self, customer_id: str) -> Customer:
        customer = self.get_customer(customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    def update_customer(self, customer_id: str, changes: Dict[str, Any],
                        user_id: Optional[str] = None) -> Customer:
        """
        Apply a partial update; keys absent from ``changes`` are untouched

        Raises:
            NotFoundError: unknown customer
            ConflictError: new phone belongs to another customer
        """
        with self.storage.atomic():
            customer = self.require_customer(customer_id)
            old_values = customer.to_dict()

            for key, value in changes.items():
                if key in PROFILE_FIELDS:
                    setattr(customer, key, _text(value, key))
                elif key in ("first_name", "last_name"):
                    value = _text(value, key)
                    if not value:
                        raise ValidationError(f"{key} can not be empty")
                    setattr(customer, key, value)
                elif key == "phone":
                    value = _text(value, key)
                    if not value:
                        raise ValidationError("phone can not be empty")
                    other = self.get_by_phone(value)
                    if other and other.id != customer.id:
                        raise ConflictError("A customer with this phone number already exists")
                    customer.phone = value
                elif key == "date_of_birth":
                    customer.date_of_birth = _parse_date(value, key)
                elif key == "annual_income":
                    customer.annual_income = to_decimal(value, key) if value not in (None, "") else None
                elif key == "status":
                    try:
                        customer.status = CustomerStatus(value)
                    except ValueError:
                        raise ValidationError(f"Invalid customer status: {value}")
                elif key == "branch_id":
                    customer.branch_id = value or None
                else:
                    raise ValidationError(f"Field {key} can not be updated")

            customer.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, customer.id, customer.to_dict())
            self.audit_trail.log(
                AuditAction.UPDATE,
                AuditModule.CUSTOMER,
                record_id=customer.id,
                user_id=user_id,
                old_values=old_values,
                new_values=customer
            )

        return customer

    def active_loan_count(self, customer_id: str) -> int:
        return len(self.storage.find("loans", {'customer_id': customer_id, 'status': 'ACTIVE'}))

    def delete_customer(self, customer_id: str, user_id: Optional[str] = None) -> None:
        """
        Delete a customer and their notes

        Raises:
            NotFoundError: unknown customer
            ConflictError: the customer still owns an ACTIVE loan
        """
        with self.storage.atomic():
            customer = self.require_customer(customer_id)
            if self.active_loan_count(customer_id) > 0:
                raise ConflictError("Cannot delete customer with active loans")

            for note in self.storage.find("notes", {'customer_id': customer_id}):
                self.storage.delete("notes", note['id'])
            self.storage.delete(self.table_name, customer_id)

            self.audit_trail.log(
                AuditAction.DELETE,
                AuditModule.CUSTOMER,
                record_id=customer_id,
                user_id=user_id,
                old_values=customer
            )

        logger.info("Customer deleted", extra={'user_id': user_id, 'resource': customer.customer_code})

    def list_customers(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Customer], int]:
        """
        List customers newest first

        ``search`` matches name, phone, email or customer code.
        """
        customers = [Customer.from_dict(d) for d in self.storage.load_all(self.table_name)]

        if status:
            customers = [c for c in customers if c.status.value == status]
        if search:
            needle = search.lower()
            customers = [
                c for c in customers
                if any(needle in (value or "").lower() for value in (
                    c.first_name, c.last_name, c.phone, c.email, c.customer_code
                ))
            ]

        customers.sort(key=lambda c: c.created_at, reverse=True)
        return paginate(customers, page, limit)
