"""
Loan Module

Ornament-backed loan lifecycle: origination against pledged collateral with
loan-to-value validation, risk-zone classification, edits, deletion and risk
re-evaluation.

Loan creation is a single unit of work: the loan, the ornament pledges, the
first interest-ledger period and the audit entry are written together or not
at all. Every business rule is checked before the first write.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import calendar
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError, NotFoundError, ConflictError
from .identifiers import IdentifierGenerator
from .interest_ledger import InterestLedger
from .logging_config import get_logger
from .money import ZERO, HUNDRED, to_decimal, quantize_money, floor_at_zero
from .ornaments import OrnamentManager, OrnamentStatus
from .rates import RateManager
from .settings_store import SettingsStore, LoanPolicy
from .storage import StorageInterface, StorageRecord, paginate, parse_datetime


logger = get_logger("olms.loans")

DEFAULT_TENURE_MONTHS = 12


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    CLOSED = "CLOSED"
    DEFAULTED = "DEFAULTED"
    RENEWED = "RENEWED"


class InterestType(Enum):
    MONTHLY = "MONTHLY"
    DAILY = "DAILY"
    QUARTERLY = "QUARTERLY"
    ANNUAL = "ANNUAL"


class RiskZone(Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


# Statuses a loan is re-evaluated in
OPEN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)


@dataclass
class Loan(StorageRecord):
    """
    Loan secured by pledged ornaments
    """
    loan_reference_number: str
    customer_id: str
    principal_amount: Decimal
    interest_rate: Decimal           # Annual, percent
    interest_type: InterestType
    tenure_months: int
    disbursement_date: datetime
    due_date: datetime
    maturity_date: datetime
    total_ornament_value: Decimal
    loan_to_value_ratio: Decimal     # principal / ornament value x 100
    outstanding_principal: Decimal
    branch_id: Optional[str] = None
    status: LoanStatus = LoanStatus.ACTIVE
    risk_zone: RiskZone = RiskZone.GREEN
    outstanding_interest: Decimal = ZERO
    total_principal_paid: Decimal = ZERO
    total_interest_paid: Decimal = ZERO
    penalty_amount: Decimal = ZERO
    closed_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.status == LoanStatus.CLOSED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_reference_number=data['loan_reference_number'],
            customer_id=data['customer_id'],
            principal_amount=Decimal(data['principal_amount']),
            interest_rate=Decimal(data['interest_rate']),
            interest_type=InterestType(data['interest_type']),
            tenure_months=int(data['tenure_months']),
            disbursement_date=parse_datetime(data['disbursement_date']),
            due_date=parse_datetime(data['due_date']),
            maturity_date=parse_datetime(data['maturity_date']),
            total_ornament_value=Decimal(data['total_ornament_value']),
            loan_to_value_ratio=Decimal(data['loan_to_value_ratio']),
            outstanding_principal=Decimal(data['outstanding_principal']),
            branch_id=data.get('branch_id'),
            status=LoanStatus(data['status']),
            risk_zone=RiskZone(data['risk_zone']),
            outstanding_interest=Decimal(data['outstanding_interest']),
            total_principal_paid=Decimal(data['total_principal_paid']),
            total_interest_paid=Decimal(data['total_interest_paid']),
            penalty_amount=Decimal(data.get('penalty_amount', '0')),
            closed_at=parse_datetime(data.get('closed_at')),
            created_by=data.get('created_by')
        )


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of a shorter month"""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def parse_timestamp(value: Any, field_name: str) -> datetime:
    """Read an ISO date or datetime from a request, assuming UTC when naive"""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            raise ValidationError(f"{field_name} must be an ISO date, got {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {label}: {value}")


def compute_ltv(principal: Decimal, collateral_value: Decimal) -> Decimal:
    """Loan-to-value ratio in percent, unrounded"""
    return principal / collateral_value * HUNDRED


def classify_risk_zone(ltv: Decimal, policy: LoanPolicy, days_overdue: int = 0) -> RiskZone:
    """
    Full risk classification used on re-evaluation

    RED when LTV reaches the red threshold or the loan is overdue for at
    least ``overdue_days_red`` days, YELLOW from the yellow threshold,
    GREEN otherwise.
    """
    if ltv >= policy.red_zone_threshold or days_overdue >= policy.overdue_days_red:
        return RiskZone.RED
    if ltv >= policy.yellow_zone_threshold:
        return RiskZone.YELLOW
    return RiskZone.GREEN


def initial_risk_zone(ltv: Decimal, policy: LoanPolicy) -> RiskZone:
    """Zone assigned at origination: only GREEN or YELLOW"""
    if ltv >= policy.yellow_zone_threshold:
        return RiskZone.YELLOW
    return RiskZone.GREEN


class LoanManager:
    """
    Manages loan origination and lifecycle
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        identifiers: IdentifierGenerator,
        settings: SettingsStore,
        ornament_manager: OrnamentManager,
        rate_manager: RateManager,
        interest_ledger: InterestLedger
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.identifiers = identifiers
        self.settings = settings
        self.ornament_manager = ornament_manager
        self.rate_manager = rate_manager
        self.interest_ledger = interest_ledger
        self.table_name = "loans"

    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.table_name, loan.id, loan.to_dict())

    def create_loan(
        self,
        customer_id: str,
        principal_amount: Any,
        ornament_ids: List[str],
        interest_rate: Any,
        interest_type: Any = None,
        tenure_months: Any = None,
        branch_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Loan:
        """
        Originate a loan against AVAILABLE ornaments

        Args:
            customer_id: Borrowing customer
            principal_amount: Amount disbursed
            ornament_ids: Ornaments to pledge; all must be AVAILABLE
            interest_rate: Annual rate in percent
            interest_type: MONTHLY (default), DAILY, QUARTERLY or ANNUAL
            tenure_months: Loan term, default 12
            branch_id: Disbursing branch
            user_id: Staff user creating the loan

        Returns:
            The ACTIVE loan

        Raises:
            ValidationError: missing input, unavailable ornaments or LTV
                above the configured maximum; nothing is written
        """
        if not customer_id or not principal_amount or not interest_rate:
            raise ValidationError("Customer, principal amount, and interest rate are required")
        if not ornament_ids:
            raise ValidationError("At least one ornament must be pledged")

        principal = to_decimal(principal_amount, "principal_amount")
        rate = to_decimal(interest_rate, "interest_rate")
        if principal <= ZERO:
            raise ValidationError("Principal amount must be greater than 0")
        if rate < ZERO:
            raise ValidationError("Interest rate can not be negative")
        kind = parse_enum(InterestType, interest_type or InterestType.MONTHLY.value, "interest type")
        tenure = int(to_decimal(tenure_months, "tenure_months", default=Decimal(DEFAULT_TENURE_MONTHS)))
        if tenure <= 0:
            raise ValidationError("Tenure must be at least one month")

        with self.storage.atomic():
            if not self.storage.exists("customers", customer_id):
                raise ValidationError("Customer not found")

            ornaments = self.ornament_manager.find_available(ornament_ids)
            if len(ornaments) != len(ornament_ids):
                raise ValidationError("Some ornaments are not available or not found")

            total_value = sum((o.valuation_amount for o in ornaments), ZERO)
            if total_value <= ZERO:
                raise ValidationError("Pledged ornaments have no valuation")

            policy = self.settings.policy()
            ltv = compute_ltv(principal, total_value)
            if ltv > policy.max_ltv:
                raise ValidationError(
                    f"Loan to value ratio ({quantize_money(ltv)}%) exceeds maximum allowed ({policy.max_ltv}%)"
                )

            now = datetime.now(timezone.utc)
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_reference_number=self.identifiers.next_id("loan"),
                customer_id=customer_id,
                principal_amount=principal,
                interest_rate=rate,
                interest_type=kind,
                tenure_months=tenure,
                disbursement_date=now,
                due_date=add_months(now, 1),
                maturity_date=add_months(now, tenure),
                total_ornament_value=total_value,
                loan_to_value_ratio=ltv,
                outstanding_principal=principal,
                branch_id=branch_id,
                risk_zone=initial_risk_zone(ltv, policy),
                created_by=user_id
            )

            self.save_loan(loan)
            self.ornament_manager.pledge(ornaments, loan.id)
            self.interest_ledger.seed_entry(loan.id, principal, loan.disbursement_date, loan.due_date, rate)

            snapshot = loan.to_dict()
            snapshot['ornaments'] = [o.id for o in ornaments]
            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.LOAN,
                record_id=loan.id,
                user_id=user_id,
                new_values=snapshot
            )

        logger.info("Loan created", extra={'user_id': user_id, 'resource': loan.loan_reference_number, 'extra_data': {
            'principal': str(principal), 'ltv': str(quantize_money(ltv)), 'risk_zone': loan.risk_zone.value
        }})
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.table_name, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError("Loan not found")
        return loan

    def get_loan_detail(self, loan_id: str) -> Dict[str, Any]:
        """
        Loan with customer, ornaments, the last 10 payments, the last 12
        interest periods and the last 10 notes (newest first)
        """
        loan = self.require_loan(loan_id)

        def newest(records: List[Dict[str, Any]], count: int) -> List[Dict[str, Any]]:
            return sorted(records, key=lambda r: r['created_at'], reverse=True)[:count]

        ledger = [e.to_dict() for e in self.interest_ledger.entries_for_loan(loan_id)]
        detail = loan.to_dict()
        detail['customer'] = self.storage.load("customers", loan.customer_id)
        detail['ornaments'] = [o.to_dict() for o in self.ornament_manager.for_loan(loan_id)]
        detail['payments'] = newest(self.storage.find("payments", {'loan_id': loan_id}), 10)
        detail['interest_ledger'] = newest(ledger, 12)
        detail['notes'] = newest(self.storage.find("notes", {'loan_id': loan_id}), 10)
        return detail

    def list_loans(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        risk_zone: Optional[str] = None,
        customer_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Loan], int]:
        """
        List loans newest first

        ``search`` matches the reference number or the customer's first
        name, last name or phone.
        """
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status
        if risk_zone:
            filters['risk_zone'] = risk_zone
        if customer_id:
            filters['customer_id'] = customer_id

        loans = [Loan.from_dict(d) for d in self.storage.find(self.table_name, filters)]

        if search:
            needle = search.lower()
            customers = {c['id']: c for c in self.storage.load_all("customers")}

            def matches(loan: Loan) -> bool:
                if needle in loan.loan_reference_number.lower():
                    return True
                customer = customers.get(loan.customer_id) or {}
                return any(
                    needle in str(customer.get(key) or "").lower()
                    for key in ('first_name', 'last_name', 'phone')
                )

            loans = [loan for loan in loans if matches(loan)]

        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return paginate(loans, page, limit)

    def update_loan(self, loan_id: str, changes: Dict[str, Any],
                    user_id: Optional[str] = None) -> Loan:
        """
        Edit the mutable terms and balances of a loan

        Editable: interest_rate, interest_type, tenure_months, status,
        risk_zone, outstanding_principal, outstanding_interest, due_date,
        maturity_date. Outstanding balances are clamped at zero.

        Raises:
            NotFoundError: unknown loan
            ValidationError: unknown field or bad value
            ConflictError: re-opening a CLOSED loan, or closing one that
                still has outstanding principal
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            old_values = loan.to_dict()

            for key, value in changes.items():
                if value is None:
                    continue
                if key == "interest_rate":
                    loan.interest_rate = to_decimal(value, key)
                    if loan.interest_rate < ZERO:
                        raise ValidationError("Interest rate can not be negative")
                elif key == "interest_type":
                    loan.interest_type = parse_enum(InterestType, value, "interest type")
                elif key == "tenure_months":
                    loan.tenure_months = int(to_decimal(value, key))
                    if loan.tenure_months <= 0:
                        raise ValidationError("Tenure must be at least one month")
                elif key == "status":
                    loan.status = parse_enum(LoanStatus, value, "loan status")
                elif key == "risk_zone":
                    loan.risk_zone = parse_enum(RiskZone, value, "risk zone")
                elif key in ("outstanding_principal", "outstanding_interest"):
                    setattr(loan, key, floor_at_zero(to_decimal(value, key)))
                elif key in ("due_date", "maturity_date"):
                    setattr(loan, key, parse_timestamp(value, key))
                else:
                    raise ValidationError(f"Field {key} can not be updated")

            was_closed = old_values['status'] == LoanStatus.CLOSED.value
            if was_closed and loan.status != LoanStatus.CLOSED:
                raise ConflictError("A closed loan can not be reopened")
            if loan.status == LoanStatus.CLOSED and not was_closed:
                if loan.outstanding_principal > ZERO:
                    raise ConflictError("Cannot close a loan with outstanding principal")
                loan.closed_at = datetime.now(timezone.utc)

            loan.updated_at = datetime.now(timezone.utc)
            self.save_loan(loan)
            self.audit_trail.log(
                AuditAction.UPDATE,
                AuditModule.LOAN,
                record_id=loan.id,
                user_id=user_id,
                old_values=old_values,
                new_values=loan
            )
        return loan

    def delete_loan(self, loan_id: str, user_id: Optional[str] = None) -> None:
        """
        Delete a non-ACTIVE loan, its interest periods and notes

        Ornaments still pledged to it are released. Payments stay on file.
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status == LoanStatus.ACTIVE:
                raise ConflictError("Cannot delete active loan")

            for ornament in self.ornament_manager.for_loan(loan_id):
                if ornament.status == OrnamentStatus.PLEDGED:
                    ornament.status = OrnamentStatus.AVAILABLE
                ornament.loan_id = None
                ornament.updated_at = datetime.now(timezone.utc)
                self.storage.save(self.ornament_manager.table_name, ornament.id, ornament.to_dict())
            self.interest_ledger.delete_for_loan(loan_id)
            for note in self.storage.find("notes", {'loan_id': loan_id}):
                self.storage.delete("notes", note['id'])
            self.storage.delete(self.table_name, loan_id)

            self.audit_trail.log(
                AuditAction.DELETE,
                AuditModule.LOAN,
                record_id=loan_id,
                user_id=user_id,
                old_values=loan
            )

        logger.info("Loan deleted", extra={'user_id': user_id, 'resource': loan.loan_reference_number})


    @staticmethod
    def _risk_state(loan: Loan) -> tuple:
        return (loan.status, loan.risk_zone, loan.loan_to_value_ratio, loan.total_ornament_value)

    def _reevaluate(self, loan_id: str, user_id: Optional[str], now: datetime) -> Tuple[Loan, bool]:
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status not in OPEN_STATUSES:
                return loan, False

            old_values = loan.to_dict()
            before = self._risk_state(loan)
            policy = self.settings.policy()

            collateral = ZERO
            for ornament in self.ornament_manager.for_loan(loan_id):
                if ornament.status != OrnamentStatus.PLEDGED:
                    continue
                value = self.rate_manager.appraise(
                    ornament.metal_type, ornament.karat, ornament.net_weight, ornament.gross_weight
                )
                if value > ZERO and value != ornament.valuation_amount:
                    ornament.valuation_amount = value
                    ornament.valuation_date = now
                    ornament.updated_at = now
                    self.storage.save(self.ornament_manager.table_name, ornament.id, ornament.to_dict())
                collateral += ornament.valuation_amount

            if collateral > ZERO:
                loan.total_ornament_value = collateral
                loan.loan_to_value_ratio = compute_ltv(loan.outstanding_principal, collateral)

            days_overdue = (now - loan.due_date).days if now > loan.due_date else 0
            if days_overdue > 0 and loan.status == LoanStatus.ACTIVE:
                loan.status = LoanStatus.OVERDUE

            loan.risk_zone = classify_risk_zone(loan.loan_to_value_ratio, policy, days_overdue)

            if self._risk_state(loan) == before:
                return loan, False

            loan.updated_at = now
            self.save_loan(loan)
            self.audit_trail.log(
                AuditAction.UPDATE,
                AuditModule.LOAN,
                record_id=loan.id,
                user_id=user_id,
                old_values=old_values,
                new_values=loan
            )

        logger.info("Loan re-evaluated", extra={'user_id': user_id, 'resource': loan.loan_reference_number,
                                                'extra_data': {'risk_zone': loan.risk_zone.value,
                                                               'status': loan.status.value}})
        return loan, True

    def reevaluate_loan(self, loan_id: str, user_id: Optional[str] = None,
                        as_of: Optional[datetime] = None) -> Loan:
        """
        Recompute collateral value, LTV, overdue status and risk zone

        Pledged ornaments are re-appraised at the latest metal rate (keeping
        their stored valuation when no rate exists). LTV is measured on the
        outstanding principal. An ACTIVE loan past its due date becomes
        OVERDUE. Closed and other settled loans are returned unchanged.
        """
        loan, _ = self._reevaluate(loan_id, user_id, as_of or datetime.now(timezone.utc))
        return loan

    def refresh_risk(self, user_id: Optional[str] = None,
                     as_of: Optional[datetime] = None) -> Dict[str, Any]:
        """Re-evaluate every ACTIVE and OVERDUE loan"""
        now = as_of or datetime.now(timezone.utc)
        summary = {
            'evaluated': 0,
            'changed': 0,
            'risk_zones': {zone.value: 0 for zone in RiskZone},
        }
        open_statuses = [s.value for s in OPEN_STATUSES]
        open_ids = [d['id'] for d in self.storage.load_all(self.table_name) if d['status'] in open_statuses]

        for loan_id in open_ids:
            loan, changed = self._reevaluate(loan_id, user_id, now)
            summary['evaluated'] += 1
            summary['risk_zones'][loan.risk_zone.value] += 1
            if changed:
                summary['changed'] += 1

        logger.info("Risk refresh complete", extra={'user_id': user_id, 'extra_data': summary})
        return summary
