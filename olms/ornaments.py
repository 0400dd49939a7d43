"""
Ornament Management Module

Pledgeable metal items owned by a customer. An ornament is AVAILABLE until a
loan pledges it; while PLEDGED it is linked to exactly one loan and can not
be deleted.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError, NotFoundError, ConflictError
from .identifiers import IdentifierGenerator
from .logging_config import get_logger
from .money import ZERO, to_decimal, decimal_or_none
from .rates import RateManager, MetalType, DEFAULT_KARAT, parse_metal_type
from .storage import StorageInterface, StorageRecord, paginate, parse_datetime


logger = get_logger("olms.ornaments")


class OrnamentStatus(Enum):
    AVAILABLE = "AVAILABLE"
    PLEDGED = "PLEDGED"
    RELEASED = "RELEASED"
    SOLD = "SOLD"


@dataclass
class Ornament(StorageRecord):
    """
    Physical item offered as collateral
    """
    ornament_code: str
    customer_id: str
    name: str
    type: str                 # ring, chain, bangle ...
    metal_type: MetalType
    karat: Decimal
    gross_weight: Decimal     # grams
    net_weight: Decimal       # grams, metal only
    stone_weight: Decimal
    valuation_amount: Decimal
    valuation_date: datetime
    description: Optional[str] = None
    status: OrnamentStatus = OrnamentStatus.AVAILABLE
    loan_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Ornament':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            ornament_code=data['ornament_code'],
            customer_id=data['customer_id'],
            name=data['name'],
            type=data['type'],
            metal_type=MetalType(data['metal_type']),
            karat=Decimal(data['karat']),
            gross_weight=Decimal(data['gross_weight']),
            net_weight=Decimal(data['net_weight']),
            stone_weight=decimal_or_none(data.get('stone_weight')) or ZERO,
            valuation_amount=Decimal(data['valuation_amount']),
            valuation_date=parse_datetime(data['valuation_date']),
            description=data.get('description'),
            status=OrnamentStatus(data['status']),
            loan_id=data.get('loan_id')
        )


class OrnamentManager:
    """
    Manages ornaments and their pledge status
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 identifiers: IdentifierGenerator, rates: RateManager):
        self.storage = storage
        self.audit_trail = audit_trail
        self.identifiers = identifiers
        self.rates = rates
        self.table_name = "ornaments"

    def _save(self, ornament: Ornament) -> None:
        self.storage.save(self.table_name, ornament.id, ornament.to_dict())

    def create_ornament(
        self,
        customer_id: str,
        name: str,
        type: str,
        metal_type: Any,
        gross_weight: Any,
        karat: Any = None,
        net_weight: Any = None,
        stone_weight: Any = None,
        valuation_amount: Any = None,
        description: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Ornament:
        """
        Register an ornament for a customer and appraise it

        Raises:
            ValidationError: missing fields, non-positive gross weight or
                unknown customer
        """
        if not customer_id or not name or not type or not metal_type:
            raise ValidationError("Customer, name, type, and metal type are required")

        gross = to_decimal(gross_weight, "gross_weight", default=ZERO)
        if gross <= ZERO:
            raise ValidationError("Gross weight must be greater than 0")

        metal = parse_metal_type(metal_type)
        karat_value = to_decimal(karat, "karat", default=DEFAULT_KARAT)
        net = to_decimal(net_weight, "net_weight", default=gross)
        stone = to_decimal(stone_weight, "stone_weight", default=ZERO)
        explicit = to_decimal(valuation_amount, "valuation_amount", default=ZERO)

        if not self.storage.exists("customers", customer_id):
            raise ValidationError("Customer not found")

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            ornament = Ornament(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                ornament_code=self.identifiers.next_id("ornament"),
                customer_id=customer_id,
                name=name,
                type=type,
                metal_type=metal,
                karat=karat_value,
                gross_weight=gross,
                net_weight=net,
                stone_weight=stone,
                valuation_amount=self.rates.appraise(metal, karat_value, net, gross, explicit),
                valuation_date=now,
                description=description or None
            )
            self._save(ornament)
            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.ORNAMENT,
                record_id=ornament.id,
                user_id=user_id,
                new_values=ornament
            )

        if ornament.valuation_amount == ZERO:
            logger.warning("Ornament has no valuation", extra={'resource': ornament.ornament_code, 'extra_data': {
                'metal_type': metal.value, 'karat': str(karat_value)
            }})
        return ornament

    def get_ornament(self, ornament_id: str) -> Optional[Ornament]:
        data = self.storage.load(self.table_name, ornament_id)
        if data:
            return Ornament.from_dict(data)
        return None

    def require_ornament(self, ornament_id: str) -> Ornament:
        ornament = self.get_ornament(ornament_id)
        if not ornament:
            raise NotFoundError("Ornament not found")
        return ornament

    def update_ornament(self, ornament_id: str, changes: Dict[str, Any],
                        user_id: Optional[str] = None) -> Ornament:
        """Partial update of descriptive fields, weights, valuation or status"""
        with self.storage.atomic():
            ornament = self.require_ornament(ornament_id)
            old_values = ornament.to_dict()

            for key, value in changes.items():
                if key in ("name", "type"):
                    if not value:
                        raise ValidationError(f"{key} can not be empty")
                    setattr(ornament, key, value)
                elif key == "description":
                    ornament.description = value or None
                elif key == "metal_type":
                    ornament.metal_type = parse_metal_type(value)
                elif key in ("karat", "gross_weight", "net_weight", "stone_weight"):
                    number = to_decimal(value, key)
                    if key == "gross_weight" and number <= ZERO:
                        raise ValidationError("Gross weight must be greater than 0")
                    setattr(ornament, key, number)
                elif key == "valuation_amount":
                    ornament.valuation_amount = to_decimal(value, key)
                    ornament.valuation_date = datetime.now(timezone.utc)
                elif key == "status":
                    try:
                        ornament.status = OrnamentStatus(value)
                    except ValueError:
                        raise ValidationError(f"Invalid ornament status: {value}")
                else:
                    raise ValidationError(f"Field {key} can not be updated")

            ornament.updated_at = datetime.now(timezone.utc)
            self._save(ornament)
            self.audit_trail.log(
                AuditAction.UPDATE,
                AuditModule.ORNAMENT,
                record_id=ornament.id,
                user_id=user_id,
                old_values=old_values,
                new_values=ornament
            )
        return ornament

    def delete_ornament(self, ornament_id: str, user_id: Optional[str] = None) -> None:
        with self.storage.atomic():
            ornament = self.require_ornament(ornament_id)
            if ornament.status == OrnamentStatus.PLEDGED:
                raise ConflictError("Cannot delete pledged ornament")
            self.storage.delete(self.table_name, ornament_id)
            self.audit_trail.log(
                AuditAction.DELETE,
                AuditModule.ORNAMENT,
                record_id=ornament_id,
                user_id=user_id,
                old_values=ornament
            )

    def list_ornaments(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Ornament], int]:
        """List ornaments newest first; ``search`` matches name or code"""
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status
        if customer_id:
            filters['customer_id'] = customer_id

        ornaments = [Ornament.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        if search:
            needle = search.lower()
            ornaments = [
                o for o in ornaments
                if needle in o.name.lower() or needle in o.ornament_code.lower()
            ]

        ornaments.sort(key=lambda o: o.created_at, reverse=True)
        return paginate(ornaments, page, limit)

    def for_loan(self, loan_id: str) -> List[Ornament]:
        return [Ornament.from_dict(d) for d in self.storage.find(self.table_name, {'loan_id': loan_id})]

    def find_available(self, ornament_ids: List[str]) -> List[Ornament]:
        """The subset of ``ornament_ids`` that exist and are AVAILABLE"""
        available = []
        for ornament_id in dict.fromkeys(ornament_ids):
            ornament = self.get_ornament(ornament_id)
            if ornament and ornament.status == OrnamentStatus.AVAILABLE:
                available.append(ornament)
        return available

    def pledge(self, ornaments: List[Ornament], loan_id: str) -> None:
        """Mark ornaments PLEDGED against a loan; caller owns the unit of work"""
        now = datetime.now(timezone.utc)
        for ornament in ornaments:
            ornament.status = OrnamentStatus.PLEDGED
            ornament.loan_id = loan_id
            ornament.updated_at = now
            self._save(ornament)

    def release(self, loan_id: str) -> List[Ornament]:
        """Release every ornament still pledged to a loan"""
        now = datetime.now(timezone.utc)
        released = []
        for ornament in self.for_loan(loan_id):
            if ornament.status != OrnamentStatus.PLEDGED:
                continue
            ornament.status = OrnamentStatus.RELEASED
            ornament.updated_at = now
            self._save(ornament)
            released.append(ornament)
        return released
