"""
Metal Rates Module

Daily per-gram rates by metal and karat, and the ornament appraisal rule
built on them. Rates are always read from the store; nothing is cached.
"""

from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError
from .logging_config import get_logger
from .money import ZERO, to_decimal, quantize_money
from .storage import StorageInterface, StorageRecord


logger = get_logger("olms.rates")

DEFAULT_KARAT = Decimal('22')


class MetalType(Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    PLATINUM = "PLATINUM"


def parse_metal_type(value: Any) -> MetalType:
    try:
        return MetalType(value)
    except ValueError:
        raise ValidationError(f"Invalid metal type: {value}")


@dataclass
class MetalRate(StorageRecord):
    """Rate per gram for one (metal, karat) on one day"""
    metal_type: MetalType
    karat: Decimal
    rate_per_gram: Decimal
    rate_date: date
    source: str = "MANUAL"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MetalRate':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            metal_type=MetalType(data['metal_type']),
            karat=Decimal(data['karat']),
            rate_per_gram=Decimal(data['rate_per_gram']),
            rate_date=date.fromisoformat(data['rate_date']),
            source=data.get('source', 'MANUAL')
        )


class RateManager:
    """
    Maintains the metal rate table and appraises ornaments against it
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "metal_rates"

    def _rates(self) -> List[MetalRate]:
        return [MetalRate.from_dict(d) for d in self.storage.load_all(self.table_name)]

    @staticmethod
    def _newest_first(rates: List[MetalRate]) -> List[MetalRate]:
        return sorted(rates, key=lambda r: (r.rate_date, r.created_at), reverse=True)

    def add_rate(
        self,
        metal_type: Any,
        karat: Any,
        rate_per_gram: Any,
        rate_date: Any = None,
        source: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> MetalRate:
        """
        Record a rate, replacing any rate for the same metal, karat and day

        Only newly created rates are audited.
        """
        if not metal_type or not karat or not rate_per_gram:
            raise ValidationError("Metal type, karat, and rate are required")

        metal = parse_metal_type(metal_type)
        karat = to_decimal(karat, "karat")
        rate_per_gram = to_decimal(rate_per_gram, "rate_per_gram")
        if rate_per_gram <= ZERO:
            raise ValidationError("Rate per gram must be greater than 0")

        if rate_date in (None, ""):
            day = datetime.now(timezone.utc).date()
        elif isinstance(rate_date, date):
            day = rate_date if not isinstance(rate_date, datetime) else rate_date.date()
        else:
            try:
                day = datetime.fromisoformat(str(rate_date)).date()
            except ValueError:
                raise ValidationError(f"rate_date must be an ISO date, got {rate_date!r}")

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            existing = next(
                (r for r in self._rates()
                 if r.metal_type == metal and r.karat == karat and r.rate_date == day),
                None
            )
            if existing:
                existing.rate_per_gram = rate_per_gram
                existing.source = source or "MANUAL"
                existing.updated_at = now
                self.storage.save(self.table_name, existing.id, existing.to_dict())
                return existing

            rate = MetalRate(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                metal_type=metal,
                karat=karat,
                rate_per_gram=rate_per_gram,
                rate_date=day,
                source=source or "MANUAL"
            )
            self.storage.save(self.table_name, rate.id, rate.to_dict())
            self.audit_trail.log(
                AuditAction.CREATE,
                AuditModule.RATE,
                record_id=rate.id,
                user_id=user_id,
                new_values=rate
            )

        logger.info("Metal rate added", extra={'user_id': user_id, 'extra_data': {
            'metal_type': metal.value, 'karat': str(karat), 'rate_per_gram': str(rate_per_gram)
        }})
        return rate

    def latest_rate(self, metal_type: MetalType, karat: Decimal) -> Optional[MetalRate]:
        """Most recent rate for (metal, karat) by rate date"""
        matching = [r for r in self._rates() if r.metal_type == metal_type and r.karat == karat]
        if not matching:
            return None
        return self._newest_first(matching)[0]

    def list_rates(self, metal_type: Optional[str] = None, limit: int = 30) -> List[MetalRate]:
        rates = self._rates()
        if metal_type:
            rates = [r for r in rates if r.metal_type.value == metal_type]
        return self._newest_first(rates)[:limit]

    def latest_rates(self) -> List[MetalRate]:
        """One rate per (metal, karat), ordered by metal then karat"""
        latest: Dict[tuple, MetalRate] = {}
        for rate in self._newest_first(self._rates()):
            latest.setdefault((rate.metal_type.value, rate.karat), rate)
        return [latest[key] for key in sorted(latest)]

    def appraise(
        self,
        metal_type: MetalType,
        karat: Decimal,
        net_weight: Optional[Decimal],
        gross_weight: Decimal,
        explicit: Optional[Decimal] = None
    ) -> Decimal:
        """
        Value an ornament

        An explicit valuation wins. Otherwise the latest matching rate times
        net weight (gross weight when net is absent). No rate gives 0.
        """
        if explicit:
            return quantize_money(explicit)

        rate = self.latest_rate(metal_type, karat)
        if not rate:
            return ZERO

        weight = net_weight if net_weight else gross_weight
        return quantize_money(rate.rate_per_gram * weight)
