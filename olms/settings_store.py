"""
Settings Store Module

Key/value business settings (interest defaults, LTV cap, risk-zone
boundaries). Values are stored as strings and read fresh on every loan
operation through an immutable LoanPolicy snapshot.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Any

from .audit import AuditTrail, AuditAction, AuditModule
from .exceptions import ValidationError
from .logging_config import get_logger
from .money import to_decimal
from .storage import StorageInterface, StorageRecord


logger = get_logger("olms.settings")


# key -> (default value, description)
DEFAULT_SETTINGS: Dict[str, tuple] = {
    "default_interest_rate": ("12", "Default annual interest rate (%)"),
    "loan_to_value_ratio": ("75", "Maximum loan to value ratio (%)"),
    "penalty_rate": ("2", "Penalty interest rate on overdue amounts (%)"),
    "yellow_zone_threshold": ("80", "LTV at which a loan enters the yellow zone (%)"),
    "red_zone_threshold": ("90", "LTV at which a loan enters the red zone (%)"),
    "overdue_days_red": ("15", "Days past due after which a loan is red zone"),
}


@dataclass
class Setting(StorageRecord):
    """A single business setting; the record id is the key"""
    key: str
    value: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Setting':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            key=data['key'],
            value=data['value'],
            description=data.get('description')
        )


@dataclass(frozen=True)
class LoanPolicy:
    """Snapshot of the settings consumed by the loan lifecycle"""
    default_interest_rate: Decimal
    max_ltv: Decimal
    penalty_rate: Decimal
    yellow_zone_threshold: Decimal
    red_zone_threshold: Decimal
    overdue_days_red: int


class SettingsStore:
    """
    Store-backed key/value settings service
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "settings"

    def seed_defaults(self) -> int:
        """Insert any missing default settings; returns how many were added"""
        added = 0
        with self.storage.atomic():
            for key, (value, description) in DEFAULT_SETTINGS.items():
                if self.storage.exists(self.table_name, key):
                    continue
                now = datetime.now(timezone.utc)
                setting = Setting(
                    id=key, created_at=now, updated_at=now,
                    key=key, value=value, description=description
                )
                self.storage.save(self.table_name, key, setting.to_dict())
                added += 1
        if added:
            logger.info("Seeded default settings", extra={'extra_data': {'added': added}})
        return added

    def list_settings(self) -> List[Setting]:
        settings = [Setting.from_dict(d) for d in self.storage.load_all(self.table_name)]
        return sorted(settings, key=lambda s: s.key)

    def get_all(self) -> Dict[str, str]:
        """All settings as a key -> value map, sorted by key"""
        return {s.key: s.value for s in self.list_settings()}

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        data = self.storage.load(self.table_name, key)
        if data:
            return data['value']
        if default is not None:
            return default
        if key in DEFAULT_SETTINGS:
            return DEFAULT_SETTINGS[key][0]
        return None

    def update(self, values: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, str]:
        """
        Upsert every key in ``values`` as a string

        Each changed key gets its own UPDATE audit entry. Built-in keys must
        hold non-negative numbers; a bad value rejects the whole update.

        Returns:
            The full settings map after the update
        """
        with self.storage.atomic():
            for key, raw_value in values.items():
                value = str(raw_value)
                if key in DEFAULT_SETTINGS:
                    # every built-in setting is numeric and feeds LoanPolicy
                    if to_decimal(raw_value, field_name=key) < 0:
                        raise ValidationError(f"{key} can not be negative")
                now = datetime.now(timezone.utc)
                existing = self.storage.load(self.table_name, key)

                if existing:
                    old = Setting.from_dict(existing)
                    if old.value == value:
                        continue
                    updated = Setting(
                        id=key, created_at=old.created_at, updated_at=now,
                        key=key, value=value, description=old.description
                    )
                    old_values = {'key': key, 'value': old.value}
                else:
                    updated = Setting(
                        id=key, created_at=now, updated_at=now, key=key, value=value,
                        description=DEFAULT_SETTINGS.get(key, (None, None))[1]
                    )
                    old_values = None

                self.storage.save(self.table_name, key, updated.to_dict())
                self.audit_trail.log(
                    AuditAction.UPDATE,
                    AuditModule.SETTING,
                    record_id=key,
                    user_id=user_id,
                    old_values=old_values,
                    new_values={'key': key, 'value': value}
                )

        logger.info("Settings updated", extra={'user_id': user_id, 'extra_data': {'keys': sorted(values)}})
        return self.get_all()

    def _decimal(self, key: str) -> Decimal:
        return to_decimal(self.get(key), field_name=key)

    def policy(self) -> LoanPolicy:
        """Read the current loan policy; never cached"""
        return LoanPolicy(
            default_interest_rate=self._decimal("default_interest_rate"),
            max_ltv=self._decimal("loan_to_value_ratio"),
            penalty_rate=self._decimal("penalty_rate"),
            yellow_zone_threshold=self._decimal("yellow_zone_threshold"),
            red_zone_threshold=self._decimal("red_zone_threshold"),
            overdue_days_red=int(self._decimal("overdue_days_red"))
        )
