"""
Test suite for metal rates, appraisal and ornaments
"""

import pytest
from datetime import date
from decimal import Decimal

from olms.storage import InMemoryStorage
from olms.audit import AuditTrail, AuditModule
from olms.identifiers import IdentifierGenerator
from olms.customers import CustomerManager
from olms.rates import RateManager, MetalType
from olms.ornaments import OrnamentManager, OrnamentStatus
from olms.exceptions import ValidationError, NotFoundError, ConflictError


class TestRateManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.rates = RateManager(self.storage, self.audit)

    def test_add_rate_defaults(self):
        rate = self.rates.add_rate("GOLD", "22", "6000")
        assert rate.metal_type == MetalType.GOLD
        assert rate.karat == Decimal('22')
        assert rate.rate_per_gram == Decimal('6000')
        assert rate.source == "MANUAL"
        assert self.audit.count_entries() == 1

    def test_required_fields(self):
        with pytest.raises(ValidationError, match="Metal type, karat, and rate are required"):
            self.rates.add_rate("GOLD", "22", None)

    def test_invalid_metal(self):
        with pytest.raises(ValidationError):
            self.rates.add_rate("BRONZE", "22", "100")

    def test_same_day_rate_is_replaced(self):
        first = self.rates.add_rate("GOLD", "22", "6000", rate_date="2024-05-01")
        second = self.rates.add_rate("GOLD", "22", "6100", rate_date="2024-05-01")

        assert second.id == first.id
        assert self.storage.count("metal_rates") == 1
        assert self.rates.latest_rate(MetalType.GOLD, Decimal('22')).rate_per_gram == Decimal('6100')
        # Only the new rate is audited
        assert self.audit.count_entries() == 1

    def test_latest_rate_by_date(self):
        self.rates.add_rate("GOLD", "22", "6200", rate_date="2024-05-03")
        self.rates.add_rate("GOLD", "22", "6000", rate_date="2024-05-01")
        self.rates.add_rate("GOLD", "24", "6500", rate_date="2024-05-02")

        latest = self.rates.latest_rate(MetalType.GOLD, Decimal('22'))
        assert latest.rate_per_gram == Decimal('6200')
        assert latest.rate_date == date(2024, 5, 3)
        assert self.rates.latest_rate(MetalType.SILVER, Decimal('22')) is None

    def test_latest_rates_one_per_metal_and_karat(self):
        self.rates.add_rate("SILVER", "999", "80", rate_date="2024-05-01")
        self.rates.add_rate("GOLD", "22", "6000", rate_date="2024-05-01")
        self.rates.add_rate("GOLD", "22", "6100", rate_date="2024-05-02")
        self.rates.add_rate("GOLD", "24", "6500", rate_date="2024-05-02")

        latest = self.rates.latest_rates()
        assert [(r.metal_type.value, r.karat, r.rate_per_gram) for r in latest] == [
            ("GOLD", Decimal('22'), Decimal('6100')),
            ("GOLD", Decimal('24'), Decimal('6500')),
            ("SILVER", Decimal('999'), Decimal('80')),
        ]

    def test_list_rates_filter_and_limit(self):
        for day in range(1, 6):
            self.rates.add_rate("GOLD", "22", "6000", rate_date=f"2024-05-0{day}")
        self.rates.add_rate("SILVER", "999", "80", rate_date="2024-05-01")

        gold = self.rates.list_rates(metal_type="GOLD", limit=3)
        assert [r.rate_date.day for r in gold] == [5, 4, 3]

    def test_appraise(self):
        self.rates.add_rate("GOLD", "22", "6000")

        # Explicit valuation wins
        assert self.rates.appraise(MetalType.GOLD, Decimal('22'), Decimal('10'), Decimal('12'),
                                   Decimal('99999')) == Decimal('99999.00')
        # Rate x net weight
        assert self.rates.appraise(MetalType.GOLD, Decimal('22'), Decimal('10'), Decimal('12')) == Decimal('60000.00')
        # Gross weight when net weight is missing
        assert self.rates.appraise(MetalType.GOLD, Decimal('22'), None, Decimal('12')) == Decimal('72000.00')
        # No rate
        assert self.rates.appraise(MetalType.PLATINUM, Decimal('22'), Decimal('10'), Decimal('12')) == Decimal('0')


class TestOrnamentManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        identifiers = IdentifierGenerator(self.storage)
        self.rates = RateManager(self.storage, self.audit)
        self.customers = CustomerManager(self.storage, self.audit, identifiers)
        self.ornaments = OrnamentManager(self.storage, self.audit, identifiers, self.rates)
        self.customer = self.customers.create_customer("Asha", "Verma", "9000000001")

    def _create(self, **kwargs):
        fields = {
            'customer_id': self.customer.id,
            'name': "Bridal necklace",
            'type': "NECKLACE",
            'metal_type': "GOLD",
            'gross_weight': "25",
        }
        fields.update(kwargs)
        return self.ornaments.create_ornament(**fields)

    def test_create_with_rate_valuation(self):
        self.rates.add_rate("GOLD", "22", "6000")
        ornament = self._create(net_weight="20")

        assert ornament.ornament_code == "ORN000001"
        assert ornament.karat == Decimal('22')
        assert ornament.valuation_amount == Decimal('120000.00')
        assert ornament.status == OrnamentStatus.AVAILABLE
        assert ornament.loan_id is None
        assert len(self.audit.entries_for_record(AuditModule.ORNAMENT, ornament.id)) == 1

    def test_net_weight_defaults_to_gross(self):
        ornament = self._create()
        assert ornament.net_weight == Decimal('25')
        assert ornament.stone_weight == Decimal('0')

    def test_explicit_valuation(self):
        ornament = self._create(valuation_amount="100000")
        assert ornament.valuation_amount == Decimal('100000.00')

    def test_no_rate_gives_zero_valuation(self):
        ornament = self._create(metal_type="PLATINUM")
        assert ornament.valuation_amount == Decimal('0')

    def test_required_fields(self):
        with pytest.raises(ValidationError, match="Customer, name, type, and metal type are required"):
            self._create(name="")

    def test_gross_weight_must_be_positive(self):
        with pytest.raises(ValidationError, match="Gross weight must be greater than 0"):
            self._create(gross_weight="0")

    def test_unknown_customer(self):
        with pytest.raises(ValidationError, match="Customer not found"):
            self._create(customer_id="missing")
        assert self.storage.count("ornaments") == 0

    def test_update_ornament(self):
        ornament = self._create()
        updated = self.ornaments.update_ornament(ornament.id, {'valuation_amount': '50000', 'description': 'Antique'})
        assert updated.valuation_amount == Decimal('50000')
        assert updated.description == 'Antique'

    def test_update_unknown_field_rejected(self):
        ornament = self._create()
        with pytest.raises(ValidationError):
            self.ornaments.update_ornament(ornament.id, {'loan_id': 'l1'})

    def test_pledge_and_release(self):
        first = self._create()
        second = self._create(name="Ring", type="RING")

        self.ornaments.pledge([first, second], "loan-1")
        assert {o.id for o in self.ornaments.for_loan("loan-1")} == {first.id, second.id}
        assert self.ornaments.get_ornament(first.id).status == OrnamentStatus.PLEDGED

        released = self.ornaments.release("loan-1")
        assert len(released) == 2
        assert self.ornaments.get_ornament(second.id).status == OrnamentStatus.RELEASED

    def test_find_available_skips_pledged_and_missing(self):
        first = self._create()
        second = self._create(name="Ring", type="RING")
        self.ornaments.pledge([second], "loan-1")

        available = self.ornaments.find_available([first.id, second.id, "missing", first.id])
        assert [o.id for o in available] == [first.id]

    def test_delete_pledged_rejected(self):
        ornament = self._create()
        self.ornaments.pledge([ornament], "loan-1")
        with pytest.raises(ConflictError, match="Cannot delete pledged ornament"):
            self.ornaments.delete_ornament(ornament.id)

    def test_delete_available(self):
        ornament = self._create()
        self.ornaments.delete_ornament(ornament.id)
        with pytest.raises(NotFoundError):
            self.ornaments.require_ornament(ornament.id)

    def test_list_ornaments(self):
        self._create()
        self._create(name="Ring", type="RING")
        other = self.customers.create_customer("Ravi", "Kumar", "9000000002")
        self._create(customer_id=other.id, name="Chain", type="CHAIN")

        ornaments, total = self.ornaments.list_ornaments(customer_id=self.customer.id)
        assert total == 2

        ornaments, total = self.ornaments.list_ornaments(search="chain")
        assert [o.name for o in ornaments] == ["Chain"]

        ornaments, total = self.ornaments.list_ornaments(search="ORN000002")
        assert [o.name for o in ornaments] == ["Ring"]
