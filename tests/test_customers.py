"""
Test suite for customer management
"""

import pytest
from datetime import date
from decimal import Decimal

from olms.storage import InMemoryStorage
from olms.audit import AuditTrail, AuditAction, AuditModule
from olms.identifiers import IdentifierGenerator
from olms.customers import CustomerManager, CustomerStatus
from olms.exceptions import ValidationError, NotFoundError, ConflictError


class TestCustomerManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.manager = CustomerManager(self.storage, self.audit, IdentifierGenerator(self.storage))

    def _create(self, phone="9000000001", **kwargs):
        return self.manager.create_customer(
            first_name=kwargs.pop("first_name", "Asha"),
            last_name=kwargs.pop("last_name", "Verma"),
            phone=phone,
            **kwargs
        )

    def test_create_customer(self):
        customer = self._create(
            user_id="u1",
            email="asha@example.com",
            city="Pune",
            date_of_birth="1990-04-12",
            annual_income="450000"
        )

        assert customer.customer_code == "CUS000001"
        assert customer.full_name == "Asha Verma"
        assert customer.status == CustomerStatus.ACTIVE
        assert customer.date_of_birth == date(1990, 4, 12)
        assert customer.annual_income == Decimal('450000')
        assert customer.city == "Pune"

        stored = self.manager.get_customer(customer.id)
        assert stored.email == "asha@example.com"

        entries = self.audit.entries_for_record(AuditModule.CUSTOMER, customer.id)
        assert [e.action for e in entries] == [AuditAction.CREATE]
        assert entries[0].user_id == "u1"

    def test_codes_are_sequential(self):
        self._create(phone="1")
        second = self._create(phone="2")
        assert second.customer_code == "CUS000002"

    def test_required_fields(self):
        with pytest.raises(ValidationError, match="First name, last name, and phone are required"):
            self.manager.create_customer(first_name="Asha", last_name="", phone="9000000001")

    def test_duplicate_phone_rejected(self):
        self._create()
        with pytest.raises(ConflictError):
            self._create(first_name="Other")
        assert self.storage.count("customers") == 1

    def test_unknown_profile_field_rejected(self):
        with pytest.raises(ValidationError):
            self._create(favourite_colour="gold")

    def test_lookup_by_code_and_phone(self):
        customer = self._create()
        assert self.manager.get_by_code("CUS000001").id == customer.id
        assert self.manager.get_by_phone("9000000001").id == customer.id
        assert self.manager.get_by_code("CUS999999") is None

    def test_update_customer(self):
        customer = self._create()
        updated = self.manager.update_customer(
            customer.id, {'city': 'Mumbai', 'status': 'INACTIVE'}, user_id="u1"
        )
        assert updated.city == "Mumbai"
        assert updated.status == CustomerStatus.INACTIVE
        assert updated.first_name == "Asha"

        entry = self.audit.entries_for_record(AuditModule.CUSTOMER, customer.id)[-1]
        assert entry.action == AuditAction.UPDATE
        assert entry.old_snapshot['city'] is None
        assert entry.new_snapshot['city'] == 'Mumbai'

    def test_update_to_taken_phone_rejected(self):
        self._create(phone="1")
        other = self._create(phone="2")
        with pytest.raises(ConflictError):
            self.manager.update_customer(other.id, {'phone': '1'})

    def test_update_unknown_customer(self):
        with pytest.raises(NotFoundError):
            self.manager.update_customer("missing", {'city': 'Pune'})

    def test_delete_customer_cascades_notes(self):
        customer = self._create()
        self.storage.save("notes", "n1", {'id': 'n1', 'customer_id': customer.id})
        self.storage.save("notes", "n2", {'id': 'n2', 'customer_id': 'someone-else'})

        self.manager.delete_customer(customer.id, user_id="u1")

        assert self.manager.get_customer(customer.id) is None
        assert not self.storage.exists("notes", "n1")
        assert self.storage.exists("notes", "n2")

    def test_delete_with_active_loan_rejected(self):
        customer = self._create()
        self.storage.save("loans", "l1", {'id': 'l1', 'customer_id': customer.id, 'status': 'ACTIVE'})

        with pytest.raises(ConflictError, match="Cannot delete customer with active loans"):
            self.manager.delete_customer(customer.id)
        assert self.manager.get_customer(customer.id) is not None

    def test_delete_with_closed_loan_allowed(self):
        customer = self._create()
        self.storage.save("loans", "l1", {'id': 'l1', 'customer_id': customer.id, 'status': 'CLOSED'})
        self.manager.delete_customer(customer.id)
        assert self.manager.get_customer(customer.id) is None

    def test_list_customers_search_and_paging(self):
        self._create(phone="1", first_name="Asha")
        self._create(phone="2", first_name="Ravi")
        self._create(phone="3", first_name="Ravindra")

        customers, total = self.manager.list_customers(search="rav")
        assert total == 2
        assert {c.first_name for c in customers} == {"Ravi", "Ravindra"}

        customers, total = self.manager.list_customers(page=2, limit=2)
        assert total == 3
        assert len(customers) == 1

        customers, total = self.manager.list_customers(search="CUS000001")
        assert [c.first_name for c in customers] == ["Asha"]
