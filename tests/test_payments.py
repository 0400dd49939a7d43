"""
Test suite for payment recording

Covers balance application, clamping at zero, the one-way closure rule,
interest-ledger settlement and ornament release on closure.
"""

import pytest
from decimal import Decimal
from unittest.mock import patch

from olms.storage import InMemoryStorage
from olms.api.auth import LoanManagementSystem
from olms.audit import AuditAction, AuditModule
from olms.exceptions import ValidationError, NotFoundError
from olms.interest_ledger import LedgerStatus
from olms.loans import LoanStatus
from olms.ornaments import OrnamentStatus
from olms.payments import PaymentType, PaymentMethod


class TestPaymentProcessor:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.system = LoanManagementSystem(self.storage)
        self.customer = self.system.customer_manager.create_customer("Asha", "Verma", "9000000001")
        self.ornament = self.system.ornament_manager.create_ornament(
            customer_id=self.customer.id,
            name="Necklace",
            type="NECKLACE",
            metal_type="GOLD",
            gross_weight="25",
            valuation_amount="100000"
        )
        loan = self.system.loan_manager.create_loan(
            customer_id=self.customer.id,
            principal_amount="70000",
            ornament_ids=[self.ornament.id],
            interest_rate="12"
        )
        self.loan = self.system.loan_manager.update_loan(loan.id, {'outstanding_interest': '700'})
        self.processor = self.system.payment_processor

    def pay(self, amount, payment_type="BOTH", **kwargs):
        return self.processor.record_payment(
            loan_id=kwargs.pop('loan_id', self.loan.id),
            amount=amount,
            payment_type=payment_type,
            payment_method=kwargs.pop('payment_method', "CASH"),
            **kwargs
        )

    def reload(self):
        return self.system.loan_manager.get_loan(self.loan.id)

    def test_scenario_full_repayment_without_closure(self):
        payment = self.pay("70700", principal_amount="70000", interest_amount="700", user_id="cashier")

        assert payment.payment_code == "PAY00000001"
        assert payment.receipt_number.startswith("RCP")
        assert payment.customer_id == self.customer.id
        assert payment.payment_type == PaymentType.BOTH
        assert payment.payment_method == PaymentMethod.CASH
        assert payment.received_by == "cashier"

        loan = self.reload()
        assert loan.outstanding_principal == Decimal('0')
        assert loan.outstanding_interest == Decimal('0')
        assert loan.total_principal_paid == Decimal('70000')
        assert loan.total_interest_paid == Decimal('700')
        assert loan.status == LoanStatus.ACTIVE
        assert loan.closed_at is None
        assert self.system.ornament_manager.get_ornament(self.ornament.id).status == OrnamentStatus.PLEDGED

    def test_scenario_full_closure(self):
        self.pay("70000", payment_type="FULL_CLOSURE", principal_amount="70000")

        loan = self.reload()
        assert loan.status == LoanStatus.CLOSED
        assert loan.closed_at is not None
        assert loan.outstanding_principal == Decimal('0')

        ornament = self.system.ornament_manager.get_ornament(self.ornament.id)
        assert ornament.status == OrnamentStatus.RELEASED

    def test_full_closure_with_principal_left_keeps_loan_open(self):
        self.pay("50000", payment_type="FULL_CLOSURE", principal_amount="50000")
        loan = self.reload()
        assert loan.status == LoanStatus.ACTIVE
        assert loan.outstanding_principal == Decimal('20000')

    def test_partial_principal_payment(self):
        self.pay("10000", payment_type="PRINCIPAL", principal_amount="10000")
        loan = self.reload()
        assert loan.outstanding_principal == Decimal('60000')
        assert loan.outstanding_interest == Decimal('700')

    def test_balances_clamped_at_zero(self):
        self.pay("90000", principal_amount="80000", interest_amount="1000")
        loan = self.reload()
        assert loan.outstanding_principal == Decimal('0')
        assert loan.outstanding_interest == Decimal('0')
        # Totals record what was paid, not what was owed
        assert loan.total_principal_paid == Decimal('80000')

    def test_closed_loan_stays_closed(self):
        self.pay("70000", payment_type="FULL_CLOSURE", principal_amount="70000")
        self.pay("100", payment_type="PENALTY", penalty_amount="100")

        loan = self.reload()
        assert loan.status == LoanStatus.CLOSED
        assert self.storage.count("payments") == 2

    def test_interest_payment_settles_oldest_period(self):
        self.pay("700", payment_type="INTEREST", interest_amount="700")

        entry = self.system.interest_ledger.entries_for_loan(self.loan.id)[0]
        assert entry.status == LedgerStatus.PAID
        assert entry.paid_amount == Decimal('700')
        assert entry.paid_at is not None

    def test_partial_interest_payment(self):
        self.pay("300", payment_type="INTEREST", interest_amount="300")

        entry = self.system.interest_ledger.entries_for_loan(self.loan.id)[0]
        assert entry.status == LedgerStatus.PARTIALLY_PAID
        assert entry.balance == Decimal('400')
        assert self.reload().outstanding_interest == Decimal('400')

    def test_principal_payment_leaves_ledger_untouched(self):
        self.pay("1000", payment_type="PRINCIPAL", principal_amount="1000")
        entry = self.system.interest_ledger.entries_for_loan(self.loan.id)[0]
        assert entry.status == LedgerStatus.PENDING

    def test_split_recorded_as_given(self):
        payment = self.pay("1000", principal_amount="200", interest_amount="300", penalty_amount="50")
        stored = self.processor.get_payment(payment.id)
        assert stored.amount == Decimal('1000')
        assert stored.principal_amount == Decimal('200')
        assert stored.interest_amount == Decimal('300')
        assert stored.penalty_amount == Decimal('50')

    def test_required_fields(self):
        with pytest.raises(ValidationError, match="Loan, amount, payment type, and payment method are required"):
            self.pay(None)
        with pytest.raises(ValidationError, match="Loan, amount, payment type, and payment method are required"):
            self.pay("100", payment_method="")

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            self.pay("-5")
        with pytest.raises(ValidationError):
            self.pay("100", payment_type="BARTER")
        with pytest.raises(ValidationError):
            self.pay("100", principal_amount="-1")
        with pytest.raises(ValidationError, match="finite"):
            self.pay("NaN")
        with pytest.raises(ValidationError, match="finite"):
            self.pay("100", interest_amount="Infinity")

    def test_failure_midway_rolls_back_everything(self):
        with patch.object(self.system.audit_trail, 'log', side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                self.pay("70700", payment_type="FULL_CLOSURE", principal_amount="70000", interest_amount="700")

        assert self.storage.count("payments") == 0
        loan = self.reload()
        assert loan.status == LoanStatus.ACTIVE
        assert loan.outstanding_principal == Decimal('70000')
        assert loan.outstanding_interest == Decimal('700')

        entry = self.system.interest_ledger.entries_for_loan(self.loan.id)[0]
        assert entry.status == LedgerStatus.PENDING
        assert self.system.ornament_manager.get_ornament(self.ornament.id).status == OrnamentStatus.PLEDGED

    def test_unknown_loan(self):
        with pytest.raises(NotFoundError):
            self.pay("100", loan_id="missing")
        assert self.storage.count("payments") == 0

    def test_payment_is_audited(self):
        payment = self.pay("700", payment_type="INTEREST", interest_amount="700", user_id="cashier")
        entries = self.system.audit_trail.entries_for_record(AuditModule.PAYMENT, payment.id)
        assert len(entries) == 1
        assert entries[0].action == AuditAction.CREATE
        assert entries[0].new_snapshot['amount'] == '700'

    def test_list_payments(self):
        self.pay("100", payment_type="INTEREST", interest_amount="100")
        self.pay("200", payment_type="PRINCIPAL", principal_amount="200")

        payments, total = self.processor.list_payments(loan_id=self.loan.id)
        assert total == 2
        assert {p.amount for p in payments} == {Decimal('100'), Decimal('200')}

        payments, total = self.processor.list_payments(payment_type="INTEREST")
        assert [p.amount for p in payments] == [Decimal('100')]

        payments, total = self.processor.list_payments(customer_id="someone-else")
        assert total == 0
