"""
Dashboard statistics.

Read-only aggregates over customers, ornaments, loans and payments. Every
figure is computed from the store on each call, and an empty store yields
zeros and empty lists.
"""

from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Any

from .loans import add_months
from .money import ZERO
from .storage import StorageInterface


RECENT_COUNT = 5
TREND_MONTHS = 6


def _sum(records: List[Dict[str, Any]], key: str) -> Decimal:
    return sum((Decimal(r.get(key) or '0') for r in records), ZERO)


def _name_fields(customer: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not customer:
        return {'first_name': None, 'last_name': None}
    return {'first_name': customer.get('first_name'), 'last_name': customer.get('last_name')}


class DashboardAggregator:
    """Computes the dashboard payload"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def get_dashboard(self, as_of: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_of or datetime.now(timezone.utc)

        customers = {c['id']: c for c in self.storage.load_all("customers")}
        loans = self.storage.load_all("loans")
        payments = self.storage.load_all("payments")
        loans_by_id = {loan['id']: loan for loan in loans}
        active = [loan for loan in loans if loan['status'] == 'ACTIVE']

        status_counts = Counter(loan['status'] for loan in loans)
        zone_counts = Counter(loan['risk_zone'] for loan in loans)

        stats = {
            'total_customers': len(customers),
            'total_loans': len(loans),
            'active_loans': len(active),
            'total_ornaments': self.storage.count("ornaments"),
            'total_payments': len(payments),
            'overdue_loans': status_counts.get('OVERDUE', 0),
            'red_zone_loans': zone_counts.get('RED', 0),
            'yellow_zone_loans': zone_counts.get('YELLOW', 0),
            'total_disbursed': _sum(loans, 'principal_amount'),
            'total_outstanding': _sum(active, 'outstanding_principal'),
            'total_interest_collected': _sum(payments, 'interest_amount'),
        }

        recent_loans = []
        for loan in sorted(loans, key=lambda r: r['created_at'], reverse=True)[:RECENT_COUNT]:
            recent_loans.append({**loan, 'customer': _name_fields(customers.get(loan['customer_id']))})

        recent_payments = []
        for payment in sorted(payments, key=lambda r: r['created_at'], reverse=True)[:RECENT_COUNT]:
            loan = loans_by_id.get(payment['loan_id'])
            recent_payments.append({
                **payment,
                'loan_reference_number': loan['loan_reference_number'] if loan else None,
                'customer': _name_fields(customers.get(payment['customer_id'])),
            })

        return {
            'stats': stats,
            'loans_by_status': [
                {'status': status, 'count': count} for status, count in sorted(status_counts.items())
            ],
            'loans_by_risk_zone': [
                {'risk_zone': zone, 'count': count} for zone, count in sorted(zone_counts.items())
            ],
            'recent_loans': recent_loans,
            'recent_payments': recent_payments,
            'monthly_loans': self.monthly_loans(loans, now),
        }

    @staticmethod
    def monthly_loans(loans: List[Dict[str, Any]], now: datetime) -> List[Dict[str, Any]]:
        """
        Loan count and disbursed amount per YYYY-MM for loans created in the
        trailing six months, oldest month first; months without loans are
        left out
        """
        since = add_months(now, -TREND_MONTHS)
        months: Dict[str, Dict[str, Any]] = {}
        for loan in loans:
            created = datetime.fromisoformat(loan['created_at'])
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            if created < since:
                continue
            month = created.strftime('%Y-%m')
            bucket = months.setdefault(month, {'month': month, 'count': 0, 'amount': ZERO})
            bucket['count'] += 1
            bucket['amount'] += Decimal(loan['principal_amount'])

        return [months[month] for month in sorted(months)]
