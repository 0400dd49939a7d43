"""
Ornament Loan Management System

Branch-level record keeping for loans secured by pledged gold, silver and
platinum ornaments: customers, appraisal, disbursement, payments, interest
ledger and loan-to-value risk tracking. All money is handled as Decimal.
"""

__version__ = "1.0.0"
