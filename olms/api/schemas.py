"""
Pydantic schemas for API requests and responses

Request bodies accept the camelCase keys the dashboard sends as well as
snake_case. Responses are plain dicts with snake_case keys and Decimal
values as strings.
"""

from decimal import Decimal
from math import ceil
from typing import Dict, List, Optional, Any
from fastapi import Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import get_config


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def changes(self) -> Dict[str, Any]:
        """Fields the client actually sent, by snake_case name"""
        return self.model_dump(exclude_unset=True)


# Auth and user schemas
class LoginRequest(RequestModel):
    username: Optional[str] = None
    password: Optional[str] = None


class CreateUserRequest(RequestModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    branch_id: Optional[str] = None


# Customer schemas
class CreateCustomerRequest(RequestModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    alternate_phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    date_of_birth: Optional[str] = None  # ISO date string
    gender: Optional[str] = None
    occupation: Optional[str] = None
    annual_income: Optional[Decimal] = None
    branch_id: Optional[str] = None


class UpdateCustomerRequest(RequestModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    alternate_phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    annual_income: Optional[Decimal] = None
    status: Optional[str] = None
    branch_id: Optional[str] = None


# Ornament schemas
class CreateOrnamentRequest(RequestModel):
    customer_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    metal_type: Optional[str] = None
    karat: Optional[Decimal] = None
    gross_weight: Optional[Decimal] = None
    net_weight: Optional[Decimal] = None
    stone_weight: Optional[Decimal] = None
    valuation_amount: Optional[Decimal] = None
    description: Optional[str] = None


class UpdateOrnamentRequest(RequestModel):
    name: Optional[str] = None
    type: Optional[str] = None
    metal_type: Optional[str] = None
    karat: Optional[Decimal] = None
    gross_weight: Optional[Decimal] = None
    net_weight: Optional[Decimal] = None
    stone_weight: Optional[Decimal] = None
    valuation_amount: Optional[Decimal] = None
    description: Optional[str] = None
    status: Optional[str] = None


# Loan schemas
class CreateLoanRequest(RequestModel):
    customer_id: Optional[str] = None
    principal_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    ornament_ids: List[str] = Field(default_factory=list)
    interest_type: Optional[str] = None
    tenure_months: Optional[int] = None
    branch_id: Optional[str] = None


class UpdateLoanRequest(RequestModel):
    interest_rate: Optional[Decimal] = None
    interest_type: Optional[str] = None
    tenure_months: Optional[int] = None
    status: Optional[str] = None
    risk_zone: Optional[str] = None
    outstanding_principal: Optional[Decimal] = None
    outstanding_interest: Optional[Decimal] = None
    due_date: Optional[str] = None
    maturity_date: Optional[str] = None


# Payment schemas
class RecordPaymentRequest(RequestModel):
    loan_id: Optional[str] = None
    amount: Optional[Decimal] = None
    payment_type: Optional[str] = None
    payment_method: Optional[str] = None
    principal_amount: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    penalty_amount: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


# Reference data schemas
class AddRateRequest(RequestModel):
    metal_type: Optional[str] = None
    karat: Optional[Decimal] = None
    rate_per_gram: Optional[Decimal] = None
    rate_date: Optional[str] = None
    source: Optional[str] = None


class CreateBranchRequest(RequestModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: Optional[str] = None


class CreateNoteRequest(RequestModel):
    content: Optional[str] = None
    loan_id: Optional[str] = None
    customer_id: Optional[str] = None


class CreateNotificationRequest(RequestModel):
    title: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[str] = None
    channel: Optional[str] = None
    loan_id: Optional[str] = None
    customer_id: Optional[str] = None


class ImportRequest(RequestModel):
    type: Optional[str] = None
    records: Optional[Any] = None


def paginated(items: List[Dict[str, Any]], total: int, page: int, limit: int) -> Dict[str, Any]:
    """Standard list envelope"""
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": ceil(total / limit) if limit else 0
        }
    }


class PageParams(BaseModel):
    page: int
    limit: int


def page_params(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1)
) -> PageParams:
    """Query-string pagination, capped at the configured maximum page size"""
    config = get_config()
    return PageParams(page=page, limit=min(limit or config.default_page_size, config.max_page_size))
