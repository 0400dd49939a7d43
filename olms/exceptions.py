"""Exception hierarchy for the loan management system.

Each class maps onto one status classification surfaced by the API.
"""


class OLMSError(Exception):
    """Base exception for all domain errors."""


class ValidationError(OLMSError):
    """Missing field, bad value or violated business rule (bad request)."""


class NotFoundError(OLMSError):
    """A referenced record does not exist."""


class ConflictError(OLMSError):
    """The record is in a state that forbids the operation."""


class AuthenticationError(OLMSError):
    """No valid session or bad credentials."""


class PermissionDeniedError(OLMSError):
    """The authenticated user's role does not allow the operation."""
