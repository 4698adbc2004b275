"""Domain-specific exceptions

Every business-rule violation is a DomainException carrying the HTTP status
the API layer reports it with. None of them are retried.
"""


class DomainException(Exception):
    """Base exception for domain layer"""

    status_code = 400


class ValidationError(DomainException):
    """Input is malformed or out of range"""

    status_code = 422


class NotFoundError(DomainException):
    """Referenced entity does not exist"""

    status_code = 404


class AccessDenied(DomainException):
    """Actor lacks the role or ownership required for the operation"""

    status_code = 403


class InvalidStateTransition(DomainException):
    """Loan or installment status does not allow the requested operation"""

    status_code = 400


class NotApprovedYet(InvalidStateTransition):
    """Funding attempted on a loan that is not in approved status"""

    status_code = 400


class ConflictError(InvalidStateTransition):
    """A concurrent writer changed the entity between read and write"""

    status_code = 409


class InsufficientFunds(DomainException):
    """Wallet balance is lower than the amount to debit"""

    status_code = 400


class InternalError(DomainException):
    """Persistence or otherwise unexpected failure"""

    status_code = 500
