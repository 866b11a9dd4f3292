"""Domain-specific exceptions"""

from typing import Any


class DomainException(Exception):
    """Base exception for domain layer

    Carries a stable ``code`` and a ``context`` dict (document id, offending
    value, ...) so callers can build a specific user-facing message.
    """

    code = "domain_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.context}


class InvalidAmount(DomainException):
    """Amount is zero, negative, non-numeric or has fractional cents"""

    code = "invalid_amount"


class AmountExceedsBalance(DomainException):
    """Payment amount is larger than the document's outstanding balance"""

    code = "amount_exceeds_balance"


class InsufficientFunds(DomainException):
    """Funding account cannot cover the requested debit"""

    code = "insufficient_funds"


class CurrencyMismatch(DomainException):
    """Order, documents and account are not in the same currency"""

    code = "currency_mismatch"


class InvalidStateTransition(DomainException):
    """Operation is not legal from the entity's current status"""

    code = "invalid_state_transition"


class MissingReason(DomainException):
    """Cancellation or adjustment attempted without a reason"""

    code = "missing_reason"


class DocumentNotFound(DomainException):
    """Referenced expense, income, order, account or alert does not exist"""

    code = "document_not_found"
