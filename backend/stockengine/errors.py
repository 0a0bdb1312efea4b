# Overview: Domain error taxonomy shared by all inventory services.
"""
Engine errors (authoritative)

- Every error the engine raises on purpose derives from InventoryError.
- status_code is the HTTP-equivalent the API boundary should translate to.
- Services never catch these; the unit-of-work wrapper rolls back and re-raises.
"""
from __future__ import annotations


class InventoryError(Exception):
    """Base class for engine errors."""
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            **({"context": self.context} if self.context else {}),
        }


class ValidationError(InventoryError):
    """Raised for malformed input (empty item lists, unknown ids, bad quantities)."""
    pass


class NotFoundError(ValidationError):
    """Raised when a tenant-scoped entity does not exist."""
    status_code = 404


class InvalidStateError(InventoryError):
    """Raised when a workflow transition is not allowed from the current status."""
    status_code = 409


class IncompleteCountError(InvalidStateError):
    """Raised when posting a stock count with unreviewed items."""
    pass


class SessionAlreadyOpenError(InvalidStateError):
    """Raised when a terminal already has an OPEN POS session."""
    pass


class InsufficientAllocationError(InventoryError):
    """Raised when releasing more than is currently allocated."""
    status_code = 422


class InsufficientStockError(InventoryError):
    """Raised when a movement or allocation would exceed what policy allows."""
    status_code = 422


class ConcurrencyConflictError(InventoryError):
    """Raised when lock/version conflicts persist after bounded retries."""
    status_code = 409


class PersistenceError(InventoryError):
    """Raised for unexpected database failures; the unit of work is rolled back."""
    status_code = 500
