"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainException):
    """Input is out of range or malformed"""

    code = "validation_error"


class NotFoundError(DomainException):
    """Plan, payment or other referenced record does not exist"""

    code = "not_found"


class AuthorizationError(DomainException):
    """Record belongs to a different user"""

    code = "unauthorized"


class ConflictError(DomainException):
    """Write collided with a concurrent one and could not be reconciled"""

    code = "conflict"


class StateError(DomainException):
    """Operation not allowed in the record's current state"""

    code = "invalid_state"


class PersistenceError(DomainException):
    """Underlying store failed"""

    code = "persistence_error"
