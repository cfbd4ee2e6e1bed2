"""Custom exceptions for database operations."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection failed or the handle was never opened."""
    pass


class DatabaseConstraintError(DatabaseError):
    """Database constraint violation (duplicate email, foreign key, etc)."""
    pass


class DatabaseOperationError(DatabaseError):
    """A read or write against the store failed. Fatal to the current operation."""
    pass


class EntityNotFoundError(DatabaseError):
    """Referenced account does not exist or has been soft-deleted."""

    def __init__(self, message: str, reference: str = ""):
        super().__init__(message)
        self.reference = reference


class ValidationError(DatabaseError):
    """Malformed command kind, status value or id list. Raised before any write."""
    pass
