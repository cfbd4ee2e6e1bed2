"""Exceptions raised by the service layer above the repositories."""


class ServiceError(Exception):
    """Base exception for service-level failures."""
    pass


class AuthenticationError(ServiceError):
    """Caller credential is missing, invalid, or maps to no usable account."""
    pass


class PermissionDeniedError(ServiceError):
    """Caller's role may not perform the requested operation."""
    pass
