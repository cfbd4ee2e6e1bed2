"""
Services for business logic.
"""

from .authorization import Operation, Role, is_allowed, require
from .exceptions import ServiceError, AuthenticationError, PermissionDeniedError
from .presence import PresenceService
from .command_queue import CommandQueue, IssueResult
from .accounts import AccountService
from .container import Services, build_services

__all__ = [
    "Operation",
    "Role",
    "is_allowed",
    "require",
    "ServiceError",
    "AuthenticationError",
    "PermissionDeniedError",
    "PresenceService",
    "CommandQueue",
    "IssueResult",
    "AccountService",
    "Services",
    "build_services",
]
