"""
Role-based authorization.

Roles are a closed set and every permission decision goes through
is_allowed, a pure function of (role, operation).
"""

from enum import Enum
from typing import Dict, FrozenSet

from ..database.models import RoleEnum
from .exceptions import PermissionDeniedError

Role = RoleEnum


class Operation(str, Enum):
    """Operations exposed at the service boundary."""
    REPORT_PRESENCE = "report_presence"
    READ_PRESENCE = "read_presence"
    ISSUE_COMMAND = "issue_command"
    FETCH_PENDING = "fetch_pending"
    ACKNOWLEDGE = "acknowledge"
    CHANGE_ROLE = "change_role"
    CHANGE_SUPERVISOR = "change_supervisor"
    REQUEST_STREAM_TOKEN = "request_stream_token"


_PRESENCE_OPERATIONS = frozenset({Operation.REPORT_PRESENCE, Operation.READ_PRESENCE})

PERMISSIONS: Dict[Role, FrozenSet[Operation]] = {
    Role.ADMIN: _PRESENCE_OPERATIONS | {
        Operation.ISSUE_COMMAND,
        Operation.CHANGE_ROLE,
        Operation.CHANGE_SUPERVISOR,
    },
    Role.SUPERVISOR: _PRESENCE_OPERATIONS | {
        Operation.ISSUE_COMMAND,
    },
    Role.EMPLOYEE: _PRESENCE_OPERATIONS | {
        Operation.FETCH_PENDING,
        Operation.ACKNOWLEDGE,
        Operation.REQUEST_STREAM_TOKEN,
    },
}


def is_allowed(role: Role, operation: Operation) -> bool:
    """Check whether a role may perform an operation."""
    return operation in PERMISSIONS.get(role, frozenset())


def require(role: Role, operation: Operation) -> None:
    """
    Raise PermissionDeniedError unless the role may perform the operation.
    """
    if not is_allowed(role, operation):
        role_name = role.value if isinstance(role, Role) else str(role)
        raise PermissionDeniedError(f"Role {role_name} may not {operation.value.replace('_', ' ')}")
