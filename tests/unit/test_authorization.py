"""
Tests for the role/operation permission table.
"""

import pytest

from streamdesk.services.authorization import Operation, PERMISSIONS, Role, is_allowed, require
from streamdesk.services.exceptions import PermissionDeniedError


EXPECTED = {
    Role.ADMIN: {
        Operation.REPORT_PRESENCE,
        Operation.READ_PRESENCE,
        Operation.ISSUE_COMMAND,
        Operation.CHANGE_ROLE,
        Operation.CHANGE_SUPERVISOR,
    },
    Role.SUPERVISOR: {
        Operation.REPORT_PRESENCE,
        Operation.READ_PRESENCE,
        Operation.ISSUE_COMMAND,
    },
    Role.EMPLOYEE: {
        Operation.REPORT_PRESENCE,
        Operation.READ_PRESENCE,
        Operation.FETCH_PENDING,
        Operation.ACKNOWLEDGE,
        Operation.REQUEST_STREAM_TOKEN,
    },
}


@pytest.mark.parametrize("role", list(Role))
@pytest.mark.parametrize("operation", list(Operation))
def test_permission_table(role, operation):
    assert is_allowed(role, operation) == (operation in EXPECTED[role])


def test_every_role_has_an_entry():
    assert set(PERMISSIONS) == set(Role)


def test_unknown_role_has_no_permissions():
    assert is_allowed("Contractor", Operation.READ_PRESENCE) is False


def test_require_raises_for_denied_operation():
    with pytest.raises(PermissionDeniedError, match="Employee may not issue command"):
        require(Role.EMPLOYEE, Operation.ISSUE_COMMAND)


def test_require_passes_for_allowed_operation():
    require(Role.ADMIN, Operation.CHANGE_ROLE)
