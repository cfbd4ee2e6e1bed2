"""
Pytest configuration and shared fixtures.
"""

import uuid

import pytest
from unittest.mock import AsyncMock, Mock

from streamdesk.database.models import AccountDB, RoleEnum

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest.fixture
def mock_database():
    """Mock database with session context manager."""
    db = Mock()
    session = AsyncMock()

    # Mock session context manager
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)

    # Mock session methods
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.add = Mock()

    db.session = Mock(return_value=session)

    return db, session


def make_account(
    role: RoleEnum = RoleEnum.EMPLOYEE,
    email: str = "employee@example.com",
    external_id: str = "7F849383-FC13-40A7-9DFE-764EEA83A610",
    supervisor_id=None,
    deleted_at=None,
) -> AccountDB:
    return AccountDB(
        id=uuid.uuid4(),
        external_id=external_id,
        email=email,
        full_name=email.split("@")[0].title(),
        role=role,
        supervisor_id=supervisor_id,
        deleted_at=deleted_at,
    )


@pytest.fixture
def supervisor():
    return make_account(RoleEnum.SUPERVISOR, "supervisor@example.com", "sup-oid-0001")


@pytest.fixture
def admin():
    return make_account(RoleEnum.ADMIN, "admin@example.com", "admin-oid-0001")


@pytest.fixture
def employee(supervisor):
    return make_account(RoleEnum.EMPLOYEE, supervisor_id=supervisor.id)


@pytest.fixture
def account_factory():
    return make_account
