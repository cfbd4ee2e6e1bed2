"""
Unit tests for CommandRepository.
"""

import uuid
import pytest
from unittest.mock import Mock
from datetime import datetime

from streamdesk.database.repositories.commands import CommandRepository
from streamdesk.database.models import CommandTypeEnum, PendingCommandDB
from streamdesk.database.exceptions import DatabaseOperationError


@pytest.fixture
def command_repository(mock_database):
    db, session = mock_database
    return CommandRepository(db), session


@pytest.fixture
def sample_command():
    return PendingCommandDB(
        id=uuid.uuid4(),
        account_id=uuid.uuid4(),
        command=CommandTypeEnum.START,
        issued_at=datetime(2026, 5, 1, 9, 0, 0),
        published=False,
        acknowledged=False,
        attempt_count=0,
        created_at=datetime(2026, 5, 1, 9, 0, 1),
    )


def _result(value=None, rowcount=0, values=None):
    result = Mock()
    result.scalar_one_or_none = Mock(return_value=value)
    result.rowcount = rowcount
    result.scalars = Mock(return_value=Mock(all=Mock(return_value=values or [])))
    return result


@pytest.mark.asyncio
async def test_create_starts_unpublished_and_unacknowledged(command_repository):
    repo, session = command_repository
    account_id = uuid.uuid4()

    record = await repo.create(account_id, CommandTypeEnum.STOP, datetime(2026, 5, 1, 9, 0))

    session.add.assert_called_once_with(record)
    session.flush.assert_called_once()
    assert record.account_id == account_id
    assert record.published is False
    assert record.acknowledged is False
    assert record.attempt_count == 0
    assert record.created_at is not None


@pytest.mark.asyncio
async def test_create_wraps_storage_errors(command_repository):
    repo, session = command_repository
    session.flush.side_effect = Exception("connection lost")

    with pytest.raises(DatabaseOperationError, match="Failed to queue command"):
        await repo.create(uuid.uuid4(), CommandTypeEnum.START, datetime(2026, 5, 1))


@pytest.mark.asyncio
async def test_mark_published_returns_refreshed_record(command_repository, sample_command):
    repo, session = command_repository
    sample_command.published = True
    sample_command.attempt_count = 1
    session.execute.side_effect = [_result(rowcount=1), _result(sample_command)]

    result = await repo.mark_published(sample_command.id)

    assert result is sample_command
    assert session.execute.call_count == 2


@pytest.mark.asyncio
async def test_list_unacknowledged(command_repository, sample_command):
    repo, session = command_repository
    session.execute.return_value = _result(values=[sample_command])

    result = await repo.list_unacknowledged(sample_command.account_id)

    assert result == [sample_command]


@pytest.mark.asyncio
async def test_list_deliverable_wraps_errors(command_repository):
    repo, session = command_repository
    session.execute.side_effect = Exception("timeout")

    with pytest.raises(DatabaseOperationError):
        await repo.list_deliverable()


@pytest.mark.asyncio
async def test_acknowledge_returns_matched_count(command_repository):
    repo, session = command_repository
    session.execute.return_value = _result(rowcount=2)
    ids = [uuid.uuid4(), uuid.uuid4()]

    assert await repo.acknowledge(ids) == 2


@pytest.mark.asyncio
async def test_sweep_query_only_targets_online_accounts(command_repository):
    repo, session = command_repository
    session.execute.return_value = _result(values=[])

    await repo.list_deliverable()
    unscoped = str(session.execute.call_args.args[0])

    await repo.list_deliverable(account_id=uuid.uuid4())
    scoped = str(session.execute.call_args.args[0])

    assert "JOIN presence" in unscoped
    assert "presence.status" in unscoped
    assert "presence" not in scoped.replace("pending_commands", "")


@pytest.mark.asyncio
async def test_acknowledge_only_touches_published_rows(command_repository):
    repo, session = command_repository
    session.execute.return_value = _result(rowcount=1)

    await repo.acknowledge([uuid.uuid4()])
    statement = session.execute.call_args.args[0]

    assert "pending_commands.published" in str(statement.whereclause)
    assert set(statement.compile().params) >= {"acknowledged", "acknowledged_at"}
    assert "published" not in statement.compile().params
    assert "published_at" not in statement.compile().params


@pytest.mark.asyncio
async def test_acknowledge_empty_list_is_noop(command_repository):
    repo, session = command_repository

    assert await repo.acknowledge([]) == 0
    session.execute.assert_not_called()


@pytest.mark.asyncio
async def test_acknowledge_unknown_ids_count_zero(command_repository):
    repo, session = command_repository
    session.execute.return_value = _result(rowcount=0)

    assert await repo.acknowledge([uuid.uuid4()]) == 0


def test_to_dict_shape(command_repository, sample_command):
    repo, _ = command_repository

    data = repo.to_dict(sample_command)

    assert data["id"] == str(sample_command.id)
    assert data["command"] == "START"
    assert data["timestamp"] == "2026-05-01T09:00:00.000Z"
    assert data["published"] is False
    assert data["publishedAt"] is None
    assert data["attemptCount"] == 0
