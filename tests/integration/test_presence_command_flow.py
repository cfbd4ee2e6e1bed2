"""
Integration tests for presence tracking and command delivery.

Runs the real repositories and services against a file-backed SQLite
database (aiosqlite) with a recording broadcaster in place of Web PubSub.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from config import Settings
from streamdesk.database.connection import Database
from streamdesk.database.exceptions import DatabaseOperationError, EntityNotFoundError
from streamdesk.database.models import CommandTypeEnum, PendingCommandDB, PresenceDB, PresenceHistoryDB, PresenceStatusEnum, RoleEnum
from streamdesk.database.repositories.presence import PresenceRepository
from streamdesk.services.container import build_services
from streamdesk.utils.datetime_utils import utc_now


class RecordingBroadcaster:
    """Collects sends instead of calling Web PubSub."""

    def __init__(self):
        self.sent = []
        self.accept = True

    async def send(self, group_id, payload):
        self.sent.append((group_id, payload))
        return self.accept


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(database_url=f"sqlite+aiosqlite:///{tmp_path}/streamdesk.db", environment="test")
    assert await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def services(database, broadcaster):
    settings = Settings(command_ttl_minutes=0, delivery_sweep_batch_size=100)
    return build_services(broadcaster, database=database, settings=settings)


@pytest_asyncio.fixture
async def team(services):
    accounts = services.accounts.accounts
    supervisor = await accounts.upsert_role(
        email="supervisor@example.com",
        external_id="SUP-OID-0001",
        full_name="Sam Supervisor",
        role=RoleEnum.SUPERVISOR,
    )
    employee = await accounts.upsert_role(
        email="employee@example.com",
        external_id="EMP-OID-0001",
        full_name="Erin Employee",
        role=RoleEnum.EMPLOYEE,
        supervisor_id=supervisor.id,
    )
    return supervisor, employee


async def _rows(database, model, account_id):
    async with database.session() as session:
        result = await session.execute(select(model).where(model.account_id == account_id))
        return list(result.scalars().all())


# ============================================================
# PRESENCE
# ============================================================

@pytest.mark.asyncio
async def test_status_defaults_to_offline(services, team):
    _, employee = team

    assert await services.presence.get_status(employee.id) == PresenceStatusEnum.OFFLINE


@pytest.mark.asyncio
async def test_online_then_offline_closes_segment(services, database, team):
    _, employee = team

    await services.presence.set_online("employee@example.com")
    assert await services.presence.get_status(employee.id) == PresenceStatusEnum.ONLINE

    await services.presence.set_offline("EMP-OID-0001")

    history = await services.presence.get_history(employee.id)
    [presence] = await _rows(database, PresenceDB, employee.id)
    assert len(history) == 1
    assert history[0].disconnected_at == presence.last_seen_at
    assert history[0].disconnected_at >= history[0].connected_at
    assert presence.status == PresenceStatusEnum.OFFLINE


@pytest.mark.asyncio
async def test_external_id_resolves_in_any_case(services, team):
    _, employee = team

    await services.presence.set_online("emp-oid-0001")

    assert await services.presence.get_status("Emp-Oid-0001") == PresenceStatusEnum.ONLINE
    assert (await services.accounts.accounts.resolve("emp-oid-0001")).id == employee.id


@pytest.mark.asyncio
async def test_double_online_keeps_one_open_segment(services, team):
    _, employee = team

    await services.presence.set_online(employee.id)
    await services.presence.set_online(employee.id)

    history = await services.presence.get_history(employee.id)
    assert len(history) == 2
    assert len(await services.presence.get_open_segments(employee.id)) == 1


@pytest.mark.asyncio
async def test_offline_without_open_segment(services, team):
    _, employee = team

    await services.presence.set_offline(employee.id)

    assert await services.presence.get_history(employee.id) == []
    assert await services.presence.get_status(employee.id) == PresenceStatusEnum.OFFLINE


@pytest.mark.asyncio
async def test_deleted_account_is_not_found(services, team):
    _, employee = team
    await services.accounts.accounts.soft_delete(employee.email)

    with pytest.raises(EntityNotFoundError):
        await services.presence.set_online(employee.id)
    with pytest.raises(EntityNotFoundError):
        await services.presence.get_status(employee.id)


@pytest.mark.asyncio
async def test_failed_set_online_leaves_no_partial_state(services, database, team, monkeypatch):
    _, employee = team
    original = PresenceRepository._upsert_presence

    async def upsert_then_fail(self, session, account_id, status, now):
        await original(self, session, account_id, status, now)
        raise RuntimeError("disk full")

    monkeypatch.setattr(PresenceRepository, "_upsert_presence", upsert_then_fail)

    with pytest.raises(DatabaseOperationError):
        await services.presence.set_online(employee.id)

    assert await _rows(database, PresenceDB, employee.id) == []
    assert await _rows(database, PresenceHistoryDB, employee.id) == []


@pytest.mark.asyncio
async def test_failed_set_offline_keeps_segment_open(services, database, team, monkeypatch):
    _, employee = team
    await services.presence.set_online(employee.id)
    original = PresenceRepository._upsert_presence

    async def upsert_then_fail(self, session, account_id, status, now):
        await original(self, session, account_id, status, now)
        raise RuntimeError("disk full")

    monkeypatch.setattr(PresenceRepository, "_upsert_presence", upsert_then_fail)

    with pytest.raises(DatabaseOperationError):
        await services.presence.set_offline(employee.id)

    monkeypatch.undo()
    assert await services.presence.get_status(employee.id) == PresenceStatusEnum.ONLINE
    assert len(await services.presence.get_open_segments(employee.id)) == 1


# ============================================================
# COMMANDS
# ============================================================

@pytest.mark.asyncio
async def test_issue_to_offline_employee_is_queued(services, broadcaster, team):
    supervisor, employee = team

    result = await services.commands.issue(supervisor, "START", "employee@example.com")

    assert result.delivered is False
    assert broadcaster.sent == []
    pending = await services.commands.list_unacknowledged(employee.id)
    assert [p.id for p in pending] == [result.record.id]
    assert pending[0].published is False
    assert pending[0].attempt_count == 0


@pytest.mark.asyncio
async def test_issue_to_online_employee_is_delivered(services, broadcaster, team):
    supervisor, employee = team
    await services.presence.set_online(employee.id)

    result = await services.commands.issue(supervisor, "STOP", "employee@example.com")

    assert result.delivered is True
    assert broadcaster.sent == [(
        "emp-oid-0001",
        {
            "id": str(result.record.id),
            "command": "STOP",
            "timestamp": result.record.issued_at.isoformat(timespec="milliseconds") + "Z",
        },
    )]
    assert result.record.published is True
    assert result.record.attempt_count == 1


@pytest.mark.asyncio
async def test_broadcast_failure_leaves_command_pending(services, broadcaster, team):
    supervisor, employee = team
    await services.presence.set_online(employee.id)
    broadcaster.accept = False

    result = await services.commands.issue(supervisor, "START", "employee@example.com")

    assert result.delivered is False
    stored = await services.commands.commands.get_by_id(result.record.id)
    assert stored.published is False
    assert stored.attempt_count == 0


@pytest.mark.asyncio
async def test_acknowledge_is_idempotent(services, team):
    supervisor, employee = team
    await services.presence.set_online(employee.id)
    result = await services.commands.issue(supervisor, "START", "employee@example.com")

    assert await services.commands.acknowledge([result.record.id]) == 1
    first = await services.commands.commands.get_by_id(result.record.id)

    assert await services.commands.acknowledge([str(result.record.id)]) == 1
    second = await services.commands.commands.get_by_id(result.record.id)

    assert first.acknowledged is True
    assert second.acknowledged is True
    assert second.acknowledged_at >= first.acknowledged_at
    assert second.attempt_count == 1


@pytest.mark.asyncio
async def test_acknowledge_undelivered_command_is_refused(services, broadcaster, team):
    supervisor, employee = team
    result = await services.commands.issue(supervisor, "START", "employee@example.com")

    assert await services.commands.acknowledge([result.record.id]) == 0

    stored = await services.commands.commands.get_by_id(result.record.id)
    assert stored.acknowledged is False
    assert stored.published is False
    assert stored.published_at is None
    assert stored.attempt_count == 0
    assert broadcaster.sent == []

    # Still delivered once the employee connects
    await services.presence.set_online(employee.id)
    assert len(broadcaster.sent) == 1


@pytest.mark.asyncio
async def test_acknowledge_scoped_to_account(services, team):
    supervisor, employee = team
    await services.presence.set_online(employee.id)
    result = await services.commands.issue(supervisor, "START", "employee@example.com")

    assert await services.commands.acknowledge([result.record.id], account_id=supervisor.id) == 0
    assert len(await services.commands.list_unacknowledged(employee.id)) == 1


@pytest.mark.asyncio
async def test_sweep_skips_expired_and_published(services, database, broadcaster, team):
    supervisor, employee = team
    queue = services.commands
    await queue.enqueue(employee.id, "START", utc_now() - timedelta(hours=2))

    # Expired record
    async with database.session() as session:
        session.add(PendingCommandDB(
            account_id=employee.id,
            command=CommandTypeEnum.STOP,
            issued_at=utc_now() - timedelta(hours=3),
            published=False,
            acknowledged=False,
            attempt_count=0,
            expires_at=utc_now() - timedelta(minutes=1),
            created_at=utc_now(),
        ))

    deliverable = await queue.list_deliverable(employee.id)
    assert len(deliverable) == 1
    # Target is offline, so the unscoped sweep has nothing to try
    assert await queue.list_deliverable() == []

    await services.presence.set_online(employee.id)
    assert len(broadcaster.sent) == 1

    # Already published, nothing left for the sweep
    assert await queue.deliver_pending() == 0
    assert len(broadcaster.sent) == 1


@pytest.mark.asyncio
async def test_sweep_retries_online_target_behind_offline_backlog(database, broadcaster, team):
    supervisor, offline_employee = team
    services = build_services(
        broadcaster,
        database=database,
        settings=Settings(command_ttl_minutes=0, delivery_sweep_batch_size=2),
    )
    queue = services.commands
    online_employee = await services.accounts.accounts.upsert_role(
        email="online@example.com",
        external_id="EMP-OID-0002",
        full_name="Olive Online",
        role=RoleEnum.EMPLOYEE,
        supervisor_id=supervisor.id,
    )

    for hours in (5, 4, 3):
        await queue.enqueue(offline_employee.id, "START", utc_now() - timedelta(hours=hours))

    await services.presence.set_online(online_employee.id)
    broadcaster.accept = False
    await queue.enqueue(online_employee.id, "STOP", utc_now())
    assert await queue.deliver_pending() == 0

    broadcaster.accept = True
    assert await queue.deliver_pending() == 1
    assert [group for group, _ in broadcaster.sent] == ["emp-oid-0002", "emp-oid-0002"]
    assert len(await queue.list_deliverable(offline_employee.id)) == 3


# ============================================================
# FULL SCENARIO
# ============================================================

@pytest.mark.asyncio
async def test_enqueue_online_deliver_list_acknowledge(services, broadcaster, team):
    """Queue while offline, deliver on connect, fetch, acknowledge."""
    supervisor, employee = team

    issued = await services.commands.issue(supervisor, "START", "employee@example.com")
    assert issued.delivered is False

    await services.presence.set_online("emp-oid-0001".upper())

    assert len(broadcaster.sent) == 1
    group, payload = broadcaster.sent[0]
    assert group == "emp-oid-0001"
    assert payload["id"] == str(issued.record.id)

    pending = await services.commands.list_unacknowledged(employee.id)
    assert len(pending) == 1
    assert pending[0].published is True
    assert pending[0].attempt_count == 1

    latest = await services.commands.latest_pending(employee.id)
    assert latest.id == issued.record.id

    assert await services.commands.acknowledge([issued.record.id], account_id=employee.id) == 1
    assert await services.commands.list_unacknowledged(employee.id) == []
    assert await services.commands.latest_pending(employee.id) is None
