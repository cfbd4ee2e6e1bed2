"""
Command queue service.

Handles business logic for:
- Persisting START/STOP directives issued by supervisors and admins
- Broadcasting them to the target employee while they are online
- Redelivery of pending commands (online trigger and periodic sweep)
- Client fetch and acknowledgment
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from config import Settings, settings as default_settings
from ..database.exceptions import DatabaseError, EntityNotFoundError, ValidationError
from ..database.models import AccountDB, CommandTypeEnum, PendingCommandDB, RoleEnum
from ..database.repositories.accounts import AccountRepository
from ..database.repositories.commands import CommandRepository
from ..integrations.webpubsub import BroadcastChannel, normalize_group
from ..utils.datetime_utils import isoformat_utc, parse_timestamp, utc_now
from .authorization import Operation, require
from .exceptions import PermissionDeniedError
from .presence import PresenceService

logger = logging.getLogger(__name__)


def parse_command(value: Union[str, CommandTypeEnum]) -> CommandTypeEnum:
    """
    Parse a command kind ("START" / "STOP", case-insensitive).

    Raises:
        ValidationError: If the value is not a known command
    """
    if isinstance(value, CommandTypeEnum):
        return value
    try:
        return CommandTypeEnum(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Invalid command: {value!r}") from None


def parse_command_ids(values: Iterable[Union[str, uuid.UUID]]) -> List[uuid.UUID]:
    """Parse command IDs, rejecting the whole list if any entry is malformed."""
    ids = []
    for value in values:
        if isinstance(value, uuid.UUID):
            ids.append(value)
            continue
        try:
            ids.append(uuid.UUID(str(value)))
        except ValueError:
            raise ValidationError(f"Invalid command id: {value!r}") from None
    return ids


def build_payload(record: PendingCommandDB) -> Dict[str, Any]:
    """Wire payload pushed to the employee's client."""
    return {
        "id": str(record.id),
        "command": record.command.value,
        "timestamp": isoformat_utc(record.issued_at),
    }


@dataclass
class IssueResult:
    """Outcome of issuing a command. Issuance succeeds once the record is stored."""
    record: PendingCommandDB
    delivered: bool


class CommandQueue:
    """Service for command issuance, delivery and acknowledgment."""

    def __init__(
        self,
        commands: CommandRepository,
        accounts: AccountRepository,
        presence: PresenceService,
        broadcaster: BroadcastChannel,
        settings: Optional[Settings] = None,
    ):
        self.commands = commands
        self.accounts = accounts
        self.presence = presence
        self.broadcaster = broadcaster
        self.settings = settings or default_settings

    def _expires_at(self, issued_at: datetime) -> Optional[datetime]:
        ttl = self.settings.command_ttl_minutes
        if ttl <= 0:
            return None
        return issued_at + timedelta(minutes=ttl)

    async def enqueue(
        self,
        target_account_id: uuid.UUID,
        kind: Union[str, CommandTypeEnum],
        issued_at: Union[str, datetime, None] = None,
    ) -> PendingCommandDB:
        """
        Persist a command for later delivery. No broadcast happens here.

        Raises:
            ValidationError: Unknown command kind or unparseable timestamp
            DatabaseOperationError: If the write fails
        """
        command = parse_command(kind)
        try:
            issued = parse_timestamp(issued_at) or utc_now()
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {issued_at!r}") from None

        return await self.commands.create(
            account_id=target_account_id,
            command=command,
            issued_at=issued,
            expires_at=self._expires_at(issued),
        )

    async def try_deliver(self, record: PendingCommandDB) -> bool:
        """
        Broadcast a command if its target is online.

        Returns False without touching the record when the target is offline
        or the broadcast fails. On success the record is marked published and
        its attempt count goes up by one.
        """
        account = await self.accounts.find_active(record.account_id)
        if account is None:
            logger.warning(f"Command {record.id} targets a missing or deleted account, skipping")
            return False

        if not await self.presence.is_online(account.id):
            logger.debug(f"Account {account.email} offline, command {record.id} stays pending")
            return False

        try:
            sent = await self.broadcaster.send(normalize_group(account.external_id), build_payload(record))
        except Exception as e:
            logger.warning(f"Broadcast of command {record.id} to {account.email} failed: {e}")
            return False

        if not sent:
            logger.warning(f"Broadcast of command {record.id} to {account.email} was not accepted")
            return False

        updated = await self.commands.mark_published(record.id)
        if updated is not None:
            record.published = updated.published
            record.published_at = updated.published_at
            record.attempt_count = updated.attempt_count

        logger.info(f"Delivered command {record.id} ({record.command.value}) to {account.email}")
        return True

    async def list_unacknowledged(self, account_id: uuid.UUID) -> List[PendingCommandDB]:
        return await self.commands.list_unacknowledged(account_id)

    async def latest_pending(self, account_id: uuid.UUID) -> Optional[PendingCommandDB]:
        """Most recently issued command the client has not acknowledged."""
        return await self.commands.latest_unacknowledged(account_id)

    async def list_deliverable(
        self,
        account_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
    ) -> List[PendingCommandDB]:
        return await self.commands.list_deliverable(
            account_id=account_id,
            limit=limit or self.settings.delivery_sweep_batch_size,
        )

    async def acknowledge(
        self,
        command_ids: Iterable[Union[str, uuid.UUID]],
        account_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        Acknowledge commands by ID.

        When account_id is given only that account's commands are touched.

        Returns:
            Number of existing commands matched (re-acknowledgments count)
        """
        ids = parse_command_ids(command_ids)
        return await self.commands.acknowledge(ids, account_id=account_id)

    async def deliver_pending(self, account_id: Optional[uuid.UUID] = None) -> int:
        """
        Attempt delivery of every eligible command.

        Returns:
            Number of commands delivered
        """
        try:
            records = await self.list_deliverable(account_id=account_id)
        except DatabaseError as e:
            logger.error(f"Could not load deliverable commands: {e}")
            return 0

        delivered = 0
        for record in records:
            try:
                if await self.try_deliver(record):
                    delivered += 1
            except DatabaseError as e:
                logger.error(f"Delivery bookkeeping failed for command {record.id}: {e}")

        if records:
            logger.info(f"Delivered {delivered}/{len(records)} pending commands")
        return delivered

    async def issue(
        self,
        caller: AccountDB,
        command: Union[str, CommandTypeEnum],
        target_email: str,
        issued_at: Union[str, datetime, None] = None,
    ) -> IssueResult:
        """
        Full issuance flow: authorize, resolve target, persist, try to deliver.

        Raises:
            PermissionDeniedError: Caller role may not issue commands, or a
                supervisor targets someone else's report
            EntityNotFoundError: Target is missing, deleted or not an Employee
            ValidationError: Bad command kind or timestamp
        """
        require(caller.role, Operation.ISSUE_COMMAND)
        kind = parse_command(command)

        target = await self.accounts.find_active(target_email)
        if target is None or target.role != RoleEnum.EMPLOYEE:
            raise EntityNotFoundError(f"Employee not found: {target_email}", reference=target_email)

        if caller.role == RoleEnum.SUPERVISOR and target.supervisor_id != caller.id:
            raise PermissionDeniedError(f"{target.email} does not report to {caller.email}")

        record = await self.enqueue(target.id, kind, issued_at)

        try:
            delivered = await self.try_deliver(record)
        except DatabaseError as e:
            logger.error(f"Command {record.id} stored but delivery bookkeeping failed: {e}")
            delivered = False

        logger.info(
            f"{caller.email} issued {kind.value} to {target.email} "
            f"({'delivered' if delivered else 'queued'})"
        )
        return IssueResult(record=record, delivered=delivered)

    def to_dict(self, record: Optional[PendingCommandDB]) -> Optional[Dict[str, Any]]:
        if record is None:
            return None
        return self.commands.to_dict(record)
