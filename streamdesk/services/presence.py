"""
Presence tracker service.

Handles business logic for:
- Validating and applying online/offline transitions
- Status queries for the command queue and the API
- Notifying listeners (command redelivery) when an account comes online
"""

import logging
import uuid
from typing import Awaitable, Callable, Dict, Any, List, Union

from ..database.models import AccountDB, PresenceHistoryDB, PresenceStatusEnum
from ..database.exceptions import ValidationError
from ..database.repositories.accounts import AccountRef
from ..database.repositories.presence import PresenceRepository

logger = logging.getLogger(__name__)

OnlineListener = Callable[[uuid.UUID], Awaitable[Any]]


def parse_status(value: Union[str, PresenceStatusEnum]) -> PresenceStatusEnum:
    """
    Parse a status value ("online" / "offline").

    Raises:
        ValidationError: If the value is not a known status
    """
    if isinstance(value, PresenceStatusEnum):
        return value
    try:
        return PresenceStatusEnum(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid presence status: {value!r}") from None


class PresenceService:
    """Service for presence operations."""

    def __init__(self, repo: PresenceRepository):
        self.repo = repo
        self._online_listeners: List[OnlineListener] = []

    def add_online_listener(self, listener: OnlineListener) -> None:
        """Register a coroutine called with the account ID after each successful set_online."""
        self._online_listeners.append(listener)

    async def _notify_online(self, account: AccountDB) -> None:
        for listener in self._online_listeners:
            try:
                await listener(account.id)
            except Exception as e:
                # The presence change is already committed; a listener failure must not undo it
                logger.error(f"Online listener failed for {account.email}: {e}", exc_info=True)

    async def set_online(self, account_ref: AccountRef) -> AccountDB:
        """Mark the account online, then run online listeners."""
        account = await self.repo.set_online(account_ref)
        await self._notify_online(account)
        return account

    async def set_offline(self, account_ref: AccountRef) -> AccountDB:
        """Mark the account offline."""
        return await self.repo.set_offline(account_ref)

    async def set_status(self, account_ref: AccountRef, status: Union[str, PresenceStatusEnum]) -> AccountDB:
        """Apply a status report. Invalid values are rejected before any write."""
        parsed = parse_status(status)
        if parsed == PresenceStatusEnum.ONLINE:
            return await self.set_online(account_ref)
        return await self.set_offline(account_ref)

    async def get_status(self, account_ref: AccountRef) -> PresenceStatusEnum:
        """Get current status; offline when the account never reported one."""
        return await self.repo.get_status(account_ref)

    async def is_online(self, account_ref: AccountRef) -> bool:
        return await self.get_status(account_ref) == PresenceStatusEnum.ONLINE

    async def get_presence(self, account_ref: AccountRef) -> Dict[str, Any]:
        """Get {status, lastSeenAt} for the status endpoint."""
        presence = await self.repo.get_presence(account_ref)
        return self.repo.to_dict(presence)

    async def get_history(self, account_ref: AccountRef, limit: int = 50) -> List[PresenceHistoryDB]:
        return await self.repo.get_history(account_ref, limit=limit)

    async def get_open_segments(self, account_ref: AccountRef, limit: int = 50) -> List[PresenceHistoryDB]:
        """Connection segments that have not been closed yet."""
        history = await self.get_history(account_ref, limit=limit)
        return [segment for segment in history if segment.disconnected_at is None]
