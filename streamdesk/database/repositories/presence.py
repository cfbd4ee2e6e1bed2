"""
Presence repository for online/offline tracking.

Handles:
- The single live presence row per account (lazily created)
- Append-only connection history segments
- Status queries with an offline default
"""

import logging
import uuid
from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import Database, get_database
from ..models import AccountDB, PresenceDB, PresenceHistoryDB, PresenceStatusEnum
from ..exceptions import DatabaseConstraintError, DatabaseOperationError, EntityNotFoundError
from .accounts import AccountRef, resolve_account
from ...utils.datetime_utils import utc_now, isoformat_utc

logger = logging.getLogger(__name__)


class PresenceRepository:
    """Repository for presence state and connection history."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or get_database()

    async def _upsert_presence(
        self,
        session: AsyncSession,
        account_id: uuid.UUID,
        status: PresenceStatusEnum,
        now: datetime,
    ) -> PresenceDB:
        result = await session.execute(
            select(PresenceDB).where(PresenceDB.account_id == account_id)
        )
        presence = result.scalar_one_or_none()

        if presence is None:
            presence = PresenceDB(account_id=account_id, status=status, last_seen_at=now)
            session.add(presence)
        else:
            presence.status = status
            presence.last_seen_at = now

        await session.flush()
        return presence

    async def set_online(self, account_ref: AccountRef) -> AccountDB:
        """
        Mark an account online and open a new history segment.

        Segments left open by an earlier online signal without a matching
        offline are closed at the same instant first, so an account never has
        more than one open segment.

        Returns:
            The resolved account
        """
        try:
            async with self.db.session() as session:
                account = await resolve_account(session, account_ref)
                now = utc_now()

                await self._upsert_presence(session, account.id, PresenceStatusEnum.ONLINE, now)

                closed = await session.execute(
                    update(PresenceHistoryDB)
                    .where(
                        PresenceHistoryDB.account_id == account.id,
                        PresenceHistoryDB.disconnected_at.is_(None),
                    )
                    .values(disconnected_at=now)
                    .execution_options(synchronize_session=False)
                )
                if closed.rowcount:
                    logger.warning(
                        f"Closed {closed.rowcount} dangling presence segment(s) for {account.email} "
                        f"on repeated online signal"
                    )

                session.add(
                    PresenceHistoryDB(account_id=account.id, connected_at=now, disconnected_at=None)
                )
                await session.flush()

                logger.info(f"Presence online: {account.email} at {now}")
                return account

        except EntityNotFoundError:
            raise
        except IntegrityError as e:
            logger.error(f"Constraint violation setting {account_ref} online: {e}", exc_info=True)
            raise DatabaseConstraintError(f"Concurrent presence update for {account_ref}") from e
        except Exception as e:
            logger.error(f"Error setting {account_ref} online: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to set {account_ref} online") from e

    async def set_offline(self, account_ref: AccountRef) -> AccountDB:
        """
        Mark an account offline and close its latest open history segment.

        No open segment is not an error; only the presence row changes then.
        """
        try:
            async with self.db.session() as session:
                account = await resolve_account(session, account_ref)
                now = utc_now()

                await self._upsert_presence(session, account.id, PresenceStatusEnum.OFFLINE, now)

                result = await session.execute(
                    select(PresenceHistoryDB)
                    .where(
                        PresenceHistoryDB.account_id == account.id,
                        PresenceHistoryDB.disconnected_at.is_(None),
                    )
                    .order_by(PresenceHistoryDB.connected_at.desc())
                    .limit(1)
                )
                open_segment = result.scalar_one_or_none()

                if open_segment is not None:
                    open_segment.disconnected_at = now
                    await session.flush()

                logger.info(f"Presence offline: {account.email} at {now}")
                return account

        except EntityNotFoundError:
            raise
        except IntegrityError as e:
            logger.error(f"Constraint violation setting {account_ref} offline: {e}", exc_info=True)
            raise DatabaseConstraintError(f"Concurrent presence update for {account_ref}") from e
        except Exception as e:
            logger.error(f"Error setting {account_ref} offline: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to set {account_ref} offline") from e

    async def get_presence(self, account_ref: AccountRef) -> Optional[PresenceDB]:
        """Get the presence row for an account (None if it never reported status)."""
        try:
            async with self.db.session() as session:
                account = await resolve_account(session, account_ref)
                result = await session.execute(
                    select(PresenceDB).where(PresenceDB.account_id == account.id)
                )
                return result.scalar_one_or_none()

        except EntityNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error fetching presence for {account_ref}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to fetch presence for {account_ref}") from e

    async def get_status(self, account_ref: AccountRef) -> PresenceStatusEnum:
        """Get current status, defaulting to offline when never reported."""
        presence = await self.get_presence(account_ref)
        if presence is None:
            return PresenceStatusEnum.OFFLINE
        return presence.status

    async def get_history(self, account_ref: AccountRef, limit: int = 50) -> List[PresenceHistoryDB]:
        """Get connection segments for an account, newest first."""
        try:
            async with self.db.session() as session:
                account = await resolve_account(session, account_ref)
                result = await session.execute(
                    select(PresenceHistoryDB)
                    .where(PresenceHistoryDB.account_id == account.id)
                    .order_by(PresenceHistoryDB.connected_at.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())

        except EntityNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error fetching presence history for {account_ref}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to fetch presence history for {account_ref}") from e

    def to_dict(self, presence: Optional[PresenceDB]) -> Dict[str, Any]:
        """Convert presence to the status response shape."""
        if presence is None:
            return {"status": PresenceStatusEnum.OFFLINE.value, "lastSeenAt": None}
        return {
            "status": presence.status.value,
            "lastSeenAt": isoformat_utc(presence.last_seen_at),
        }
