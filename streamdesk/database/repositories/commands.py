"""
Pending command repository.

Handles persistence for camera directives:
- Creation (unpublished, unacknowledged, zero attempts)
- Publication after a successful broadcast
- Unacknowledged and deliverable queries
- Bulk acknowledgment
"""

import logging
import uuid
from typing import Optional, List, Dict, Any, Iterable
from datetime import datetime

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError

from ..connection import Database, get_database
from ..models import PendingCommandDB, PresenceDB, CommandTypeEnum, PresenceStatusEnum
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ...utils.datetime_utils import utc_now, isoformat_utc

logger = logging.getLogger(__name__)


class CommandRepository:
    """Repository for pending command operations."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or get_database()

    async def create(
        self,
        account_id: uuid.UUID,
        command: CommandTypeEnum,
        issued_at: datetime,
        expires_at: Optional[datetime] = None,
    ) -> PendingCommandDB:
        """Persist a new command. No delivery side effect."""
        try:
            async with self.db.session() as session:
                record = PendingCommandDB(
                    account_id=account_id,
                    command=command,
                    issued_at=issued_at,
                    published=False,
                    acknowledged=False,
                    attempt_count=0,
                    expires_at=expires_at,
                    created_at=utc_now(),
                )
                session.add(record)
                await session.flush()

                logger.info(f"Queued command {record.id}: {command.value} for account {account_id}")
                return record

        except IntegrityError as e:
            logger.error(f"Constraint violation queuing command for {account_id}: {e}", exc_info=True)
            raise DatabaseConstraintError(f"Cannot queue command for account {account_id}") from e
        except Exception as e:
            logger.error(f"Error queuing command for {account_id}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to queue command for account {account_id}") from e

    async def get_by_id(self, command_id: uuid.UUID) -> Optional[PendingCommandDB]:
        """Get a command by ID."""
        async with self.db.session() as session:
            result = await session.execute(
                select(PendingCommandDB).where(PendingCommandDB.id == command_id)
            )
            return result.scalar_one_or_none()

    async def mark_published(self, command_id: uuid.UUID) -> Optional[PendingCommandDB]:
        """
        Record a successful broadcast: published, timestamp, one more attempt.

        Returns:
            The updated record, or None if it no longer exists
        """
        try:
            async with self.db.session() as session:
                await session.execute(
                    update(PendingCommandDB)
                    .where(PendingCommandDB.id == command_id)
                    .values(
                        published=True,
                        published_at=utc_now(),
                        attempt_count=PendingCommandDB.attempt_count + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(
                    select(PendingCommandDB)
                    .where(PendingCommandDB.id == command_id)
                )
                return result.scalar_one_or_none()

        except Exception as e:
            logger.error(f"Error marking command {command_id} published: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to mark command {command_id} published") from e

    async def list_unacknowledged(self, account_id: uuid.UUID) -> List[PendingCommandDB]:
        """Get every unacknowledged command for an account, oldest first."""
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(PendingCommandDB)
                    .where(
                        PendingCommandDB.account_id == account_id,
                        PendingCommandDB.acknowledged == False,
                    )
                    .order_by(PendingCommandDB.created_at, PendingCommandDB.issued_at)
                )
                return list(result.scalars().all())

        except Exception as e:
            logger.error(f"Error fetching unacknowledged commands for {account_id}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to fetch pending commands for {account_id}") from e

    async def latest_unacknowledged(self, account_id: uuid.UUID) -> Optional[PendingCommandDB]:
        """Get the most recently issued unacknowledged command, if any."""
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(PendingCommandDB)
                    .where(
                        PendingCommandDB.account_id == account_id,
                        PendingCommandDB.acknowledged == False,
                    )
                    .order_by(PendingCommandDB.issued_at.desc(), PendingCommandDB.created_at.desc())
                    .limit(1)
                )
                return result.scalar_one_or_none()

        except Exception as e:
            logger.error(f"Error fetching latest command for {account_id}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to fetch latest command for {account_id}") from e

    async def list_deliverable(
        self,
        account_id: Optional[uuid.UUID] = None,
        limit: int = 100,
        now: Optional[datetime] = None,
    ) -> List[PendingCommandDB]:
        """
        Get commands eligible for a delivery attempt, oldest first.

        Eligible means unpublished, unacknowledged and not yet expired. Without
        an account_id only targets currently online are included, so commands
        parked for offline accounts never crowd a batch.
        """
        now = now or utc_now()
        try:
            async with self.db.session() as session:
                query = select(PendingCommandDB).where(
                    PendingCommandDB.published == False,
                    PendingCommandDB.acknowledged == False,
                    or_(
                        PendingCommandDB.expires_at.is_(None),
                        PendingCommandDB.expires_at > now,
                    ),
                )
                if account_id is not None:
                    query = query.where(PendingCommandDB.account_id == account_id)
                else:
                    query = query.join(
                        PresenceDB, PresenceDB.account_id == PendingCommandDB.account_id
                    ).where(PresenceDB.status == PresenceStatusEnum.ONLINE)

                result = await session.execute(
                    query.order_by(PendingCommandDB.created_at).limit(limit)
                )
                return list(result.scalars().all())

        except Exception as e:
            logger.error(f"Error fetching deliverable commands: {e}", exc_info=True)
            raise DatabaseOperationError("Failed to fetch deliverable commands") from e

    async def acknowledge(
        self,
        command_ids: Iterable[uuid.UUID],
        account_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        Mark commands acknowledged.

        The update is unconditional over published rows: rows that were already
        acknowledged get a fresh acknowledged_at and still count. Unpublished
        rows are left untouched, since a command cannot be acknowledged before
        it was delivered; they stay eligible for delivery.

        Returns:
            Number of published rows matched
        """
        ids = list(dict.fromkeys(command_ids))
        if not ids:
            return 0

        now = utc_now()
        try:
            async with self.db.session() as session:
                query = update(PendingCommandDB).where(
                    PendingCommandDB.id.in_(ids),
                    PendingCommandDB.published == True,
                )
                if account_id is not None:
                    query = query.where(PendingCommandDB.account_id == account_id)

                result = await session.execute(
                    query.values(
                        acknowledged=True,
                        acknowledged_at=now,
                    ).execution_options(synchronize_session=False)
                )

                if result.rowcount < len(ids):
                    logger.warning(f"Acknowledged {result.rowcount} of {len(ids)} requested commands")
                else:
                    logger.info(f"Acknowledged {result.rowcount} commands")
                return result.rowcount

        except Exception as e:
            logger.error(f"Error acknowledging commands {ids}: {e}", exc_info=True)
            raise DatabaseOperationError("Failed to acknowledge commands") from e

    def to_dict(self, record: PendingCommandDB) -> Dict[str, Any]:
        """Convert command record to the API response shape."""
        return {
            "id": str(record.id),
            "accountId": str(record.account_id),
            "command": record.command.value,
            "timestamp": isoformat_utc(record.issued_at),
            "published": record.published,
            "publishedAt": isoformat_utc(record.published_at),
            "acknowledged": record.acknowledged,
            "acknowledgedAt": isoformat_utc(record.acknowledged_at),
            "attemptCount": record.attempt_count,
            "expiresAt": isoformat_utc(record.expires_at),
            "createdAt": isoformat_utc(record.created_at),
        }
