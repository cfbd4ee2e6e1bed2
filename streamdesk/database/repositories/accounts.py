"""
Account repository.

Stores directory-backed accounts for:
- Identity resolution (directory object ID or email)
- Role assignment and soft deletion
- Supervisor relationships
"""

import logging
import uuid
from typing import Optional, List, Union

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import Database, get_database
from ..models import AccountDB, RoleEnum
from ..exceptions import (
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
    ValidationError,
)
from ...utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

AccountRef = Union[uuid.UUID, str]


def _active_account_query(account_ref: AccountRef):
    """Select a non-deleted account by primary key, directory object ID or email."""
    query = select(AccountDB).where(AccountDB.deleted_at.is_(None))

    if isinstance(account_ref, uuid.UUID):
        return query.where(AccountDB.id == account_ref)

    ref = account_ref.strip()
    return query.where(
        or_(
            func.lower(AccountDB.external_id) == ref.lower(),
            AccountDB.email == ref.lower(),
        )
    )


async def resolve_account(session: AsyncSession, account_ref: AccountRef) -> AccountDB:
    """
    Resolve an account reference inside an open session.

    Shared by every repository that has to reject unknown or soft-deleted
    accounts as part of its own transaction.

    Raises:
        EntityNotFoundError: If no non-deleted account matches
    """
    if not account_ref:
        raise EntityNotFoundError("Account reference is empty", reference="")

    result = await session.execute(_active_account_query(account_ref).limit(1))
    account = result.scalar_one_or_none()
    if account is None:
        raise EntityNotFoundError(f"Account not found: {account_ref}", reference=str(account_ref))
    return account


class AccountRepository:
    """Repository for account operations."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or get_database()

    async def resolve(self, account_ref: AccountRef) -> AccountDB:
        """Get a non-deleted account or raise EntityNotFoundError."""
        try:
            async with self.db.session() as session:
                return await resolve_account(session, account_ref)
        except EntityNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error resolving account {account_ref}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to resolve account {account_ref}") from e

    async def find_active(self, account_ref: AccountRef) -> Optional[AccountDB]:
        """Get a non-deleted account, or None."""
        try:
            return await self.resolve(account_ref)
        except EntityNotFoundError:
            return None

    async def get_or_bootstrap_admin(
        self,
        external_id: str,
        email: str,
        full_name: str,
    ) -> Optional[AccountDB]:
        """
        Get the caller's account, creating it as Admin only while the store has no Admin.

        The first authenticated caller to manage roles becomes the initial
        administrator. Once any Admin exists, unknown callers get None.
        """
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(AccountDB).where(func.lower(AccountDB.external_id) == external_id.strip().lower())
                )
                account = result.scalar_one_or_none()
                if account is not None:
                    return account

                admins = await session.execute(
                    select(func.count(AccountDB.id)).where(
                        AccountDB.role == RoleEnum.ADMIN,
                        AccountDB.deleted_at.is_(None),
                    )
                )
                if admins.scalar_one() > 0:
                    return None

                now = utc_now()
                account = AccountDB(
                    external_id=external_id,
                    email=email.strip().lower(),
                    full_name=full_name or "",
                    role=RoleEnum.ADMIN,
                    supervisor_id=None,
                    created_at=now,
                    updated_at=now,
                )
                session.add(account)
                await session.flush()

                logger.info(f"Bootstrapped initial admin account: {account.email}")
                return account

        except IntegrityError as e:
            logger.error(f"Constraint violation bootstrapping admin {email}: {e}")
            raise DatabaseConstraintError(f"Cannot create admin {email}: duplicate or constraint violation") from e
        except Exception as e:
            logger.error(f"Error bootstrapping admin {email}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to bootstrap admin {email}") from e

    async def upsert_role(
        self,
        email: str,
        external_id: str,
        full_name: str,
        role: RoleEnum,
        supervisor_id: Optional[uuid.UUID] = None,
    ) -> AccountDB:
        """
        Insert or update an account's role and profile.

        Re-assigning a role to a soft-deleted account restores it.
        """
        email = email.strip().lower()
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(AccountDB).where(AccountDB.email == email)
                )
                account = result.scalar_one_or_none()
                now = utc_now()

                if account is None:
                    account = AccountDB(
                        email=email,
                        external_id=external_id,
                        full_name=full_name or "",
                        role=role,
                        supervisor_id=supervisor_id,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(account)
                else:
                    account.full_name = full_name or account.full_name
                    account.role = role
                    # Only employees report to a supervisor
                    if supervisor_id is not None or role != RoleEnum.EMPLOYEE:
                        account.supervisor_id = supervisor_id
                    account.deleted_at = None
                    account.updated_at = now

                await session.flush()
                logger.info(f"Upserted account {email} with role {role.value}")
                return account

        except IntegrityError as e:
            logger.error(f"Constraint violation upserting {email}: {e}")
            raise DatabaseConstraintError(f"Cannot assign role to {email}: duplicate directory ID") from e
        except Exception as e:
            logger.error(f"Error upserting role for {email}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to assign role to {email}") from e

    async def soft_delete(self, email: str) -> AccountDB:
        """Mark an account deleted. The row and its history are retained."""
        email = email.strip().lower()
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(AccountDB).where(AccountDB.email == email)
                )
                account = result.scalar_one_or_none()
                if account is None:
                    raise EntityNotFoundError(f"Account not found: {email}", reference=email)

                if account.deleted_at is None:
                    account.deleted_at = utc_now()
                    logger.info(f"Soft-deleted account {email}")
                return account

        except EntityNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error deleting account {email}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to delete account {email}") from e

    async def reassign_supervisor(self, employee_emails: List[str], supervisor_email: str) -> int:
        """
        Point every listed, non-deleted Employee at a new supervisor.

        Returns:
            Number of employees updated

        Raises:
            EntityNotFoundError: If the supervisor does not exist or is deleted
            ValidationError: If the supervisor account is not a Supervisor
        """
        emails = [e.strip().lower() for e in employee_emails if e and e.strip()]
        if not emails:
            raise ValidationError("At least one employee email is required")

        try:
            async with self.db.session() as session:
                supervisor = await resolve_account(session, supervisor_email)
                if supervisor.role != RoleEnum.SUPERVISOR:
                    raise ValidationError(f"{supervisor.email} is not a Supervisor")

                result = await session.execute(
                    update(AccountDB)
                    .where(
                        AccountDB.email.in_(emails),
                        AccountDB.role == RoleEnum.EMPLOYEE,
                        AccountDB.deleted_at.is_(None),
                    )
                    .values(supervisor_id=supervisor.id, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )

                logger.info(f"Reassigned {result.rowcount} employees to supervisor {supervisor.email}")
                return result.rowcount

        except (EntityNotFoundError, ValidationError):
            raise
        except Exception as e:
            logger.error(f"Error reassigning supervisor {supervisor_email}: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to reassign employees to {supervisor_email}") from e

    def to_dict(self, account: AccountDB) -> dict:
        """Convert account to dictionary."""
        return {
            "id": str(account.id),
            "externalId": account.external_id,
            "email": account.email,
            "fullName": account.full_name,
            "role": account.role.value,
            "supervisorId": str(account.supervisor_id) if account.supervisor_id else None,
            "deletedAt": account.deleted_at.isoformat() if account.deleted_at else None,
        }
