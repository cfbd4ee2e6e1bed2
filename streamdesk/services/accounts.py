"""
Account administration service.

Handles business logic for:
- Mapping a verified identity to its stored account
- Role assignment and removal (admin only)
- Moving employees between supervisors (admin only)
"""

import logging
from typing import List, Optional

from ..database.exceptions import ValidationError
from ..database.models import AccountDB, RoleEnum
from ..database.repositories.accounts import AccountRepository
from .authorization import Operation, require
from .exceptions import AuthenticationError
from .presence import PresenceService

logger = logging.getLogger(__name__)


def parse_role(value) -> Optional[RoleEnum]:
    """Parse a role name. None (or empty) means remove the role."""
    if value is None or isinstance(value, RoleEnum):
        return value
    text = str(value).strip()
    if not text:
        return None
    for role in RoleEnum:
        if role.value.lower() == text.lower():
            return role
    raise ValidationError(f"Invalid role: {value!r}")


class AccountService:
    """Service for account lookup and role administration."""

    def __init__(self, accounts: AccountRepository, presence: PresenceService):
        self.accounts = accounts
        self.presence = presence

    async def authenticate(self, external_id: str, email: Optional[str] = None) -> AccountDB:
        """
        Map a verified identity to a non-deleted account.

        Raises:
            AuthenticationError: If the identity has no active account
        """
        account = await self.accounts.find_active(external_id)
        if account is None and email:
            account = await self.accounts.find_active(email)
        if account is None:
            raise AuthenticationError("No active account for this identity")
        return account

    async def resolve_admin_caller(self, external_id: str, email: str, full_name: str) -> AccountDB:
        """
        Resolve the caller of an admin operation.

        An unknown caller is created as Admin only while no Admin exists, so a
        fresh deployment can be bootstrapped by its first administrator.
        """
        account = await self.accounts.find_active(external_id)
        if account is None:
            account = await self.accounts.get_or_bootstrap_admin(external_id, email, full_name)
        if account is None or account.deleted_at is not None:
            raise AuthenticationError("No active account for this identity")
        return account

    async def change_role(
        self,
        caller: AccountDB,
        email: str,
        external_id: str,
        full_name: str,
        new_role,
    ) -> Optional[AccountDB]:
        """
        Assign a role, or soft-delete the account when new_role is None.

        Demoting someone to Employee also marks them offline so a stale
        online state from a previous role does not gate delivery.

        Returns:
            The updated account, or None when the role was removed
        """
        require(caller.role, Operation.CHANGE_ROLE)
        role = parse_role(new_role)

        if role is None:
            await self.accounts.soft_delete(email)
            logger.info(f"{caller.email} removed role for {email}")
            return None

        account = await self.accounts.upsert_role(
            email=email,
            external_id=external_id,
            full_name=full_name,
            role=role,
        )
        if role == RoleEnum.EMPLOYEE:
            await self.presence.set_offline(account.id)

        logger.info(f"{caller.email} set role of {account.email} to {role.value}")
        return account

    async def change_supervisor(
        self,
        caller: AccountDB,
        employee_emails: List[str],
        supervisor_email: str,
    ) -> int:
        """
        Reassign employees to a supervisor.

        Returns:
            Number of employees updated
        """
        require(caller.role, Operation.CHANGE_SUPERVISOR)
        updated = await self.accounts.reassign_supervisor(employee_emails, supervisor_email)
        logger.info(f"{caller.email} moved {updated} employees to {supervisor_email}")
        return updated
