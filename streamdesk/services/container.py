"""
Service wiring.

Builds repositories and services around one Database handle and connects
the presence tracker's online signal to command redelivery.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config import Settings, settings as default_settings
from ..database.connection import Database, get_database
from ..database.repositories.accounts import AccountRepository
from ..database.repositories.commands import CommandRepository
from ..database.repositories.presence import PresenceRepository
from ..integrations.webpubsub import BroadcastChannel
from .accounts import AccountService
from .command_queue import CommandQueue
from .presence import PresenceService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the web layer and scheduler need."""
    database: Database
    accounts: AccountService
    presence: PresenceService
    commands: CommandQueue


def build_services(
    broadcaster: BroadcastChannel,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
) -> Services:
    """Create the service graph for a database handle."""
    database = database or get_database()
    settings = settings or default_settings

    account_repo = AccountRepository(database)
    presence = PresenceService(PresenceRepository(database))
    commands = CommandQueue(
        commands=CommandRepository(database),
        accounts=account_repo,
        presence=presence,
        broadcaster=broadcaster,
        settings=settings,
    )

    # Coming online redelivers whatever is still pending for the account
    presence.add_online_listener(commands.deliver_pending)

    logger.debug("Service graph built")
    return Services(
        database=database,
        accounts=AccountService(account_repo, presence),
        presence=presence,
        commands=commands,
    )
