"""
PostgreSQL Database Module for StreamDesk.

Handles:
- Directory-backed accounts with roles and supervisors
- Live presence and connection history
- Pending START/STOP commands awaiting delivery and acknowledgment
"""

from .connection import (
    get_database,
    Database,
    init_database,
    close_database,
)
from .models import (
    Base,
    AccountDB,
    PresenceDB,
    PresenceHistoryDB,
    PendingCommandDB,
    RoleEnum,
    PresenceStatusEnum,
    CommandTypeEnum,
)

__all__ = [
    "get_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "AccountDB",
    "PresenceDB",
    "PresenceHistoryDB",
    "PendingCommandDB",
    "RoleEnum",
    "PresenceStatusEnum",
    "CommandTypeEnum",
]
