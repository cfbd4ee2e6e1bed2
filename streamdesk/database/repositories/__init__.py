"""
Repository classes for database operations.

Each repository opens its own unit of work per call through Database.session().
"""

from .accounts import AccountRepository, AccountRef, resolve_account
from .presence import PresenceRepository
from .commands import CommandRepository

__all__ = [
    "AccountRepository",
    "AccountRef",
    "resolve_account",
    "PresenceRepository",
    "CommandRepository",
]
