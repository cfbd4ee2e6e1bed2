"""
SQLAlchemy models for the PostgreSQL database.

Schema includes:
- Accounts (directory-backed users with a role and optional supervisor)
- Presence (one live online/offline row per account)
- Presence history (append-only connection segments)
- Pending commands (START/STOP directives awaiting delivery and acknowledgment)
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    Index,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ==================== ENUMS ====================

class RoleEnum(str, enum.Enum):
    SUPERVISOR = "Supervisor"
    ADMIN = "Admin"
    EMPLOYEE = "Employee"


class PresenceStatusEnum(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class CommandTypeEnum(str, enum.Enum):
    START = "START"
    STOP = "STOP"


# ==================== ACCOUNTS ====================

class AccountDB(Base):
    """Directory-backed user account."""
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)  # Directory object ID
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    role: Mapped[RoleEnum] = mapped_column(
        SQLEnum(RoleEnum, name="role", values_callable=_enum_values),
        nullable=False,
    )
    supervisor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=True,
    )

    # Soft delete marker; deleted accounts are invisible to presence and command operations
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    supervisor: Mapped[Optional["AccountDB"]] = relationship(
        "AccountDB", remote_side="AccountDB.id", back_populates="employees"
    )
    employees: Mapped[List["AccountDB"]] = relationship("AccountDB", back_populates="supervisor")

    __table_args__ = (
        Index("idx_accounts_role", "role"),
        Index("idx_accounts_supervisor", "supervisor_id"),
    )


# ==================== PRESENCE ====================

class PresenceDB(Base):
    """Current online/offline state, exactly one row per account once reported."""
    __tablename__ = "presence"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE", onupdate="CASCADE"),
        unique=True,
        nullable=False,
    )
    status: Mapped[PresenceStatusEnum] = mapped_column(
        SQLEnum(PresenceStatusEnum, name="presence_status", values_callable=_enum_values),
        nullable=False,
    )
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class PresenceHistoryDB(Base):
    """One contiguous connected interval. disconnected_at is NULL while open."""
    __tablename__ = "presence_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    connected_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    disconnected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_presence_history_account", "account_id"),
    )


# ==================== PENDING COMMANDS ====================

class PendingCommandDB(Base):
    """Camera directive queued for an employee."""
    __tablename__ = "pending_commands"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    command: Mapped[CommandTypeEnum] = mapped_column(
        SQLEnum(CommandTypeEnum, name="command_type", values_callable=_enum_values),
        nullable=False,
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # When the supervisor issued it

    # Delivery tracking
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Client confirmation
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Advisory, consumed by retention cleanup
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_pending_commands_account_ack", "account_id", "acknowledged"),
        Index("idx_pending_commands_expires", "expires_at"),
    )
