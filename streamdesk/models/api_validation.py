"""
Pydantic models for API endpoint input validation.

Field names follow the client's camelCase JSON; Python attributes are snake_case.
"""

import uuid
from typing import Optional, Literal, List
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, EmailStr


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# ============================================
# PRESENCE
# ============================================

class PresenceStatusRequest(_CamelModel):
    """Client connection report."""
    status: Literal["online", "offline"]

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# ============================================
# COMMANDS
# ============================================

class CommandRequest(_CamelModel):
    """Camera directive issued by a supervisor or admin."""
    command: Literal["START", "STOP"]
    target_email: EmailStr = Field(
        ...,
        validation_alias=AliasChoices("targetEmail", "employeeEmail", "target_email"),
    )

    @field_validator("command", mode="before")
    @classmethod
    def normalize_command(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class AcknowledgeRequest(_CamelModel):
    """IDs of commands the client has acted on."""
    ids: List[uuid.UUID] = Field(..., max_length=500)


# ============================================
# ACCOUNT ADMINISTRATION
# ============================================

class RoleChangeRequest(_CamelModel):
    """Assign a role; a null role removes the account."""
    user_email: EmailStr = Field(..., alias="userEmail")
    external_id: str = Field(..., alias="externalId", min_length=1, max_length=100)
    full_name: str = Field("", alias="fullName", max_length=255)
    new_role: Optional[Literal["Supervisor", "Admin", "Employee"]] = Field(None, alias="newRole")


class SupervisorChangeRequest(_CamelModel):
    """Move employees under a supervisor."""
    user_emails: List[EmailStr] = Field(..., alias="userEmails", min_length=1, max_length=500)
    new_supervisor_email: EmailStr = Field(..., alias="newSupervisorEmail")
