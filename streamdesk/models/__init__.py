from .api_validation import (
    PresenceStatusRequest,
    CommandRequest,
    AcknowledgeRequest,
    RoleChangeRequest,
    SupervisorChangeRequest,
)

__all__ = [
    "PresenceStatusRequest",
    "CommandRequest",
    "AcknowledgeRequest",
    "RoleChangeRequest",
    "SupervisorChangeRequest",
]
