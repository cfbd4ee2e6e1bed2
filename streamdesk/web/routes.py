"""
API routes for presence reports, command issuance and account administration.
"""

import logging

from fastapi import APIRouter, Depends

from ..database.models import AccountDB
from ..integrations.webpubsub import WebPubSubBroadcaster
from ..models.api_validation import (
    AcknowledgeRequest,
    CommandRequest,
    PresenceStatusRequest,
    RoleChangeRequest,
    SupervisorChangeRequest,
)
from ..services.authorization import Operation, require
from ..services.container import Services
from .dependencies import get_admin_caller, get_broadcaster, get_current_account, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# Presence
# ============================================================================

@router.post("/presence/status")
async def report_presence(
    body: PresenceStatusRequest,
    caller: AccountDB = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    """Client reports it connected or disconnected."""
    require(caller.role, Operation.REPORT_PRESENCE)
    await services.presence.set_status(caller.id, body.status)
    return {"message": f"Presence set to {body.status}"}


@router.get("/presence/status")
async def read_presence(
    caller: AccountDB = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    require(caller.role, Operation.READ_PRESENCE)
    return await services.presence.get_presence(caller.id)


# ============================================================================
# Commands
# ============================================================================

@router.post("/commands")
async def issue_command(
    body: CommandRequest,
    caller: AccountDB = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    """Queue a START/STOP for an employee and push it if they are online."""
    result = await services.commands.issue(caller, body.command, str(body.target_email))
    return {
        "message": f"{body.command} command {'delivered' if result.delivered else 'queued'}",
        "id": str(result.record.id),
        "delivered": result.delivered,
    }


@router.get("/commands/pending")
async def fetch_pending(
    caller: AccountDB = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    """Most recent unacknowledged command for the calling employee."""
    require(caller.role, Operation.FETCH_PENDING)
    record = await services.commands.latest_pending(caller.id)
    return {"pending": services.commands.to_dict(record)}


@router.post("/commands/acknowledge")
async def acknowledge_commands(
    body: AcknowledgeRequest,
    caller: AccountDB = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    require(caller.role, Operation.ACKNOWLEDGE)
    updated = await services.commands.acknowledge(body.ids, account_id=caller.id)
    return {"updatedCount": updated}


# ============================================================================
# Account administration
# ============================================================================

@router.post("/users/role")
async def change_role(
    body: RoleChangeRequest,
    caller: AccountDB = Depends(get_admin_caller),
    services: Services = Depends(get_services),
):
    account = await services.accounts.change_role(
        caller,
        email=str(body.user_email),
        external_id=body.external_id,
        full_name=body.full_name,
        new_role=body.new_role,
    )
    if account is None:
        return {"message": f"Role removed for {body.user_email}"}
    return {"message": f"Role of {account.email} set to {account.role.value}"}


@router.post("/users/supervisor")
async def change_supervisor(
    body: SupervisorChangeRequest,
    caller: AccountDB = Depends(get_admin_caller),
    services: Services = Depends(get_services),
):
    updated = await services.accounts.change_supervisor(
        caller,
        [str(email) for email in body.user_emails],
        str(body.new_supervisor_email),
    )
    return {"updatedCount": updated}


# ============================================================================
# Streaming
# ============================================================================

@router.get("/stream/token")
async def stream_token(
    caller: AccountDB = Depends(get_current_account),
    broadcaster: WebPubSubBroadcaster = Depends(get_broadcaster),
):
    """Client access token for the caller's command group."""
    require(caller.role, Operation.REQUEST_STREAM_TOKEN)
    return broadcaster.generate_client_token(caller.external_id)
