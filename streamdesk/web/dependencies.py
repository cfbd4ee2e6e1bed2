"""
FastAPI dependencies for caller identity and service access.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..database.models import AccountDB
from ..integrations.identity import IdentityVerifier, VerifiedIdentity
from ..integrations.webpubsub import WebPubSubBroadcaster
from ..services.container import Services
from ..services.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.verifier


def get_broadcaster(request: Request) -> WebPubSubBroadcaster:
    return request.app.state.broadcaster


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(get_verifier),
) -> VerifiedIdentity:
    """Verify the bearer token on the request."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    return await verifier.verify(credentials.credentials)


async def get_current_account(
    identity: VerifiedIdentity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> AccountDB:
    """Stored account for the caller. Unknown or deleted callers are rejected."""
    return await services.accounts.authenticate(identity.external_id, identity.email)


async def get_admin_caller(
    identity: VerifiedIdentity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> AccountDB:
    """Caller of an admin endpoint; the first caller bootstraps the initial Admin."""
    return await services.accounts.resolve_admin_caller(
        identity.external_id, identity.email, identity.name
    )
