"""
Azure Web PubSub integration for pushing commands to connected clients.

Supports:
- Group broadcast over the Web PubSub REST API (one group per account)
- Client access tokens scoped to an account's group
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote, urlparse

import aiohttp
from jose import jwt

from config import settings
from ..utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

API_VERSION = "2024-01-01"
CLIENT_ROLES = ["webpubsub.joinLeaveGroup", "webpubsub.receive"]


def normalize_group(value: str) -> str:
    """Group names are the account's directory ID, trimmed and lower-cased."""
    return value.strip().lower()


class BroadcastChannel(Protocol):
    """Fan-out transport keyed by group name."""

    async def send(self, group_id: str, payload: Dict[str, Any]) -> bool:
        ...


class WebPubSubBroadcaster:
    """
    Sends JSON payloads to every connection in a Web PubSub group.

    Authenticates each REST call with a short-lived HS256 token signed with
    the hub's access key.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        hub: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.endpoint = (endpoint if endpoint is not None else settings.webpubsub_endpoint).rstrip("/")
        self.access_key = access_key if access_key is not None else settings.webpubsub_key
        self.hub = hub or settings.webpubsub_hub
        self.timeout_seconds = timeout_seconds or settings.broadcast_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.access_key)

    def _sign(self, audience: str, ttl: timedelta, extra_claims: Optional[Dict[str, Any]] = None) -> str:
        # jose converts datetime iat/exp claims to epoch seconds
        now = utc_now()
        claims: Dict[str, Any] = {
            "aud": audience,
            "iat": now,
            "exp": now + ttl,
        }
        if extra_claims:
            claims.update(extra_claims)
        return jwt.encode(claims, self.access_key, algorithm="HS256")

    def group_send_url(self, group_id: str) -> str:
        group = quote(normalize_group(group_id), safe="")
        return f"{self.endpoint}/api/hubs/{self.hub}/groups/{group}/:send"

    async def send(self, group_id: str, payload: Dict[str, Any]) -> bool:
        """
        Broadcast a payload to a group.

        Returns:
            True if the service accepted the message, False on any
            transport error, timeout or non-2xx response
        """
        if not self.is_configured:
            logger.warning("Web PubSub not configured, cannot broadcast")
            return False

        url = self.group_send_url(group_id)
        token = self._sign(url, timedelta(minutes=5))

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url,
                    params={"api-version": API_VERSION},
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                ) as response:
                    if 200 <= response.status < 300:
                        logger.debug(f"Broadcast to group {normalize_group(group_id)} accepted")
                        return True

                    error = await response.text()
                    logger.error(f"Web PubSub send error: {response.status} - {error}")
                    return False

        except asyncio.TimeoutError:
            logger.error(f"Web PubSub send timed out after {self.timeout_seconds}s")
            return False
        except aiohttp.ClientError as e:
            logger.error(f"Error broadcasting to Web PubSub: {e}")
            return False

    def generate_client_token(
        self,
        group_id: str,
        ttl_minutes: Optional[int] = None,
        roles: Optional[List[str]] = None,
    ) -> Dict[str, str]:
        """
        Create a client access token that may join and receive from one group.

        Returns:
            {"token", "url", "hubName"} where url is ready for a WebSocket connect
        """
        group = normalize_group(group_id)
        parsed = urlparse(self.endpoint)
        scheme = "wss" if parsed.scheme == "https" else "ws"
        client_url = f"{scheme}://{parsed.netloc}/client/hubs/{self.hub}"

        token = self._sign(
            client_url,
            timedelta(minutes=ttl_minutes or settings.webpubsub_token_ttl_minutes),
            {
                "sub": group,
                "role": roles or CLIENT_ROLES,
                "webpubsub.group": [group],
            },
        )
        return {
            "token": token,
            "url": f"{client_url}?access_token={token}",
            "hubName": self.hub,
        }
