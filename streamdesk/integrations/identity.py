"""
Bearer token verification against the Azure AD (Entra ID) tenant.

Signing keys are fetched from the tenant JWKS endpoint and cached.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp
from jose import JWTError, jwt

from config import Settings, settings as default_settings
from ..services.exceptions import AuthenticationError
from ..utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

ALGORITHMS = ["RS256"]


@dataclass
class VerifiedIdentity:
    """Claims the coordinator relies on from a validated token."""
    external_id: str
    email: str
    name: str


class IdentityVerifier:
    """Validates bearer tokens and extracts the caller identity."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._keys: List[Dict[str, Any]] = []
        self._keys_fetched_at: Optional[datetime] = None
        self._cache_ttl = timedelta(minutes=self.settings.auth_jwks_cache_minutes)
        self._lock = asyncio.Lock()

    def _cache_valid(self) -> bool:
        if not self._keys or self._keys_fetched_at is None:
            return False
        return utc_now() - self._keys_fetched_at < self._cache_ttl

    async def _fetch_keys(self) -> List[Dict[str, Any]]:
        url = self.settings.auth_jwks_url
        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        error = await response.text()
                        logger.error(f"JWKS fetch error: {response.status} - {error}")
                        raise AuthenticationError("Signing keys unavailable")
                    data = await response.json()
                    return data.get("keys", [])

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error fetching JWKS from {url}: {e}")
            raise AuthenticationError("Signing keys unavailable") from e

    async def get_signing_key(self, kid: str, refresh: bool = False) -> Optional[Dict[str, Any]]:
        """Look up a signing key by key ID, refetching when the cache is stale."""
        async with self._lock:
            if refresh or not self._cache_valid():
                self._keys = await self._fetch_keys()
                self._keys_fetched_at = utc_now()
                logger.debug(f"Cached {len(self._keys)} signing keys")

        for key in self._keys:
            if key.get("kid") == kid:
                return key
        return None

    async def verify(self, token: str) -> VerifiedIdentity:
        """
        Validate a bearer token.

        Raises:
            AuthenticationError: Malformed, expired, wrong audience/issuer,
                unknown signing key, or missing subject
        """
        if not token:
            raise AuthenticationError("Missing bearer token")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise AuthenticationError("Malformed bearer token") from e

        kid = header.get("kid")
        key = await self.get_signing_key(kid)
        if key is None:
            # Keys rotate; retry once against a fresh key set
            key = await self.get_signing_key(kid, refresh=True)
        if key is None:
            logger.warning(f"Token signed with unknown key id {kid}")
            raise AuthenticationError("Unknown signing key")

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=ALGORITHMS,
                audience=self.settings.auth_audience or None,
                issuer=self.settings.auth_issuers or None,
                options={"verify_aud": bool(self.settings.auth_audience)},
            )
        except JWTError as e:
            logger.info(f"Rejected bearer token: {e}")
            raise AuthenticationError("Invalid bearer token") from e

        external_id = claims.get("oid") or claims.get("sub")
        if not external_id:
            raise AuthenticationError("Token carries no subject")

        email = claims.get("preferred_username") or claims.get("email") or claims.get("upn") or ""
        return VerifiedIdentity(
            external_id=external_id,
            email=email.lower(),
            name=claims.get("name", ""),
        )
