"""Access credential providers.

This module provides:
- CredentialProvider: Protocol consumed by the sync manager
- StaticCredentials: A fixed token without refresh capability
- OAuthCredentials: Token refreshed through the OAuth2 refresh_token grant
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class CredentialProvider(Protocol):
    """Source of the access token used for remote calls."""

    def current(self) -> str | None:
        """Get the current access token, None if signed out."""
        ...

    async def refresh(self) -> str | None:
        """Obtain a new access token, None if refresh is impossible."""
        ...


class StaticCredentials:
    """A token that cannot be refreshed."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    def current(self) -> str | None:
        return self._token

    async def refresh(self) -> str | None:
        return None


class OAuthCredentials:
    """Access token backed by an OAuth2 refresh token.

    Usage:
        creds = OAuthCredentials(
            access_token="ya29...",
            refresh_token="1//0g...",
            client_id="....apps.googleusercontent.com",
            on_refreshed=lambda token: save_token(token),
        )
        token = await creds.refresh()
    """

    def __init__(
        self,
        access_token: str | None,
        refresh_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_url: str = GOOGLE_TOKEN_URL,
        on_refreshed: Callable[[str], None] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the credentials.

        Args:
            access_token: Current access token.
            refresh_token: Long-lived refresh token (None disables refresh).
            client_id: OAuth client id.
            client_secret: OAuth client secret (optional for installed apps).
            token_url: Token endpoint.
            on_refreshed: Called with the new token after a successful refresh.
            timeout: Request timeout in seconds.
            client: Optional preconfigured httpx client (owned by caller).
        """
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._on_refreshed = on_refreshed
        self._timeout = timeout
        self._client = client

    @property
    def can_refresh(self) -> bool:
        return bool(self._refresh_token and self._client_id)

    def current(self) -> str | None:
        return self._access_token

    async def refresh(self) -> str | None:
        """Exchange the refresh token for a new access token.

        Returns:
            The new access token, or None if refresh is not configured or
            was refused.
        """
        if not self.can_refresh:
            logger.debug("Token refresh not configured")
            return None

        data = {
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token or "",
            "client_id": self._client_id or "",
        }
        if self._client_secret:
            data["client_secret"] = self._client_secret

        try:
            if self._client is not None:
                response = await self._client.post(self._token_url, data=data)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._token_url, data=data)
        except httpx.HTTPError as e:
            logger.warning("Token refresh failed: %s", e)
            return None

        if response.status_code != 200:
            logger.warning("Token refresh refused (HTTP %d)", response.status_code)
            return None

        token = response.json().get("access_token")
        if not token:
            logger.warning("Token refresh response has no access_token")
            return None

        self._access_token = token
        logger.info("Access token refreshed")
        if self._on_refreshed:
            self._on_refreshed(token)
        return str(token)
