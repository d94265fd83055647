"""Remote blob store adapter for the Google Drive appData folder.

This module provides:
- RemoteBlobStore: Protocol consumed by the sync engine
- DriveClient: httpx-based implementation scoped to `appDataFolder`
- APIError and subclasses raised for non-successful responses

The store is a dumb named-blob container: one JSON file per sync domain,
located by name, read by id, and created or replaced as a whole.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import httpx

from notasync.client.retry import retry_with_backoff
from notasync.core.config import DriveConfig, RetryPolicy
from notasync.core.envelope import parse_timestamp

logger = logging.getLogger(__name__)

APP_DATA_FOLDER = "appDataFolder"
MULTIPART_BOUNDARY = "-------314159265358979323846"


class APIError(Exception):
    """Base exception for remote store errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Access token missing, invalid or expired."""


class NotFoundError(APIError):
    """Blob not found."""


@dataclass
class DriveFile:
    """Blob metadata returned by the store."""

    id: str
    name: str
    modified_time: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DriveFile:
        """Create from API response dictionary."""
        modified = data.get("modifiedTime")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            modified_time=parse_timestamp(modified) if modified else None,
        )


class RemoteBlobStore(Protocol):
    """Named-blob container used by the domain sync units."""

    async def find(self, name: str) -> DriveFile | None:
        """Locate a blob by name, None if absent."""
        ...

    async def read(self, file_id: str) -> bytes:
        """Read the full content of a blob."""
        ...

    async def write(self, name: str, content: bytes, existing_id: str | None = None) -> str:
        """Create a blob, or replace the content of `existing_id`. Returns the id."""
        ...

    async def delete(self, file_id: str) -> bool:
        """Delete a blob. Returns False if it did not exist."""
        ...

    async def probe(self, token: str) -> int:
        """Probe the store with a token and return the HTTP status code."""
        ...


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.reason_phrase


class DriveClient:
    """Drive v3 REST client scoped to the application-private folder.

    The access token is read from `token_provider` on every request, so a
    token refreshed by the sync manager is picked up by later calls.

    Usage:
        async with DriveClient(DriveConfig(), token_provider=lambda: token) as drive:
            handle = await drive.find("nota_notes.json")
    """

    def __init__(
        self,
        config: DriveConfig | None = None,
        token_provider: Callable[[], str | None] | None = None,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Drive client.

        Args:
            config: Endpoint and timeout configuration.
            token_provider: Returns the current access token.
            retry: Retry policy for transient failures.
            client: Optional preconfigured httpx client (owned by caller).
        """
        self._config = config or DriveConfig()
        self._token_provider = token_provider or (lambda: None)
        self._retry = retry or RetryPolicy()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout),
        )

    @property
    def config(self) -> DriveConfig:
        return self._config

    def set_token_provider(self, token_provider: Callable[[], str | None]) -> None:
        """Replace the function used to read the current access token."""
        self._token_provider = token_provider

    async def close(self) -> None:
        """Close the HTTP client if owned."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> DriveClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _auth_headers(self, token: str | None = None) -> dict[str, str]:
        token = token if token is not None else self._token_provider()
        if not token:
            raise AuthenticationError("No access token available", 401)
        return {"Authorization": f"Bearer {token}"}

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Raise the matching exception for an unsuccessful response."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            raise APIError(_error_detail(response), response.status_code)
        return response

    async def _request(
        self,
        method: str,
        url: str,
        description: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        async def attempt() -> httpx.Response:
            request_headers = {**self._auth_headers(), **(headers or {})}
            response = await self._client.request(method, url, headers=request_headers, **kwargs)
            return self._handle_response(response)

        return await retry_with_backoff(attempt, self._retry, description)

    # === Blob operations ===

    async def find(self, name: str) -> DriveFile | None:
        """Find a blob in the appData folder by exact name.

        Args:
            name: Blob name (e.g. "nota_notes.json").

        Returns:
            DriveFile for the first match, None if no blob has this name.
        """
        query = (
            f"name='{_escape_query_value(name)}' "
            f"and '{APP_DATA_FOLDER}' in parents and trashed=false"
        )
        response = await self._request(
            "GET",
            f"{self._config.api_base}/files",
            f"find {name}",
            params={
                "spaces": APP_DATA_FOLDER,
                "q": query,
                "fields": "files(id,name,modifiedTime)",
            },
        )
        files = response.json().get("files") or []
        if not files:
            return None
        if len(files) > 1:
            logger.warning("Found %d blobs named %s, using the first", len(files), name)
        return DriveFile.from_dict(files[0])

    async def read(self, file_id: str) -> bytes:
        """Download the content of a blob.

        Raises:
            NotFoundError: If the blob no longer exists.
        """
        response = await self._request(
            "GET",
            f"{self._config.api_base}/files/{file_id}",
            f"read {file_id}",
            params={"alt": "media"},
        )
        return response.content

    async def write(self, name: str, content: bytes, existing_id: str | None = None) -> str:
        """Create a blob or replace an existing one (multipart upload).

        Args:
            name: Blob name.
            content: JSON bytes to store.
            existing_id: Id of the blob to replace, None to create a new one.

        Returns:
            Id of the written blob.
        """
        metadata: dict[str, Any] = {"name": name, "mimeType": "application/json"}
        if existing_id is None:
            metadata["parents"] = [APP_DATA_FOLDER]

        delimiter = f"\r\n--{MULTIPART_BOUNDARY}\r\n".encode()
        close_delimiter = f"\r\n--{MULTIPART_BOUNDARY}--".encode()
        part_header = b"Content-Type: application/json\r\n\r\n"
        body = (
            delimiter
            + part_header
            + json.dumps(metadata).encode("utf-8")
            + delimiter
            + part_header
            + content
            + close_delimiter
        )

        if existing_id:
            method = "PATCH"
            url = f"{self._config.upload_base}/files/{existing_id}"
        else:
            method = "POST"
            url = f"{self._config.upload_base}/files"

        response = await self._request(
            method,
            url,
            f"write {name}",
            params={"uploadType": "multipart"},
            content=body,
            headers={"Content-Type": f'multipart/related; boundary="{MULTIPART_BOUNDARY}"'},
        )
        return str(response.json()["id"])

    async def delete(self, file_id: str) -> bool:
        """Delete a blob permanently.

        Returns:
            True if deleted, False if it did not exist.
        """
        try:
            await self._request(
                "DELETE",
                f"{self._config.api_base}/files/{file_id}",
                f"delete {file_id}",
            )
        except NotFoundError:
            return False
        return True

    async def probe(self, token: str) -> int:
        """Check a token against the `about` endpoint.

        Transport errors propagate; HTTP errors are returned as status codes.
        """
        response = await self._client.get(
            f"{self._config.api_base}/about",
            params={"fields": "user"},
            headers=self._auth_headers(token),
        )
        return response.status_code
