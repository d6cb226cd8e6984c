"""HTTP helper for link-local cloud metadata services.

Metadata services are absent on most hosts, so every network failure is
folded into :attr:`MetadataStatus.UNREACHABLE` instead of being raised. Callers
decide whether that means "not this provider" or "field missing". A body that
cannot be decoded as text is reported as :attr:`MetadataStatus.MALFORMED`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

import aiohttp

from .. import constants

LOGGER = logging.getLogger(__name__)


class MetadataParseError(Exception):
    """Raised when a structured metadata body cannot be decoded."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class MetadataStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNREACHABLE = "unreachable"
    MALFORMED = "malformed"


@dataclass(slots=True, frozen=True)
class MetadataResponse:
    status: MetadataStatus
    body: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is MetadataStatus.FOUND

    @property
    def malformed(self) -> bool:
        return self.status is MetadataStatus.MALFORMED

    @property
    def value(self) -> Optional[str]:
        """Body with surrounding whitespace removed, or None."""
        if self.body is None:
            return None
        return self.body.strip()


class MetadataClient:
    """Issues short, header-tagged requests against a metadata base URL."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = constants.DEFAULT_METADATA_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL; relative paths are appended to it.
            headers: Headers attached to every request.
            timeout: Per-request timeout in seconds.
            session: Optional aiohttp session to share.
        """
        self._base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def url_for(self, path: str) -> str:
        return f"{self._base_url}{path.lstrip('/')}"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if we own it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def get(
        self, path: str, *, headers: Optional[Mapping[str, str]] = None
    ) -> MetadataResponse:
        return await self._request("GET", path, headers)

    async def put(
        self, path: str, *, headers: Optional[Mapping[str, str]] = None
    ) -> MetadataResponse:
        return await self._request("PUT", path, headers)

    async def get_json(
        self, path: str, *, headers: Optional[Mapping[str, str]] = None
    ) -> Tuple[MetadataStatus, Any]:
        """Fetch and decode a JSON body.

        Returns the status and the decoded value (None unless FOUND).

        Raises:
            MetadataParseError: If the body is not valid JSON.
        """
        response = await self.get(path, headers=headers)
        if response.status is MetadataStatus.MALFORMED:
            raise MetadataParseError(path, "body is not valid text")
        if not response.found:
            return response.status, None

        try:
            return response.status, json.loads(response.body or "")
        except ValueError as exc:
            raise MetadataParseError(path, f"invalid JSON body: {exc}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        extra_headers: Optional[Mapping[str, str]],
    ) -> MetadataResponse:
        session = await self._ensure_session()
        url = self.url_for(path)
        headers = dict(self._headers)
        if extra_headers:
            headers.update(extra_headers)

        try:
            async with asyncio.timeout(self._timeout):
                async with session.request(method, url, headers=headers) as response:
                    if response.status == 404:
                        return MetadataResponse(MetadataStatus.NOT_FOUND)

                    if response.status != 200:
                        LOGGER.warning(
                            "Metadata %s %s returned %d", method, url, response.status
                        )
                        return MetadataResponse(MetadataStatus.UNREACHABLE)

                    try:
                        body = await response.text()
                    except UnicodeDecodeError as exc:
                        LOGGER.warning(
                            "Metadata %s %s returned an undecodable body: %s",
                            method,
                            url,
                            exc,
                        )
                        return MetadataResponse(MetadataStatus.MALFORMED)
        except asyncio.TimeoutError:
            LOGGER.debug("Metadata %s %s timed out", method, url)
            return MetadataResponse(MetadataStatus.UNREACHABLE)
        except aiohttp.ClientError as exc:
            LOGGER.debug("Metadata %s %s unreachable: %s", method, url, exc)
            return MetadataResponse(MetadataStatus.UNREACHABLE)

        return MetadataResponse(MetadataStatus.FOUND, body)
