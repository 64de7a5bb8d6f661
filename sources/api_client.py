# api_client.py
"""HTTP client for the infusion data service."""

import asyncio
import json
import logging
from typing import Any, Dict

import aiohttp
from aiohttp import ClientTimeout

from app_logger import logger
from config import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT_S
from exceptions import ApiException

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/json",
    # the service is usually exposed through an ngrok tunnel
    "ngrok-skip-browser-warning": "true",
}


class InfusionApiClient:
    """Reads the full snapshot of all bottles with one GET request."""

    __slots__ = ("_session", "_url", "_timeout")

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str = DEFAULT_API_URL,
        timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
    ) -> None:
        """Initialize the API client.

        Args:
            session: aiohttp client session for HTTP requests
            url: snapshot endpoint
            timeout_s: total timeout of one request, in seconds
        """
        self._session = session
        self._url = url
        self._timeout = ClientTimeout(total=timeout_s)

    async def fetch_snapshot(self) -> Any:
        """Fetch and decode the current snapshot.

        Returns:
            The decoded JSON document, whatever its shape.

        Raises:
            ApiException: on connection errors, timeouts, non-2xx statuses
                or a body that is not JSON in its declared charset.
        """
        try:
            async with self._session.get(
                self._url, headers=DEFAULT_HEADERS, timeout=self._timeout
            ) as response:
                if response.status < 200 or response.status >= 300:
                    raise ApiException(f"HTTP error! status: {response.status}")
                body = await response.read()
                charset = response.charset or "utf-8"
        except asyncio.TimeoutError as exc:
            raise ApiException(f"request to {self._url} timed out") from exc
        except aiohttp.ClientError as exc:
            raise ApiException(f"request to {self._url} failed: {exc}") from exc

        try:
            data = json.loads(body.decode(charset))
        except (ValueError, LookupError) as exc:
            raise ApiException(f"malformed JSON from {self._url}: {exc}") from exc

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "fetched %s (%s)", self._url,
                f"{len(data)} records" if isinstance(data, list) else type(data).__name__,
            )
        return data
