"""Shared HTTP client management for gateway and Crossbar requests.

All off-chain HTTP traffic goes through one shared ``httpx.AsyncClient`` to
reuse connections across gateways. Subclasses get ``_get``/``_post``
helpers that translate transport failures and non-2xx responses into
:class:`~crank.src.errors.GatewayError`.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

import httpx

from ..errors import GatewayError

logger = logging.getLogger(__name__)


class HttpService:
    """Base class for JSON-over-HTTP collaborators.

    :cvar DEFAULT_TIMEOUT: Default request timeout in seconds.
    :ivar base_url: Service base URL without trailing slash.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the service.

        :param base_url: Service base URL.
        :param timeout: Request timeout in seconds (default: 30).
        :param client: Optional client overriding the shared one.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if HttpService._shared_client is None or HttpService._shared_client.is_closed:
            HttpService._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return HttpService._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if HttpService._shared_client is not None and not HttpService._shared_client.is_closed:
            await HttpService._shared_client.aclose()
            HttpService._shared_client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Client used for requests."""
        return self._client or self.get_shared_client()

    async def _get(self, path: str, *, params: dict | None = None) -> Any:
        """Make a GET request and return the decoded JSON body.

        :param path: Path appended to the base URL.
        :param params: Optional query parameters.
        :returns: Decoded JSON body.
        :raises GatewayError: On network errors, non-2xx responses or bad JSON.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise GatewayError(f"Request failed: {e}") from e
        return self._decode(response, "GET", url)

    async def _post(self, path: str, *, json: dict | None = None) -> Any:
        """Make a POST request and return the decoded JSON body.

        :param path: Path appended to the base URL.
        :param json: Optional JSON body.
        :returns: Decoded JSON body.
        :raises GatewayError: On network errors, non-2xx responses or bad JSON.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.post(url, json=json, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise GatewayError(f"Request failed: {e}") from e
        return self._decode(response, "POST", url)

    @staticmethod
    def _decode(response: httpx.Response, method: str, url: str) -> Any:
        if not response.is_success:
            logger.debug(
                "HTTP %s %s failed with status %s: %s",
                method,
                url,
                response.status_code,
                response.text[:200],
            )
            raise GatewayError(response.text[:200], status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"Invalid JSON from {url}: {e}") from e
