# SPDX-License-Identifier: MIT
"""aiohttp implementation of the transport port."""

import asyncio
from typing import Any

import aiohttp

from ..config import CollectionConfig, TransportSettings
from ..constants import DEFAULT_FETCH_RETRIES
from ..enums import WriteAction
from ..exceptions import (
    ApplicationError,
    AuthorizationError,
    LocalProgrammingError,
    MalformedResponseError,
    NetworkError,
    RecordNotFoundError,
    RecordValidationError,
    ServiceUnavailableError,
    TransportConnectionError,
    TransportTimeoutError,
)
from ..logging_config import get_detail_logger
from ..retry_utils import async_retry_with_backoff
from .protocols import WriteRequest


detail_logger = get_detail_logger()

_WRITE_METHODS: dict[WriteAction, str] = {
    WriteAction.CREATE: "POST",
    WriteAction.UPDATE: "PUT",
    WriteAction.DELETE: "DELETE",
}


class HttpTransport:
    """HTTP client for the ZooQuest REST API."""

    def __init__(
        self,
        settings: TransportSettings | None = None,
        collections: dict[str, CollectionConfig] | None = None,
        fetch_retries: int = DEFAULT_FETCH_RETRIES,
    ):
        """Initialize the transport.

        Args:
            settings: Base URL, timeout and auth settings
            collections: Collection configs used to resolve list endpoints
            fetch_retries: Retries for network failures on collection fetches
        """
        self.settings = settings or TransportSettings()
        self.collections = collections or {}
        self.fetch_retries = fetch_retries
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "HttpTransport":
        """Async context manager entry."""
        self._ensure_session()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.auth_token:
            headers["Authorization"] = f"Bearer {self.settings.auth_token}"
        return headers

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds),
            )
        return self.session

    def endpoint_for(self, collection_key: str) -> str:
        """Resolve the list endpoint of a collection, e.g. ``/animals``."""
        collection_config = self.collections.get(collection_key)
        if collection_config is not None:
            return collection_config.endpoint
        return f"/{collection_key}"

    def _url(self, path: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def fetch_collection(self, collection_key: str) -> list[dict[str, Any]]:
        """Fetch all records of a collection.

        Network failures are retried with backoff before being raised. The
        payload is returned as decoded; shape checks belong to the caller.

        Raises:
            NetworkError: If the server stays unreachable
            ApplicationError: If the server rejects the request
        """
        path = self.endpoint_for(collection_key)
        fetch = async_retry_with_backoff(
            max_retries=self.fetch_retries,
            initial_delay=0.5,
            max_delay=5.0,
            exceptions=(NetworkError,),
        )(self._request)

        data = await fetch("GET", path, collection_key)
        detail_logger.debug(
            f"Fetched '{collection_key}' from {path}: "
            f"{len(data) if isinstance(data, list) else type(data).__name__}"
        )
        return data  # type: ignore[no-any-return]

    async def perform_write(self, request: WriteRequest) -> Any:
        """Send a create, update or delete request. Writes are never retried here."""
        path = self.endpoint_for(request.collection_key)
        if request.record_id is not None:
            path = f"{path.rstrip('/')}/{request.record_id}"

        method = _WRITE_METHODS[request.action]
        detail_logger.debug(f"{method} {path} ({request.operation_key})")
        return await self._request(
            method, path, request.collection_key, json_body=request.payload
        )

    async def check_health(self) -> bool:
        """Check whether the API health endpoint answers successfully."""
        try:
            await self._request("GET", self.settings.health_endpoint, None)
        except (NetworkError, ApplicationError, LocalProgrammingError) as e:
            detail_logger.debug(f"Health check failed: {e}")
            return False
        return True

    async def _request(
        self,
        method: str,
        path: str,
        collection_key: str | None,
        json_body: Any | None = None,
    ) -> Any:
        session = self._ensure_session()
        url = self._url(path)

        try:
            async with session.request(method, url, json=json_body) as response:
                body = await self._read_body(response, collection_key)
                if 200 <= response.status < 300:
                    return body
                raise self._classify_status(response.status, body, collection_key)
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(
                f"{method} {url} timed out after {self.settings.timeout_seconds}s",
                collection_key,
            ) from e
        except aiohttp.ClientConnectionError as e:
            raise TransportConnectionError(
                f"Cannot reach {url}: {e}", collection_key
            ) from e
        except aiohttp.ClientPayloadError as e:
            raise NetworkError(
                f"Incomplete response from {url}: {e}", collection_key
            ) from e
        except aiohttp.InvalidURL as e:
            raise LocalProgrammingError(
                f"Invalid request URL {url}: {e}", collection_key
            ) from e
        except aiohttp.ClientError as e:
            raise TransportConnectionError(
                f"Request to {url} failed: {type(e).__name__} - {e}", collection_key
            ) from e

    async def _read_body(
        self, response: aiohttp.ClientResponse, collection_key: str | None
    ) -> Any:
        try:
            return await response.json(content_type=None)
        except ValueError as e:
            if 200 <= response.status < 300:
                raise MalformedResponseError(
                    f"Response from {response.url} is not valid JSON", collection_key
                ) from e
            return None

    def _classify_status(
        self, status: int, body: Any, collection_key: str | None
    ) -> Exception:
        server_message = None
        if isinstance(body, dict):
            server_message = body.get("error") or body.get("message")

        if status in (408, 429) or status >= 500:
            return ServiceUnavailableError(
                str(server_message or "Service unavailable"), status, collection_key
            )

        message = str(server_message or f"HTTP {status}")
        if status in (400, 422):
            return RecordValidationError(message, status, collection_key)
        if status in (401, 403):
            return AuthorizationError(message, status, collection_key)
        if status == 404:
            return RecordNotFoundError(message, status, collection_key)
        return ApplicationError(message, status, collection_key)
