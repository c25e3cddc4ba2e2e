#!/usr/bin/env python3
"""Generic HTTP Client for Microsoft Graph.

This module provides a reusable HTTP client that handles the common
concerns of Graph communication:

    - OAuth2 authentication via TokenManager
    - Automatic token refresh on 401 responses
    - Throttling (429) handling that honours Retry-After
    - @odata.nextLink pagination with configurable page sizes
    - Connection pooling via shared aiohttp session
    - Circuit breaker for resilience against service outages

Design Philosophy:
    This client knows HOW to talk to Graph, but not WHAT to fetch.
    Knowledge of managed devices and directory objects belongs in
    DeviceInventory and DeviceManager, which compose this client.

Usage:
    async with GraphClient(token_manager) as client:
        data = await client.get("/deviceManagement/managedDevices", params={"$top": 50})

        async for page in client.paginate("/devices"):
            for item in page:
                process(item)
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import aiohttp

from .auth import TokenManager
from .exceptions import (
    APIError,
    ConfigurationError,
    GraphConnectionError,
    GraphTimeoutError,
    IntuneError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TokenExpiredError,
    ValidationError,
    parse_graph_error,
)
from .resilience import CircuitBreaker

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"

# ============================================
# Configuration
# ============================================

@dataclass
class PaginationConfig:
    """Configuration for paginated Graph requests.

    Attributes:
        page_size: Value sent as $top (Graph caps this per collection)
        delay_between_pages: Seconds to wait between requests
        max_pages: Safety limit to prevent infinite loops (None = no limit)
    """
    page_size: int = 100
    delay_between_pages: float = 0.0
    max_pages: Optional[int] = None


MANAGED_DEVICES_PAGINATION = PaginationConfig(page_size=1000, delay_between_pages=0.2)

DIRECTORY_DEVICES_PAGINATION = PaginationConfig(page_size=999, delay_between_pages=0.2)


# ============================================
# The Client
# ============================================

class GraphClient:
    """Async HTTP client for Microsoft Graph.

    Use as an async context manager so the session is always closed:

        async with GraphClient(token_manager) as client:
            data = await client.get("/devices")

    Attributes:
        token_manager: TokenManager instance for OAuth2 authentication
        base_url: Graph base URL including version segment
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        enable_circuit_breaker: bool = True,
        circuit_failure_threshold: int = 5,
        circuit_timeout: float = 60.0,
    ):
        """Initialize the GraphClient.

        Args:
            token_manager: TokenManager instance for authentication
            base_url: Graph base URL. Falls back to GRAPH_BASE_URL, then v1.0.
            enable_circuit_breaker: Enable circuit breaker for resilience
            circuit_failure_threshold: Failures before circuit opens
            circuit_timeout: Seconds before circuit attempts to close
        """
        self.token_manager = token_manager
        self.base_url = (
            base_url or os.getenv("GRAPH_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")

        if not self.base_url.startswith("https://"):
            raise ConfigurationError(
                f"Graph base URL must use https: {self.base_url}",
                details={"base_url": self.base_url},
            )

        self._session: Optional[aiohttp.ClientSession] = None

        self._circuit_breaker: Optional[CircuitBreaker] = None
        if enable_circuit_breaker:
            self._circuit_breaker = CircuitBreaker(
                failure_threshold=circuit_failure_threshold,
                timeout=circuit_timeout,
                name="graph_api",
            )

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "GraphClient":
        """Enter async context: create the HTTP session."""
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, limit_per_host=10),
            timeout=aiohttp.ClientTimeout(total=60, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def _build_url(self, endpoint: str) -> str:
        """Resolve an endpoint path or an absolute nextLink to a full URL."""
        if endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url}{endpoint}"

    async def _get_auth_headers(self) -> dict[str, str]:
        """Get authorization headers with current token."""
        token = await self.token_manager.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "ConsistencyLevel": "eventual",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a single HTTP request (no retry logic).

        Returns:
            Parsed JSON response, or {} for 202/204 and empty bodies

        Raises:
            APIError: If response status is not 2xx
            RuntimeError: If called outside of async context manager
        """
        if not self._session:
            raise RuntimeError(
                "GraphClient must be used as async context manager: "
                "async with GraphClient(...) as client:"
            )

        url = self._build_url(endpoint)

        try:
            headers = await self._get_auth_headers()

            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                if response.status in (202, 204):
                    return {}

                body = await response.text()
                if not body:
                    return {}
                return await response.json(content_type=None)

        except aiohttp.ClientConnectionError as e:
            raise GraphConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise GraphTimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=60,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> IntuneError:
        """Map a failed Graph response to a typed error.

        The Graph ``error.message`` is appended when the body carries one.
        """
        graph_message = parse_graph_error(response_body).get("graph_message")
        reason = f": {graph_message}" if graph_message else ""
        common = {"endpoint": endpoint, "method": method, "response_body": response_body}

        if status == 401:
            return TokenExpiredError(
                f"Graph rejected the access token{reason}",
                details={"endpoint": endpoint},
            )

        if status == 404:
            return NotFoundError(resource_type="Resource", resource_id=endpoint, **common)

        if status == 429:
            try:
                wait = int(retry_after) if retry_after else None
            except ValueError:
                wait = None
            return RateLimitError(f"Throttled by Graph for {endpoint}{reason}", retry_after=wait, **common)

        if status in (400, 422):
            return ValidationError(f"{method} {endpoint} rejected{reason}", status_code=status, **common)

        if status >= 500:
            return ServerError(f"Graph returned {status} for {method} {endpoint}{reason}", status_code=status, **common)

        return APIError(f"{method} {endpoint} failed with {status}{reason}", status_code=status, **common)

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        """Make an HTTP request with retry, gated by the circuit breaker.

        Retry policy:
            - 401: invalidate the cached token and retry
            - 429: wait for Retry-After and retry
            - 5xx and network errors: exponential backoff (1s, 2s, ... capped at 60s)
            - Anything else: fail immediately

        Only the final outcome of a call is reported to the breaker.

        Raises:
            CircuitOpenError: If the circuit is open
            IntuneError: The last error once retries are exhausted
        """
        breaker = self._circuit_breaker
        if breaker:
            await breaker.before_request()

        last_error: Optional[IntuneError] = None
        backoff_delay = 1.0

        for attempt in range(1, max_retries + 1):
            try:
                result = await self._request(method, endpoint, params, json_body)
            except TokenExpiredError as e:
                last_error = e
                logger.warning(f"Token rejected, refreshing (attempt {attempt})")
                self.token_manager.invalidate()
                continue
            except RateLimitError as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(
                        f"Throttled, waiting {e.retry_after}s (attempt {attempt}/{max_retries})"
                    )
                    await asyncio.sleep(e.retry_after)
                continue
            except (ServerError, NetworkError) as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(
                        f"{e.code} on {method} {endpoint}, retrying in {backoff_delay}s "
                        f"(attempt {attempt}/{max_retries})"
                    )
                    await asyncio.sleep(backoff_delay)
                    backoff_delay = min(backoff_delay * 2, 60.0)
                continue
            except IntuneError as e:
                last_error = e
                break
            else:
                if breaker:
                    await breaker.record_success()
                return result

        if breaker:
            await breaker.record_failure(last_error)
        raise last_error

    @property
    def circuit_status(self) -> Optional[dict[str, Any]]:
        """Circuit breaker state for logging, or None when disabled."""
        if self._circuit_breaker:
            return self._circuit_breaker.status
        return None

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a GET request."""
        return await self._request_with_retry("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a POST request. Graph action endpoints usually answer 204."""
        return await self._request_with_retry("POST", endpoint, params=params, json_body=json_body)

    async def delete(self, endpoint: str) -> dict[str, Any]:
        """Make a DELETE request."""
        return await self._request_with_retry("DELETE", endpoint)

    # ----------------------------------------
    # Pagination Methods
    # ----------------------------------------

    async def paginate(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> AsyncIterator[list[dict]]:
        """Iterate through a Graph collection one page at a time.

        The first request carries $top and any caller params. Subsequent
        requests follow @odata.nextLink verbatim, since it already encodes
        the query and skip token.

        Yields:
            List of items ("value") from each page
        """
        config = config or PaginationConfig()
        query: Optional[dict] = dict(params or {})
        query["$top"] = config.page_size

        next_url: Optional[str] = endpoint
        pages_fetched = 0
        fetched_count = 0

        while next_url:
            data = await self.get(next_url, params=query)
            query = None

            items = data.get("value", [])
            if items:
                yield items

            pages_fetched += 1
            fetched_count += len(items)
            logger.debug(f"Progress: {fetched_count:,} items after {pages_fetched} page(s)")

            next_url = data.get("@odata.nextLink")

            if config.max_pages and pages_fetched >= config.max_pages:
                logger.info(f"Reached max_pages limit ({config.max_pages})")
                break

            if next_url and config.delay_between_pages > 0:
                await asyncio.sleep(config.delay_between_pages)

        logger.info(
            f"Pagination of {endpoint} complete: {fetched_count:,} items in {pages_fetched} pages"
        )

    async def fetch_all(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> list[dict]:
        """Fetch all items from a paginated Graph collection."""
        all_items = []
        async for page in self.paginate(endpoint, config, params):
            all_items.extend(page)
        return all_items
