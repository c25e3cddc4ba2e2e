"""Microsoft Graph API modules.

This package provides the core API client and the device-specific readers
and writers used by the cleanup workflow.

Classes:
    GraphClient: HTTP client with nextLink pagination, retry, and circuit breaker
    TokenManager: OAuth2 client-credentials token management with caching
    DeviceInventory: Managed and directory device reads
    DeviceManager: Retire/delete operations (write operations)

Exceptions:
    IntuneError: Base exception for all Graph errors
    ConfigurationError: Missing or invalid configuration
    AuthenticationError: Authentication failures
    APIError: API request failures
    NetworkError: Network connectivity issues
    CircuitOpenError: Graph calls suspended after repeated outages

Resilience:
    CircuitBreaker: Prevent cascading failures
    process_concurrent: Bounded-concurrency fan-out
"""
from .auth import TokenManager
from .client import (
    DIRECTORY_DEVICES_PAGINATION,
    MANAGED_DEVICES_PAGINATION,
    GraphClient,
    PaginationConfig,
)
from .device_manager import DeviceManager
from .devices import DeviceInventory
from .exceptions import (
    APIError,
    AuthenticationError,
    CircuitOpenError,
    ConfigurationError,
    GraphConnectionError,
    GraphTimeoutError,
    IntuneError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TokenExpiredError,
    TokenFetchError,
    ValidationError,
    parse_graph_error,
    parse_token_error,
)
from .resilience import CircuitBreaker, CircuitState, is_outage, process_concurrent

__all__ = [
    # Auth
    "TokenManager",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    # Client
    "GraphClient",
    "PaginationConfig",
    "MANAGED_DEVICES_PAGINATION",
    "DIRECTORY_DEVICES_PAGINATION",
    # Exceptions
    "IntuneError",
    "ConfigurationError",
    "AuthenticationError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "parse_graph_error",
    "parse_token_error",
    "ServerError",
    "NetworkError",
    "GraphConnectionError",
    "GraphTimeoutError",
    "CircuitOpenError",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "is_outage",
    "process_concurrent",
    # Devices
    "DeviceInventory",
    "DeviceManager",
]
