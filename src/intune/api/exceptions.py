#!/usr/bin/env python3
"""Typed errors for Microsoft Graph and Entra ID token calls.

Graph reports failures as ``{"error": {"code", "message", "innerError":
{"request-id", "date"}}}`` and the token endpoint as ``{"error",
"error_description", "error_codes": [AADSTS...]}``. The helpers below pull
those fields out so every error carries the Graph error code and the
request id Microsoft support asks for.

Hierarchy:
    IntuneError
    ├── ConfigurationError
    ├── AuthenticationError
    │   ├── TokenFetchError
    │   ├── TokenExpiredError
    │   └── InvalidCredentialsError
    ├── APIError
    │   ├── RateLimitError
    │   ├── NotFoundError
    │   ├── ValidationError
    │   └── ServerError
    ├── NetworkError
    │   ├── GraphConnectionError
    │   └── GraphTimeoutError
    └── CircuitOpenError
"""
import json
from datetime import datetime, timezone
from typing import Any, Optional

# Graph's documented fallback when a 429 has no usable Retry-After
DEFAULT_RETRY_AFTER = 30

# AADSTS codes that mean the app registration itself is wrong
INVALID_CLIENT_AADSTS = {
    7000215,  # invalid client secret
    7000222,  # client secret expired
    700016,   # application not found in tenant
    90002,    # tenant not found
}


def parse_graph_error(body: Optional[str]) -> dict[str, Any]:
    """Extract code, message and request id from a Graph error body.

    Non-JSON bodies (gateway pages, empty 5xx) yield an empty dict.
    """
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except ValueError:
        return {}
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return {}

    inner = error.get("innerError") or error.get("innererror") or {}
    parsed = {
        "graph_code": error.get("code"),
        "graph_message": error.get("message"),
        "request_id": inner.get("request-id") or inner.get("client-request-id"),
    }
    return {k: v for k, v in parsed.items() if v}


def parse_token_error(body: Optional[str]) -> dict[str, Any]:
    """Extract the OAuth error, description and first AADSTS code."""
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except ValueError:
        return {}
    if not isinstance(payload, dict):
        return {}

    codes = payload.get("error_codes") or []
    parsed = {
        "error": payload.get("error"),
        "error_description": (payload.get("error_description") or "").split("\r\n")[0],
        "aadsts_code": codes[0] if codes else None,
        "request_id": payload.get("trace_id"),
    }
    return {k: v for k, v in parsed.items() if v}


class IntuneError(Exception):
    """Base exception for Graph and Entra ID failures.

    Attributes:
        message: Human-readable description
        code: Machine-readable code (e.g. "NOT_FOUND")
        details: Extra context, rendered into str() and to_dict()
        timestamp: When the error was raised (UTC)
        cause: Underlying exception, also chained as __cause__
        recoverable: Whether retrying the same call can succeed
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable
        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for logs and reports."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(IntuneError):
    """Missing or invalid settings (credentials, base URL, CLEANUP_* values)."""

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, **kwargs):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, code="CONFIGURATION_ERROR", details=details, **kwargs)


class AuthenticationError(IntuneError):
    """Token acquisition or bearer token problems."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class TokenFetchError(AuthenticationError):
    """The Entra ID token endpoint did not issue a token."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        attempts: int = 1,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details.update(parse_token_error(response_body))
        if status_code:
            details["status_code"] = status_code
        details["attempts"] = attempts
        super().__init__(message, code="TOKEN_FETCH_ERROR", details=details, **kwargs)
        self.status_code = status_code
        self.aadsts_code = details.get("aadsts_code")


class TokenExpiredError(AuthenticationError):
    """Graph rejected the bearer token (HTTP 401)."""

    def __init__(self, message: str = "Access token has expired", **kwargs):
        super().__init__(message, code="TOKEN_EXPIRED", **kwargs)


class InvalidCredentialsError(AuthenticationError):
    """The app registration's client id, secret or tenant is wrong."""

    def __init__(
        self,
        message: str = "Invalid client credentials",
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details.update(parse_token_error(response_body))
        super().__init__(
            message,
            code="INVALID_CREDENTIALS",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.aadsts_code = details.get("aadsts_code")

    @staticmethod
    def matches(status: int, body: str) -> bool:
        """Whether a token endpoint failure is a credentials problem."""
        if status == 401:
            return True
        parsed = parse_token_error(body)
        return (
            parsed.get("error") == "invalid_client"
            or parsed.get("aadsts_code") in INVALID_CLIENT_AADSTS
            or "invalid_client" in (body or "")
        )


class APIError(IntuneError):
    """A Graph call answered with a non-2xx status.

    Attributes:
        status_code: HTTP status
        endpoint: Path or nextLink that was called
        method: HTTP method
        graph_code: ``error.code`` from the body (e.g. "Request_ResourceNotFound")
        request_id: ``innerError.request-id`` for support cases
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "GET",
        **kwargs,
    ):
        graph = parse_graph_error(response_body)
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        details["method"] = method
        if endpoint:
            details["endpoint"] = endpoint
        details.update(graph)
        if response_body and not graph:
            details["response_body"] = response_body[:300]

        kwargs.setdefault("recoverable", status_code in (429, 500, 502, 503, 504))
        kwargs.setdefault("code", f"API_ERROR_{status_code}")
        super().__init__(message, details=details, **kwargs)

        self.status_code = status_code
        self.endpoint = endpoint
        self.method = method
        self.response_body = response_body
        self.graph_code = graph.get("graph_code")
        self.request_id = graph.get("request_id")


class RateLimitError(APIError):
    """Graph throttled the request (HTTP 429)."""

    def __init__(self, message: str = "Throttled by Graph", retry_after: Optional[int] = None, **kwargs):
        kwargs.setdefault("status_code", 429)
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, code="RATE_LIMIT_EXCEEDED", details=details, **kwargs)
        self.retry_after = retry_after or DEFAULT_RETRY_AFTER


class NotFoundError(APIError):
    """The device or directory object no longer exists (HTTP 404)."""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None, **kwargs):
        message = f"{resource_type} '{resource_id}' not found" if resource_id else f"{resource_type} not found"
        kwargs.setdefault("status_code", 404)
        details = kwargs.pop("details", {})
        details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message, code="NOT_FOUND", details=details, recoverable=False, **kwargs)


class ValidationError(APIError):
    """Graph rejected the request as malformed (HTTP 400/422), or a caller passed a bad id."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        kwargs.setdefault("status_code", 400)
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details, recoverable=False, **kwargs)


class ServerError(APIError):
    """Graph or the Intune service behind it failed (HTTP 5xx)."""

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(message, code="SERVER_ERROR", recoverable=True, **kwargs)


class NetworkError(IntuneError):
    """The request never got an HTTP answer."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class GraphConnectionError(NetworkError):
    """Could not connect to Graph or the token endpoint."""

    def __init__(self, message: str = "Failed to connect", host: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        super().__init__(message, code="CONNECTION_ERROR", details=details, **kwargs)


class GraphTimeoutError(NetworkError):
    """A Graph or token request exceeded its timeout."""

    def __init__(self, message: str = "Request timed out", timeout_seconds: Optional[float] = None, **kwargs):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, code="TIMEOUT_ERROR", details=details, **kwargs)


class CircuitOpenError(IntuneError):
    """Graph calls are suspended after repeated outages."""

    def __init__(
        self,
        message: str = "Graph circuit is open, requests rejected",
        reset_at: Optional[datetime] = None,
        failure_count: int = 0,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if reset_at:
            details["reset_at"] = reset_at.isoformat()
        details["failure_count"] = failure_count
        super().__init__(message, code="CIRCUIT_OPEN", details=details, recoverable=True, **kwargs)
        self.reset_at = reset_at
        self.failure_count = failure_count
