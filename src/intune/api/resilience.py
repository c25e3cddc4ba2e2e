#!/usr/bin/env python3
"""Outage protection and fan-out for Graph calls.

The circuit only counts outages (5xx and transport failures). Throttled
requests and 4xx answers, including 404 for a device that is already gone,
never open it.

Example:
    breaker = CircuitBreaker(failure_threshold=5, timeout=60)
    await breaker.before_request()
    try:
        result = await do_call()
    except IntuneError as e:
        await breaker.record_failure(e)
        raise
    await breaker.record_success()
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import CircuitOpenError, NetworkError, ServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def is_outage(error: BaseException) -> bool:
    """Whether an error says Graph itself is unavailable."""
    return isinstance(error, (ServerError, NetworkError))


class CircuitBreaker:
    """Fails Graph calls fast while the service is down.

    CLOSED opens after ``failure_threshold`` consecutive outages. OPEN lets
    one probe through once ``timeout`` seconds have passed (HALF_OPEN), and
    ``success_threshold`` successes close it again; another outage reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        success_threshold: int = 2,
        name: str = "graph",
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.name = name

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def reset_at(self) -> Optional[datetime]:
        """When an open circuit lets the next probe through."""
        if self._opened_at is None:
            return None
        return self._opened_at + timedelta(seconds=self.timeout)

    async def before_request(self) -> None:
        """Gate a call: raise while open, move to HALF_OPEN once the timeout passed.

        Raises:
            CircuitOpenError: The circuit is open and the timeout has not passed
        """
        async with self._lock:
            if self._state != CircuitState.OPEN:
                return
            if datetime.now(timezone.utc) < self.reset_at:
                raise CircuitOpenError(
                    f"Circuit '{self.name}' is open after {self._failures} Graph outage(s)",
                    reset_at=self.reset_at,
                    failure_count=self._failures,
                )
            logger.info(f"Circuit '{self.name}' half-open, probing Graph")
            self._state = CircuitState.HALF_OPEN
            self._successes = 0

    async def record_success(self) -> None:
        async with self._lock:
            self._failures = 0
            if self._state != CircuitState.HALF_OPEN:
                return
            self._successes += 1
            if self._successes >= self.success_threshold:
                logger.info(f"Circuit '{self.name}' closed, Graph recovered")
                self._state = CircuitState.CLOSED
                self._opened_at = None

    async def record_failure(self, error: BaseException) -> None:
        """Count an outage. Other errors leave the circuit untouched."""
        if not is_outage(error):
            return
        async with self._lock:
            self._failures += 1
            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._failures >= self.failure_threshold
            ):
                logger.warning(
                    f"Circuit '{self.name}' opened after {self._failures} outage(s): {error}"
                )
                self._state = CircuitState.OPEN
                self._opened_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at = None

    @property
    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failures,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }


async def process_concurrent(
    items: list[T],
    processor: Callable[[T], Awaitable[Any]],
    max_concurrent: int = 10,
    return_exceptions: bool = False,
) -> list[Any]:
    """Run ``processor`` over ``items`` with at most ``max_concurrent`` in flight.

    Results come back in input order.
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def bounded(item: T) -> Any:
        async with semaphore:
            return await processor(item)

    return await asyncio.gather(*(bounded(item) for item in items), return_exceptions=return_exceptions)
