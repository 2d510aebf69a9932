"""
Failure recovery around a single network attempt.

Two independent budgets are tracked per logical call:
- transient failures (retryable network errors and retryable 5xx statuses)
  back off exponentially: min(base_delay * 2**attempt, max_delay)
- rate-limit responses (429) wait for the server-supplied Retry-After

Exhausting one budget never consumes the other.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, FrozenSet, Optional

from . import telemetry
from .debug import DebugLogger
from .errors import (
    DEFAULT_RETRYABLE_NETWORK_ERRORS,
    ConfigurationError,
    NetworkError,
    NetworkErrorKind,
)
from .events import EventBus, RateLimited, RequestRetried
from .rate_limit import RateLimitInfo, retry_after_seconds
from .transport import TransportResponse

lib_logger = logging.getLogger("spotify_library")

DEFAULT_RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({500, 502, 503, 504})


@dataclass(frozen=True)
class NetworkRecoveryConfig:
    max_network_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_status_codes: FrozenSet[int] = DEFAULT_RETRYABLE_STATUS_CODES
    retryable_network_errors: FrozenSet[NetworkErrorKind] = DEFAULT_RETRYABLE_NETWORK_ERRORS

    @classmethod
    def default(cls) -> "NetworkRecoveryConfig":
        return cls()

    @classmethod
    def disabled(cls) -> "NetworkRecoveryConfig":
        return cls(max_network_retries=0)

    def validate(self) -> None:
        if self.max_network_retries < 0:
            raise ConfigurationError("max_network_retries must be >= 0")
        if self.base_delay <= 0:
            raise ConfigurationError("base_delay must be > 0")
        if self.max_delay < self.base_delay:
            raise ConfigurationError("max_delay must be >= base_delay")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)."""
        return min(self.base_delay * (2**attempt), self.max_delay)

    def with_max_retries(self, max_network_retries: int) -> "NetworkRecoveryConfig":
        return replace(self, max_network_retries=max_network_retries)


@dataclass
class RetryState:
    """Retry bookkeeping for one logical call. Discarded when the call finishes."""

    attempts_made: int = 0
    transient_retries: int = 0
    rate_limit_retries: int = 0
    last_delay: Optional[float] = None

    @property
    def total_retries(self) -> int:
        return self.transient_retries + self.rate_limit_retries


Operation = Callable[[], Awaitable[TransportResponse]]


@dataclass
class RecoveryCoordinator:
    config: NetworkRecoveryConfig = field(default_factory=NetworkRecoveryConfig.default)
    max_rate_limit_retries: int = 1
    events: Optional[EventBus] = None
    debug: Optional[DebugLogger] = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(
        self,
        operation: Operation,
        state: Optional[RetryState] = None,
        path: str = "",
    ) -> TransportResponse:
        """
        Execute `operation`, retrying per policy.

        Args:
            operation: Performs one network attempt
            state: Retry bookkeeping shared across the logical call
            path: API path, used for rate-limit reporting

        Returns:
            The first non-retryable response, or the last response once a budget is exhausted

        Raises:
            NetworkError: If a network failure is not retryable or the transient budget is spent
            Exception: Any non-network error from `operation` propagates immediately
        """
        state = state if state is not None else RetryState()
        while True:
            state.attempts_made += 1
            try:
                response = await operation()
            except NetworkError as e:
                if not self._can_retry_transient(state) or (
                    e.kind not in self.config.retryable_network_errors
                ):
                    raise
                await self._backoff(state, f"network_{e.kind.value}")
                continue

            if response.status_code == 429:
                if not await self._wait_for_rate_limit(response, state, path):
                    return response
                continue

            if (
                response.status_code in self.config.retryable_status_codes
                and self._can_retry_transient(state)
            ):
                await self._backoff(state, f"http_{response.status_code}")
                continue

            return response

    def _can_retry_transient(self, state: RetryState) -> bool:
        return state.transient_retries < self.config.max_network_retries

    async def _backoff(self, state: RetryState, reason: str) -> None:
        delay = self.config.delay_for(state.transient_retries)
        state.transient_retries += 1
        state.last_delay = delay
        lib_logger.warning(
            f"Transient failure ({reason}), retry {state.transient_retries}/"
            f"{self.config.max_network_retries} in {delay:.2f}s"
        )
        if self.debug:
            self.debug.log_retry(state.transient_retries, delay, reason)
        telemetry.record_retry(reason="transient")
        if self.events:
            self.events.publish(
                RequestRetried(attempt=state.transient_retries, delay=delay, reason=reason)
            )
        await self.sleep(delay)

    async def _wait_for_rate_limit(
        self, response: TransportResponse, state: RetryState, path: str
    ) -> bool:
        delay = retry_after_seconds(response.headers)
        info = RateLimitInfo.parse(response.headers, response.status_code, path)
        will_retry = state.rate_limit_retries < self.max_rate_limit_retries
        if self.events:
            self.events.publish(
                RateLimited(info=info, retry_after=delay, attempt=state.rate_limit_retries + 1)
            )
        if not will_retry:
            lib_logger.warning(
                f"Rate limited on '{path}', retry budget ({self.max_rate_limit_retries}) exhausted"
            )
            return False

        state.rate_limit_retries += 1
        state.last_delay = delay
        lib_logger.warning(
            f"Rate limited (HTTP 429) on '{path}', retry {state.rate_limit_retries}/"
            f"{self.max_rate_limit_retries} after {delay:.2f}s"
        )
        if self.debug:
            self.debug.log_retry(state.rate_limit_retries, delay, "rate_limited")
        telemetry.record_retry(reason="rate_limit")
        if self.events:
            self.events.publish(
                RequestRetried(attempt=state.rate_limit_retries, delay=delay, reason="rate_limited")
            )
        await self.sleep(delay)
        return True
