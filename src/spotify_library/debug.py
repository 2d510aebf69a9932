"""
Debug logging and performance measurement.

Everything here is off by default. When enabled, request and response lines
go through the library logger with credentials redacted; body contents are
only shown when `allow_sensitive_payloads` is explicitly set.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Mapping, Optional

lib_logger = logging.getLogger("spotify_library")

SENSITIVE_HEADERS = frozenset(
    {"authorization", "proxy-authorization", "cookie", "set-cookie"}
)
BODY_PREVIEW_LIMIT = 1024


@dataclass(frozen=True)
class DebugConfiguration:
    log_requests: bool = False
    log_responses: bool = False
    log_performance: bool = False
    log_network_retries: bool = False
    log_token_operations: bool = False
    allow_sensitive_payloads: bool = False

    @classmethod
    def disabled(cls) -> "DebugConfiguration":
        return cls()

    @classmethod
    def basic(cls) -> "DebugConfiguration":
        return cls(log_requests=True, log_network_retries=True, log_token_operations=True)

    @classmethod
    def verbose(cls) -> "DebugConfiguration":
        """Everything except payload contents."""
        return cls(
            log_requests=True,
            log_responses=True,
            log_performance=True,
            log_network_retries=True,
            log_token_operations=True,
        )

    @property
    def enabled(self) -> bool:
        return any(
            (
                self.log_requests,
                self.log_responses,
                self.log_performance,
                self.log_network_retries,
                self.log_token_operations,
            )
        )


@dataclass(frozen=True)
class PerformanceMetrics:
    operation_name: str
    duration: float
    request_count: int
    retry_count: int
    timestamp: float


def redact_header_value(name: str, value: str) -> str:
    """Render a sensitive header as '<scheme> <redacted>' (or '<redacted>' without a scheme)."""
    if name.lower() not in SENSITIVE_HEADERS:
        return value
    parts = value.split(" ", 1)
    if len(parts) == 2 and parts[0]:
        return f"{parts[0]} <redacted>"
    return "<redacted>"


def sanitize_headers(headers: Mapping[str, str]) -> dict:
    return {name: redact_header_value(name, value) for name, value in headers.items()}


def body_preview(body: Optional[bytes], allow_sensitive: bool) -> str:
    if not body:
        return "<empty>"
    if not allow_sensitive:
        return f"<redacted {len(body)} bytes>"
    text = body[:BODY_PREVIEW_LIMIT].decode("utf-8", errors="replace")
    if len(body) > BODY_PREVIEW_LIMIT:
        text += "…(truncated)"
    return text


class DebugLogger:
    """Gated request/response/retry logging plus a bounded performance history."""

    def __init__(self, config: Optional[DebugConfiguration] = None, history_size: int = 100):
        self.config = config or DebugConfiguration.disabled()
        self._metrics: Deque[PerformanceMetrics] = deque(maxlen=history_size)

    def log_request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> None:
        if not self.config.log_requests:
            return
        lib_logger.info(
            f"→ {method} {url} headers={sanitize_headers(headers)} "
            f"body={body_preview(body, self.config.allow_sensitive_payloads)}"
        )

    def log_response(
        self,
        method: str,
        url: str,
        status_code: int,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
        duration: Optional[float] = None,
    ) -> None:
        if not self.config.log_responses:
            return
        elapsed = f" in {duration * 1000:.0f}ms" if duration is not None else ""
        lib_logger.info(
            f"← {status_code} {method} {url}{elapsed} headers={sanitize_headers(headers)} "
            f"body={body_preview(body, self.config.allow_sensitive_payloads)}"
        )

    def log_retry(self, attempt: int, delay: float, reason: str) -> None:
        if self.config.log_network_retries:
            lib_logger.warning(f"Retry {attempt} in {delay:.2f}s ({reason})")

    def log_token(self, message: str) -> None:
        if self.config.log_token_operations:
            lib_logger.info(f"[token] {message}")

    def record(self, metrics: PerformanceMetrics) -> bool:
        """Store metrics when performance logging is on. Returns True if recorded."""
        if not self.config.log_performance:
            return False
        self._metrics.append(metrics)
        lib_logger.info(
            f"[perf] {metrics.operation_name} took {metrics.duration * 1000:.1f}ms "
            f"({metrics.request_count} request(s), {metrics.retry_count} retr{'y' if metrics.retry_count == 1 else 'ies'})"
        )
        return True

    def recent_metrics(self) -> List[PerformanceMetrics]:
        return list(self._metrics)

    def average_duration(self, operation_name: Optional[str] = None) -> Optional[float]:
        samples = [
            m.duration
            for m in self._metrics
            if operation_name is None or m.operation_name == operation_name
        ]
        if not samples:
            return None
        return sum(samples) / len(samples)

    def measure(self, operation_name: str) -> "PerformanceMeasurement":
        return PerformanceMeasurement(operation_name)


class PerformanceMeasurement:
    """Stopwatch for one logical operation."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self._start = time.perf_counter()

    def finish(self, request_count: int = 1, retry_count: int = 0) -> PerformanceMetrics:
        return PerformanceMetrics(
            operation_name=self.operation_name,
            duration=time.perf_counter() - self._start,
            request_count=request_count,
            retry_count=retry_count,
            timestamp=time.time(),
        )
