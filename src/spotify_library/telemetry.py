import os
from typing import Optional

from prometheus_client import Counter, Histogram


_METRICS_ENABLED = os.getenv("METRICS_ENABLED", "true").lower() == "true"


if _METRICS_ENABLED:
    REQUESTS_TOTAL = Counter(
        "spotify_requests_total",
        "Total logical API calls by method and outcome",
        labelnames=("method", "outcome"),
    )
    REQUEST_DURATION_SECONDS = Histogram(
        "spotify_request_duration_seconds",
        "Logical API call duration in seconds (including retries)",
        labelnames=("method",),
        buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
    )
    REQUEST_RETRIES_TOTAL = Counter(
        "spotify_request_retries_total",
        "Total transport retries by reason",
        labelnames=("reason",),
    )
    TOKEN_REFRESHES_TOTAL = Counter(
        "spotify_token_refreshes_total",
        "Total token refresh/exchange operations by outcome",
        labelnames=("outcome",),
    )
else:  # pragma: no cover
    REQUESTS_TOTAL = None
    REQUEST_DURATION_SECONDS = None
    REQUEST_RETRIES_TOTAL = None
    TOKEN_REFRESHES_TOTAL = None


def record_request(
    *,
    method: str,
    outcome: str,
    duration_seconds: Optional[float] = None,
) -> None:
    if not REQUESTS_TOTAL:
        return

    REQUESTS_TOTAL.labels(method=method, outcome=outcome).inc()
    if duration_seconds is not None and REQUEST_DURATION_SECONDS:
        REQUEST_DURATION_SECONDS.labels(method=method).observe(duration_seconds)


def record_retry(*, reason: str) -> None:
    if not REQUEST_RETRIES_TOTAL:
        return
    REQUEST_RETRIES_TOTAL.labels(reason=reason).inc()


def record_token_refresh(*, outcome: str) -> None:
    if not TOKEN_REFRESHES_TOTAL:
        return
    TOKEN_REFRESHES_TOTAL.labels(outcome=outcome).inc()
