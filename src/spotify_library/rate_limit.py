"""
Rate limit header parsing.

Spotify answers throttled calls with HTTP 429 and a Retry-After header
expressed in seconds. Some gateways also emit X-RateLimit-* headers; when
present they are surfaced through RateLimitInfo for observability.
"""

import logging
import time
from dataclasses import dataclass
from typing import Mapping, Optional

lib_logger = logging.getLogger("spotify_library")

DEFAULT_RETRY_AFTER = 5.0


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
    return value


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except (ValueError, AttributeError):
        return None


def retry_after_seconds(
    headers: Mapping[str, str], default: float = DEFAULT_RETRY_AFTER
) -> float:
    """
    Extract the Retry-After delay in seconds from response headers.

    Args:
        headers: Response headers (any key case)
        default: Delay used when the header is missing or unparseable

    Returns:
        Delay in seconds, never negative
    """
    raw = _header(headers, "Retry-After")
    if raw is None:
        return default
    try:
        return max(0.0, float(raw.strip()))
    except ValueError:
        # HTTP-date form is not used by the Web API
        lib_logger.debug(f"Unparseable Retry-After header '{raw}', using {default}s")
        return default


@dataclass(frozen=True)
class RateLimitInfo:
    """Snapshot of rate-limit state reported by a 429 (or any) response."""

    status_code: int
    path: str
    retry_after: Optional[float] = None
    remaining: Optional[int] = None
    limit: Optional[int] = None
    reset_at: Optional[float] = None

    @classmethod
    def parse(
        cls, headers: Mapping[str, str], status_code: int, path: str
    ) -> "RateLimitInfo":
        raw_retry = _header(headers, "Retry-After")
        retry_after = retry_after_seconds(headers) if raw_retry is not None else None
        reset = _parse_int(_header(headers, "X-RateLimit-Reset"))
        return cls(
            status_code=status_code,
            path=path,
            retry_after=retry_after,
            remaining=_parse_int(_header(headers, "X-RateLimit-Remaining")),
            limit=_parse_int(_header(headers, "X-RateLimit-Limit")),
            reset_at=float(reset) if reset is not None else None,
        )

    def seconds_until_reset(self, now: Optional[float] = None) -> Optional[float]:
        if self.reset_at is None:
            return None
        current = time.time() if now is None else now
        return max(0.0, self.reset_at - current)
