"""
Caller-side request validation.

Failures raise InvalidRequestError before anything is sent, and are never retried.
"""

import re
from typing import Sequence, Tuple

from .errors import InvalidRequestError

SPOTIFY_URI_PATTERN = re.compile(
    r"^spotify:[a-z]+:[a-zA-Z0-9._-]+(:[a-z]+:[a-zA-Z0-9._-]+)?$"
)


def validate_limit(limit: int, valid_range: Tuple[int, int] = (1, 50), parameter: str = "limit") -> int:
    low, high = valid_range
    if not low <= limit <= high:
        raise InvalidRequestError(
            f"{parameter} {limit} is out of range", parameter=parameter, valid_range=valid_range
        )
    return limit


def validate_max_id_count(ids: Sequence[str], maximum: int, parameter: str = "ids") -> Sequence[str]:
    if not ids:
        raise InvalidRequestError("At least one id is required", parameter=parameter)
    if len(ids) > maximum:
        raise InvalidRequestError(
            f"Maximum {maximum} ids allowed, got {len(ids)}",
            parameter=parameter,
            valid_range=(1, maximum),
        )
    return ids


def validate_uri(uri: str, parameter: str = "uri") -> str:
    """Check that `uri` looks like spotify:<type>:<id> (optionally with a nested type:id)."""
    if not SPOTIFY_URI_PATTERN.match(uri or ""):
        raise InvalidRequestError(f"Invalid Spotify URI '{uri}'", parameter=parameter)
    return uri
