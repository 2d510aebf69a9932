"""
Credential value type.

A Credential is immutable: a refresh or exchange produces a new instance that
replaces the previous one. Expiry is always stored as an absolute unix
timestamp so every reader agrees on validity without recomputation.
"""

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import UnexpectedResponseError


@dataclass(frozen=True)
class Credential:
    access_token: str
    expires_at: float
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        existing_refresh_token: Optional[str] = None,
        now: Optional[float] = None,
    ) -> "Credential":
        """
        Build a Credential from an OAuth token endpoint response.

        A refresh token in the payload replaces the existing one; when the
        server omits it, the existing refresh token is kept.

        Args:
            payload: Decoded JSON body of the token response
            existing_refresh_token: Refresh token of the credential being refreshed
            now: Reference time (defaults to time.time())

        Returns:
            New Credential with an absolute expiry

        Raises:
            UnexpectedResponseError: If access_token or expires_in is missing
        """
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        if not access_token or expires_in is None:
            raise UnexpectedResponseError(
                "token response is missing access_token or expires_in"
            )
        try:
            expires_in = float(expires_in)
        except (TypeError, ValueError) as e:
            raise UnexpectedResponseError(f"invalid expires_in value: {expires_in!r}") from e

        issued_at = time.time() if now is None else now
        return cls(
            access_token=access_token,
            expires_at=issued_at + expires_in,
            token_type=payload.get("token_type") or "Bearer",
            refresh_token=payload.get("refresh_token") or existing_refresh_token,
            scope=payload.get("scope"),
        )

    def seconds_until_expiry(self, now: Optional[float] = None) -> float:
        current = time.time() if now is None else now
        return self.expires_at - current

    def is_expired(self, margin: float = 0.0, now: Optional[float] = None) -> bool:
        """True once `now` is within `margin` seconds of the expiry."""
        return self.seconds_until_expiry(now) <= margin

    @property
    def authorization_header(self) -> str:
        scheme = self.token_type or "Bearer"
        if scheme.lower() == "bearer":
            scheme = "Bearer"
        return f"{scheme} {self.access_token}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Credential":
        try:
            return cls(
                access_token=data["access_token"],
                expires_at=float(data["expires_at"]),
                token_type=data.get("token_type") or "Bearer",
                refresh_token=data.get("refresh_token"),
                scope=data.get("scope"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UnexpectedResponseError(f"malformed stored credential: {e}") from e
