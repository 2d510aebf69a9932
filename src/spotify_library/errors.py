"""
Error taxonomy for the request engine.

Every failure that leaves the engine is one of the exceptions defined here;
transport-specific exceptions (httpx) are translated into NetworkError before
they reach any caller.
"""

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

lib_logger = logging.getLogger("spotify_library")


class SpotifyError(Exception):
    """Base class for all errors raised by spotify_library."""

    pass


# =============================================================================
# AUTH ERRORS
# =============================================================================


class AuthError(SpotifyError):
    """Raised when a credential cannot be obtained. Never retried automatically."""

    pass


class MissingRefreshTokenError(AuthError):
    """
    Raised when no usable refresh token is available.

    Callers must send the user through the authorization flow again; retrying
    the same request cannot succeed.
    """

    def __init__(self, message: str = ""):
        self.message = (
            message or "No refresh token available; re-authentication is required"
        )
        super().__init__(self.message)


class InvalidRefreshTokenError(MissingRefreshTokenError):
    """
    Raised when the token endpoint rejects the refresh token itself.

    Attributes:
        status_code: HTTP status returned by the token endpoint
        body: Raw response body (may contain the OAuth error code)
    """

    def __init__(self, status_code: int, body: str = "", message: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(
            message
            or f"Refresh token rejected by token endpoint (HTTP {status_code}); re-authentication is required"
        )


class StateMismatchError(AuthError):
    """Raised when the callback state does not match the state sent with the authorize request."""

    def __init__(self, expected: Optional[str], received: Optional[str]):
        self.expected = expected
        self.received = received
        super().__init__("Authorization callback state does not match the request state")


class MissingAuthorizationCodeError(AuthError):
    """Raised when the authorization callback carries no code."""

    pass


class AuthorizationDeniedError(AuthError):
    """Raised when the authorization callback reports an error (e.g. access_denied)."""

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        detail = f": {description}" if description else ""
        super().__init__(f"Authorization failed with '{error}'{detail}")


class TokenRequestError(AuthError):
    """
    Raised when the token endpoint answers with an unexpected non-2xx status.

    Attributes:
        status_code: HTTP status code
        body: Raw response body
    """

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token request failed with HTTP {status_code}: {_preview(body)}")


# =============================================================================
# REQUEST / TRANSPORT ERRORS
# =============================================================================


class InvalidRequestError(SpotifyError):
    """
    Raised when a request fails caller-side validation. Never retried.

    Attributes:
        reason: Human-readable reason
        parameter: Name of the offending parameter, if any
        valid_range: Inclusive (low, high) range the parameter must fall in, if any
    """

    def __init__(
        self,
        reason: str,
        parameter: Optional[str] = None,
        valid_range: Optional[Tuple[int, int]] = None,
    ):
        self.reason = reason
        self.parameter = parameter
        self.valid_range = valid_range
        message = reason
        if parameter:
            message = f"{message} (parameter '{parameter}'"
            if valid_range:
                message += f", valid range {valid_range[0]}...{valid_range[1]}"
            message += ")"
        super().__init__(message)


class NetworkErrorKind(str, Enum):
    TIMED_OUT = "timed_out"
    CANNOT_CONNECT = "cannot_connect"
    CONNECTION_LOST = "connection_lost"
    DNS_FAILURE = "dns_failure"
    OTHER = "other"


DEFAULT_RETRYABLE_NETWORK_ERRORS: FrozenSet[NetworkErrorKind] = frozenset(
    {
        NetworkErrorKind.TIMED_OUT,
        NetworkErrorKind.CANNOT_CONNECT,
        NetworkErrorKind.CONNECTION_LOST,
        NetworkErrorKind.DNS_FAILURE,
    }
)


class NetworkError(SpotifyError):
    """
    Raised when the transport fails before an HTTP response is received.

    Attributes:
        kind: NetworkErrorKind classifying the failure
        original_exception: Underlying exception from the transport, if any
    """

    def __init__(
        self,
        kind: NetworkErrorKind,
        message: str = "",
        original_exception: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.original_exception = original_exception
        super().__init__(message or f"Network failure ({kind.value})")


class HTTPError(SpotifyError):
    """
    Raised for a non-2xx API response that was not absorbed by the engine.

    Attributes:
        status_code: HTTP status code
        body: Raw response body bytes
        headers: Response headers (lowercased keys)
        attempts: Total transport attempts made for the logical call
        rate_limit_retries: Rate-limit retries consumed for the logical call
    """

    def __init__(
        self,
        status_code: int,
        body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
        attempts: int = 1,
        rate_limit_retries: int = 0,
    ):
        self.status_code = status_code
        self.body = body
        self.headers: Dict[str, str] = {
            k.lower(): v for k, v in (headers or {}).items()
        }
        self.attempts = attempts
        self.rate_limit_retries = rate_limit_retries
        super().__init__(self._describe())

    @property
    def is_retryable(self) -> bool:
        return self.status_code == 429 or self.status_code in (500, 502, 503, 504)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def _describe(self) -> str:
        code = self.status_code
        if code == 400:
            summary = "Bad request"
        elif code == 401:
            summary = "Unauthorized; the access token was rejected"
        elif code == 403:
            summary = "Forbidden; the credential lacks the required scope"
        elif code == 404:
            summary = "Resource not found"
        elif code == 429:
            summary = "Rate limited"
        elif 500 <= code < 600:
            summary = "Server error"
        else:
            summary = "Unexpected status"
        return (
            f"HTTP {code}: {summary} after {self.attempts} attempt(s): "
            f"{_preview(self.text)}"
        )


class OfflineError(SpotifyError):
    """Raised when the client is in offline mode. The request never reaches the transport."""

    def __init__(self):
        super().__init__("Client is offline; network requests are disabled")


class UnexpectedResponseError(SpotifyError):
    """Raised when a 2xx response cannot be decoded into the expected shape."""

    def __init__(self, detail: str, body: bytes = b""):
        self.detail = detail
        self.body = body
        super().__init__(f"Unexpected response: {detail}")


class StorageError(SpotifyError):
    """Raised when a credential store cannot persist or load a credential."""

    pass


class ConfigurationError(SpotifyError):
    """Raised when a configuration value is invalid."""

    pass


class ConfigLoadError(ConfigurationError):
    """Raised when configuration cannot be loaded from the environment or a file."""

    pass


# =============================================================================
# CLASSIFICATION
# =============================================================================


def _preview(text: str, max_length: int = 200) -> str:
    first_line = (text or "").split("\n")[0]
    if len(first_line) > max_length:
        return first_line[:max_length] + "..."
    return first_line


def mask_token(token: Optional[str]) -> str:
    """
    Mask a token for safe display in logs and error messages.

    Shows only the last 6 characters (e.g. "...xyz123").
    """
    if not token:
        return "<none>"
    if len(token) > 6:
        return f"...{token[-6:]}"
    return "***"


class ClassifiedError:
    """A structured representation of a classified error."""

    def __init__(
        self,
        error_type: str,
        original_exception: BaseException,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        self.error_type = error_type
        self.original_exception = original_exception
        self.status_code = status_code
        self.retry_after = retry_after

    def __str__(self):
        parts = [
            f"type={self.error_type}",
            f"status={self.status_code}",
            f"retry_after={self.retry_after}",
            f"original_exc={self.original_exception}",
        ]
        return f"ClassifiedError({', '.join(parts)})"


def classify_error(e: BaseException) -> ClassifiedError:
    """
    Classifies an exception into a flat ClassifiedError category.

    Error types:
    - authentication: credential missing/rejected, re-authentication needed
    - rate_limit (429): retry after the server-supplied delay
    - server_error (5xx): transient, retry with backoff
    - invalid_request: caller error, do not retry
    - api_connection: network failure, retry with backoff
    - offline: client explicitly offline
    - unknown: anything else

    Args:
        e: The exception to classify

    Returns:
        ClassifiedError describing the failure
    """
    from .rate_limit import retry_after_seconds

    if isinstance(e, AuthError):
        return ClassifiedError("authentication", e, getattr(e, "status_code", None))
    if isinstance(e, HTTPError):
        if e.status_code == 429:
            return ClassifiedError(
                "rate_limit", e, 429, retry_after_seconds(e.headers)
            )
        if e.status_code == 401:
            return ClassifiedError("authentication", e, 401)
        if 500 <= e.status_code < 600:
            return ClassifiedError("server_error", e, e.status_code)
        return ClassifiedError("invalid_request", e, e.status_code)
    if isinstance(e, InvalidRequestError):
        return ClassifiedError("invalid_request", e)
    if isinstance(e, NetworkError):
        return ClassifiedError("api_connection", e)
    if isinstance(e, OfflineError):
        return ClassifiedError("offline", e)
    return ClassifiedError("unknown", e)


def is_reauth_required(e: BaseException) -> bool:
    """Check whether the error can only be fixed by re-running the authorization flow."""
    return isinstance(e, MissingRefreshTokenError)


def error_context(e: BaseException) -> Dict[str, Any]:
    """Flatten the useful attributes of an error into a JSON-serializable dict."""
    classified = classify_error(e)
    context: Dict[str, Any] = {
        "error_type": classified.error_type,
        "error_class": type(e).__name__,
        "message": _preview(str(e), 500),
        "status_code": classified.status_code,
    }
    if isinstance(e, HTTPError):
        context["attempts"] = e.attempts
        context["rate_limit_retries"] = e.rate_limit_retries
    if isinstance(e, NetworkError):
        context["network_error_kind"] = e.kind.value
    return context
