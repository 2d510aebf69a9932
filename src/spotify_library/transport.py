"""
Transport abstraction.

The transport is the only network primitive in the library: retry, backoff,
deduplication and auth handling all wrap calls to `Transport.send`, so a
different HTTP stack can be plugged in without touching the engine.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import httpx

from .errors import NetworkError, NetworkErrorKind
from .timeout_config import TimeoutConfig

lib_logger = logging.getLogger("spotify_library")


@dataclass
class TransportRequest:
    """A fully resolved HTTP request, ready to be sent."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: List[Tuple[str, str]] = field(default_factory=list)
    content: Optional[bytes] = None


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport(ABC):
    @abstractmethod
    async def send(self, request: TransportRequest) -> TransportResponse:
        """
        Send one request.

        Returns:
            The response for any HTTP status

        Raises:
            NetworkError: If no HTTP response was received
        """
        pass

    async def aclose(self) -> None:
        pass


_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
)


def network_error_from_httpx(e: httpx.HTTPError) -> NetworkError:
    """Map an httpx transport exception onto a NetworkErrorKind."""
    if isinstance(e, httpx.TimeoutException):
        kind = NetworkErrorKind.TIMED_OUT
    elif isinstance(e, httpx.ConnectError):
        message = str(e).lower()
        if any(marker in message for marker in _DNS_MARKERS):
            kind = NetworkErrorKind.DNS_FAILURE
        else:
            kind = NetworkErrorKind.CANNOT_CONNECT
    elif isinstance(e, (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
        kind = NetworkErrorKind.CONNECTION_LOST
    else:
        kind = NetworkErrorKind.OTHER
    return NetworkError(kind, f"{type(e).__name__}: {e}", original_exception=e)


class HttpxTransport(Transport):
    """Default transport backed by a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: Optional[float] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=TimeoutConfig.for_request_timeout(request_timeout)
        )

    async def send(self, request: TransportRequest) -> TransportResponse:
        try:
            response = await self._client.request(
                request.method,
                request.url,
                params=request.params or None,
                headers=request.headers,
                content=request.content,
            )
        except httpx.HTTPError as e:
            error = network_error_from_httpx(e)
            lib_logger.debug(
                f"Transport failure for {request.method} {request.url}: {error}"
            )
            raise error from e

        return TransportResponse(
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
