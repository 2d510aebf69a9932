"""
Request execution.

RequestExecutor performs one logical API call:

1. obtain a credential from the TokenAuthority
2. attach it, the configured custom headers, and run interceptors in order
3. send through the RecoveryCoordinator (transient and rate-limit retries)
4. on 401, force one refresh and retry exactly once
5. decode a 2xx response, or raise HTTPError carrying the retry counts

Shareable descriptors are routed through the DeduplicationRegistry so that
identical concurrent calls share one execution of steps 1-5.
"""

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar, Union

from . import telemetry
from .auth.authority import TokenAuthority
from .config import ClientConfiguration
from .credentials import Credential
from .debug import DebugLogger
from .deduplicator import DeduplicationRegistry
from .errors import HTTPError, OfflineError
from .events import EventBus, PerformanceRecorded
from .failure_logger import log_failure
from .recovery import RecoveryCoordinator, RetryState
from .request import RequestDescriptor
from .transport import Transport, TransportRequest, TransportResponse

lib_logger = logging.getLogger("spotify_library")

R = TypeVar("R")

Interceptor = Callable[
    [TransportRequest], Union[TransportRequest, Awaitable[TransportRequest]]
]


class RequestExecutor:
    def __init__(
        self,
        authority: TokenAuthority,
        transport: Transport,
        config: Optional[ClientConfiguration] = None,
        events: Optional[EventBus] = None,
        debug: Optional[DebugLogger] = None,
        deduplicator: Optional[DeduplicationRegistry] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_failures: bool = False,
    ):
        self.authority = authority
        self.transport = transport
        self.config = config or ClientConfiguration()
        self.events = events or EventBus(self.config.event_buffer_size)
        self.debug = debug or DebugLogger(self.config.debug)
        self.deduplicator = deduplicator or DeduplicationRegistry()
        self.recovery = RecoveryCoordinator(
            config=self.config.network_recovery,
            max_rate_limit_retries=self.config.max_rate_limit_retries,
            events=self.events,
            debug=self.debug,
            sleep=sleep,
        )
        self.log_failures = log_failures
        self._interceptors: List[Interceptor] = []
        self._offline = False

    # ------------------------------------------------------------------
    # Interceptors / offline mode
    # ------------------------------------------------------------------

    def add_interceptor(self, interceptor: Interceptor) -> None:
        """
        Register a request interceptor. Interceptors run in registration
        order after auth and custom headers are attached; they must keep
        the Authorization header intact.
        """
        self._interceptors.append(interceptor)

    def remove_interceptor(self, interceptor: Interceptor) -> None:
        if interceptor in self._interceptors:
            self._interceptors.remove(interceptor)

    def set_offline(self, offline: bool) -> None:
        self._offline = offline
        lib_logger.info(f"Offline mode {'enabled' if offline else 'disabled'}")

    @property
    def is_offline(self) -> bool:
        return self._offline

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def perform(self, descriptor: RequestDescriptor[R]) -> Optional[R]:
        """
        Perform one logical call.

        Args:
            descriptor: What to call and how to decode the result

        Returns:
            The decoded result, or None for no-content calls

        Raises:
            OfflineError: If the client is offline (nothing is sent)
            AuthError: If no credential can be obtained
            HTTPError: For a non-2xx response left after recovery
            NetworkError: For transport failures left after recovery
            UnexpectedResponseError: If a 2xx body cannot be decoded
        """
        if self._offline:
            raise OfflineError()

        if descriptor.shareable and self.config.request_deduplication_enabled:
            return await self.deduplicator.execute(
                descriptor.fingerprint(), lambda: self._perform_logical(descriptor)
            )
        return await self._perform_logical(descriptor)

    async def _perform_logical(self, descriptor: RequestDescriptor[R]) -> Optional[R]:
        measurement = self.debug.measure(f"{descriptor.method} {descriptor.path}")
        started = time.perf_counter()
        state = RetryState()
        sent: List[TransportRequest] = []
        try:
            result = await self._perform_with_auth_retry(descriptor, state, sent)
        except Exception as e:
            telemetry.record_request(
                method=descriptor.method,
                outcome="error",
                duration_seconds=time.perf_counter() - started,
            )
            if self.log_failures:
                log_failure(
                    descriptor.method,
                    descriptor.path,
                    e,
                    sent[-1].headers if sent else None,
                    include_body=self.debug.config.allow_sensitive_payloads,
                )
            raise
        finally:
            self._record_performance(measurement, state, len(sent))

        telemetry.record_request(
            method=descriptor.method,
            outcome="success",
            duration_seconds=time.perf_counter() - started,
        )
        return result

    async def _perform_with_auth_retry(
        self,
        descriptor: RequestDescriptor[R],
        state: RetryState,
        sent: List[TransportRequest],
    ) -> Optional[R]:
        credential = await self.authority.credential()
        response, request = await self._attempt(descriptor, credential, state)
        sent.append(request)

        if response.status_code == 401:
            lib_logger.info(
                f"{descriptor.method} {descriptor.path} returned 401; forcing token refresh and retrying once"
            )
            credential = await self.authority.credential(
                force_refresh=True, rejected_token=credential.access_token
            )
            response, request = await self._attempt(descriptor, credential, state)
            sent.append(request)

        if not response.is_success:
            raise HTTPError(
                response.status_code,
                response.body,
                response.headers,
                attempts=state.attempts_made,
                rate_limit_retries=state.rate_limit_retries,
            )

        if descriptor.expects_no_content:
            return None
        return descriptor.decode(response.body)

    async def _attempt(
        self,
        descriptor: RequestDescriptor,
        credential: Credential,
        state: RetryState,
    ) -> Tuple[TransportResponse, TransportRequest]:
        request = await self._build_request(descriptor, credential)

        async def send() -> TransportResponse:
            self.debug.log_request(request.method, request.url, request.headers, request.content)
            started = time.perf_counter()
            response = await self.transport.send(request)
            self.debug.log_response(
                request.method,
                request.url,
                response.status_code,
                response.headers,
                response.body,
                time.perf_counter() - started,
            )
            return response

        response = await self.recovery.run(send, state, path=descriptor.path)
        return response, request

    async def _build_request(
        self, descriptor: RequestDescriptor, credential: Credential
    ) -> TransportRequest:
        headers = {"Accept": "application/json"}
        headers.update(self.config.custom_headers)
        headers["Authorization"] = credential.authorization_header
        body = descriptor.body_bytes
        if body is not None:
            headers["Content-Type"] = (
                "application/octet-stream"
                if isinstance(descriptor.body, (bytes, bytearray))
                else "application/json"
            )

        request = TransportRequest(
            method=descriptor.method,
            url=self._url_for(descriptor.path),
            headers=headers,
            params=list(descriptor.query),
            content=body,
        )
        for interceptor in self._interceptors:
            result = interceptor(request)
            if inspect.isawaitable(result):
                result = await result
            request = result
        return request

    def _url_for(self, path: str) -> str:
        if path.startswith("https://") or path.startswith("http://"):
            return path
        return f"{self.config.api_base_url.rstrip('/')}/{path.lstrip('/')}"

    def _record_performance(self, measurement, state: RetryState, built_requests: int) -> None:
        metrics = measurement.finish(
            request_count=state.attempts_made,
            retry_count=state.total_retries + max(0, built_requests - 1),
        )
        if self.debug.record(metrics):
            self.events.publish(PerformanceRecorded(metrics=metrics))
