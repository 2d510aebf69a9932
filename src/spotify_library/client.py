"""
Public client facade.

SpotifyClient owns one TokenAuthority, one RequestExecutor and one EventBus
and exposes them through a single entry point: perform, pagination,
batching, interceptors, offline mode, events and token management.

Two concrete clients pick the grant:

- UserSpotifyClient: user-delegated access through PKCE or the
  authorization code flow, with authorization URLs, callback handling
  and refresh tokens.
- AppSpotifyClient: app-only access through client credentials; an
  expired token is simply re-issued.
"""

import asyncio
import logging
import os
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

from .auth.authority import TokenAuthority
from .auth.config import AuthConfig
from .auth.grants import (
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    GrantBackend,
    PKCEGrant,
)
from .batching import BatchProgress, chunked
from .config import ClientConfiguration
from .credentials import Credential
from .debug import DebugLogger
from .errors import UnexpectedResponseError
from .events import Event, EventBus, Subscription
from .executor import Interceptor, RequestExecutor
from .pagination import ItemStream, Page, PageFetcher, PageStream, PaginationEngine
from .recovery import RecoveryCoordinator
from .request import QueryInput, RequestDescriptor, normalize_query
from .store import CredentialStore
from .transport import HttpxTransport, Transport
from .validation import validate_limit

lib_logger = logging.getLogger("spotify_library")

T = TypeVar("T")
R = TypeVar("R")
C = TypeVar("C")
ClientT = TypeVar("ClientT", bound="SpotifyClient")


class UserAuthCapability:
    """Marker: user-delegated access with refresh-token rotation."""


class AppOnlyAuthCapability:
    """Marker: application credentials, no user context, no refresh token."""


class SpotifyClient(Generic[C]):
    """
    Authenticated client for the Spotify Web API.

    Holds one token authority, one executor and one event bus. Operations
    that need no user context (generic reads and pagination) live here;
    user-only operations are only available on UserSpotifyClient.

    Usage:
        async with AppSpotifyClient.client_credentials(client_id, secret) as client:
            album = await client.get_json("/albums/4aawyAB9vmqN3uQ7FjRGTy")
    """

    def __init__(
        self,
        grant: GrantBackend,
        transport: Transport,
        store: Optional[CredentialStore] = None,
        config: Optional[ClientConfiguration] = None,
        events: Optional[EventBus] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_failures: bool = False,
        owns_transport: bool = False,
    ):
        self.config = (config or ClientConfiguration()).validate()
        self.events = events or EventBus(self.config.event_buffer_size)
        self.debug = DebugLogger(self.config.debug)
        self.transport = transport
        self._owns_transport = owns_transport
        self.grant = grant
        self.authority = TokenAuthority(
            grant,
            store=store,
            events=self.events,
            debug=self.debug,
            safety_margin=self.config.token_safety_margin,
            expiring_soon_window=self.config.token_expiring_soon_window,
        )
        self.executor = RequestExecutor(
            self.authority,
            transport,
            config=self.config,
            events=self.events,
            debug=self.debug,
            sleep=sleep,
            log_failures=log_failures
            or os.getenv("SPOTIFY_FAILURE_LOG", "false").lower() == "true",
        )
        self.pagination = PaginationEngine()

    @classmethod
    def _build(
        cls: Type[ClientT],
        grant_cls: Type[GrantBackend],
        auth_config: AuthConfig,
        store: Optional[CredentialStore],
        config: Optional[ClientConfiguration],
        transport: Optional[Transport],
        sleep: Callable[[float], Awaitable[None]],
        log_failures: bool,
    ) -> ClientT:
        config = (config or ClientConfiguration()).validate()
        events = EventBus(config.event_buffer_size)
        owns_transport = transport is None
        transport = transport or HttpxTransport(request_timeout=config.request_timeout)
        token_recovery = RecoveryCoordinator(
            config=config.network_recovery,
            max_rate_limit_retries=config.max_rate_limit_retries,
            events=events,
            sleep=sleep,
        )
        grant = grant_cls(auth_config, transport, token_recovery)
        return cls(
            grant,
            transport,
            store=store,
            config=config,
            events=events,
            sleep=sleep,
            log_failures=log_failures,
            owns_transport=owns_transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self.transport.aclose()

    # ------------------------------------------------------------------
    # Single calls
    # ------------------------------------------------------------------

    async def perform(self, descriptor: RequestDescriptor[R]) -> Optional[R]:
        return await self.executor.perform(descriptor)

    async def get_json(
        self,
        path: str,
        query: QueryInput = None,
        result: Optional[Callable[[Any], R]] = None,
    ) -> Any:
        return await self.perform(RequestDescriptor.get(path, query, result))

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def page_fetcher(
        self,
        path: str,
        query: QueryInput = None,
        item_decoder: Optional[Callable[[Any], T]] = None,
        container_key: Optional[str] = None,
    ) -> PageFetcher:
        """
        Build a `fetch_page(limit, offset)` callable for a listing endpoint.

        Args:
            path: Listing endpoint path
            query: Extra query parameters sent with every page
            item_decoder: Applied to each raw item
            container_key: Key of the paging object when it is nested (e.g. "tracks" for search)
        """
        base_query = normalize_query(query)

        async def fetch_page(limit: int, offset: int) -> Page[T]:
            descriptor = RequestDescriptor.get(
                path, base_query + (("limit", str(limit)), ("offset", str(offset)))
            )
            data = await self.perform(descriptor)
            if container_key is not None:
                if not isinstance(data, Mapping) or container_key not in data:
                    raise UnexpectedResponseError(
                        f"paging object '{container_key}' missing from {path} response"
                    )
                data = data[container_key]
            return Page.from_dict(data, item_decoder)

        return fetch_page

    async def paginate(
        self,
        fetch_page: PageFetcher,
        mode: str = "materialize",
        limit: int = 50,
        max_items: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> Union[List[Any], PageStream, ItemStream]:
        """
        Walk a listing endpoint.

        Args:
            fetch_page: Fetches one page for (limit, offset)
            mode: "materialize" (list of items), "pages" (page stream) or "items" (item stream)
            limit: Page size, clamped to 1...50
            max_items: Item ceiling for "materialize" and "items"
            max_pages: Page ceiling for "pages"
        """
        if mode == "materialize":
            return await self.pagination.collect_all(fetch_page, limit, max_items)
        if mode == "pages":
            return self.pagination.stream_pages(fetch_page, limit, max_pages)
        if mode == "items":
            return self.pagination.stream_items(fetch_page, limit, max_items)
        raise ValueError(f"Unknown pagination mode '{mode}'")

    async def collect_all_pages(
        self,
        path: str,
        query: QueryInput = None,
        item_decoder: Optional[Callable[[Any], T]] = None,
        limit: int = 50,
        max_items: Optional[int] = None,
    ) -> List[T]:
        return await self.pagination.collect_all(
            self.page_fetcher(path, query, item_decoder), limit, max_items
        )

    def stream_pages(
        self,
        path: str,
        query: QueryInput = None,
        item_decoder: Optional[Callable[[Any], T]] = None,
        limit: int = 50,
        max_pages: Optional[int] = None,
    ) -> PageStream[T]:
        return self.pagination.stream_pages(
            self.page_fetcher(path, query, item_decoder), limit, max_pages
        )

    def stream_items(
        self,
        path: str,
        query: QueryInput = None,
        item_decoder: Optional[Callable[[Any], T]] = None,
        limit: int = 50,
        max_items: Optional[int] = None,
    ) -> ItemStream[T]:
        return self.pagination.stream_items(
            self.page_fetcher(path, query, item_decoder), limit, max_items
        )

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    async def perform_batched(
        self,
        ids: Sequence[str],
        batch_size: int,
        build: Callable[[List[str]], RequestDescriptor[R]],
        on_progress: Optional[Callable[[BatchProgress], Any]] = None,
    ) -> List[Optional[R]]:
        """
        Run one request per chunk of ids, sequentially, reporting progress
        after each chunk.

        Args:
            ids: All ids to process
            batch_size: Maximum ids per request (validated against 1...50)
            build: Builds the descriptor for one chunk
            on_progress: Called with a BatchProgress after each chunk

        Returns:
            One result per chunk, in order
        """
        validate_limit(batch_size, (1, 50), parameter="batch_size")
        results: List[Optional[R]] = []
        completed = 0
        for chunk in chunked(ids, batch_size):
            results.append(await self.perform(build(chunk)))
            completed += len(chunk)
            if on_progress:
                on_progress(BatchProgress(completed, len(ids), len(chunk)))
        return results

    # ------------------------------------------------------------------
    # Interceptors, offline mode, events, tokens
    # ------------------------------------------------------------------

    def add_interceptor(self, interceptor: Interceptor) -> None:
        self.executor.add_interceptor(interceptor)

    def remove_interceptor(self, interceptor: Interceptor) -> None:
        self.executor.remove_interceptor(interceptor)

    def set_offline(self, offline: bool) -> None:
        self.executor.set_offline(offline)

    @property
    def is_offline(self) -> bool:
        return self.executor.is_offline

    def subscribe(self, buffer_size: Optional[int] = None) -> Subscription:
        return self.events.subscribe(buffer_size)

    def on(self, event_type: Type[Event], callback: Callable[[Any], Any]) -> Callable[[], None]:
        return self.events.on(event_type, callback)

    def token_expires_in(self) -> Optional[float]:
        return self.authority.seconds_until_expiry()

    async def access_token(self, force_refresh: bool = False) -> Credential:
        return await self.authority.credential(force_refresh=force_refresh)

    async def reset_credentials(self) -> None:
        await self.authority.reset()


class UserSpotifyClient(SpotifyClient[UserAuthCapability]):
    """Client acting on behalf of a user (authorization code or PKCE grant)."""

    @classmethod
    def pkce(
        cls,
        client_id: str,
        redirect_uri: str,
        scopes: Iterable[str] = (),
        show_dialog: bool = False,
        store: Optional[CredentialStore] = None,
        config: Optional[ClientConfiguration] = None,
        transport: Optional[Transport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_failures: bool = False,
    ) -> "UserSpotifyClient":
        auth_config = AuthConfig.pkce(client_id, redirect_uri, scopes, show_dialog)
        return cls._build(
            PKCEGrant, auth_config, store, config, transport, sleep, log_failures
        )

    @classmethod
    def authorization_code(
        cls,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Iterable[str] = (),
        show_dialog: bool = False,
        store: Optional[CredentialStore] = None,
        config: Optional[ClientConfiguration] = None,
        transport: Optional[Transport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_failures: bool = False,
    ) -> "UserSpotifyClient":
        auth_config = AuthConfig.authorization_code(
            client_id, client_secret, redirect_uri, scopes, show_dialog
        )
        return cls._build(
            AuthorizationCodeGrant, auth_config, store, config, transport, sleep, log_failures
        )

    def authorization_url(self, state: Optional[str] = None) -> str:
        return self.grant.authorization_url(state)

    async def handle_callback(self, callback_url: str) -> Credential:
        """
        Complete the authorization flow from the redirect URL.

        Validates state, exchanges the code and persists the credential.
        """
        code = self.grant.parse_callback(callback_url)
        return await self.authority.exchange(code)

    async def refresh_access_token(self) -> Credential:
        return await self.authority.credential(force_refresh=True)

    async def current_user_profile(self) -> Mapping[str, Any]:
        return await self.get_json("/me")


class AppSpotifyClient(SpotifyClient[AppOnlyAuthCapability]):
    """Client using application credentials only (client credentials grant)."""

    @classmethod
    def client_credentials(
        cls,
        client_id: str,
        client_secret: str,
        scopes: Iterable[str] = (),
        store: Optional[CredentialStore] = None,
        config: Optional[ClientConfiguration] = None,
        transport: Optional[Transport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_failures: bool = False,
    ) -> "AppSpotifyClient":
        auth_config = AuthConfig.client_credentials(client_id, client_secret, scopes)
        return cls._build(
            ClientCredentialsGrant, auth_config, store, config, transport, sleep, log_failures
        )
