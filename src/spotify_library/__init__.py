from .auth import (
    AuthConfig,
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    GrantBackend,
    PKCEGrant,
    TokenAuthority,
)
from .batching import BatchProgress, chunked
from .client import (
    AppOnlyAuthCapability,
    AppSpotifyClient,
    SpotifyClient,
    UserAuthCapability,
    UserSpotifyClient,
)
from .config import ClientConfiguration
from .credentials import Credential
from .debug import DebugConfiguration, PerformanceMetrics
from .deduplicator import DeduplicationRegistry
from .errors import (
    AuthError,
    ConfigurationError,
    HTTPError,
    InvalidRefreshTokenError,
    InvalidRequestError,
    MissingRefreshTokenError,
    NetworkError,
    NetworkErrorKind,
    OfflineError,
    SpotifyError,
    UnexpectedResponseError,
)
from .events import (
    EventBus,
    PerformanceRecorded,
    RateLimited,
    RequestRetried,
    TokenExpiringSoon,
    TokenRefreshFailed,
    TokenRefreshSucceeded,
    TokenRefreshWillStart,
)
from .executor import RequestExecutor
from .pagination import Page, PaginationEngine
from .rate_limit import RateLimitInfo
from .recovery import NetworkRecoveryConfig, RecoveryCoordinator, RetryState
from .request import NO_CONTENT, RequestDescriptor
from .store import CredentialStore, FileCredentialStore, MemoryCredentialStore
from .transport import HttpxTransport, Transport, TransportRequest, TransportResponse

__all__ = [
    "AppOnlyAuthCapability",
    "AppSpotifyClient",
    "AuthConfig",
    "AuthError",
    "AuthorizationCodeGrant",
    "BatchProgress",
    "ClientConfiguration",
    "ClientCredentialsGrant",
    "ConfigurationError",
    "Credential",
    "CredentialStore",
    "DebugConfiguration",
    "DeduplicationRegistry",
    "EventBus",
    "FileCredentialStore",
    "GrantBackend",
    "HTTPError",
    "HttpxTransport",
    "InvalidRefreshTokenError",
    "InvalidRequestError",
    "MemoryCredentialStore",
    "MissingRefreshTokenError",
    "NO_CONTENT",
    "NetworkError",
    "NetworkErrorKind",
    "NetworkRecoveryConfig",
    "OfflineError",
    "PKCEGrant",
    "Page",
    "PaginationEngine",
    "PerformanceMetrics",
    "PerformanceRecorded",
    "RateLimitInfo",
    "RateLimited",
    "RecoveryCoordinator",
    "RequestDescriptor",
    "RequestExecutor",
    "RequestRetried",
    "RetryState",
    "SpotifyClient",
    "SpotifyError",
    "TokenAuthority",
    "TokenExpiringSoon",
    "TokenRefreshFailed",
    "TokenRefreshSucceeded",
    "TokenRefreshWillStart",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "UnexpectedResponseError",
    "UserAuthCapability",
    "UserSpotifyClient",
    "chunked",
]
