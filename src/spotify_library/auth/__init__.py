from .authority import TokenAuthority
from .config import AuthConfig
from .grants import (
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    GrantBackend,
    PKCEGrant,
)
from .pkce import PKCEPair, code_challenge, generate_code_verifier, generate_state

__all__ = [
    "TokenAuthority",
    "AuthConfig",
    "GrantBackend",
    "AuthorizationCodeGrant",
    "PKCEGrant",
    "ClientCredentialsGrant",
    "PKCEPair",
    "code_challenge",
    "generate_code_verifier",
    "generate_state",
]
