"""
OAuth application settings.
"""

import os
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from ..errors import ConfigurationError

AUTHORIZE_ENDPOINT = "https://accounts.spotify.com/authorize"
TOKEN_ENDPOINT = "https://accounts.spotify.com/api/token"


@dataclass(frozen=True)
class AuthConfig:
    client_id: str
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    scopes: Tuple[str, ...] = ()
    show_dialog: bool = False
    authorize_endpoint: str = AUTHORIZE_ENDPOINT
    token_endpoint: str = TOKEN_ENDPOINT

    @classmethod
    def pkce(
        cls,
        client_id: str,
        redirect_uri: str,
        scopes: Iterable[str] = (),
        show_dialog: bool = False,
    ) -> "AuthConfig":
        config = cls(
            client_id=client_id,
            redirect_uri=redirect_uri,
            scopes=tuple(scopes),
            show_dialog=show_dialog,
        )
        config.validate(requires_redirect=True)
        return config

    @classmethod
    def authorization_code(
        cls,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Iterable[str] = (),
        show_dialog: bool = False,
    ) -> "AuthConfig":
        config = cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=tuple(scopes),
            show_dialog=show_dialog,
        )
        config.validate(requires_secret=True, requires_redirect=True)
        return config

    @classmethod
    def client_credentials(
        cls, client_id: str, client_secret: str, scopes: Iterable[str] = ()
    ) -> "AuthConfig":
        config = cls(client_id=client_id, client_secret=client_secret, scopes=tuple(scopes))
        config.validate(requires_secret=True)
        return config

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """
        Build settings from SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET,
        SPOTIFY_REDIRECT_URI and SPOTIFY_SCOPES (space or comma separated).
        """
        client_id = os.getenv("SPOTIFY_CLIENT_ID", "")
        scopes = os.getenv("SPOTIFY_SCOPES", "").replace(",", " ").split()
        config = cls(
            client_id=client_id,
            client_secret=os.getenv("SPOTIFY_CLIENT_SECRET") or None,
            redirect_uri=os.getenv("SPOTIFY_REDIRECT_URI") or None,
            scopes=tuple(scopes),
        )
        config.validate()
        return config

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)

    def validate(
        self, requires_secret: bool = False, requires_redirect: bool = False
    ) -> None:
        if not self.client_id:
            raise ConfigurationError("client_id must not be empty")
        if requires_secret and not self.client_secret:
            raise ConfigurationError("client_secret is required for this grant")
        if requires_redirect and not self.redirect_uri:
            raise ConfigurationError("redirect_uri is required for this grant")
