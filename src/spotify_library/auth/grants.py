"""
OAuth grant backends.

Each backend knows how to obtain a Credential from the token endpoint for
one grant type. Backends are stateless with respect to the cached token;
TokenAuthority owns caching, serialization and persistence.
"""

import base64
import json
import logging
from dataclasses import replace
from abc import ABC, abstractmethod
from typing import Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from ..credentials import Credential
from ..errors import (
    AuthorizationDeniedError,
    InvalidRefreshTokenError,
    MissingAuthorizationCodeError,
    MissingRefreshTokenError,
    StateMismatchError,
    TokenRequestError,
    UnexpectedResponseError,
    mask_token,
)
from ..recovery import RecoveryCoordinator, RetryState
from ..transport import Transport, TransportRequest, TransportResponse
from .config import AuthConfig
from .pkce import PKCEPair, generate_state

lib_logger = logging.getLogger("spotify_library")


class GrantBackend(ABC):
    """Exchange/refresh contract for one OAuth grant type."""

    supports_refresh: bool = True

    def __init__(
        self,
        config: AuthConfig,
        transport: Transport,
        recovery: Optional[RecoveryCoordinator] = None,
    ):
        self.config = config
        self.transport = transport
        self.recovery = recovery

    @abstractmethod
    async def exchange(self, code: Optional[str] = None) -> Credential:
        pass

    @abstractmethod
    async def refresh(self, credential: Optional[Credential]) -> Credential:
        pass

    def _basic_auth_header(self) -> str:
        raw = f"{self.config.client_id}:{self.config.client_secret or ''}"
        return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")

    async def _post_form(
        self, data: Dict[str, str], use_basic_auth: bool
    ) -> TransportResponse:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if use_basic_auth:
            headers["Authorization"] = self._basic_auth_header()
        request = TransportRequest(
            method="POST",
            url=self.config.token_endpoint,
            headers=headers,
            content=urlencode(data).encode("utf-8"),
        )

        async def attempt() -> TransportResponse:
            return await self.transport.send(request)

        if self.recovery is None:
            return await attempt()
        return await self.recovery.run(attempt, RetryState(), path="/api/token")

    def _decode_token_response(
        self,
        response: TransportResponse,
        existing_refresh_token: Optional[str] = None,
        refreshing: bool = False,
    ) -> Credential:
        if not response.is_success:
            body = response.text
            if refreshing and _is_rejected_refresh(response.status_code, body):
                lib_logger.info(
                    f"Refresh token {mask_token(existing_refresh_token)} rejected "
                    f"(HTTP {response.status_code}); re-authentication required"
                )
                raise InvalidRefreshTokenError(response.status_code, body)
            raise TokenRequestError(response.status_code, body)

        try:
            payload = json.loads(response.body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise UnexpectedResponseError(f"token response is not JSON: {e}", response.body) from e
        if not isinstance(payload, dict):
            raise UnexpectedResponseError("token response is not an object", response.body)
        return Credential.from_token_response(payload, existing_refresh_token)


def _is_rejected_refresh(status_code: int, body: str) -> bool:
    if status_code in (401, 403):
        return True
    return status_code == 400 and "invalid_grant" in body.lower()


class _UserGrant(GrantBackend):
    """Shared authorize-URL and callback handling for user-delegated grants."""

    _refresh_uses_basic_auth = True

    def __init__(
        self,
        config: AuthConfig,
        transport: Transport,
        recovery: Optional[RecoveryCoordinator] = None,
    ):
        super().__init__(config, transport, recovery)
        self.pending_state: Optional[str] = None

    def _authorize_params(self, state: str) -> Dict[str, str]:
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri or "",
            "state": state,
        }
        if self.config.scopes:
            params["scope"] = self.config.scope_string
        params["show_dialog"] = "true" if self.config.show_dialog else "false"
        return params

    def authorization_url(self, state: Optional[str] = None) -> str:
        """
        Build the URL the user must visit to grant access.

        A fresh state (and, for PKCE, a fresh verifier) is generated per call
        and remembered for the callback.
        """
        self.pending_state = state or generate_state()
        params = self._authorize_params(self.pending_state)
        return f"{self.config.authorize_endpoint}?{urlencode(params)}"

    def parse_callback(self, callback_url: str) -> str:
        """
        Validate the redirect URL and return the authorization code.

        Raises:
            AuthorizationDeniedError: If the callback carries an error
            StateMismatchError: If state is missing or differs from the pending state
            MissingAuthorizationCodeError: If no code is present
        """
        query = parse_qs(urlparse(callback_url).query)
        error = query.get("error", [None])[0]
        if error:
            raise AuthorizationDeniedError(error, query.get("error_description", [None])[0])

        received_state = query.get("state", [None])[0]
        if self.pending_state is not None and received_state != self.pending_state:
            raise StateMismatchError(self.pending_state, received_state)

        code = query.get("code", [None])[0]
        if not code:
            raise MissingAuthorizationCodeError("Authorization callback contains no code")
        return code

    async def refresh(self, credential: Optional[Credential]) -> Credential:
        if credential is None or not credential.refresh_token:
            raise MissingRefreshTokenError()
        lib_logger.debug(
            f"Refreshing access token with refresh token {mask_token(credential.refresh_token)}"
        )
        response = await self._post_form(
            self._refresh_form(credential.refresh_token), self._refresh_uses_basic_auth
        )
        return self._decode_token_response(
            response, credential.refresh_token, refreshing=True
        )

    def _refresh_form(self, refresh_token: str) -> Dict[str, str]:
        return {"grant_type": "refresh_token", "refresh_token": refresh_token}


class AuthorizationCodeGrant(_UserGrant):
    """Authorization code flow for confidential clients (client secret held server-side)."""

    async def exchange(self, code: Optional[str] = None) -> Credential:
        if not code:
            raise MissingAuthorizationCodeError("An authorization code is required")
        response = await self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri or "",
            },
            use_basic_auth=True,
        )
        credential = self._decode_token_response(response)
        self.pending_state = None
        return credential


class PKCEGrant(_UserGrant):
    """Authorization code flow with PKCE for public clients (no client secret)."""

    _refresh_uses_basic_auth = False

    def __init__(
        self,
        config: AuthConfig,
        transport: Transport,
        recovery: Optional[RecoveryCoordinator] = None,
    ):
        super().__init__(config, transport, recovery)
        self.pkce: Optional[PKCEPair] = None

    def _authorize_params(self, state: str) -> Dict[str, str]:
        self.pkce = PKCEPair.generate()
        params = super()._authorize_params(state)
        params["code_challenge_method"] = self.pkce.method
        params["code_challenge"] = self.pkce.challenge
        return params

    def _refresh_form(self, refresh_token: str) -> Dict[str, str]:
        form = super()._refresh_form(refresh_token)
        form["client_id"] = self.config.client_id
        return form

    async def exchange(self, code: Optional[str] = None) -> Credential:
        if not code:
            raise MissingAuthorizationCodeError("An authorization code is required")
        if self.pkce is None:
            raise MissingAuthorizationCodeError(
                "No PKCE verifier pending; call authorization_url() first"
            )
        response = await self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri or "",
                "client_id": self.config.client_id,
                "code_verifier": self.pkce.verifier,
            },
            use_basic_auth=False,
        )
        credential = self._decode_token_response(response)
        self.pkce = None
        self.pending_state = None
        return credential


class ClientCredentialsGrant(GrantBackend):
    """
    App-only grant. There is no refresh token: an expired credential is
    replaced by re-issuing a new one from the client id/secret.
    """

    supports_refresh = False

    async def exchange(self, code: Optional[str] = None) -> Credential:
        form = {"grant_type": "client_credentials"}
        if self.config.scopes:
            form["scope"] = self.config.scope_string
        response = await self._post_form(form, use_basic_auth=True)
        credential = self._decode_token_response(response)
        if credential.refresh_token is not None:
            credential = replace(credential, refresh_token=None)
        return credential

    async def refresh(self, credential: Optional[Credential]) -> Credential:
        return await self.exchange()
