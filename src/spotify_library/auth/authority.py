"""
Token lifecycle management.

TokenAuthority hands out a valid Credential for one client. At most one
exchange/refresh is in flight at a time: concurrent callers that find the
cached credential missing, expired or rejected all await the same shared
refresh task. Each authority owns its own cache, so unrelated clients
refresh independently.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from .. import telemetry
from ..credentials import Credential
from ..debug import DebugLogger
from ..events import (
    EventBus,
    TokenExpiringSoon,
    TokenRefreshFailed,
    TokenRefreshSucceeded,
    TokenRefreshWillStart,
)
from ..store import CredentialStore, MemoryCredentialStore
from .grants import GrantBackend

lib_logger = logging.getLogger("spotify_library")


class TokenAuthority:
    def __init__(
        self,
        grant: GrantBackend,
        store: Optional[CredentialStore] = None,
        events: Optional[EventBus] = None,
        debug: Optional[DebugLogger] = None,
        safety_margin: float = 60.0,
        expiring_soon_window: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.grant = grant
        self.store = store or MemoryCredentialStore()
        self.events = events or EventBus()
        self.debug = debug or DebugLogger()
        self.safety_margin = safety_margin
        self.expiring_soon_window = expiring_soon_window
        self._clock = clock

        self._credential: Optional[Credential] = None
        self._refresh_task: Optional["asyncio.Future"] = None
        self._refresh_forced = False
        self._expiry_notified_for: Optional[float] = None

    @property
    def cached(self) -> Optional[Credential]:
        return self._credential

    def _is_usable(self, credential: Optional[Credential]) -> bool:
        return credential is not None and not credential.is_expired(
            self.safety_margin, self._clock()
        )

    async def credential(
        self, force_refresh: bool = False, rejected_token: Optional[str] = None
    ) -> Credential:
        """
        Return a valid credential, refreshing if needed.

        Args:
            force_refresh: Refresh even if the cached credential looks valid
            rejected_token: Access token the API just rejected; if the cache
                already holds a different valid token, it is returned without
                another refresh

        Returns:
            A credential valid for at least `safety_margin` seconds

        Raises:
            MissingRefreshTokenError: If re-authentication is required
            AuthError: For other token endpoint failures
            StorageError: If the new credential could not be persisted
        """
        cached = self._credential
        if not force_refresh and self._is_usable(cached):
            self._notify_if_expiring(cached)
            return cached

        if (
            force_refresh
            and rejected_token is not None
            and self._is_usable(cached)
            and cached.access_token != rejected_token
        ):
            return cached

        while True:
            task = self._refresh_task
            joined_unforced = False
            if task is None:
                self._refresh_forced = force_refresh
                task = asyncio.ensure_future(self._resolve(force_refresh))
                self._refresh_task = task
            else:
                joined_unforced = force_refresh and not self._refresh_forced
                lib_logger.debug("Joining in-flight token refresh")

            try:
                credential = await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                # reset() abandoned the shared refresh; start again from the cleared state.
                lib_logger.debug("In-flight token refresh was discarded by reset; resolving again")
                continue

            if (
                joined_unforced
                and rejected_token is not None
                and credential.access_token == rejected_token
            ):
                # The shared task returned the token the API already rejected.
                continue
            return credential

    async def _resolve(self, force_refresh: bool) -> Credential:
        try:
            basis = self._credential
            if basis is None or (self.grant.supports_refresh and not basis.refresh_token):
                stored = await self.store.load()
                if stored is not None:
                    if not force_refresh and self._is_usable(stored):
                        self.debug.log_token("Using credential loaded from store")
                        self._credential = stored
                        return stored
                    basis = stored
            return await self._refresh(basis, "manual" if force_refresh else "automatic")
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None
                self._refresh_forced = False

    async def _refresh(self, basis: Optional[Credential], reason: str) -> Credential:
        seconds_left = basis.seconds_until_expiry(self._clock()) if basis else None
        self.events.publish(
            TokenRefreshWillStart(reason=reason, seconds_until_expiration=seconds_left)
        )
        self.debug.log_token(f"Refresh starting ({reason})")
        lib_logger.info(f"Refreshing access token ({reason})")

        try:
            credential = await self.grant.refresh(basis)
            await self.store.save(credential)
        except Exception as e:
            telemetry.record_token_refresh(outcome="failure")
            lib_logger.error(f"Token refresh failed: {e}")
            self.events.publish(TokenRefreshFailed(error=e))
            raise

        self._credential = credential
        self._expiry_notified_for = None
        rotated = bool(
            basis
            and basis.refresh_token
            and credential.refresh_token != basis.refresh_token
        )
        telemetry.record_token_refresh(outcome="success")
        self.debug.log_token(
            f"Refresh succeeded, expires in {credential.seconds_until_expiry(self._clock()):.0f}s"
            + (" (refresh token rotated)" if rotated else "")
        )
        self.events.publish(
            TokenRefreshSucceeded(expires_at=credential.expires_at, rotated_refresh_token=rotated)
        )
        return credential

    def _notify_if_expiring(self, credential: Credential) -> None:
        seconds_left = credential.seconds_until_expiry(self._clock())
        if seconds_left > self.expiring_soon_window:
            return
        if self._expiry_notified_for == credential.expires_at:
            return
        self._expiry_notified_for = credential.expires_at
        self.events.publish(TokenExpiringSoon(seconds_until_expiration=seconds_left))

    async def install(self, credential: Credential) -> None:
        """Persist and cache a credential obtained from an explicit exchange."""
        await self.store.save(credential)
        self._credential = credential
        self._expiry_notified_for = None
        self.debug.log_token("Installed credential from authorization exchange")

    async def exchange(self, code: Optional[str] = None) -> Credential:
        """Run the grant's exchange and install the resulting credential."""
        self.events.publish(TokenRefreshWillStart(reason="manual"))
        try:
            credential = await self.grant.exchange(code)
            await self.install(credential)
        except Exception as e:
            telemetry.record_token_refresh(outcome="failure")
            self.events.publish(TokenRefreshFailed(error=e))
            raise
        telemetry.record_token_refresh(outcome="success")
        self.events.publish(TokenRefreshSucceeded(expires_at=credential.expires_at))
        return credential

    async def reset(self) -> None:
        """Forget the cached credential and clear the store. Safe to call repeatedly."""
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
        self._refresh_task = None
        self._credential = None
        self._expiry_notified_for = None
        await self.store.clear()
        lib_logger.info("Credential state reset")

    def seconds_until_expiry(self) -> Optional[float]:
        if self._credential is None:
            return None
        return self._credential.seconds_until_expiry(self._clock())
