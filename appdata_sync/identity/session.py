"""
Auth session.

Owns the bearer token lifecycle for the current session: waits for the
provider library, restores a token left in the session store, requests
consent or silent renewal, and revokes on sign-out.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import CLIENT_ID_KEY, TOKEN_KEY, SyncConfig
from ..drive.resolver import RemoteFileResolver
from ..events import EventBus, SyncEventType
from ..exceptions import AuthenticationError, DriveSyncError, InitializationError, ValidationError
from ..store.base import KeyValueStore
from ..sync.guard import ReloadLoopGuard
from .token_client import TokenClient
from .types import AccessToken

logger = logging.getLogger(__name__)


class AuthSession:
    """Session-only OAuth state.

    The token is only ever written to the session store, so a restarted
    process has to sign in again.

    Callbacks:
        on_signed_in: awaited after a token is accepted (used to trigger
            the initial load)
    """

    def __init__(
        self,
        token_client: TokenClient,
        persistent: KeyValueStore,
        session: KeyValueStore,
        resolver: RemoteFileResolver,
        guard: ReloadLoopGuard,
        events: EventBus,
        config: SyncConfig | None = None,
    ) -> None:
        self.token_client = token_client
        self.persistent = persistent
        self.session = session
        self.resolver = resolver
        self.guard = guard
        self.events = events
        self.config = config or SyncConfig()

        self._initialized = False
        self._signed_in = False

        self.on_signed_in: Callable[[], Awaitable[Any]] | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def signed_in(self) -> bool:
        return self._signed_in

    def get_signed_in(self) -> bool:
        return self._signed_in

    async def initialize(self) -> bool:
        """Prepare the token client.

        Returns:
            False when no client credential is configured, True otherwise

        Raises:
            InitializationError: If the provider library never became ready
        """
        client_id = self.persistent.get_item(CLIENT_ID_KEY)
        if not client_id:
            # Stale credentials must not authorize against a new configuration
            self.session.remove_item(TOKEN_KEY)
            self.resolver.invalidate()
            logger.info("No client id configured, sync disabled")
            return False

        try:
            await self._wait_for_library()
        except InitializationError as e:
            self.events.report_error("Initialization failed", e)
            raise

        self.token_client.init_token_client(client_id, self.config.scope, self._handle_token_response)
        self._initialized = True

        saved = self.session.get_item(TOKEN_KEY)
        if saved:
            try:
                self.token_client.set_token(AccessToken.from_dict(json.loads(saved)))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Discarding unusable session token: {e}")
                self.session.remove_item(TOKEN_KEY)
                self.token_client.set_token(None)
            else:
                await self._accept_token()

        return True

    async def sign_in(self) -> bool:
        """Request fresh consent, or silent renewal when a token is already held."""
        if not self._initialized:
            self.events.report_error("Auth session is not initialized")
            return False

        prompt = "consent" if self.token_client.get_token() is None else ""
        try:
            await self.token_client.request_access_token(prompt=prompt)
        except DriveSyncError as e:
            self.events.report_error("Sign-in failed", e)
            return False
        return True

    async def sign_out(self) -> None:
        """Revoke the token and reset all session state. Safe to call when signed out."""
        token = self.token_client.get_token()
        if token is not None:
            try:
                await self.token_client.revoke(token.access_token)
            except AuthenticationError as e:
                self.events.report_error("Token revocation failed", e)
            self.token_client.set_token(None)
            self.session.remove_item(TOKEN_KEY)

        self._signed_in = False
        self.resolver.invalidate()
        # Let the next sign-in load fresh data
        self.guard.reset()
        self.events.emit(SyncEventType.SIGN_IN_CHANGED, signed_in=False)
        logger.info("Signed out")

    async def _wait_for_library(self) -> None:
        """Poll for provider readiness with a fixed ceiling."""
        if self.token_client.is_loaded():
            return

        load_task = asyncio.ensure_future(self.token_client.load())
        interval = self.config.library_poll_interval_seconds
        waited = 0.0

        try:
            while waited < self.config.library_wait_seconds:
                if self.token_client.is_loaded():
                    return
                if load_task.done() and load_task.exception() is not None:
                    raise InitializationError(
                        "provider library failed to load", load_task.exception()
                    )
                await asyncio.sleep(interval)
                waited += interval
        finally:
            if not load_task.done():
                load_task.cancel()

        raise InitializationError(
            f"provider library not ready after {self.config.library_wait_seconds}s"
        )

    async def _handle_token_response(self, response: dict[str, Any]) -> None:
        if response.get("error"):
            self.events.report_error(f"Authentication error: {response['error']}")
            return

        token = self.token_client.get_token()
        if token is None:
            return

        self.session.set_item(TOKEN_KEY, json.dumps(token.to_dict()))
        await self._accept_token()

    async def _accept_token(self) -> None:
        self._signed_in = True
        self.events.emit(SyncEventType.SIGN_IN_CHANGED, signed_in=True)
        logger.info("Signed in")
        if self.on_signed_in is not None:
            await self.on_signed_in()
