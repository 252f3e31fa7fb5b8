"""
OAuth2 token clients.

``TokenClient`` is the contract AuthSession drives: a provider library
that must finish loading before use, hands tokens to a registered
callback, and can revoke them.

``GoogleTokenClient`` implements it with the OAuth2 Authorization Code
flow + PKCE over a loopback redirect for consent, and the refresh-token
grant for silent renewal.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import inspect
import logging
import secrets
import webbrowser
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

import aiohttp
from aiohttp import web

from ..exceptions import AuthenticationError, RemoteRequestError
from .types import AccessToken

logger = logging.getLogger(__name__)

DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"

# Ports to try for the local callback server
CALLBACK_PORTS = [8080, 8081, 8082]

TokenCallback = Callable[[dict[str, Any]], Any]


class TokenClient(ABC):
    """Abstract provider token client.

    Responses are delivered to the callback registered with
    ``init_token_client``: a dict that is either the token payload or
    carries an ``error`` key.
    """

    def __init__(self) -> None:
        self._token: AccessToken | None = None
        self._client_id: str | None = None
        self._scope: str | None = None
        self._callback: TokenCallback | None = None

    @abstractmethod
    def is_loaded(self) -> bool:
        """Check whether the provider library is ready for use."""
        ...

    @abstractmethod
    async def load(self) -> None:
        """Load the provider library."""
        ...

    @abstractmethod
    async def request_access_token(self, prompt: str = "") -> None:
        """Request a token.

        Args:
            prompt: "consent" forces a fresh consent screen, "" renews silently
        """
        ...

    @abstractmethod
    async def revoke(self, access_token: str) -> None:
        """Revoke a token with the provider."""
        ...

    def init_token_client(self, client_id: str, scope: str, callback: TokenCallback) -> None:
        self._client_id = client_id
        self._scope = scope
        self._callback = callback

    @property
    def configured(self) -> bool:
        return self._client_id is not None

    def get_token(self) -> AccessToken | None:
        return self._token

    def set_token(self, token: AccessToken | dict[str, Any] | None) -> None:
        """Apply a token. Raises ValidationError for a malformed payload."""
        if token is None or isinstance(token, AccessToken):
            self._token = token
        else:
            self._token = AccessToken.from_dict(token)

    async def close(self) -> None:
        pass

    async def _deliver(self, response: dict[str, Any]) -> None:
        if self._callback is None:
            return
        result = self._callback(response)
        if inspect.isawaitable(result):
            await result


def _base64url_encode(data: bytes) -> str:
    """Base64url encode without padding (RFC 7636)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _generate_pkce() -> tuple[str, str]:
    """Generate PKCE code_verifier and code_challenge (S256)."""
    # 32 random bytes -> base64url = 43 char verifier
    code_verifier = _base64url_encode(secrets.token_bytes(32))
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return code_verifier, _base64url_encode(digest)


class GoogleTokenClient(TokenClient):
    """Token client for Google accounts.

    Example:
        >>> client = GoogleTokenClient(client_secret="...")
        >>> await client.load()
        >>> client.init_token_client(client_id, scope, on_token)
        >>> await client.request_access_token(prompt="consent")
    """

    def __init__(
        self,
        client_secret: str | None = None,
        discovery_url: str = DISCOVERY_URL,
        callback_ports: list[int] | None = None,
        callback_timeout: float = 120.0,
        open_browser: Callable[[str], Any] = webbrowser.open,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        self.client_secret = client_secret
        self.discovery_url = discovery_url
        self.callback_ports = callback_ports or list(CALLBACK_PORTS)
        self.callback_timeout = callback_timeout
        self.open_browser = open_browser

        self._session = session
        self._owns_session = session is None
        self._endpoints: dict[str, str] = {}

    def is_loaded(self) -> bool:
        return bool(self._endpoints)

    async def load(self) -> None:
        """Fetch the OpenID discovery document to learn the OAuth endpoints."""
        try:
            async with self._get_session().get(self.discovery_url) as response:
                if response.status != 200:
                    raise RemoteRequestError("load_discovery", status=response.status)
                document = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RemoteRequestError("load_discovery", cause=e) from e

        self._endpoints = {
            "authorize": document["authorization_endpoint"],
            "token": document["token_endpoint"],
            "revoke": document.get("revocation_endpoint", "https://oauth2.googleapis.com/revoke"),
        }
        logger.debug(f"OAuth endpoints loaded from {self.discovery_url}")

    async def request_access_token(self, prompt: str = "") -> None:
        if not self.configured or not self.is_loaded():
            raise AuthenticationError("google", "token client is not initialized")

        try:
            if prompt != "consent" and self._token and self._token.refresh_token:
                response = await self._refresh(self._token.refresh_token)
            else:
                response = await self._authorize(prompt)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            response = {"error": f"token request failed: {e}"}

        if "error" not in response:
            if self._token and not response.get("refresh_token"):
                response["refresh_token"] = self._token.refresh_token
            self._token = AccessToken.from_dict(response)

        await self._deliver(response)

    async def revoke(self, access_token: str) -> None:
        endpoint = self._endpoints.get("revoke", "https://oauth2.googleapis.com/revoke")
        try:
            async with self._get_session().post(
                endpoint,
                data={"token": access_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise AuthenticationError(
                        "google", f"revoke failed (HTTP {response.status}): {body}"
                    )
        except aiohttp.ClientError as e:
            raise AuthenticationError("google", f"revoke failed: {e}") from e

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _authorize(self, prompt: str) -> dict[str, Any]:
        """Run the interactive consent flow and exchange the code for tokens."""
        code_verifier, code_challenge = _generate_pkce()
        state = secrets.token_urlsafe(16)
        loop = asyncio.get_running_loop()
        result: asyncio.Future[dict[str, str]] = loop.create_future()

        async def handle_callback(request: web.Request) -> web.Response:
            if not result.done():
                result.set_result(dict(request.query))
            if "error" in request.query:
                body = "<h2>Authentication Failed</h2><p>You can close this tab.</p>"
            else:
                body = "<h2>Authentication Successful</h2><p>You can close this tab.</p>"
            return web.Response(text=f"<html><body>{body}</body></html>", content_type="text/html")

        runner, port = await self._start_callback_server(handle_callback)
        redirect_uri = f"http://127.0.0.1:{port}/callback"

        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": self._scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "access_type": "offline",
        }
        if prompt:
            params["prompt"] = prompt
        auth_url = f"{self._endpoints['authorize']}?{urlencode(params)}"

        try:
            logger.info(f"Opening browser for authentication on port {port}")
            self.open_browser(auth_url)
            query = await asyncio.wait_for(result, timeout=self.callback_timeout)
        except asyncio.TimeoutError:
            return {"error": "timed out waiting for authentication callback"}
        finally:
            await runner.cleanup()

        if "error" in query:
            return {"error": query["error"]}
        if query.get("state") != state:
            return {"error": "state mismatch in authentication callback"}
        if "code" not in query:
            return {"error": "no authorization code received"}

        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": query["code"],
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            }
        )

    async def _refresh(self, refresh_token: str) -> dict[str, Any]:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        data = {"client_id": self._client_id or "", **form}
        if self.client_secret:
            data["client_secret"] = self.client_secret

        async with self._get_session().post(self._endpoints["token"], data=data) as response:
            try:
                payload = await response.json(content_type=None)
            except ValueError:
                payload = None
            if response.status != 200 or not isinstance(payload, dict):
                error = payload.get("error") if isinstance(payload, dict) else None
                return {"error": error or f"HTTP {response.status}"}
            return payload

    async def _start_callback_server(self, handler: Any) -> tuple[web.AppRunner, int]:
        app = web.Application()
        app.router.add_get("/callback", handler)
        runner = web.AppRunner(app)
        await runner.setup()

        for port in self.callback_ports:
            site = web.TCPSite(runner, "127.0.0.1", port)
            try:
                await site.start()
                return runner, port
            except OSError:
                continue

        await runner.cleanup()
        raise AuthenticationError(
            "google", f"could not bind to any callback port ({self.callback_ports})"
        )
