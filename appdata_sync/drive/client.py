"""
Google Drive REST client.

Covers the four calls the sync engine needs (list by name, get content,
multipart create, media update) plus an API-key read used to open a
file shared by someone else without signing in.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from ..exceptions import AuthenticationError, RemoteFileNotFoundError, RemoteRequestError

if TYPE_CHECKING:
    from ..identity.token_client import TokenClient

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"


class DriveClient:
    """Async client for the Drive v3 files API.

    Authorization uses the bearer token currently held by ``token_client``.

    Example:
        >>> async with DriveClient(token_client) as drive:
        ...     files = await drive.list_files("state.json")
    """

    def __init__(
        self,
        token_client: TokenClient | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        api_url: str = DRIVE_API_URL,
        upload_url: str = DRIVE_UPLOAD_URL,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.token_client = token_client
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.api_url = api_url.rstrip("/")
        self.upload_url = upload_url.rstrip("/")

        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> DriveClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def list_files(self, name: str, space: str = "appDataFolder") -> list[dict[str, Any]]:
        """List files in ``space`` whose name is exactly ``name``."""
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        params = {
            "spaces": space,
            "q": f"name='{escaped}'",
            "fields": "files(id, name)",
        }
        result = await self._request_json(
            "list_files", "GET", f"{self.api_url}/files", params=params
        )
        return list(result.get("files") or [])

    async def get_file_content(self, file_id: str) -> Any:
        """Download a file's JSON content."""
        return await self._request_json(
            "get_file",
            "GET",
            f"{self.api_url}/files/{file_id}",
            params={"alt": "media"},
            file_id=file_id,
        )

    async def get_public_file_content(self, file_id: str) -> Any:
        """Download a file's JSON content with the API key instead of a token."""
        if not self.api_key:
            raise AuthenticationError("drive", "no API key configured for shared file access")
        return await self._request_json(
            "get_public_file",
            "GET",
            f"{self.api_url}/files/{file_id}",
            params={"alt": "media", "key": self.api_key},
            file_id=file_id,
            authorize=False,
        )

    async def create_file(
        self,
        name: str,
        content: str,
        space: str = "appDataFolder",
    ) -> str:
        """Create a file with JSON metadata and body in one multipart upload.

        Returns:
            The new file id
        """
        metadata = {"name": name, "parents": [space], "mimeType": "application/json"}

        with aiohttp.MultipartWriter("related") as writer:
            writer.append(
                json.dumps(metadata), {"Content-Type": "application/json; charset=UTF-8"}
            )
            writer.append(content, {"Content-Type": "application/json"})

        result = await self._request_json(
            "create_file",
            "POST",
            f"{self.upload_url}/files",
            params={"uploadType": "multipart"},
            data=writer,
        )
        file_id = result.get("id")
        if not file_id:
            raise RemoteRequestError("create_file", cause="response carried no file id")
        return file_id

    async def update_file(self, file_id: str, content: str) -> str:
        """Replace a file's content (media upload)."""
        await self._request_json(
            "update_file",
            "PATCH",
            f"{self.upload_url}/files/{file_id}",
            params={"uploadType": "media"},
            data=content.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            file_id=file_id,
        )
        return file_id

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    def _auth_headers(self) -> dict[str, str]:
        token = self.token_client.get_token() if self.token_client else None
        if token is None:
            raise AuthenticationError("drive", "no access token")
        return {"Authorization": f"Bearer {token.access_token}"}

    async def _request_json(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
        file_id: str | None = None,
        authorize: bool = True,
    ) -> Any:
        request_headers = dict(headers or {})
        if authorize:
            request_headers.update(self._auth_headers())

        try:
            async with self._get_session().request(
                method, url, params=params, data=data, headers=request_headers
            ) as response:
                if response.status == 404:
                    raise RemoteFileNotFoundError(operation, file_id)
                if response.status >= 400:
                    body = await response.text()
                    raise RemoteRequestError(operation, status=response.status, cause=body)

                text = await response.text()
        except aiohttp.ClientError as e:
            raise RemoteRequestError(operation, cause=e) from e

        if not text.strip():
            return {}
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise RemoteRequestError(operation, cause=f"invalid JSON response: {e}") from e
