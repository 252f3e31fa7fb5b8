"""Tests for the Drive REST client against a local aiohttp server."""

from __future__ import annotations

import json
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from appdata_sync.drive import DriveClient, RemoteFileResolver
from appdata_sync.exceptions import AuthenticationError, RemoteFileNotFoundError, RemoteRequestError
from appdata_sync.identity.types import AccessToken
from appdata_sync.store.base import MemoryStore

from conftest import FakeTokenClient


class DriveApi:
    """Minimal Drive v3 files API."""

    def __init__(self) -> None:
        self.files: dict[str, dict[str, Any]] = {}
        self.requests: list[web.Request] = []
        self.fail_status: int | None = None
        self.api_key = "public-key"

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/drive/v3/files", self.list_files)
        app.router.add_get("/drive/v3/files/{file_id}", self.get_file)
        app.router.add_post("/upload/drive/v3/files", self.create_file)
        app.router.add_patch("/upload/drive/v3/files/{file_id}", self.update_file)
        return app

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("Authorization") == "Bearer drive-token"

    async def list_files(self, request: web.Request) -> web.Response:
        self.requests.append(request)
        if self.fail_status:
            return web.Response(status=self.fail_status, text="backend error")
        if not self._authorized(request):
            return web.Response(status=401)
        name = request.query["q"].removeprefix("name='").removesuffix("'")
        matches = [
            {"id": fid, "name": f["name"]}
            for fid, f in self.files.items()
            if f["name"] == name and request.query["spaces"] in f["parents"]
        ]
        return web.json_response({"files": matches})

    async def get_file(self, request: web.Request) -> web.Response:
        self.requests.append(request)
        file_id = request.match_info["file_id"]
        if request.query.get("key") != self.api_key and not self._authorized(request):
            return web.Response(status=401)
        if file_id not in self.files:
            return web.Response(status=404)
        return web.Response(text=self.files[file_id]["content"], content_type="application/json")

    async def create_file(self, request: web.Request) -> web.Response:
        self.requests.append(request)
        if not self._authorized(request):
            return web.Response(status=401)
        reader = await request.multipart()
        metadata_part = await reader.next()
        metadata = json.loads(await metadata_part.text())
        content_part = await reader.next()
        content = await content_part.text()

        file_id = f"created-{len(self.files) + 1}"
        self.files[file_id] = {**metadata, "content": content}
        return web.json_response({"id": file_id})

    async def update_file(self, request: web.Request) -> web.Response:
        self.requests.append(request)
        file_id = request.match_info["file_id"]
        if not self._authorized(request):
            return web.Response(status=401)
        if file_id not in self.files:
            return web.Response(status=404)
        self.files[file_id]["content"] = await request.text()
        return web.json_response({"id": file_id})


@pytest.fixture
def api() -> DriveApi:
    return DriveApi()


@pytest.fixture
async def drive_client(api: DriveApi):
    server = TestServer(api.app())
    await server.start_server()

    token_client = FakeTokenClient()
    token_client.set_token(AccessToken("drive-token"))
    client = DriveClient(
        token_client,
        api_key=api.api_key,
        api_url=str(server.make_url("/drive/v3")),
        upload_url=str(server.make_url("/upload/drive/v3")),
    )
    yield client
    await client.close()
    await server.close()


class TestDriveClient:
    """Tests for DriveClient requests."""

    @pytest.mark.asyncio
    async def test_create_then_list(self, drive_client: DriveClient, api: DriveApi) -> None:
        file_id = await drive_client.create_file("state.json", '{"darkMode": "true"}')

        assert api.files[file_id]["name"] == "state.json"
        assert api.files[file_id]["parents"] == ["appDataFolder"]
        assert api.files[file_id]["mimeType"] == "application/json"
        assert api.requests[-1].query["uploadType"] == "multipart"

        files = await drive_client.list_files("state.json")
        assert files == [{"id": file_id, "name": "state.json"}]
        assert api.requests[-1].query["fields"] == "files(id, name)"

    @pytest.mark.asyncio
    async def test_list_no_match(self, drive_client: DriveClient) -> None:
        assert await drive_client.list_files("absent.json") == []

    @pytest.mark.asyncio
    async def test_get_content(self, drive_client: DriveClient, api: DriveApi) -> None:
        api.files["f1"] = {"name": "state.json", "parents": ["appDataFolder"], "content": '{"a": "1"}'}

        assert await drive_client.get_file_content("f1") == {"a": "1"}
        assert api.requests[-1].query["alt"] == "media"

    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, drive_client: DriveClient) -> None:
        with pytest.raises(RemoteFileNotFoundError) as exc_info:
            await drive_client.get_file_content("gone")

        assert exc_info.value.status == 404
        assert exc_info.value.file_id == "gone"

    @pytest.mark.asyncio
    async def test_update_replaces_content(self, drive_client: DriveClient, api: DriveApi) -> None:
        api.files["f1"] = {"name": "state.json", "parents": ["appDataFolder"], "content": "{}"}

        assert await drive_client.update_file("f1", '{"viewMode": "grid"}') == "f1"

        assert api.files["f1"]["content"] == '{"viewMode": "grid"}'
        assert api.requests[-1].method == "PATCH"
        assert api.requests[-1].query["uploadType"] == "media"

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, drive_client: DriveClient) -> None:
        with pytest.raises(RemoteFileNotFoundError):
            await drive_client.update_file("gone", "{}")

    @pytest.mark.asyncio
    async def test_server_error(self, drive_client: DriveClient, api: DriveApi) -> None:
        api.fail_status = 500

        with pytest.raises(RemoteRequestError) as exc_info:
            await drive_client.list_files("state.json")

        assert exc_info.value.status == 500
        assert "backend error" in exc_info.value.details["cause"]

    @pytest.mark.asyncio
    async def test_public_read_uses_api_key(self, drive_client: DriveClient, api: DriveApi) -> None:
        api.files["shared"] = {"name": "x", "parents": [], "content": '{"count_001": "2"}'}
        drive_client.token_client.set_token(None)

        assert await drive_client.get_public_file_content("shared") == {"count_001": "2"}
        assert "Authorization" not in api.requests[-1].headers

    @pytest.mark.asyncio
    async def test_public_read_without_key(self, drive_client: DriveClient) -> None:
        drive_client.api_key = None

        with pytest.raises(AuthenticationError):
            await drive_client.get_public_file_content("shared")

    @pytest.mark.asyncio
    async def test_no_token(self, drive_client: DriveClient, api: DriveApi) -> None:
        drive_client.token_client.set_token(None)

        with pytest.raises(AuthenticationError):
            await drive_client.list_files("state.json")
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_unreachable_server(self) -> None:
        token_client = FakeTokenClient()
        token_client.set_token(AccessToken("drive-token"))

        async with DriveClient(token_client, api_url="http://127.0.0.1:1/drive/v3", timeout=2) as client:
            with pytest.raises(RemoteRequestError):
                await client.list_files("state.json")


class TestRemoteFileResolver:
    """Tests for resolving and caching the remote file id."""

    @pytest.mark.asyncio
    async def test_resolve_caches_id(self, drive_client: DriveClient, api: DriveApi) -> None:
        api.files["f1"] = {"name": "state.json", "parents": ["appDataFolder"], "content": "{}"}
        store = MemoryStore()
        resolver = RemoteFileResolver(drive_client, store, "state.json")

        assert await resolver.resolve() == "f1"
        assert resolver.cached_file_id == "f1"

        list_calls = len(api.requests)
        assert await resolver.resolve() == "f1"
        assert len(api.requests) == list_calls

    @pytest.mark.asyncio
    async def test_resolve_absent(self, drive_client: DriveClient) -> None:
        resolver = RemoteFileResolver(drive_client, MemoryStore(), "state.json")

        assert await resolver.resolve() is None
        assert resolver.cached_file_id is None

    @pytest.mark.asyncio
    async def test_duplicates_use_first(self, drive_client: DriveClient, api: DriveApi) -> None:
        api.files["f1"] = {"name": "state.json", "parents": ["appDataFolder"], "content": "{}"}
        api.files["f2"] = {"name": "state.json", "parents": ["appDataFolder"], "content": "{}"}
        resolver = RemoteFileResolver(drive_client, MemoryStore(), "state.json")

        assert await resolver.resolve() == "f1"

    @pytest.mark.asyncio
    async def test_create_and_invalidate(self, drive_client: DriveClient) -> None:
        store = MemoryStore()
        resolver = RemoteFileResolver(drive_client, store, "state.json")

        file_id = await resolver.create("{}")
        assert store.get_item("driveFileId") == file_id

        resolver.invalidate()
        assert resolver.cached_file_id is None
