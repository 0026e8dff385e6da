# Copyright 2025 TIER IV, INC. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Shared test fixtures for hybrid-buildpack-libs tests."""

from __future__ import annotations

import base64
import gzip
import hashlib
import io
import json
import tarfile
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from hybrid_buildpack_libs.buildpack import BuildpackDescriptor, load_embedded_descriptor
from hybrid_buildpack_libs.hybrid_layer.entry import ArchiveEntry
from hybrid_buildpack_libs.hybrid_layer.planner import plan_hybrid_layer
from hybrid_buildpack_libs.hybrid_layer.writer import HybridLayer, build_hybrid_layer
from hybrid_buildpack_libs.image import AssembledImage, assemble_image
from hybrid_buildpack_libs.layer_metadata import LayerMetadata, generate_layer_metadata


def make_tar(files: dict[str, bytes], dirs: tuple[str, ...] = ()) -> bytes:
    """Create a small deterministic tar archive."""
    _buffer = io.BytesIO()
    with tarfile.open(fileobj=_buffer, mode="w", format=tarfile.PAX_FORMAT) as _tar:
        for _dir in dirs:
            _tarinfo = tarfile.TarInfo(_dir)
            _tarinfo.type = tarfile.DIRTYPE
            _tarinfo.mode = 0o755
            _tar.addfile(_tarinfo)
        for _fname, _contents in files.items():
            _tarinfo = tarfile.TarInfo(_fname)
            _tarinfo.size = len(_contents)
            _tar.addfile(_tarinfo, io.BytesIO(_contents))
    return _buffer.getvalue()


def read_tar_members(blob: bytes) -> list[tarfile.TarInfo]:
    with tarfile.open(fileobj=io.BytesIO(blob), mode="r:") as _tar:
        return _tar.getmembers()


@pytest.fixture(scope="session")
def descriptor() -> BuildpackDescriptor:
    """The embedded hybrid buildpack descriptor."""
    return load_embedded_descriptor()


@pytest.fixture(scope="session")
def planned_entries(descriptor: BuildpackDescriptor) -> list[ArchiveEntry]:
    return plan_hybrid_layer(descriptor)


@pytest.fixture(scope="session")
def hybrid_layer(planned_entries: list[ArchiveEntry]) -> HybridLayer:
    return build_hybrid_layer(planned_entries)


@pytest.fixture(scope="session")
def layer_metadata(
    hybrid_layer: HybridLayer, descriptor: BuildpackDescriptor
) -> LayerMetadata:
    return generate_layer_metadata(hybrid_layer, descriptor)


@pytest.fixture(scope="session")
def windows_base_layer() -> bytes:
    """A minimal stand-in of the Windows base layer, with `Files` and `Hives` roots."""
    return make_tar(
        {
            "Files/License.txt": b"base layer for testing",
            "Hives/DefaultUser_Delta": b"\x00" * 64,
        },
        dirs=("Files", "Hives"),
    )


@pytest.fixture
def base_layer_file(tmp_path: Path, windows_base_layer: bytes) -> Path:
    """The Windows base layer exported as a gzip compressed tarball."""
    _fpath = tmp_path / "windows-base-layer.tar.gz"
    _fpath.write_bytes(gzip.compress(windows_base_layer, mtime=0))
    return _fpath


@pytest.fixture(scope="session")
def assembled_image(
    windows_base_layer: bytes,
    hybrid_layer: HybridLayer,
    layer_metadata: LayerMetadata,
) -> AssembledImage:
    return assemble_image(windows_base_layer, hybrid_layer, layer_metadata.labels())


class FakeRegistry:
    """In-memory distribution API server, optionally requires authentication."""

    TOKEN = "t0k3n"
    IDENTITY_TOKEN = "r3fr3sh"

    def __init__(
        self, *, auth: str | None = None, username: str = "user", password: str = "pass"
    ) -> None:
        self.auth = auth
        self.basic_auth = "Basic " + base64.b64encode(
            f"{username}:{password}".encode()
        ).decode()
        self.url = ""
        self.blobs: dict[str, bytes] = {}
        self.manifests: dict[tuple[str, str], tuple[str, bytes]] = {}
        self.uploads: dict[str, str] = {}
        self.challenges = 0
        self.token_requests: list[dict[str, str]] = []

        self.app = web.Application(middlewares=[self._auth_middleware])
        self.app.router.add_get("/token", self._token)
        self.app.router.add_post("/token", self._oauth2_token)
        self.app.router.add_route("HEAD", "/v2/{name:.+}/blobs/{digest}", self._head_blob)
        self.app.router.add_get(
            "/v2/{name:.+}/blobs/{digest}", self._get_blob, allow_head=False
        )
        self.app.router.add_post("/v2/{name:.+}/blobs/uploads/", self._start_upload)
        self.app.router.add_put(
            "/v2/{name:.+}/blobs/uploads/{upload_id}", self._finish_upload
        )
        self.app.router.add_put("/v2/{name:.+}/manifests/{ref}", self._put_manifest)
        self.app.router.add_get("/v2/{name:.+}/manifests/{ref}", self._get_manifest)

    def _unauthorized(self, request: web.Request) -> web.Response:
        self.challenges += 1
        if self.auth == "bearer":
            _realm = str(request.url.with_path("/token").with_query(None))
            _challenge = f'Bearer realm="{_realm}",service="fake-registry"'
        else:
            _challenge = 'Basic realm="fake-registry"'
        return web.Response(status=401, headers={"WWW-Authenticate": _challenge})

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler):
        if self.auth and request.path.startswith("/v2/"):
            _expected = (
                f"Bearer {self.TOKEN}" if self.auth == "bearer" else self.basic_auth
            )
            if request.headers.get("Authorization") != _expected:
                return self._unauthorized(request)
        return await handler(request)

    async def _token(self, request: web.Request) -> web.Response:
        self.token_requests.append(dict(request.query))
        if request.headers.get("Authorization") != self.basic_auth:
            return web.Response(status=401)
        return web.json_response({"token": self.TOKEN})

    async def _oauth2_token(self, request: web.Request) -> web.Response:
        _form = dict(await request.post())
        self.token_requests.append(_form)
        if (
            _form.get("grant_type") != "refresh_token"
            or _form.get("refresh_token") != self.IDENTITY_TOKEN
        ):
            return web.Response(status=401)
        return web.json_response({"access_token": self.TOKEN})

    async def _head_blob(self, request: web.Request) -> web.Response:
        if request.match_info["digest"] in self.blobs:
            return web.Response(status=200)
        return web.Response(status=404)

    async def _get_blob(self, request: web.Request) -> web.Response:
        _digest = request.match_info["digest"]
        if _digest not in self.blobs:
            return web.Response(status=404)
        return web.Response(body=self.blobs[_digest])

    async def _start_upload(self, request: web.Request) -> web.Response:
        _upload_id = uuid.uuid4().hex
        self.uploads[_upload_id] = request.match_info["name"]
        _location = (
            f"/v2/{request.match_info['name']}/blobs/uploads/{_upload_id}?_state=abc"
        )
        return web.Response(status=202, headers={"Location": _location})

    async def _finish_upload(self, request: web.Request) -> web.Response:
        if request.match_info["upload_id"] not in self.uploads:
            return web.Response(status=404)
        if request.query.get("_state") != "abc":
            return web.Response(status=400, text="upload state lost")

        _digest = request.query.get("digest", "")
        _body = await request.read()
        if _digest != f"sha256:{hashlib.sha256(_body).hexdigest()}":
            return web.Response(status=400, text="digest mismatch")
        self.blobs[_digest] = _body
        return web.Response(status=201, headers={"Docker-Content-Digest": _digest})

    async def _put_manifest(self, request: web.Request) -> web.Response:
        _body = await request.read()
        _digest = f"sha256:{hashlib.sha256(_body).hexdigest()}"
        _key = (request.match_info["name"], request.match_info["ref"])
        self.manifests[_key] = (request.content_type, _body)
        return web.Response(status=201, headers={"Docker-Content-Digest": _digest})

    async def _get_manifest(self, request: web.Request) -> web.Response:
        _key = (request.match_info["name"], request.match_info["ref"])
        if _key not in self.manifests:
            return web.Response(status=404)
        _content_type, _body = self.manifests[_key]
        return web.Response(body=_body, headers={"Content-Type": _content_type})


@asynccontextmanager
async def serve_fake_registry(registry: FakeRegistry) -> AsyncIterator[FakeRegistry]:
    async with TestServer(registry.app) as _server:
        registry.url = str(_server.make_url("")).rstrip("/")
        yield registry


@pytest_asyncio.fixture
async def fake_registry():
    """Start an unauthenticated fake registry."""
    async with serve_fake_registry(FakeRegistry()) as _registry:
        yield _registry


def write_docker_config(
    config_dir: Path, registry: str, username: str = "user", password: str = "pass"
) -> Path:
    """Write a docker config.json holding the credential for <registry>."""
    config_dir.mkdir(parents=True, exist_ok=True)
    _auth = base64.b64encode(f"{username}:{password}".encode()).decode()
    (config_dir / "config.json").write_text(
        json.dumps({"auths": {registry: {"auth": _auth}}})
    )
    return config_dir


class FakeDaemon:
    """Fake docker engine API, only `POST /images/load` is served."""

    def __init__(self) -> None:
        self.loaded: list[bytes] = []
        self.response_messages: list[dict] = [
            {"stream": "Loaded image: hybrid:latest\n"}
        ]
        self.status = 200
        self.docker_host = ""

        self.app = web.Application()
        self.app.router.add_post("/images/load", self._load)

    async def _load(self, request: web.Request) -> web.Response:
        if request.content_type != "application/x-tar":
            return web.json_response({"message": "bad content type"}, status=400)
        self.loaded.append(await request.read())
        if self.status != 200:
            return web.json_response({"message": "no space left"}, status=self.status)
        _body = "\r\n".join(json.dumps(_m) for _m in self.response_messages)
        return web.Response(body=_body.encode(), content_type="application/json")


@pytest_asyncio.fixture
async def fake_daemon():
    """Serve a fake docker daemon on a unix socket."""
    _daemon = FakeDaemon()
    _runner = web.AppRunner(_daemon.app)
    await _runner.setup()
    # NOTE: keep the socket path short, unix socket path length is limited
    with tempfile.TemporaryDirectory(dir="/tmp") as _tmp_dir:
        _sock = str(Path(_tmp_dir) / "docker.sock")
        _site = web.UnixSite(_runner, _sock)
        await _site.start()
        _daemon.docker_host = f"unix://{_sock}"
        try:
            yield _daemon
        finally:
            await _runner.cleanup()
