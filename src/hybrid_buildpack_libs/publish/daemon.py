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
"""Load images into the local docker daemon via the engine API."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, NamedTuple, Optional
from urllib.parse import urlsplit

import aiohttp

from hybrid_buildpack_libs.exceptions import DaemonError

logger = logging.getLogger(__name__)

DOCKER_HOST_ENV = "DOCKER_HOST"
DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"
DEFAULT_WINDOWS_DOCKER_HOST = "npipe:////./pipe/docker_engine"
DEFAULT_TIMEOUT = 600
# host part of the URL is not used when talking through unix socket or named pipe
LOCAL_BASE_URL = "http://docker"


def default_docker_host() -> str:
    if sys.platform == "win32":
        return DEFAULT_WINDOWS_DOCKER_HOST
    return DEFAULT_DOCKER_HOST


class DaemonEndpoint(NamedTuple):
    base_url: str
    unix_socket: Optional[str] = None
    named_pipe: Optional[str] = None

    @classmethod
    def from_docker_host(cls, docker_host: Optional[str] = None) -> DaemonEndpoint:
        """Parse the `DOCKER_HOST` style endpoint.

        Raises:
            DaemonError: on unsupported endpoint scheme.
        """
        if docker_host is None:
            docker_host = os.environ.get(DOCKER_HOST_ENV) or default_docker_host()

        _parsed = urlsplit(docker_host)
        if _parsed.scheme == "unix":
            if not _parsed.path:
                raise DaemonError(f"invalid docker host: {docker_host}")
            return cls(base_url=LOCAL_BASE_URL, unix_socket=_parsed.path)
        if _parsed.scheme == "npipe":
            # npipe:////./pipe/docker_engine -> \\.\pipe\docker_engine
            _pipe = _parsed.path.lstrip("/")
            if not _pipe:
                raise DaemonError(f"invalid docker host: {docker_host}")
            return cls(
                base_url=LOCAL_BASE_URL,
                named_pipe="\\\\" + _pipe.replace("/", "\\"),
            )
        if _parsed.scheme == "tcp":
            return cls(base_url=f"http://{_parsed.netloc}")
        if _parsed.scheme in ("http", "https"):
            return cls(base_url=f"{_parsed.scheme}://{_parsed.netloc}")
        raise DaemonError(f"unsupported docker host: {docker_host}")

    def make_connector(self) -> Optional[aiohttp.BaseConnector]:
        """Must be called within a running event loop.

        NOTE: named pipe connector is only available with the proactor event loop on Windows.
        """
        if self.unix_socket:
            return aiohttp.UnixConnector(path=self.unix_socket)
        if self.named_pipe:
            return aiohttp.NamedPipeConnector(path=self.named_pipe)
        return None


def parse_progress_messages(_body: bytes) -> list[dict[str, Any]]:
    """Parse the stream of JSON messages returned by the daemon.

    Raises:
        DaemonError: if any message reports an error.
    """
    _messages = []
    _decoder = json.JSONDecoder()
    _text, _pos = _body.decode(errors="replace"), 0
    while True:
        # messages are concatenated, possibly separated by whitespaces
        while _pos < len(_text) and _text[_pos].isspace():
            _pos += 1
        if _pos >= len(_text):
            break
        try:
            _message, _pos = _decoder.raw_decode(_text, _pos)
        except ValueError as e:
            raise DaemonError(f"invalid response from daemon: {e}") from e

        if isinstance(_message, dict):
            if _err := _message.get("error"):
                raise DaemonError(f"daemon failed to load image: {_err}")
            if _stream := _message.get("stream"):
                logger.info(f"daemon: {_stream.strip()}")
        _messages.append(_message)
    return _messages


class DaemonClient:
    def __init__(
        self,
        docker_host: Optional[str] = None,
        *,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoint = DaemonEndpoint.from_docker_host(docker_host)
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> DaemonClient:
        if not self.session:
            self.session = aiohttp.ClientSession(
                connector=self.endpoint.make_connector(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def load_image(self, archive: bytes) -> list[dict[str, Any]]:
        """Load a `docker save` format <archive> into the daemon.

        Returns:
            The progress messages returned by the daemon.

        Raises:
            DaemonError: if the daemon cannot be reached or fails to load the image.
        """
        if self.session is None or self.session.closed:
            raise DaemonError("daemon client is not opened")

        _url = f"{self.endpoint.base_url}/images/load"
        try:
            async with self.session.post(
                _url,
                data=archive,
                params={"quiet": "0"},
                headers={"Content-Type": "application/x-tar"},
            ) as resp:
                _status = resp.status
                _body = await resp.read()
        except aiohttp.ClientError as e:
            raise DaemonError(f"failed to connect to docker daemon: {e}") from e

        if _status != 200:
            raise DaemonError(
                f"daemon failed to load image: HTTP {_status}, {_error_message(_body)}"
            )
        return parse_progress_messages(_body)


def _error_message(_body: bytes) -> str:
    """Extract the `message` field of the daemon error response, if any."""
    _msg = _body.decode(errors="replace").strip()
    try:
        _res = json.loads(_msg)
    except ValueError:
        return _msg
    if isinstance(_res, dict) and _res.get("message"):
        return str(_res["message"])
    return _msg
