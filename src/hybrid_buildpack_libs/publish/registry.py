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
"""Distribution (registry API v2) client for pushing the buildpackage image.

See https://github.com/opencontainers/distribution-spec/blob/main/spec.md for more details.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import urljoin

import aiohttp

from hybrid_buildpack_libs.common import Sha256Digest
from hybrid_buildpack_libs.exceptions import AuthenticationError, RegistryError
from hybrid_buildpack_libs.image.assemble import AssembledImage
from hybrid_buildpack_libs.image.media_types import IMAGE_MANIFEST

from .auth import Credential, DockerConfigKeychain

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
OCTET_STREAM = "application/octet-stream"
DOCKER_CONTENT_DIGEST = "Docker-Content-Digest"
OAUTH2_CLIENT_ID = "hybrid-buildpack"

_CHALLENGE_PARAM_PA = re.compile(r'(\w+)="([^"]*)"')


def parse_auth_challenge(_header: str) -> tuple[str, dict[str, str]]:
    """Parse a `WWW-Authenticate` header into the scheme and its params."""
    _scheme, _, _params = _header.strip().partition(" ")
    return _scheme.lower(), dict(_CHALLENGE_PARAM_PA.findall(_params))


def push_scope(repository: str) -> str:
    return f"repository:{repository}:pull,push"


def pull_scope(repository: str) -> str:
    return f"repository:{repository}:pull"


class RegistryClient:
    """Async client of one registry.

    When the registry answers 401, the client tries to authorize with the
        credential from <keychain> once, and retries the request once.
    """

    def __init__(
        self,
        registry_url: str,
        *,
        registry: Optional[str] = None,
        keychain: Optional[DockerConfigKeychain] = None,
        timeout: int = DEFAULT_TIMEOUT,
        connector: Optional[aiohttp.BaseConnector] = None,
    ) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.registry = registry or self.registry_url.split("://", 1)[-1]
        self.keychain = keychain
        self.timeout = timeout
        self.connector = connector
        self.session: Optional[aiohttp.ClientSession] = None

        # scope -> Authorization header value
        self._authorization: dict[str, str] = {}

    async def __aenter__(self) -> RegistryClient:
        if not self.session:
            self.session = aiohttp.ClientSession(
                connector=self.connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            raise RegistryError("registry client is not opened")
        return self.session

    def _resolve_credential(self) -> Optional[Credential]:
        if self.keychain is None:
            return None
        return self.keychain.resolve(self.registry)

    def _make_url(self, _location: str) -> str:
        if _location.startswith(("http://", "https://")):
            return _location
        return urljoin(f"{self.registry_url}/", _location)

    # ------ authorization ------ #

    async def _fetch_bearer_token(
        self, challenge: dict[str, str], scope: str
    ) -> str:
        _realm = challenge.get("realm")
        if not _realm:
            raise AuthenticationError(f"bearer challenge without realm: {challenge}")

        _params = {"scope": challenge.get("scope", scope)}
        if _service := challenge.get("service"):
            _params["service"] = _service

        _session = self._get_session()
        _cred = self._resolve_credential()
        if _cred and _cred.is_identity_token:
            # identity token is an OAuth2 refresh token, exchange it with the realm
            _req = _session.post(
                _realm,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": _cred.password,
                    "client_id": OAUTH2_CLIENT_ID,
                    **_params,
                },
            )
        else:
            _headers = {}
            if _cred:
                _headers["Authorization"] = f"Basic {_cred.basic_auth()}"
            _req = _session.get(_realm, params=_params, headers=_headers)

        try:
            async with _req as resp:
                if resp.status != 200:
                    raise AuthenticationError(
                        f"token request to {_realm} failed: HTTP {resp.status}"
                    )
                _res = await resp.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            raise AuthenticationError(f"token request to {_realm} failed: {e}") from e

        _token = _res.get("token") or _res.get("access_token")
        if not _token:
            raise AuthenticationError(f"no token returned from {_realm}")
        return _token

    async def _authorize(self, www_authenticate: str, scope: str) -> None:
        _scheme, _challenge = parse_auth_challenge(www_authenticate)
        if _scheme == "bearer":
            _token = await self._fetch_bearer_token(_challenge, scope)
            self._authorization[scope] = f"Bearer {_token}"
        elif _scheme == "basic":
            _cred = self._resolve_credential()
            if _cred is None:
                raise AuthenticationError(
                    f"{self.registry} requires basic auth, but no credential found"
                )
            self._authorization[scope] = f"Basic {_cred.basic_auth()}"
        else:
            raise AuthenticationError(
                f"unsupported auth challenge from {self.registry}: {www_authenticate}"
            )
        logger.debug(f"authorized to {self.registry} with {_scheme} for {scope}")

    async def _request(
        self,
        method: str,
        url: str,
        *,
        scope: str,
        headers: Optional[dict[str, str]] = None,
        data: Optional[bytes] = None,
        params: Optional[dict[str, str]] = None,
    ) -> tuple[int, Any, bytes]:
        """Send one request, answering the auth challenge at most once.

        Returns:
            A tuple of status code, response headers and response body.
        """
        _session = self._get_session()
        _challenged = False
        while True:
            _headers = dict(headers or {})
            if _auth := self._authorization.get(scope):
                _headers["Authorization"] = _auth

            try:
                async with _session.request(
                    method, url, headers=_headers, data=data, params=params
                ) as resp:
                    _status, _resp_headers = resp.status, resp.headers
                    _body = await resp.read()
            except aiohttp.ClientError as e:
                raise RegistryError(f"{method} {url} failed: {e}") from e

            if _status != 401:
                return _status, _resp_headers, _body
            if _challenged:
                raise AuthenticationError(
                    f"{method} {url}: unauthorized even after authentication"
                )

            _www_authenticate = _resp_headers.get("WWW-Authenticate")
            if not _www_authenticate:
                raise AuthenticationError(f"{method} {url}: unauthorized")
            await self._authorize(_www_authenticate, scope)
            _challenged = True

    # ------ registry API ------ #

    async def check_blob_exists(
        self, repository: str, digest: Sha256Digest | str
    ) -> bool:
        _url = f"{self.registry_url}/v2/{repository}/blobs/{digest}"
        _status, _, _ = await self._request("HEAD", _url, scope=push_scope(repository))
        if _status == 200:
            return True
        if _status == 404:
            return False
        raise RegistryError(f"failed to check blob {digest}: HTTP {_status}")

    async def upload_blob(
        self, repository: str, data: bytes, digest: Sha256Digest | str
    ) -> str:
        """Upload <data> as one blob with a monolithic upload(POST then PUT)."""
        _scope = push_scope(repository)
        _url = f"{self.registry_url}/v2/{repository}/blobs/uploads/"
        _status, _headers, _body = await self._request("POST", _url, scope=_scope)
        if _status != 202:
            raise RegistryError(
                f"failed to start blob upload: HTTP {_status}, {_body[:256]!r}"
            )
        _location = _headers.get("Location")
        if not _location:
            raise RegistryError("registry doesn't return upload location")

        _status, _, _body = await self._request(
            "PUT",
            self._make_url(_location),
            scope=_scope,
            params={"digest": str(digest)},
            headers={"Content-Type": OCTET_STREAM},
            data=data,
        )
        if _status not in (201, 204):
            raise RegistryError(
                f"failed to upload blob {digest}: HTTP {_status}, {_body[:256]!r}"
            )
        logger.info(f"blob {digest} uploaded to {repository}: {len(data)} bytes")
        return str(digest)

    async def get_blob(self, repository: str, digest: Sha256Digest | str) -> bytes:
        _url = f"{self.registry_url}/v2/{repository}/blobs/{digest}"
        _status, _, _body = await self._request("GET", _url, scope=pull_scope(repository))
        if _status != 200:
            raise RegistryError(f"failed to get blob {digest}: HTTP {_status}")
        return _body

    async def upload_manifest(
        self,
        repository: str,
        reference: str,
        manifest: bytes,
        media_type: str = IMAGE_MANIFEST,
    ) -> str:
        """Upload <manifest> as <reference> and return the manifest digest."""
        _url = f"{self.registry_url}/v2/{repository}/manifests/{reference}"
        _status, _headers, _body = await self._request(
            "PUT",
            _url,
            scope=push_scope(repository),
            headers={"Content-Type": media_type},
            data=manifest,
        )
        if _status not in (200, 201):
            raise RegistryError(
                f"failed to upload manifest: HTTP {_status}, {_body[:256]!r}"
            )
        return _headers.get(DOCKER_CONTENT_DIGEST) or str(Sha256Digest.of(manifest))

    async def get_manifest(
        self, repository: str, reference: str, accept: str = IMAGE_MANIFEST
    ) -> bytes:
        _url = f"{self.registry_url}/v2/{repository}/manifests/{reference}"
        _status, _, _body = await self._request(
            "GET", _url, scope=pull_scope(repository), headers={"Accept": accept}
        )
        if _status != 200:
            raise RegistryError(f"failed to get manifest {reference}: HTTP {_status}")
        return _body

    async def push_image(
        self, image: AssembledImage, repository: str, tag: str
    ) -> str:
        """Upload all the blobs of <image>, then its manifest as <tag>."""
        _descriptors = [*image.layers, image.manifest.config]
        for _descriptor in _descriptors:
            if await self.check_blob_exists(repository, _descriptor.digest):
                logger.info(f"blob {_descriptor.digest} already exists, skip")
                continue
            await self.upload_blob(
                repository,
                _descriptor.get_blob_from_blobs(image.blobs),
                _descriptor.digest,
            )

        _digest = await self.upload_manifest(
            repository, tag, image.export_manifest()
        )
        logger.info(f"manifest uploaded to {repository}:{tag}: {_digest}")
        return _digest
