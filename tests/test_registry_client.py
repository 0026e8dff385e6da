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

from __future__ import annotations

import json

import pytest

from hybrid_buildpack_libs.common import Sha256Digest
from hybrid_buildpack_libs.exceptions import AuthenticationError, RegistryError
from hybrid_buildpack_libs.image.media_types import IMAGE_MANIFEST
from hybrid_buildpack_libs.publish import (
    DockerConfigKeychain,
    ImageReference,
    RegistryClient,
    publish_image_async,
)
from hybrid_buildpack_libs.publish.registry import parse_auth_challenge
from tests.conftest import FakeRegistry, serve_fake_registry, write_docker_config


class TestParseAuthChallenge:
    def test_bearer(self):
        scheme, params = parse_auth_challenge(
            'Bearer realm="https://auth.example.com/token",service="registry",'
            'scope="repository:a/b:pull"'
        )

        assert scheme == "bearer"
        assert params == {
            "realm": "https://auth.example.com/token",
            "service": "registry",
            "scope": "repository:a/b:pull",
        }

    def test_basic(self):
        assert parse_auth_challenge('Basic realm="r"') == ("basic", {"realm": "r"})


class TestRegistryClient:
    async def test_blob_upload(self, fake_registry: FakeRegistry):
        contents = b"blob contents"
        digest = Sha256Digest.of(contents)

        async with RegistryClient(fake_registry.url) as client:
            assert not await client.check_blob_exists("hybrid", digest)
            assert await client.upload_blob("hybrid", contents, digest) == str(digest)
            assert await client.check_blob_exists("hybrid", digest)
            assert await client.get_blob("hybrid", digest) == contents

        assert fake_registry.blobs[str(digest)] == contents

    async def test_blob_upload_digest_mismatch(self, fake_registry: FakeRegistry):
        async with RegistryClient(fake_registry.url) as client:
            with pytest.raises(RegistryError, match="failed to upload blob"):
                await client.upload_blob(
                    "hybrid", b"contents", Sha256Digest.of(b"other")
                )

    async def test_manifest(self, fake_registry: FakeRegistry):
        manifest = b'{"schemaVersion": 2}'

        async with RegistryClient(fake_registry.url) as client:
            digest = await client.upload_manifest("a/hybrid", "latest", manifest)
            assert digest == str(Sha256Digest.of(manifest))
            assert await client.get_manifest("a/hybrid", "latest") == manifest

        assert fake_registry.manifests[("a/hybrid", "latest")][0] == IMAGE_MANIFEST

    async def test_missing_manifest(self, fake_registry: FakeRegistry):
        async with RegistryClient(fake_registry.url) as client:
            with pytest.raises(RegistryError, match="HTTP 404"):
                await client.get_manifest("hybrid", "not-exist")

    async def test_client_not_opened(self):
        client = RegistryClient("http://127.0.0.1:1")

        with pytest.raises(RegistryError, match="not opened"):
            await client.get_manifest("hybrid", "latest")

    async def test_connection_error(self):
        async with RegistryClient("http://127.0.0.1:1", timeout=5) as client:
            with pytest.raises(RegistryError):
                await client.check_blob_exists("hybrid", Sha256Digest.of(b""))

    async def test_push_image(self, fake_registry: FakeRegistry, assembled_image):
        async with RegistryClient(fake_registry.url) as client:
            digest = await client.push_image(assembled_image, "hybrid", "0.0.1")

        _, _manifest = fake_registry.manifests[("hybrid", "0.0.1")]
        assert _manifest == assembled_image.export_manifest()
        assert digest == str(Sha256Digest.of(_manifest))
        assert set(fake_registry.blobs) == {
            str(_digest) for _digest in assembled_image.blobs
        }

    async def test_push_skips_existing_blobs(
        self, fake_registry: FakeRegistry, assembled_image
    ):
        _base_layer = assembled_image.layers[0]
        fake_registry.blobs[str(_base_layer.digest)] = _base_layer.get_blob_from_blobs(
            assembled_image.blobs
        )

        async with RegistryClient(fake_registry.url) as client:
            await client.push_image(assembled_image, "hybrid", "latest")

        # one upload session for the hybrid layer and one for the config
        assert len(fake_registry.uploads) == 2


class TestRegistryAuthentication:
    @pytest.mark.parametrize("auth", ("bearer", "basic"))
    async def test_authenticated_push(self, auth, tmp_path, assembled_image):
        async with serve_fake_registry(FakeRegistry(auth=auth)) as registry:
            _reference = ImageReference.parse(
                f"{registry.url.split('://')[1]}/hybrid:latest"
            )
            keychain = DockerConfigKeychain(
                write_docker_config(tmp_path / "docker", _reference.registry)
            )

            async with RegistryClient(
                registry.url, registry=_reference.registry, keychain=keychain
            ) as client:
                await client.push_image(assembled_image, "hybrid", "latest")

        assert ("hybrid", "latest") in registry.manifests
        # all requests share the same scope, the challenge is answered only once
        assert registry.challenges == 1
        if auth == "bearer":
            assert registry.token_requests == [
                {"scope": "repository:hybrid:pull,push", "service": "fake-registry"}
            ]

    @pytest.mark.parametrize(
        "identity_token, expected_error",
        (
            (FakeRegistry.IDENTITY_TOKEN, None),
            ("expired", "token request"),
        ),
    )
    async def test_identity_token(
        self, identity_token, expected_error, tmp_path, assembled_image
    ):
        """Identity token is exchanged with the OAuth2 refresh token grant."""
        async with serve_fake_registry(FakeRegistry(auth="bearer")) as registry:
            _registry = registry.url.split("://")[1]
            _config_dir = tmp_path / "docker"
            _config_dir.mkdir()
            (_config_dir / "config.json").write_text(
                json.dumps({"auths": {_registry: {"identitytoken": identity_token}}})
            )

            async with RegistryClient(
                registry.url, keychain=DockerConfigKeychain(_config_dir)
            ) as client:
                if expected_error:
                    with pytest.raises(AuthenticationError, match=expected_error):
                        await client.push_image(assembled_image, "hybrid", "latest")
                else:
                    await client.push_image(assembled_image, "hybrid", "latest")

        assert registry.token_requests == [
            {
                "grant_type": "refresh_token",
                "refresh_token": identity_token,
                "client_id": "hybrid-buildpack",
                "scope": "repository:hybrid:pull,push",
                "service": "fake-registry",
            }
        ]
        assert (("hybrid", "latest") in registry.manifests) is (expected_error is None)

    async def test_wrong_credential(self, tmp_path):
        async with serve_fake_registry(FakeRegistry(auth="basic")) as registry:
            _registry = registry.url.split("://")[1]
            keychain = DockerConfigKeychain(
                write_docker_config(tmp_path / "docker", _registry, password="wrong")
            )

            async with RegistryClient(registry.url, keychain=keychain) as client:
                with pytest.raises(AuthenticationError, match="unauthorized"):
                    await client.check_blob_exists("hybrid", Sha256Digest.of(b""))

        # the challenge is answered once, no retry afterward
        assert registry.challenges == 2

    async def test_token_request_rejected(self, tmp_path):
        async with serve_fake_registry(FakeRegistry(auth="bearer")) as registry:
            _registry = registry.url.split("://")[1]
            keychain = DockerConfigKeychain(
                write_docker_config(tmp_path / "docker", _registry, password="wrong")
            )

            async with RegistryClient(registry.url, keychain=keychain) as client:
                with pytest.raises(AuthenticationError, match="token request"):
                    await client.get_manifest("hybrid", "latest")

    async def test_basic_auth_without_credential(self, tmp_path):
        async with serve_fake_registry(FakeRegistry(auth="basic")) as registry:
            keychain = DockerConfigKeychain(tmp_path / "empty")

            async with RegistryClient(registry.url, keychain=keychain) as client:
                with pytest.raises(AuthenticationError, match="no credential found"):
                    await client.get_manifest("hybrid", "latest")


class TestPublishToRegistry:
    async def test_publish_image_async(self, fake_registry, assembled_image, tmp_path):
        _reference = ImageReference.parse(
            f"{fake_registry.url.split('://')[1]}/buildpacks/hybrid:0.0.1"
        )
        assert _reference.scheme == "http"

        digest = await publish_image_async(
            assembled_image,
            _reference,
            publish=True,
            keychain=DockerConfigKeychain(tmp_path / "empty"),
        )

        _, _manifest = fake_registry.manifests[("buildpacks/hybrid", "0.0.1")]
        assert digest == str(Sha256Digest.of(_manifest))
        _parsed = json.loads(_manifest)
        assert _parsed["config"]["digest"] == str(assembled_image.manifest.config.digest)
