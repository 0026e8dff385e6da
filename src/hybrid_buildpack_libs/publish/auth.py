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
"""Resolve registry credentials from the docker client config.

The lookup order for a registry is:
1. `credHelpers.<registry>` in the config.json,
2. `auths.<registry>` in the config.json, `auth` or `username`/`password`,
3. the default `credsStore`.

If nothing is found, the registry is accessed anonymously.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import subprocess
from functools import cached_property
from pathlib import Path
from typing import Dict, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hybrid_buildpack_libs.exceptions import AuthenticationError

from .reference import DEFAULT_REGISTRY

logger = logging.getLogger(__name__)

DOCKER_CONFIG_ENV = "DOCKER_CONFIG"
DOCKER_CONFIG_FNAME = "config.json"
DOCKER_HUB_AUTH_KEY = "https://index.docker.io/v1/"
CRED_HELPER_PREFIX = "docker-credential-"
CRED_HELPER_NOT_FOUND = "credentials not found"
# username returned by credential helpers for identity tokens
IDENTITY_TOKEN_USERNAME = "<token>"


class Credential(NamedTuple):
    username: str
    password: str

    @property
    def is_identity_token(self) -> bool:
        return self.username == IDENTITY_TOKEN_USERNAME

    def basic_auth(self) -> str:
        _raw = f"{self.username}:{self.password}".encode()
        return base64.b64encode(_raw).decode()


class DockerAuthEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auth: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    identitytoken: Optional[str] = None

    def to_credential(self) -> Optional[Credential]:
        if self.identitytoken:
            return Credential(IDENTITY_TOKEN_USERNAME, self.identitytoken)
        if self.auth:
            try:
                _decoded = base64.b64decode(self.auth).decode()
            except ValueError as e:
                raise AuthenticationError(f"invalid auth entry: {e}") from e
            _username, _sep, _password = _decoded.partition(":")
            if not _sep:
                raise AuthenticationError("invalid auth entry: missing password")
            return Credential(_username, _password)
        if self.username and self.password is not None:
            return Credential(self.username, self.password)
        return None


class DockerConfigFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auths: Dict[str, DockerAuthEntry] = Field(default_factory=dict)
    credHelpers: Dict[str, str] = Field(default_factory=dict)
    credsStore: Optional[str] = None


def _registry_keys(registry: str) -> list[str]:
    """All the keys a registry might be recorded with in the config.json."""
    if registry == DEFAULT_REGISTRY:
        return [DOCKER_HUB_AUTH_KEY, "index.docker.io", "docker.io"]
    return [registry, f"https://{registry}", f"http://{registry}"]


def _server_url(registry: str) -> str:
    return DOCKER_HUB_AUTH_KEY if registry == DEFAULT_REGISTRY else registry


def call_credential_helper(helper: str, server_url: str) -> Optional[Credential]:
    """Get the credential for <server_url> with `docker-credential-<helper> get`."""
    _cmd = f"{CRED_HELPER_PREFIX}{helper}"
    try:
        _res = subprocess.run(
            [_cmd, "get"],
            input=server_url.encode(),
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise AuthenticationError(f"failed to call {_cmd}: {e}") from e

    if _res.returncode != 0:
        _output = (_res.stdout or _res.stderr).decode(errors="replace").strip()
        if CRED_HELPER_NOT_FOUND in _output:
            return None
        raise AuthenticationError(f"{_cmd} failed: {_output}")

    try:
        _parsed = json.loads(_res.stdout)
        return Credential(_parsed["Username"], _parsed["Secret"])
    except (ValueError, KeyError, TypeError) as e:
        raise AuthenticationError(f"invalid output from {_cmd}: {e}") from e


class DockerConfigKeychain:
    """Registry credentials recorded in docker's config.json."""

    def __init__(self, config_dir: Union[str, Path, None] = None) -> None:
        if config_dir is None:
            config_dir = os.environ.get(DOCKER_CONFIG_ENV) or Path.home() / ".docker"
        self.config_fpath = Path(config_dir) / DOCKER_CONFIG_FNAME

    @cached_property
    def config(self) -> DockerConfigFile:
        if not self.config_fpath.is_file():
            logger.debug(f"{self.config_fpath} not found, use anonymous access")
            return DockerConfigFile()

        try:
            return DockerConfigFile.model_validate_json(self.config_fpath.read_bytes())
        except (OSError, ValidationError) as e:
            raise AuthenticationError(
                f"failed to load docker config {self.config_fpath}: {e}"
            ) from e

    def resolve(self, registry: str) -> Optional[Credential]:
        """Find the credential for <registry>, None for anonymous access."""
        _config = self.config
        _keys = _registry_keys(registry)

        for _key in _keys:
            if _helper := _config.credHelpers.get(_key):
                logger.debug(f"use credential helper {_helper} for {registry}")
                return call_credential_helper(_helper, _server_url(registry))

        for _key in _keys:
            _entry = _config.auths.get(_key)
            if _entry and (_cred := _entry.to_credential()):
                logger.debug(f"use credential from docker config for {registry}")
                return _cred

        if _config.credsStore:
            logger.debug(f"use credential store {_config.credsStore} for {registry}")
            return call_credential_helper(_config.credsStore, _server_url(registry))
        return None
