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
"""Image reference in form of `[registry/]repository[:tag]`."""

from __future__ import annotations

import ipaddress
import re

from pydantic import BaseModel, ConfigDict
from typing_extensions import Self

from hybrid_buildpack_libs.exceptions import InvalidReferenceError

DEFAULT_REGISTRY = "index.docker.io"
DOCKER_HUB_ALIASES = frozenset(["docker.io", "index.docker.io", "registry-1.docker.io"])
DEFAULT_TAG = "latest"
OFFICIAL_REPO_PREFIX = "library"

_PATH_COMPONENT_PA = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_PA = re.compile(r"^[\w][\w.-]{0,127}$")
_REGISTRY_PA = re.compile(
    r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*"
    r"|\[[0-9a-fA-F:]+\])(?::[0-9]+)?$"
)


def _is_registry_component(_component: str) -> bool:
    return "." in _component or ":" in _component or _component == "localhost"


def _is_loopback_registry(_registry: str) -> bool:
    _host = _registry
    if _host.startswith("["):
        _host = _host[1 : _host.index("]")]
    elif ":" in _host:
        _host = _host.rsplit(":", 1)[0]

    if _host == "localhost" or _host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(_host).is_loopback
    except ValueError:
        return False


class ImageReference(BaseModel):
    """A fully qualified reference to a tagged image."""

    model_config = ConfigDict(frozen=True)

    registry: str
    repository: str
    tag: str

    @classmethod
    def parse(cls, _ref: str) -> Self:
        """Parse an image reference string.

        Raises:
            InvalidReferenceError: if <_ref> is not a valid tagged reference.
        """
        if not _ref or _ref != _ref.strip():
            raise InvalidReferenceError(f"invalid image reference: {_ref!r}")
        if "@" in _ref:
            raise InvalidReferenceError(
                f"digest reference is not supported, a tag is required: {_ref}"
            )

        _registry, _remaining = DEFAULT_REGISTRY, _ref
        _first, _sep, _rest = _ref.partition("/")
        if _sep and _is_registry_component(_first):
            _registry, _remaining = _first, _rest
            if not _REGISTRY_PA.match(_registry):
                raise InvalidReferenceError(f"invalid registry in reference: {_ref}")
        if _registry in DOCKER_HUB_ALIASES:
            _registry = DEFAULT_REGISTRY

        _repository, _tag = _remaining, DEFAULT_TAG
        _last_slash = _remaining.rfind("/")
        _colon = _remaining.rfind(":")
        if _colon > _last_slash:
            _repository, _tag = _remaining[:_colon], _remaining[_colon + 1 :]
            if not _TAG_PA.match(_tag):
                raise InvalidReferenceError(f"invalid tag in reference: {_ref}")

        _components = _repository.split("/")
        if not all(_PATH_COMPONENT_PA.match(_c) for _c in _components):
            raise InvalidReferenceError(f"invalid repository in reference: {_ref}")
        if _registry == DEFAULT_REGISTRY and len(_components) == 1:
            _repository = f"{OFFICIAL_REPO_PREFIX}/{_repository}"

        return cls(registry=_registry, repository=_repository, tag=_tag)

    @property
    def scheme(self) -> str:
        return "http" if _is_loopback_registry(self.registry) else "https"

    @property
    def registry_url(self) -> str:
        return f"{self.scheme}://{self.registry}"

    @property
    def familiar_name(self) -> str:
        """The short name docker uses for this reference, like `ubuntu:latest`."""
        if self.registry != DEFAULT_REGISTRY:
            return str(self)

        _repository = self.repository
        _official_prefix = f"{OFFICIAL_REPO_PREFIX}/"
        if _repository.startswith(_official_prefix):
            _repository = _repository[len(_official_prefix) :]
        return f"{_repository}:{self.tag}"

    def __str__(self) -> str:
        return f"{self.registry}/{self.repository}:{self.tag}"
