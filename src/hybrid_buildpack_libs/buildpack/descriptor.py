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
"""Buildpack descriptor(buildpack.toml) schema.

See https://github.com/buildpacks/spec/blob/main/buildpack.md#buildpacktoml-toml for more details.
"""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from typing import List, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from typing_extensions import Self

from hybrid_buildpack_libs.exceptions import DescriptorParseError

from .assets import BUILDPACK_TOML

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)


class BuildpackInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    version: str
    name: Union[str, None] = None


class BuildpackStack(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    mixins: Union[List[str], None] = None


class BuildpackDescriptor(BaseModel):
    """Identity and compatibility record of a buildpack."""

    model_config = ConfigDict(frozen=True)

    api: str
    buildpack: BuildpackInfo
    stacks: List[BuildpackStack] = []

    @property
    def id(self) -> str:
        return self.buildpack.id

    @property
    def version(self) -> str:
        return self.buildpack.version

    @classmethod
    def parse_toml(cls, _input: str) -> Self:
        try:
            _raw = tomllib.loads(_input)
        except tomllib.TOMLDecodeError as e:
            raise DescriptorParseError(f"buildpack descriptor is not valid TOML: {e}") from e

        try:
            return cls.model_validate(_raw)
        except ValidationError as e:
            raise DescriptorParseError(f"invalid buildpack descriptor: {e}") from e


@lru_cache(maxsize=1)
def load_embedded_descriptor() -> BuildpackDescriptor:
    """Parse the buildpack.toml shipped within this package."""
    _descriptor = BuildpackDescriptor.parse_toml(BUILDPACK_TOML)
    logger.debug(f"loaded embedded buildpack descriptor: {_descriptor}")
    return _descriptor
