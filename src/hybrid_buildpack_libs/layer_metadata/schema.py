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

from typing import Dict, List

from pydantic import Field, RootModel

from hybrid_buildpack_libs.buildpack.descriptor import BuildpackStack
from hybrid_buildpack_libs.common import AliasEnabledModel, Sha256Digest


class BuildpackLayerInfo(AliasEnabledModel):
    api: str
    stacks: List[BuildpackStack]
    layer_diff_id: Sha256Digest = Field(alias="layerDiffID")


class BuildpackLayers(RootModel[Dict[str, Dict[str, BuildpackLayerInfo]]]):
    """Layer index of `io.buildpacks.buildpack.layers` label.

    Nested as {<buildpack id>: {<buildpack version>: <layer info>}}.
    """

    def find_layer(self, buildpack_id: str, version: str) -> BuildpackLayerInfo | None:
        return self.root.get(buildpack_id, {}).get(version)


class BuildpackageMetadata(AliasEnabledModel):
    """Metadata of `io.buildpacks.buildpackage.metadata` label."""

    id: str
    version: str
    stacks: List[BuildpackStack]
