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

import logging
from typing import NamedTuple, Union

from pydantic_core import PydanticSerializationError

from hybrid_buildpack_libs.buildpack.descriptor import BuildpackDescriptor
from hybrid_buildpack_libs.common import Sha256Digest
from hybrid_buildpack_libs.exceptions import LayerMetadataError
from hybrid_buildpack_libs.hybrid_layer.writer import HybridLayer

from .label_keys import BUILDPACK_LAYERS, BUILDPACKAGE_METADATA
from .schema import BuildpackageMetadata, BuildpackLayerInfo, BuildpackLayers

logger = logging.getLogger(__name__)


class LayerMetadata(NamedTuple):
    diff_id: Sha256Digest
    buildpack_layers: str
    """JSON of the layer index, value of `io.buildpacks.buildpack.layers`."""
    buildpackage_metadata: str
    """JSON of the package metadata, value of `io.buildpacks.buildpackage.metadata`."""

    def labels(self) -> dict[str, str]:
        return {
            BUILDPACK_LAYERS: self.buildpack_layers,
            BUILDPACKAGE_METADATA: self.buildpackage_metadata,
        }


def generate_layer_metadata(
    layer: Union[HybridLayer, bytes], descriptor: BuildpackDescriptor
) -> LayerMetadata:
    """Generate the buildpackage labels referencing <layer>.

    The output only depends on the archive bytes and the descriptor.

    Raises:
        LayerMetadataError: if the labels cannot be serialized.
    """
    if isinstance(layer, HybridLayer):
        _diff_id = layer.diff_id
    else:
        _diff_id = Sha256Digest.of(layer)

    _layers = BuildpackLayers(
        {
            descriptor.id: {
                descriptor.version: BuildpackLayerInfo(
                    api=descriptor.api,
                    stacks=descriptor.stacks,
                    layer_diff_id=_diff_id,
                )
            }
        }
    )
    _metadata = BuildpackageMetadata(
        id=descriptor.id,
        version=descriptor.version,
        stacks=descriptor.stacks,
    )

    try:
        _layers_json = _layers.model_dump_json(by_alias=True, exclude_none=True)
        _metadata_json = _metadata.model_dump_json(by_alias=True, exclude_none=True)
    except PydanticSerializationError as e:
        raise LayerMetadataError(f"failed to serialize layer metadata: {e}") from e

    logger.debug(f"{BUILDPACK_LAYERS}={_layers_json}")
    logger.debug(f"{BUILDPACKAGE_METADATA}={_metadata_json}")
    return LayerMetadata(
        diff_id=_diff_id,
        buildpack_layers=_layers_json,
        buildpackage_metadata=_metadata_json,
    )
