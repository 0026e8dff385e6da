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
"""Build the buildpackage image of the hybrid buildpack.

The steps are strictly linear:
    parse descriptor -> plan layer -> write archive -> digest -> labels -> assemble image
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from hybrid_buildpack_libs.buildpack import BuildpackDescriptor, load_embedded_descriptor
from hybrid_buildpack_libs.hybrid_layer.planner import plan_hybrid_layer
from hybrid_buildpack_libs.hybrid_layer.writer import HybridLayer, build_hybrid_layer
from hybrid_buildpack_libs.image import (
    AssembledImage,
    BaseLayerProvider,
    LayerCompression,
    assemble_image,
)
from hybrid_buildpack_libs.layer_metadata import LayerMetadata, generate_layer_metadata

logger = logging.getLogger(__name__)


class Buildpackage(NamedTuple):
    descriptor: BuildpackDescriptor
    layer: HybridLayer
    metadata: LayerMetadata
    image: AssembledImage


def build_buildpackage(
    base_layer_provider: BaseLayerProvider,
    *,
    compression: LayerCompression = LayerCompression.gzip,
) -> Buildpackage:
    """Build the hybrid layer and package it into an image over the Windows base layer.

    Raises:
        HybridBuildpackError: on any failed step, nothing is built.
    """
    _descriptor = load_embedded_descriptor()
    _layer = build_hybrid_layer(plan_hybrid_layer(_descriptor))
    logger.info(f"hybrid layer written: diff_id={_layer.diff_id}, size={_layer.size}")

    _metadata = generate_layer_metadata(_layer, _descriptor)
    _base_layer = base_layer_provider.read_base_layer()
    _image = assemble_image(
        _base_layer, _layer, _metadata.labels(), compression=compression
    )
    return Buildpackage(
        descriptor=_descriptor, layer=_layer, metadata=_metadata, image=_image
    )
