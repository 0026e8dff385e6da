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
"""OCI image config and image manifest, only the subset used by the buildpackage image.

See https://github.com/opencontainers/image-spec/blob/main/config.md and
    https://github.com/opencontainers/image-spec/blob/main/manifest.md for more details.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Union

from pydantic import BaseModel, Field

from hybrid_buildpack_libs.common import (
    AliasEnabledModel,
    MediaType,
    MetaFileBase,
    MetaFileDescriptor,
    OCIDescriptor,
    SchemaVersion,
    Sha256Digest,
)

from .media_types import (
    IMAGE_CONFIG,
    IMAGE_LAYER,
    IMAGE_LAYER_GZIP,
    IMAGE_LAYER_ZSTD,
    IMAGE_MANIFEST,
)


class LayerCompression(str, Enum):
    gzip = "gzip"
    zstd = "zstd"
    none = "none"


class UncompressedLayerDescriptor(OCIDescriptor):
    MediaType = MediaType[IMAGE_LAYER]


class GzipLayerDescriptor(OCIDescriptor):
    MediaType = MediaType[IMAGE_LAYER_GZIP]


class ZstdLayerDescriptor(OCIDescriptor):
    MediaType = MediaType[IMAGE_LAYER_ZSTD]


LayerDescriptor = Union[GzipLayerDescriptor, ZstdLayerDescriptor, UncompressedLayerDescriptor]

LAYER_DESCRIPTOR_TYPES: dict[LayerCompression, type[OCIDescriptor]] = {
    LayerCompression.gzip: GzipLayerDescriptor,
    LayerCompression.zstd: ZstdLayerDescriptor,
    LayerCompression.none: UncompressedLayerDescriptor,
}


class ContainerConfig(AliasEnabledModel):
    labels: Dict[str, str] = Field(alias="Labels", default_factory=dict)


class RootFS(BaseModel):
    type: Literal["layers"] = "layers"
    diff_ids: List[Sha256Digest] = []


class HistoryEntry(AliasEnabledModel):
    created_by: Union[str, None] = None
    comment: Union[str, None] = None


class ImageConfig(MetaFileBase):
    class Descriptor(MetaFileDescriptor["ImageConfig"]):
        MediaType = MediaType[IMAGE_CONFIG]

    MediaType = MediaType[IMAGE_CONFIG]
    EmbedMediaType = False

    architecture: str
    os: str
    config: ContainerConfig = Field(default_factory=ContainerConfig)
    rootfs: RootFS = Field(default_factory=RootFS)
    history: List[HistoryEntry] = []

    @property
    def labels(self) -> dict[str, str]:
        return self.config.labels


class ImageManifest(MetaFileBase):
    class Descriptor(MetaFileDescriptor["ImageManifest"]):
        MediaType = MediaType[IMAGE_MANIFEST]

    SchemaVersion = SchemaVersion[2]
    MediaType = MediaType[IMAGE_MANIFEST]

    config: ImageConfig.Descriptor
    layers: List[LayerDescriptor]
