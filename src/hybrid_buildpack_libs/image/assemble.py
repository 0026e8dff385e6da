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
"""Compose the buildpackage image from the base layer and the hybrid layer."""

from __future__ import annotations

import logging
from typing import NamedTuple

from pydantic import ValidationError

from hybrid_buildpack_libs.common import BlobStore, Sha256Digest
from hybrid_buildpack_libs.exceptions import ImageAssembleError
from hybrid_buildpack_libs.hybrid_layer.writer import HybridLayer

from .schema import (
    LAYER_DESCRIPTOR_TYPES,
    ContainerConfig,
    HistoryEntry,
    ImageConfig,
    ImageManifest,
    LayerCompression,
    LayerDescriptor,
    RootFS,
)

logger = logging.getLogger(__name__)

DEFAULT_OS = "windows"
DEFAULT_ARCH = "amd64"


class AssembledImage(NamedTuple):
    manifest: ImageManifest
    config: ImageConfig
    blobs: BlobStore
    """All the blobs referenced by the manifest, config blob included."""

    @property
    def config_blob(self) -> bytes:
        return self.manifest.config.get_blob_from_blobs(self.blobs)

    @property
    def layers(self) -> list[LayerDescriptor]:
        return self.manifest.layers

    @property
    def diff_ids(self) -> list[Sha256Digest]:
        return self.config.rootfs.diff_ids

    @property
    def labels(self) -> dict[str, str]:
        return self.config.labels

    def export_manifest(self) -> bytes:
        return self.manifest.export_metafile().encode("utf-8")

    def layer_blobs(self) -> list[bytes]:
        """Uncompressed layer archives, in layer order."""
        return [
            _layer.retrieve_blob_contents(self.blobs, auto_decompress=True)
            for _layer in self.manifest.layers
        ]


def assemble_image(
    base_layer: bytes,
    hybrid_layer: HybridLayer,
    labels: dict[str, str],
    *,
    compression: LayerCompression = LayerCompression.gzip,
    os: str = DEFAULT_OS,
    architecture: str = DEFAULT_ARCH,
) -> AssembledImage:
    """Compose an image from scratch with <labels>, the base layer and the hybrid layer.

    Layers are appended in order: the base layer first, then the hybrid layer.

    Raises:
        ImageAssembleError: if the image config or manifest cannot be built.
    """
    _layer_descriptor_type = LAYER_DESCRIPTOR_TYPES[LayerCompression(compression)]
    _blobs: BlobStore = {}

    _layers, _diff_ids, _history = [], [], []
    for _layer_name, _layer_blob in (
        ("windows base layer", base_layer),
        ("hybrid layer", hybrid_layer.blob),
    ):
        _descriptor = _layer_descriptor_type.add_contents_to_blobs(_layer_blob, _blobs)
        _layers.append(_descriptor)
        _diff_ids.append(Sha256Digest.of(_layer_blob))
        _history.append(HistoryEntry(created_by=_layer_name))
        logger.info(
            f"append {_layer_name}: digest={_descriptor.digest}, size={_descriptor.size}"
        )

    if _diff_ids[-1] != hybrid_layer.diff_id:
        raise ImageAssembleError(
            f"hybrid layer diff_id mismatch: {_diff_ids[-1]} != {hybrid_layer.diff_id}"
        )

    try:
        _config = ImageConfig(
            architecture=architecture,
            os=os,
            config=ContainerConfig(labels=labels),
            rootfs=RootFS(diff_ids=_diff_ids),
            history=_history,
        )
        _config_descriptor = ImageConfig.Descriptor.export_metafile_to_blobs(
            _config, _blobs
        )
        _manifest = ImageManifest(config=_config_descriptor, layers=_layers)
    except (ValidationError, ValueError) as e:
        raise ImageAssembleError(f"failed to compose the image: {e}") from e

    return AssembledImage(manifest=_manifest, config=_config, blobs=_blobs)
