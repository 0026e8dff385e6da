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
from pydantic_core import PydanticSerializationError

from hybrid_buildpack_libs.exceptions import LayerMetadataError
from hybrid_buildpack_libs.layer_metadata import (
    BUILDPACK_LAYERS,
    BUILDPACKAGE_METADATA,
    BuildpackLayers,
    generate_layer_metadata,
)

STACKS = [
    {"id": "io.buildpacks.samples.stacks.nanoserver-1809"},
    {"id": "io.buildpacks.samples.stacks.alpine"},
]


class TestGenerateLayerMetadata:
    def test_layers_label(self, layer_metadata, hybrid_layer):
        parsed = json.loads(layer_metadata.buildpack_layers)

        assert parsed == {
            "hybrid": {
                "0.0.1": {
                    "api": "0.2",
                    "stacks": STACKS,
                    "layerDiffID": str(hybrid_layer.diff_id),
                }
            }
        }

    def test_buildpackage_metadata_label(self, layer_metadata):
        parsed = json.loads(layer_metadata.buildpackage_metadata)

        assert parsed == {"id": "hybrid", "version": "0.0.1", "stacks": STACKS}

    def test_labels(self, layer_metadata):
        labels = layer_metadata.labels()

        assert set(labels) == {BUILDPACK_LAYERS, BUILDPACKAGE_METADATA}
        assert labels[BUILDPACK_LAYERS] == layer_metadata.buildpack_layers

    def test_label_keys(self):
        assert BUILDPACK_LAYERS == "io.buildpacks.buildpack.layers"
        assert BUILDPACKAGE_METADATA == "io.buildpacks.buildpackage.metadata"

    def test_from_raw_bytes(self, hybrid_layer, descriptor, layer_metadata):
        """Digest from raw archive bytes matches the one of the finished layer."""
        metadata = generate_layer_metadata(hybrid_layer.blob, descriptor)

        assert metadata == layer_metadata
        assert metadata.diff_id == hybrid_layer.diff_id

    def test_digest_is_lowercase_hex(self, layer_metadata):
        _alg, _hex = str(layer_metadata.diff_id).split(":")

        assert _alg == "sha256"
        assert _hex == _hex.lower() and len(_hex) == 64

    def test_layers_label_round_trip_lookup(self, layer_metadata, hybrid_layer):
        layers = BuildpackLayers.model_validate_json(layer_metadata.buildpack_layers)

        _info = layers.find_layer("hybrid", "0.0.1")
        assert _info is not None
        assert _info.layer_diff_id == hybrid_layer.diff_id
        assert layers.find_layer("hybrid", "9.9.9") is None

    def test_serialization_failure(self, mocker, hybrid_layer, descriptor):
        mocker.patch.object(
            BuildpackLayers,
            "model_dump_json",
            side_effect=PydanticSerializationError("boom"),
        )

        with pytest.raises(LayerMetadataError, match="failed to serialize"):
            generate_layer_metadata(hybrid_layer, descriptor)
