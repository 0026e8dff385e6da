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

import pytest

from hybrid_buildpack_libs.buildpack import BuildpackDescriptor, load_embedded_descriptor
from hybrid_buildpack_libs.buildpack.assets import (
    BUILD_BAT,
    BUILD_SH,
    BUILDPACK_TOML,
    DETECT_BAT,
    DETECT_SH,
)
from hybrid_buildpack_libs.exceptions import DescriptorParseError


class TestEmbeddedAssets:
    @pytest.mark.parametrize(
        "asset", (BUILDPACK_TOML, DETECT_BAT, BUILD_BAT, DETECT_SH, BUILD_SH)
    )
    def test_assets_are_stripped(self, asset: str):
        assert asset == asset.strip()

    def test_script_contents(self):
        assert DETECT_BAT == "exit 0"
        assert BUILD_BAT == "@echo off\necho Hello windows\nexit 0"
        assert DETECT_SH == "#!/bin/sh\nexit 0"
        assert BUILD_SH == "#!/bin/sh\necho Hello linux\nexit 0"


class TestBuildpackDescriptor:
    def test_load_embedded_descriptor(self):
        descriptor = load_embedded_descriptor()

        assert descriptor.api == "0.2"
        assert descriptor.id == "hybrid"
        assert descriptor.version == "0.0.1"
        assert descriptor.buildpack.name == "Hybrid OS Buildpack"
        assert [_stack.id for _stack in descriptor.stacks] == [
            "io.buildpacks.samples.stacks.nanoserver-1809",
            "io.buildpacks.samples.stacks.alpine",
        ]
        assert all(_stack.mixins is None for _stack in descriptor.stacks)

    def test_embedded_descriptor_is_cached(self):
        assert load_embedded_descriptor() is load_embedded_descriptor()

    def test_parse_toml_with_mixins(self):
        descriptor = BuildpackDescriptor.parse_toml(
            """
api = "0.2"

[buildpack]
id = "other"
version = "1.2.3"

[[stacks]]
id = "some.stack"
mixins = ["build:git"]
"""
        )

        assert descriptor.id == "other"
        assert descriptor.buildpack.name is None
        assert descriptor.stacks[0].mixins == ["build:git"]

    def test_parse_invalid_toml(self):
        with pytest.raises(DescriptorParseError, match="not valid TOML"):
            BuildpackDescriptor.parse_toml('api = "0.2"\n[buildpack')

    def test_parse_toml_missing_fields(self):
        with pytest.raises(DescriptorParseError, match="invalid buildpack descriptor"):
            BuildpackDescriptor.parse_toml('api = "0.2"\n[buildpack]\nid = "hybrid"')
