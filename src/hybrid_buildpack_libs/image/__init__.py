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

from .assemble import AssembledImage, assemble_image
from .base_layer import (
    BaseLayerProvider,
    BytesBaseLayerProvider,
    TarFileBaseLayerProvider,
)
from .docker_archive import write_docker_archive
from .schema import ImageConfig, ImageManifest, LayerCompression

__all__ = [
    "AssembledImage",
    "assemble_image",
    "BaseLayerProvider",
    "BytesBaseLayerProvider",
    "TarFileBaseLayerProvider",
    "write_docker_archive",
    "ImageConfig",
    "ImageManifest",
    "LayerCompression",
]
