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
"""Exceptions raised while building and publishing the buildpackage image."""


class HybridBuildpackError(Exception):
    """Base exception for all hybrid buildpack build errors."""

    pass


class InvalidReferenceError(HybridBuildpackError, ValueError):
    """Raised when the image reference cannot be parsed."""

    pass


class DescriptorParseError(HybridBuildpackError):
    """Raised when the buildpack descriptor is malformed."""

    pass


class LayerPlanError(HybridBuildpackError):
    """Raised when the hybrid layer plan breaks a path or permission rule."""

    pass


class ArchiveWriteError(HybridBuildpackError):
    """Raised when an entry cannot be written into the hybrid layer archive."""

    pass


class LayerMetadataError(HybridBuildpackError):
    """Raised when the layer metadata labels cannot be generated."""

    pass


class BaseLayerError(HybridBuildpackError):
    """Raised when the Windows base layer cannot be obtained."""

    pass


class ImageAssembleError(HybridBuildpackError):
    """Raised when the image cannot be composed."""

    pass


class PublishError(HybridBuildpackError):
    """Base exception for errors writing the image to a sink."""

    pass


class RegistryError(PublishError):
    """Raised when a registry operation fails."""

    pass


class AuthenticationError(RegistryError):
    """Raised when the registry rejects our credentials."""

    pass


class DaemonError(PublishError):
    """Raised when the local image daemon fails to load the image."""

    pass
