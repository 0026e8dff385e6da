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
"""Publish the assembled image to the local daemon or to a registry."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from hybrid_buildpack_libs.image.assemble import AssembledImage
from hybrid_buildpack_libs.image.docker_archive import write_docker_archive

from .auth import Credential, DockerConfigKeychain
from .daemon import DaemonClient, DaemonEndpoint
from .reference import ImageReference
from .registry import RegistryClient

logger = logging.getLogger(__name__)

__all__ = [
    "Credential",
    "DockerConfigKeychain",
    "DaemonClient",
    "DaemonEndpoint",
    "ImageReference",
    "RegistryClient",
    "publish_image",
    "publish_image_async",
]


async def publish_image_async(
    image: AssembledImage,
    reference: ImageReference,
    *,
    publish: bool = False,
    keychain: Optional[DockerConfigKeychain] = None,
    docker_host: Optional[str] = None,
) -> str:
    if publish:
        logger.info(f"push image to registry: {reference}")
        async with RegistryClient(
            reference.registry_url,
            registry=reference.registry,
            keychain=keychain or DockerConfigKeychain(),
        ) as _client:
            return await _client.push_image(
                image, reference.repository, reference.tag
            )

    logger.info(f"load image into local daemon: {reference.familiar_name}")
    _archive = write_docker_archive(image, [reference.familiar_name])
    async with DaemonClient(docker_host) as _client:
        await _client.load_image(_archive)
    return str(image.manifest.config.digest)


def publish_image(
    image: AssembledImage,
    reference: Union[ImageReference, str],
    *,
    publish: bool = False,
    keychain: Optional[DockerConfigKeychain] = None,
    docker_host: Optional[str] = None,
) -> str:
    """Write <image> to the local daemon, or to the registry when <publish> is True.

    This is a single blocking call, no retry is done on failure.

    Returns:
        The manifest digest when pushed to registry, or the image id when
            loaded into the local daemon.

    Raises:
        InvalidReferenceError: if <reference> is not a valid tagged reference.
        PublishError: if the image cannot be written to the sink.
    """
    if isinstance(reference, str):
        reference = ImageReference.parse(reference)
    return asyncio.run(
        publish_image_async(
            image,
            reference,
            publish=publish,
            keychain=keychain,
            docker_host=docker_host,
        )
    )
