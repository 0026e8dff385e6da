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
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from hybrid_buildpack_libs.buildpackage import build_buildpackage
from hybrid_buildpack_libs.exceptions import HybridBuildpackError
from hybrid_buildpack_libs.image import LayerCompression, TarFileBaseLayerProvider
from hybrid_buildpack_libs.publish import ImageReference, publish_image
from hybrid_buildpack_tools._utils import exit_with_err_msg

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace

logger = logging.getLogger(__name__)

BASE_LAYER_ENV = "HYBRID_BUILDPACK_BASE_LAYER"
LAYER_COMPRESSION_ENV = "HYBRID_BUILDPACK_LAYER_COMPRESSION"
DOCKER_HOST_ENV = "DOCKER_HOST"


class BuildConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    reference: ImageReference
    publish: bool = False
    base_layer: Path
    layer_compression: LayerCompression = LayerCompression.gzip
    docker_host: Optional[str] = None

    @classmethod
    def from_args(cls, args: Namespace) -> BuildConfig:
        """Collect the config from cmdline args, with environment fallbacks.

        Raises:
            HybridBuildpackError: if the config is invalid.
        """
        _reference = ImageReference.parse(args.ref)

        _base_layer = args.base_layer or os.environ.get(BASE_LAYER_ENV)
        if not _base_layer:
            raise HybridBuildpackError(
                f"Windows base layer is required, specify with --base-layer or {BASE_LAYER_ENV}"
            )

        _compression = args.layer_compression or os.environ.get(
            LAYER_COMPRESSION_ENV, LayerCompression.gzip.value
        )
        try:
            return cls(
                reference=_reference,
                publish=args.publish,
                base_layer=Path(_base_layer),
                layer_compression=_compression,
                docker_host=os.environ.get(DOCKER_HOST_ENV) or None,
            )
        except ValidationError as e:
            raise HybridBuildpackError(f"invalid config: {e}") from e


def build_cmd_args(arg_parser: ArgumentParser) -> None:
    arg_parser.add_argument(
        "--ref",
        help=(
            "Image reference to write the buildpackage image to, "
            f"the Windows base layer must also be given with --base-layer or ${BASE_LAYER_ENV}."
        ),
    )
    arg_parser.add_argument(
        "--publish",
        action="store_true",
        help="Push the image to the registry instead of the local docker daemon.",
    )
    arg_parser.add_argument(
        "--base-layer",
        help=(
            "Required, the Windows base layer tarball(plain, gzip or zstd compressed), "
            f"default to ${BASE_LAYER_ENV}."
        ),
    )
    arg_parser.add_argument(
        "--layer-compression",
        choices=[_c.value for _c in LayerCompression],
        help=f"Compression of image layers, default to ${LAYER_COMPRESSION_ENV} or gzip.",
    )
    arg_parser.set_defaults(handler=build_cmd)


def build_cmd(args: Namespace) -> None:
    logger.debug(f"calling {build_cmd.__name__} with {args}")
    try:
        _config = BuildConfig.from_args(args)
    except HybridBuildpackError as e:
        logger.error(f"invalid config: {e}")
        exit_with_err_msg(str(e))

    try:
        _buildpackage = build_buildpackage(
            TarFileBaseLayerProvider(_config.base_layer),
            compression=_config.layer_compression,
        )
        publish_image(
            _buildpackage.image,
            _config.reference,
            publish=_config.publish,
            docker_host=_config.docker_host,
        )
    except HybridBuildpackError as e:
        logger.error(f"failed to write buildpackage image: {e!r}")
        exit_with_err_msg(str(e))

    print("image and layer written")
