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

import sys


def main():
    import argparse
    import logging
    from collections.abc import Callable

    from hybrid_buildpack_libs import version
    from hybrid_buildpack_tools._utils import configure_logging

    from .cmds import build_cmd_args

    logger = logging.getLogger(__name__)

    arg_parser = argparse.ArgumentParser(
        prog="hybrid-buildpack",
        description=(
            "Build the hybrid Linux/Windows buildpack layer, package it into "
            "an image and write the image to the local daemon or a registry."
        ),
    )

    # ------ top-level parser ------ #
    arg_parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging for this script",
    )
    arg_parser.add_argument(
        "--version",
        action="version",
        version=f"Build with hybrid-buildpack-libs v{version}.",
    )
    build_cmd_args(arg_parser)

    # ------ top-level args parsing ----- #
    args = arg_parser.parse_args()
    if not args.ref:
        print(arg_parser.format_help())
        sys.exit(1)

    if args.debug:
        configure_logging(logging.DEBUG)
        logger.debug("Set to debug logging.")
    else:
        configure_logging(logging.INFO)

    # ------ execute command ------ #
    handler: Callable = args.handler
    handler(args)


if __name__ == "__main__":
    main()
