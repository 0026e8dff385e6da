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
"""Fixed contents shipped within the hybrid buildpack.

All the contents have surrounding whitespaces stripped, and are written into
    the hybrid layer byte-for-byte.
"""

BUILDPACK_TOML = """
api = "0.2"

[buildpack]
id = "hybrid"
version = "0.0.1"
name = "Hybrid OS Buildpack"

[[stacks]]
id = "io.buildpacks.samples.stacks.nanoserver-1809"

[[stacks]]
id = "io.buildpacks.samples.stacks.alpine"
""".strip()

#
# ------ Windows dispatch scripts ------ #
#

DETECT_BAT = """
exit 0
""".strip()

BUILD_BAT = """
@echo off
echo Hello windows
exit 0
""".strip()

#
# ------ Linux dispatch scripts ------ #
#

DETECT_SH = """
#!/bin/sh
exit 0
""".strip()

BUILD_SH = """
#!/bin/sh
echo Hello linux
exit 0
""".strip()
