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
"""Libraries for building the hybrid layer.

The hybrid layer is a single tar archive that is readable by both Linux and Windows
container runtimes, with the following constrains:

1. Windows reads the layer from the `Files` root, Linux reads it from `/`.
2. Linux checks permission of every ancestor directory of a path, so every ancestor
    of a Linux-readable entry carries a POSIX mode.
3. Windows only checks the file and its immediate parent directory, so grandparent
    directories only need a POSIX mode, while the parent of a Windows-readable file
    carries a security descriptor(as PAX record `MSWINDOWS.rawsd`).
4. The buildpack is installed once under the Windows root, and the Linux path is a
    symlink pointing to the absolute Windows path. No file contents are duplicated.
5. All entries have fixed metadata and a fixed order, the same input always gives
    the same archive.
"""

LINUX_READ_MODE = 0o777

# a self-relative security descriptor granting read access, base64 encoded
WINDOWS_READ_SECURITY_DESCRIPTOR = (
    "AQAAgBQAAAAoAAAAAAAAAAAAAAABAwAAAAAABV0AAAACAAAAAQAAAAEDAAAAAAAFXQAAAAIAAAABAAAA"
)
MSWINDOWS_RAWSD_PAX_KEY = "MSWINDOWS.rawsd"

# some constants that required for making a reproducible layer build
DEFAULT_MTIME = 0
DEFAULT_UID = DEFAULT_GID = 0

WINDOWS_FILES_ROOT = "Files"
WINDOWS_HIVES_ROOT = "Hives"
LINUX_CNB_ROOT = "cnb"
BUILDPACKS_DIR = "buildpacks"
