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
"""Plan the path layout and the permission shape of every hybrid layer entry."""

from __future__ import annotations

import logging
import posixpath
from typing import Iterable, NamedTuple, Union

from hybrid_buildpack_libs.buildpack.assets import (
    BUILD_BAT,
    BUILD_SH,
    BUILDPACK_TOML,
    DETECT_BAT,
    DETECT_SH,
)
from hybrid_buildpack_libs.buildpack.descriptor import BuildpackDescriptor
from hybrid_buildpack_libs.exceptions import LayerPlanError

from . import (
    BUILDPACKS_DIR,
    LINUX_CNB_ROOT,
    LINUX_READ_MODE,
    WINDOWS_FILES_ROOT,
    WINDOWS_HIVES_ROOT,
    WINDOWS_READ_SECURITY_DESCRIPTOR,
)
from .entry import ArchiveEntry, EntryKind, OSAccess

logger = logging.getLogger(__name__)

BUILDPACK_TOML_FNAME = "buildpack.toml"
BIN_DIR = "bin"

WINDOWS_ROOTS = (WINDOWS_FILES_ROOT, WINDOWS_HIVES_ROOT)


class PathPolicy(NamedTuple):
    """One row of the layer policy table."""

    path: str
    kind: EntryKind
    access: OSAccess
    content: bytes = b""
    symlink_target: Union[str, None] = None


def windows_install_dir(descriptor: BuildpackDescriptor) -> str:
    """Buildpack installation dir, relative to the layer root."""
    return posixpath.join(
        WINDOWS_FILES_ROOT,
        LINUX_CNB_ROOT,
        BUILDPACKS_DIR,
        descriptor.id,
        descriptor.version,
    )


def linux_install_dir(descriptor: BuildpackDescriptor) -> str:
    return posixpath.join(
        LINUX_CNB_ROOT, BUILDPACKS_DIR, descriptor.id, descriptor.version
    )


def layer_policy_table(
    descriptor: BuildpackDescriptor,
    *,
    buildpack_toml: str = BUILDPACK_TOML,
) -> list[PathPolicy]:
    """The ordered policy table of the hybrid layer, Windows subtree first."""
    _win_bp_dir = posixpath.join(
        WINDOWS_FILES_ROOT, LINUX_CNB_ROOT, BUILDPACKS_DIR, descriptor.id
    )
    _win_install_dir = windows_install_dir(descriptor)
    _win_bin_dir = posixpath.join(_win_install_dir, BIN_DIR)
    _linux_bp_dir = posixpath.join(LINUX_CNB_ROOT, BUILDPACKS_DIR, descriptor.id)

    _dir, _file = EntryKind.directory, EntryKind.regular
    _linux, _windows, _both = OSAccess.LINUX, OSAccess.WINDOWS, OSAccess.BOTH

    # fmt: off
    return [
        # standard Windows root directories and the buildpack parent-directory hierarchy,
        #   Windows doesn't check grandparent permissions, only Linux needs them.
        PathPolicy(WINDOWS_FILES_ROOT, _dir, _linux),
        PathPolicy(WINDOWS_HIVES_ROOT, _dir, _linux),
        PathPolicy(posixpath.join(WINDOWS_FILES_ROOT, LINUX_CNB_ROOT), _dir, _linux),
        PathPolicy(posixpath.join(WINDOWS_FILES_ROOT, LINUX_CNB_ROOT, BUILDPACKS_DIR), _dir, _linux),
        PathPolicy(_win_bp_dir, _dir, _linux),
        # shared by both OSes: install dir, buildpack.toml and the bin dir
        PathPolicy(_win_install_dir, _dir, _both),
        PathPolicy(posixpath.join(_win_install_dir, BUILDPACK_TOML_FNAME), _file, _both, buildpack_toml.encode()),
        PathPolicy(_win_bin_dir, _dir, _both),
        # OS specific dispatch scripts
        PathPolicy(posixpath.join(_win_bin_dir, "detect.bat"), _file, _windows, DETECT_BAT.encode()),
        PathPolicy(posixpath.join(_win_bin_dir, "build.bat"), _file, _windows, BUILD_BAT.encode()),
        PathPolicy(posixpath.join(_win_bin_dir, "detect"), _file, _linux, DETECT_SH.encode()),
        PathPolicy(posixpath.join(_win_bin_dir, "build"), _file, _linux, BUILD_SH.encode()),
        # Linux parent-directory hierarchy, relative to the layer root(no leading /)
        PathPolicy(LINUX_CNB_ROOT, _dir, _linux),
        PathPolicy(posixpath.join(LINUX_CNB_ROOT, BUILDPACKS_DIR), _dir, _linux),
        PathPolicy(_linux_bp_dir, _dir, _linux),
        # the Linux install dir is a symlink to the absolute Windows install dir
        PathPolicy(
            linux_install_dir(descriptor), EntryKind.symlink, _linux,
            symlink_target=f"/{_win_install_dir}",
        ),
    ]
    # fmt: on


def entry_from_policy(policy: PathPolicy) -> ArchiveEntry:
    return ArchiveEntry(
        path=policy.path,
        kind=policy.kind,
        content=policy.content,
        posix_mode=LINUX_READ_MODE if OSAccess.LINUX in policy.access else None,
        windows_security_descriptor=(
            WINDOWS_READ_SECURITY_DESCRIPTOR
            if OSAccess.WINDOWS in policy.access
            else None
        ),
        symlink_target=policy.symlink_target,
    )


def _is_windows_subtree(path: str) -> bool:
    return path.split("/", 1)[0] in WINDOWS_ROOTS


def check_layer_plan(entries: Iterable[ArchiveEntry]) -> None:
    """Verify the path and permission rules of a layer plan.

    Raises:
        LayerPlanError: on the first violated rule.
    """
    _seen: dict[str, ArchiveEntry] = {}
    _in_linux_subtree = False

    for _entry in entries:
        _path = _entry.path
        if _path in _seen:
            raise LayerPlanError(f"{_path} is planned more than once")

        if _is_windows_subtree(_path):
            if _in_linux_subtree:
                raise LayerPlanError(
                    f"{_path}: Windows subtree must be emitted before the Linux subtree"
                )
        else:
            _in_linux_subtree = True

        if (_parent_path := _entry.parent) is not None:
            if not (_parent := _seen.get(_parent_path)):
                raise LayerPlanError(f"{_path}: parent {_parent_path} not emitted before it")
            if _parent.kind != EntryKind.directory:
                raise LayerPlanError(f"{_path}: parent {_parent_path} is not a directory")

            # Linux checks every ancestor, check the parent here, ancestors
            #   above are covered when the parent itself was checked.
            if OSAccess.LINUX in _entry.access and OSAccess.LINUX not in _parent.access:
                raise LayerPlanError(
                    f"{_path} is Linux-readable but its parent {_parent_path} is not"
                )
            # Windows only checks the immediate parent of a file
            if (
                _entry.kind == EntryKind.regular
                and OSAccess.WINDOWS in _entry.access
                and OSAccess.WINDOWS not in _parent.access
            ):
                raise LayerPlanError(
                    f"{_path} is Windows-readable but its parent {_parent_path} is not"
                )

        _seen[_path] = _entry


def plan_hybrid_layer(
    descriptor: BuildpackDescriptor,
    *,
    buildpack_toml: str = BUILDPACK_TOML,
) -> list[ArchiveEntry]:
    """Plan the ordered entries of the hybrid layer for <descriptor>."""
    _entries = [
        entry_from_policy(_policy)
        for _policy in layer_policy_table(descriptor, buildpack_toml=buildpack_toml)
    ]
    check_layer_plan(_entries)
    logger.debug(
        f"planned {len(_entries)} entries for buildpack {descriptor.id}@{descriptor.version}"
    )
    return _entries
