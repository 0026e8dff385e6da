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
"""A single filesystem node of the hybrid layer."""

from __future__ import annotations

import posixpath
from enum import Enum, Flag
from typing import Union

from pydantic import BaseModel, ConfigDict, model_validator
from typing_extensions import Self


class EntryKind(str, Enum):
    directory = "directory"
    regular = "regular"
    symlink = "symlink"


class OSAccess(Flag):
    """Which OS(es) must be able to resolve a path."""

    NONE = 0
    LINUX = 1
    WINDOWS = 2
    BOTH = LINUX | WINDOWS


class ArchiveEntry(BaseModel):
    """One filesystem node in the hybrid layer.

    `posix_mode` is set when Linux must resolve the path(or traverse it to reach
        its children), `windows_security_descriptor` is set when Windows must
        resolve the path.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    kind: EntryKind
    content: bytes = b""
    posix_mode: Union[int, None] = None
    windows_security_descriptor: Union[str, None] = None
    symlink_target: Union[str, None] = None

    @model_validator(mode="after")
    def _check_entry(self) -> Self:
        _path = self.path
        if not _path or _path.startswith("/") or _path.endswith("/"):
            raise ValueError(f"{_path=} must be a non-empty relative path")
        if ".." in _path.split("/") or posixpath.normpath(_path) != _path:
            raise ValueError(f"{_path=} must be normalized")

        if self.kind != EntryKind.regular and self.content:
            raise ValueError(f"{self.kind.value} entry {_path} cannot have contents")

        if self.kind == EntryKind.symlink:
            if not (self.symlink_target and self.symlink_target.startswith("/")):
                raise ValueError(f"symlink {_path} must point to an absolute path")
        elif self.symlink_target is not None:
            raise ValueError(f"{self.kind.value} entry {_path} cannot have link target")

        if self.access == OSAccess.NONE:
            raise ValueError(f"{_path} is resolvable by neither Linux nor Windows")
        return self

    @property
    def access(self) -> OSAccess:
        _access = OSAccess.NONE
        if self.posix_mode is not None:
            _access |= OSAccess.LINUX
        if self.windows_security_descriptor is not None:
            _access |= OSAccess.WINDOWS
        return _access

    @property
    def parent(self) -> Union[str, None]:
        """The parent path of this entry, None for top-level entries."""
        _parent = posixpath.dirname(self.path)
        return _parent or None

    @property
    def size(self) -> int:
        return len(self.content)
