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
"""Write hybrid layer entries into a reproducible PAX tar archive."""

from __future__ import annotations

import io
import logging
import tarfile
from typing import Iterable, NamedTuple, Union

from typing_extensions import Self

from hybrid_buildpack_libs.common.oci_spec import Sha256Digest
from hybrid_buildpack_libs.exceptions import ArchiveWriteError

from . import DEFAULT_GID, DEFAULT_MTIME, DEFAULT_UID, MSWINDOWS_RAWSD_PAX_KEY
from .entry import ArchiveEntry, EntryKind

logger = logging.getLogger(__name__)

_TAR_TYPES = {
    EntryKind.directory: tarfile.DIRTYPE,
    EntryKind.regular: tarfile.REGTYPE,
    EntryKind.symlink: tarfile.SYMTYPE,
}


class HybridLayer(NamedTuple):
    """The finished hybrid layer archive, never mutated after it is built."""

    blob: bytes
    entries: tuple[ArchiveEntry, ...]
    diff_id: Sha256Digest
    """sha256 of the uncompressed archive, calculated once from the finished blob."""

    @classmethod
    def from_blob(cls, blob: bytes, entries: Iterable[ArchiveEntry]) -> Self:
        return cls(blob=blob, entries=tuple(entries), diff_id=Sha256Digest.of(blob))

    @property
    def size(self) -> int:
        return len(self.blob)


def entry_tarinfo(entry: ArchiveEntry) -> tarfile.TarInfo:
    """Get the tar header of <entry>, with fixed metadata."""
    _tarinfo = tarfile.TarInfo(entry.path)
    _tarinfo.type = _TAR_TYPES[entry.kind]
    _tarinfo.mode = entry.posix_mode if entry.posix_mode is not None else 0
    _tarinfo.mtime = DEFAULT_MTIME
    _tarinfo.uid, _tarinfo.gid = DEFAULT_UID, DEFAULT_GID
    _tarinfo.uname = _tarinfo.gname = ""
    _tarinfo.size = entry.size if entry.kind == EntryKind.regular else 0
    if entry.kind == EntryKind.symlink:
        _tarinfo.linkname = entry.symlink_target  # type: ignore[assignment]
    if entry.windows_security_descriptor is not None:
        _tarinfo.pax_headers = {
            MSWINDOWS_RAWSD_PAX_KEY: entry.windows_security_descriptor
        }
    return _tarinfo


class HybridLayerWriter:
    """Append-only writer of the hybrid layer archive.

    Entries are written in the order they are added, and an entry cannot be
        rewritten once it is written. When any write fails, the writer is
        poisoned: the partially written buffer is dropped and all following
        operations raise ArchiveWriteError.

    This class is NOT thread-safe.
    """

    def __init__(self) -> None:
        self._buffer: Union[io.BytesIO, None] = io.BytesIO()
        self._tar = tarfile.open(
            fileobj=self._buffer,
            mode="w",
            format=tarfile.PAX_FORMAT,
            encoding="utf-8",
        )
        self._entries: list[ArchiveEntry] = []
        self._written: set[str] = set()
        self._failed: Union[BaseException, None] = None
        self._finalized = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self._discard()
        return False

    def _discard(self) -> None:
        self._buffer = None
        self._entries.clear()

    def _check_writable(self) -> None:
        if self._failed is not None:
            raise ArchiveWriteError(
                f"a previous write has failed, the archive is abandoned: {self._failed!r}"
            )
        if self._finalized:
            raise ArchiveWriteError("the archive is already finalized")

    def add_entry(self, entry: ArchiveEntry) -> None:
        self._check_writable()
        if entry.path in self._written:
            self._failed = ArchiveWriteError(f"{entry.path} is already written")
            self._discard()
            raise self._failed

        _tarinfo = entry_tarinfo(entry)
        try:
            if entry.kind == EntryKind.regular:
                self._tar.addfile(_tarinfo, io.BytesIO(entry.content))
            else:
                self._tar.addfile(_tarinfo)
        except Exception as e:
            self._failed = e
            self._discard()
            raise ArchiveWriteError(f"failed to write {entry.path}: {e!r}") from e

        self._written.add(entry.path)
        self._entries.append(entry)
        logger.debug(f"write {entry.kind.value} entry {entry.path}: {entry.access}")

    def add_entries(self, entries: Iterable[ArchiveEntry]) -> None:
        for _entry in entries:
            self.add_entry(_entry)

    def finalize(self) -> HybridLayer:
        """Close the archive and return the finished hybrid layer."""
        self._check_writable()
        try:
            self._tar.close()
        except Exception as e:
            self._failed = e
            self._discard()
            raise ArchiveWriteError(f"failed to finalize the archive: {e!r}") from e

        self._finalized = True
        assert self._buffer is not None
        _layer = HybridLayer.from_blob(self._buffer.getvalue(), self._entries)
        logger.info(
            f"hybrid layer written: {len(_layer.entries)} entries, {_layer.size} bytes, {_layer.diff_id}"
        )
        return _layer


def build_hybrid_layer(entries: Iterable[ArchiveEntry]) -> HybridLayer:
    """Write all <entries> in order and return the finished hybrid layer.

    Raises:
        ArchiveWriteError: on the first failed write, no partial archive is returned.
    """
    with HybridLayerWriter() as _writer:
        _writer.add_entries(entries)
        return _writer.finalize()
