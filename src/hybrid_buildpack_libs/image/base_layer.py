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
"""Providers of the Windows base layer.

A Windows image must start with a base layer holding the `Files` and `Hives`
    roots(with registry hives in it). The contents of such layer are generated
    by external tools, this module only reads them in.
"""

from __future__ import annotations

import gzip
import io
import logging
import tarfile
from pathlib import Path
from typing import Protocol, Union

import zstandard

from hybrid_buildpack_libs.exceptions import BaseLayerError
from hybrid_buildpack_libs.hybrid_layer import WINDOWS_FILES_ROOT

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


class BaseLayerProvider(Protocol):
    def read_base_layer(self) -> bytes:
        """Return the uncompressed tar archive of the base layer."""
        ...


def decompress_layer(_raw: bytes) -> bytes:
    """Transparently decompress a gzip or zstd compressed layer archive."""
    if _raw.startswith(GZIP_MAGIC):
        return gzip.decompress(_raw)
    if _raw.startswith(ZSTD_MAGIC):
        # NOTE: use stream reader as the frame might not have content size set
        with zstandard.ZstdDecompressor().stream_reader(io.BytesIO(_raw)) as _reader:
            return _reader.read()
    return _raw


def check_windows_base_layer(_layer: bytes) -> None:
    """Check that <_layer> is a tar archive holding the Windows `Files` root."""
    try:
        with tarfile.open(fileobj=io.BytesIO(_layer), mode="r:") as _tar:
            _names = {_member.name.rstrip("/") for _member in _tar.getmembers()}
    except tarfile.TarError as e:
        raise BaseLayerError(f"base layer is not a valid tar archive: {e}") from e

    if WINDOWS_FILES_ROOT not in _names:
        raise BaseLayerError(
            f"base layer doesn't contain the Windows `{WINDOWS_FILES_ROOT}` root"
        )


class TarFileBaseLayerProvider:
    """Read a pre-exported Windows base layer from a tar file.

    The tar file can be plain, gzip compressed or zstd compressed.
    """

    def __init__(self, fpath: Union[str, Path]) -> None:
        self.fpath = Path(fpath)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({str(self.fpath)!r})"

    def read_base_layer(self) -> bytes:
        try:
            _raw = self.fpath.read_bytes()
        except OSError as e:
            raise BaseLayerError(f"failed to read base layer {self.fpath}: {e}") from e

        try:
            _layer = decompress_layer(_raw)
        except (OSError, EOFError, zstandard.ZstdError) as e:
            raise BaseLayerError(
                f"failed to decompress base layer {self.fpath}: {e}"
            ) from e

        check_windows_base_layer(_layer)
        logger.info(f"loaded Windows base layer from {self.fpath}: {len(_layer)} bytes")
        return _layer


class BytesBaseLayerProvider:
    """Provide a base layer from in-memory archive bytes."""

    def __init__(self, layer: bytes) -> None:
        self._layer = layer

    def read_base_layer(self) -> bytes:
        _layer = decompress_layer(self._layer)
        check_windows_base_layer(_layer)
        return _layer
