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
"""Export an assembled image as a `docker load` compatible tarball.

The tarball has the following layout:
    manifest.json
    <config_digest_hex>.json
    <layer_digest_hex>.tar[.gz|.zst]

where the manifest.json is a list with one entry of `Config`, `RepoTags` and `Layers`.
"""

from __future__ import annotations

import io
import json
import logging
import tarfile
from typing import Iterable

from pydantic import BaseModel, Field

from hybrid_buildpack_libs.exceptions import ImageAssembleError

from .assemble import AssembledImage
from .media_types import IMAGE_LAYER_GZIP, IMAGE_LAYER_ZSTD

logger = logging.getLogger(__name__)

DOCKER_ARCHIVE_MANIFEST_FNAME = "manifest.json"
ARCHIVE_FILE_MODE = 0o644

_LAYER_FNAME_SUFFIX = {
    IMAGE_LAYER_GZIP: ".tar.gz",
    IMAGE_LAYER_ZSTD: ".tar.zst",
}


class DockerArchiveManifestEntry(BaseModel):
    Config: str
    RepoTags: list[str] = Field(default_factory=list)
    Layers: list[str] = Field(default_factory=list)


def _add_file(_tar: tarfile.TarFile, fname: str, contents: bytes) -> None:
    _tarinfo = tarfile.TarInfo(fname)
    _tarinfo.mode = ARCHIVE_FILE_MODE
    _tarinfo.size = len(contents)
    _tarinfo.mtime = 0
    _tarinfo.uid = _tarinfo.gid = 0
    _tarinfo.uname = _tarinfo.gname = ""
    _tar.addfile(_tarinfo, io.BytesIO(contents))


def write_docker_archive(image: AssembledImage, repo_tags: Iterable[str]) -> bytes:
    """Pack <image> into a tarball that can be loaded by the docker daemon.

    Raises:
        ImageAssembleError: if any blob referenced by the image is missing.
    """
    _config_descriptor = image.manifest.config
    _config_fname = f"{_config_descriptor.digest.digest_hex}.json"

    _files: list[tuple[str, bytes]] = []
    try:
        _files.append((_config_fname, image.config_blob))
        _layer_fnames = []
        for _layer in image.layers:
            _suffix = _LAYER_FNAME_SUFFIX.get(_layer.mediaType, ".tar")
            _layer_fname = f"{_layer.digest.digest_hex}{_suffix}"
            _files.append((_layer_fname, _layer.get_blob_from_blobs(image.blobs)))
            _layer_fnames.append(_layer_fname)
    except FileNotFoundError as e:
        raise ImageAssembleError(f"image is incomplete: {e}") from e

    _manifest = [
        DockerArchiveManifestEntry(
            Config=_config_fname,
            RepoTags=list(repo_tags),
            Layers=_layer_fnames,
        ).model_dump()
    ]
    _manifest_bytes = json.dumps(_manifest, separators=(",", ":")).encode("utf-8")

    _buffer = io.BytesIO()
    with tarfile.open(fileobj=_buffer, mode="w", format=tarfile.PAX_FORMAT) as _tar:
        _add_file(_tar, DOCKER_ARCHIVE_MANIFEST_FNAME, _manifest_bytes)
        for _fname, _contents in _files:
            # blobs shared by several layers only need to be stored once
            if _fname in _tar.getnames():
                continue
            _add_file(_tar, _fname, _contents)

    _archive = _buffer.getvalue()
    logger.info(
        f"docker archive of {len(_layer_fnames)} layers created: {len(_archive)} bytes"
    )
    return _archive
