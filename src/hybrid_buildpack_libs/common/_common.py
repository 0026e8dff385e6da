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

from typing import Any

from pydantic import ValidationInfo

from .model_fields import ConstFieldMeta


def _check_const_field(cls: Any, field_name: str, value: Any) -> None:
    # bypass descriptor protocol, we only respect the const field set
    #   for the current class, and must not look through to parent class.
    _checker = cls.__dict__.get(field_name)
    if isinstance(_checker, ConstFieldMeta):
        _checker.validate(value)


def oci_descriptor_before_validator(cls: Any, data: Any, info: ValidationInfo) -> Any:
    """Validate external input, like descriptors parsed from a pulled manifest."""
    if not isinstance(data, dict):
        raise ValueError(f"expect a JSON object, get {type(data)=}")
    if info.mode == "json":
        _check_const_field(cls, "MediaType", data.get("mediaType"))
    return data


def metafile_before_validator(cls: Any, data: Any, info: ValidationInfo) -> Any:
    """Validate external input, like parsing a pulled image manifest.

    Metafiles that don't embed their mediaType(like the image config) only
        have their schemaVersion checked.
    """
    if not isinstance(data, dict):
        raise ValueError(f"expect a JSON object, get {type(data)=}")
    if info.mode == "json":
        _check_const_field(cls, "SchemaVersion", data.get("schemaVersion"))
        if getattr(cls, "EmbedMediaType", True):
            _check_const_field(cls, "MediaType", data.get("mediaType"))
    return data
