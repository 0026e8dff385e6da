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
from functools import lru_cache
from typing import Any, ClassVar, Generic, Type, TypeVar, Union, cast

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationInfo,
    computed_field,
    model_validator,
)
from typing_extensions import Self

from ._common import metafile_before_validator
from .model_fields import ConstFieldMeta, NotDefinedField
from .oci_spec import BlobStore, OCIDescriptor, Sha256Digest

MetaFile_T = TypeVar("MetaFile_T", bound="MetaFileBase")


class MetaFileDescriptor(OCIDescriptor, Generic[MetaFile_T]):
    """An OCIDescriptor that points to an image metafile(image manifest, image config)."""

    @classmethod
    @lru_cache
    def metafile_type(cls) -> type[MetaFile_T]:
        # NOTE: pydantic will create concrete subclass for parameterized subclass,
        #       so class that subclasses a parameterized model will lost the information
        #       of paramterize type args, we need to get the information from the parent.
        _parent = super(cls, cls)  # a bound super
        _parameterize_meta = _parent.__pydantic_generic_metadata__
        if not (_args := _parameterize_meta["args"]):
            raise TypeError(f"{cls.__name__} is not parameterized")
        if len(_args) != 1:
            raise TypeError(
                f"{cls.__name__} should only be parameterized with exact one type"
            )

        _wrapped_type = _args[0]
        if isinstance(_wrapped_type, str):  # forward reference
            # normally, we use forward reference when the Descriptor is defined
            #   within the MetaFile class creation namespace
            try:
                _module = sys.modules[cls.__module__]
                _resolved_type = _module.__dict__[_wrapped_type]
                return cast("type[MetaFile_T]", _resolved_type)
            except Exception as e:
                raise TypeError(
                    f"{cls.__name__}: Failed to resolve forward reference '{_wrapped_type}'"
                ) from e

        if not (
            isinstance(_wrapped_type, type) and issubclass(_wrapped_type, MetaFileBase)
        ):
            raise TypeError(
                f"{cls.__name__} should only be parameterized with MetaFileBase type"
            )
        return cast("type[MetaFile_T]", _wrapped_type)

    @classmethod
    def export_metafile_to_blobs(
        cls,
        meta_file: MetaFile_T,
        blobs: BlobStore,
    ) -> Self:
        """Save <meta_file> into <blobs> and return an OCIDescriptor."""
        _contents = meta_file.export_metafile().encode("utf-8")
        _digest = Sha256Digest(cls.supported_digest_impl(_contents).digest())
        blobs[_digest] = _contents
        return cls(size=len(_contents), digest=_digest)

    def load_metafile_from_blobs(self, blobs: BlobStore) -> MetaFile_T:
        """Load the metafile from the blob storage."""
        _raw_content = self.get_blob_from_blobs(blobs).decode("utf-8")
        return self.metafile_type().parse_metafile(_raw_content)


class MetaFileBase(BaseModel):
    """Base class for a JSON metadata file of an image.

    NOTE: this class MUST not be directly used, it needs to be
          subclassed and assigned MediaType(and SchemaVersion, etc.).
    """

    model_config = ConfigDict(
        populate_by_name=True, ignored_types=(ConstFieldMeta, NotDefinedField)
    )

    Descriptor: ClassVar[Type[MetaFileDescriptor]]
    MediaType = NotDefinedField()
    SchemaVersion = NotDefinedField()

    EmbedMediaType: ClassVar[bool] = True
    """Whether the mediaType is part of the metafile contents.

    Image manifest embeds it, image config doesn't.
    """

    @computed_field
    @property
    def schemaVersion(self) -> Union[int, None]:
        return self.SchemaVersion

    @computed_field
    @property
    def mediaType(self) -> str:
        if not self.MediaType:
            raise ValueError(f"{self.__class__.__name__} doesn't define `mediaType`!")
        return self.MediaType

    @model_validator(mode="before")
    @classmethod
    def _external_input_validator(cls, data: Any, info: ValidationInfo) -> Any:
        return metafile_before_validator(cls, data, info)

    @classmethod
    def parse_metafile(cls, _input: str | bytes) -> Self:
        assert isinstance(cls.MediaType, str)
        _media_type = cls.MediaType
        if _media_type.endswith("json"):
            return cls.model_validate_json(_input)
        raise ValueError(f"{_media_type} indicates the input file is not a JSON file.")

    def export_metafile(self) -> str:
        _media_type = self.mediaType
        if not _media_type.endswith("json"):
            raise ValueError(f"{_media_type} is not a JSON file.")

        _exclude = None if self.EmbedMediaType else {"mediaType"}
        return self.model_dump_json(by_alias=True, exclude_none=True, exclude=_exclude)
