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
"""Descriptor helpers for class-level const fields on OCI models."""

from typing import Any


class NotDefinedField:
    """A sentinel labelling a field that is not defined.

    This is for models that don't define SchemaVersion, like the image config.
    """

    field_name: str = ""

    def __set_name__(self, owner, name: str):
        self.field_name = name

    def __get__(self, obj, objtype=None) -> Any:
        return None

    def __set__(self, obj, value):
        raise ValueError(
            f"cannot set {self.field_name} on {obj} as this field is not defined"
        )


class ConstFieldMeta(type):
    """Meta class for ConstField.

    Accessing the const field on a model gives the canonical(first) expected value,
        the parameterized class itself can be fetched from the owner's `__dict__`
        to validate external input against all the accepted values.
    """

    expected: tuple[Any, ...]
    field_name: str = ""

    def __set_name__(self, owner, name: str):
        self.field_name = name

    def __get__(self, obj, objtype=None):
        return self.expected[0]

    def __set__(self, obj, value):
        raise ValueError(f"{self.__name__} reject override pre-defined const value")

    def validate(self, value: Any) -> Any:
        if value not in self.expected:
            raise ValueError(
                f"{self.field_name or self.__name__}: expect one of {self.expected}, get {value!r}"
            )
        return value
