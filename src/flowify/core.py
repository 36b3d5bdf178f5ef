# Copyright 2024- Flax & Teal Limited. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Base classes that need to be available everywhere.

Mainly tooling around configuration and the exception hierarchy shared by the
model decoder, the dereferencer and the transpiler.
"""

import copy
from attrs import define
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, NotRequired, TypedDict, Unpack

BasicType = str | float | bool | bytes | int | None
RawType = BasicType | list["RawType"] | dict[str, "RawType"]


class FlowifyError(Exception):
    """Base class for all errors raised by flowify."""


class ModelError(FlowifyError):
    """A document could not be decoded into the component model."""


class DereferenceError(FlowifyError):
    """A component tree could not be fully inlined."""


class TranspileError(FlowifyError):
    """Transpilation of a component tree failed.

    There is no partial-result mode, so any of these aborts the whole
    transpilation.
    """


class StructuralError(TranspileError):
    """The tree is malformed, e.g. a node is not dereferenced or a port type is unknown."""


class ResolutionError(TranspileError):
    """A volume, secret, edge or mapping expected by the tree could not be found."""


class ExpressionError(TranspileError):
    """A conditional expression could not be rendered."""


@define
class TranspileConfiguration:
    """Configuration of the transpilation process.

    Holds the names and paths that are baked into the generated Argo
    templates, but that are not part of the component model itself.
    """

    secret_object_name: str = "default-secret"
    artifact_path_prefix: str = "/artifacts/"
    map_node_name: str = "mapnode"
    true_node_name: str = "nodeTrue"
    false_node_name: str = "nodeFalse"


class TranspileConfigurationTypedDict(TypedDict):
    """Configuration of the transpilation process.

    **THIS MUST BE KEPT IDENTICAL TO TranspileConfiguration.**
    """

    secret_object_name: NotRequired[str]
    artifact_path_prefix: NotRequired[str]
    map_node_name: NotRequired[str]
    true_node_name: NotRequired[str]
    false_node_name: NotRequired[str]


CONFIGURATION: ContextVar[TranspileConfiguration] = ContextVar("configuration")


@contextmanager
def set_configuration(
    **kwargs: Unpack[TranspileConfigurationTypedDict],
) -> Iterator[ContextVar[TranspileConfiguration]]:
    """Sets the transpile-time configuration.

    This is a context manager, so that a setting can be temporarily overridden and automatically restored.
    """
    try:
        updated = copy.deepcopy(CONFIGURATION.get())
    except LookupError:
        updated = TranspileConfiguration()
    for key, value in kwargs.items():
        if not hasattr(updated, key):
            raise KeyError(f"Unknown transpile configuration key: {key}")
        setattr(updated, key, value)

    token = CONFIGURATION.set(updated)
    try:
        yield CONFIGURATION
    finally:
        CONFIGURATION.reset(token)


def get_configuration(key: str) -> str:
    """Retrieve the configuration or (silently) return the default.

    Avoids needing a `set_configuration` call around every transpilation.

    Args:
        key: configuration key to retrieve.

    Returns: the configured value.
    """
    try:
        return str(getattr(CONFIGURATION.get(), key))
    except LookupError:
        return str(getattr(TranspileConfiguration(), key))
