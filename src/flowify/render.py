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

"""Serialization of rendered structures.

Turns the plain dicts produced by `render()`/`to_dict()` into text and writes
them out.
"""

import json
from typing import IO, Any, Callable, ContextManager

import yaml

from .core import RawType


def structured_to_raw(rendered: RawType, pretty: bool = False) -> str:
    """Serialize a serializable structure to a string.

    Args:
        rendered: a possibly-nested, static basic Python structure.
        pretty: whether to use YAML with an indent of 2, rather than compact JSON.

    Returns: YAML/JSON version of the structure.
    """
    if pretty:
        return yaml.safe_dump(rendered, indent=2, sort_keys=False)
    return json.dumps(rendered)


def write_rendered_output(
    rendered: str,
    opener: Callable[[str], ContextManager[IO[Any]]],
) -> None:
    """Utility function to handle writing rendered output to file or stdout."""
    with opener("w") as output_f:
        output_f.write(rendered)
        if not rendered.endswith("\n"):
            output_f.write("\n")
