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

"""Utility module.

General functions to centralize loading of documents and user arguments.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from .core import ModelError

DOCUMENT_KINDS = ("job", "workflow", "component")


def load_document(path: Path) -> Any:
    """Load a JSON or YAML document from disk.

    Files ending in `.json` are read as JSON, anything else as YAML (which
    also accepts JSON).

    Raises:
        ModelError: if the file cannot be parsed.
    """
    with path.open() as document_f:
        try:
            if path.suffix == ".json":
                return json.load(document_f)
            return yaml.safe_load(document_f)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ModelError(f"Could not parse {path}") from exc


def guess_document_kind(document: Any) -> str:
    """Tell whether a document is a job, a workflow or a component.

    Uses the `type` tag where present, falling back to the document's shape.
    """
    if not isinstance(document, dict):
        raise ModelError(f"Expected a document object, found {type(document).__name__}")
    kind = document.get("type")
    if kind in DOCUMENT_KINDS:
        return kind
    if "workflow" in document:
        return "job"
    if "component" in document:
        return "workflow"
    if "implementation" in document:
        return "component"
    raise ModelError("Could not determine the kind of document")


def format_user_args(args: str) -> dict[str, Any]:
    """Format user arguments from the command line.

    Supports:
    - @filename: loads arguments from a YAML file
    - empty string: returns an empty dict
    - key1:val1,key2:val2: parses a comma-separated list into a dict

    Raises:
        ModelError: if a pair has no `:` or the file does not hold a mapping.
    """
    kwargs: dict[str, Any]
    if args.startswith("@"):
        with Path(args[1:]).open() as user_args_f:
            kwargs = yaml.safe_load(user_args_f) or {}
        if not isinstance(kwargs, dict):
            raise ModelError(f"Arguments file {args[1:]} should hold a mapping")
    elif not args:
        kwargs = {}
    else:
        kwargs = {}
        for pair in args.split(","):
            key, sep, value = pair.partition(":")
            if not sep:
                raise ModelError(f"Arguments should be specified as key:val, got {pair!r}")
            kwargs[key] = value

    return kwargs
