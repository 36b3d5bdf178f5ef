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

"""JSON Schema checking of documents.

Documents can be checked against the built-in schemas of the component model
(`job`, `workflow` and `component`) or against a schema read from a file,
before they are decoded.
"""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from attrs import field, frozen
from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import SchemaError, best_match

from .core import ModelError
from .models import PORT_TYPES
from .utils import load_document

logger = logging.getLogger(__name__)

_DEFINITIONS: dict[str, Any] = {
    "uid": {"type": "string", "format": "uuid"},
    "data": {
        "type": "object",
        "required": ["name"],
        "properties": {
            "name": {"type": "string", "minLength": 1},
            "type": {"enum": list(PORT_TYPES)},
            "mediatype": {"type": "array", "items": {"type": "string"}},
        },
    },
    "portAddress": {
        "type": "object",
        "properties": {
            "node": {"type": "string"},
            "port": {"type": "string"},
        },
    },
    "edge": {
        "type": "object",
        "required": ["source", "target"],
        "properties": {
            "source": {"$ref": "#/$defs/portAddress"},
            "target": {"$ref": "#/$defs/portAddress"},
        },
    },
    "edges": {"type": "array", "items": {"$ref": "#/$defs/edge"}},
    "cRefVersion": {
        "type": "object",
        "required": ["uid"],
        "properties": {
            "uid": {"$ref": "#/$defs/uid"},
            "version": {"type": "integer", "minimum": 0},
        },
    },
    "nodeTarget": {
        "anyOf": [
            {"$ref": "#/$defs/uid"},
            {"$ref": "#/$defs/component"},
            {"$ref": "#/$defs/cRefVersion"},
        ]
    },
    "argument": {
        "type": "object",
        "required": ["source"],
        "properties": {
            "source": {
                "anyOf": [
                    {"type": "string"},
                    {
                        "type": "object",
                        "required": ["port"],
                        "properties": {"port": {"type": "string"}},
                    },
                    {
                        "type": "object",
                        "required": ["file"],
                        "properties": {"file": {"type": "string"}},
                    },
                ]
            },
            "target": {
                "type": "object",
                "properties": {
                    "type": {"type": "string"},
                    "prefix": {"type": "string"},
                    "suffix": {"type": "string"},
                },
            },
        },
    },
    "result": {
        "type": "object",
        "required": ["source", "target"],
        "properties": {
            "source": {
                "anyOf": [
                    {"type": "string"},
                    {
                        "type": "object",
                        "required": ["file"],
                        "properties": {"file": {"type": "string"}},
                    },
                    {
                        "type": "object",
                        "required": ["volume"],
                        "properties": {"volume": {"type": "string", "minLength": 1}},
                    },
                ]
            },
            "target": {"$ref": "#/$defs/portAddress"},
        },
    },
    "brick": {
        "type": "object",
        "required": ["type", "container"],
        "properties": {
            "type": {"const": "brick"},
            "container": {"type": "object"},
            "args": {"type": "array", "items": {"$ref": "#/$defs/argument"}},
            "results": {"type": "array", "items": {"$ref": "#/$defs/result"}},
        },
    },
    "any": {
        "type": "object",
        "required": ["type"],
        "properties": {"type": {"const": "any"}},
    },
    "graph": {
        "type": "object",
        "required": ["type", "nodes"],
        "properties": {
            "type": {"const": "graph"},
            "nodes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["id", "node"],
                    "properties": {
                        "id": {"type": "string", "minLength": 1},
                        "node": {"$ref": "#/$defs/nodeTarget"},
                    },
                },
            },
            "edges": {"$ref": "#/$defs/edges"},
            "inputMappings": {"$ref": "#/$defs/edges"},
            "outputMappings": {"$ref": "#/$defs/edges"},
        },
    },
    "map": {
        "type": "object",
        "required": ["type", "node"],
        "properties": {
            "type": {"const": "map"},
            "node": {"$ref": "#/$defs/nodeTarget"},
            "inputMappings": {"$ref": "#/$defs/edges"},
            "outputMappings": {"$ref": "#/$defs/edges"},
        },
    },
    "conditional": {
        "type": "object",
        "required": ["type", "nodeTrue", "expression"],
        "properties": {
            "type": {"const": "conditional"},
            "nodeTrue": {"$ref": "#/$defs/nodeTarget"},
            "nodeFalse": {
                "anyOf": [{"type": "null"}, {"$ref": "#/$defs/nodeTarget"}]
            },
            "expression": {
                "type": "object",
                "required": ["left", "operator", "right"],
                "properties": {
                    "left": {"anyOf": [{"type": "string"}, {"$ref": "#/$defs/data"}]},
                    "operator": {"type": "string", "minLength": 1},
                    "right": {"anyOf": [{"type": "string"}, {"$ref": "#/$defs/data"}]},
                },
            },
            "inputMappings": {"$ref": "#/$defs/edges"},
            "outputMappings": {"$ref": "#/$defs/edges"},
        },
    },
    "implementation": {
        "type": "object",
        "required": ["type"],
        "oneOf": [
            {"$ref": "#/$defs/brick"},
            {"$ref": "#/$defs/any"},
            {"$ref": "#/$defs/graph"},
            {"$ref": "#/$defs/map"},
            {"$ref": "#/$defs/conditional"},
        ],
    },
    "version": {
        "type": "object",
        "properties": {
            "current": {"type": "integer", "minimum": 0},
            "tags": {"type": "array", "items": {"type": "string"}},
            "previous": {"$ref": "#/$defs/cRefVersion"},
        },
    },
    "component": {
        "type": "object",
        "required": ["implementation"],
        "properties": {
            "uid": {"$ref": "#/$defs/uid"},
            "name": {"type": "string"},
            "description": {"type": "string"},
            "type": {"const": "component"},
            "version": {"$ref": "#/$defs/version"},
            "inputs": {"type": "array", "items": {"$ref": "#/$defs/data"}},
            "outputs": {"type": "array", "items": {"$ref": "#/$defs/data"}},
            "implementation": {"$ref": "#/$defs/implementation"},
        },
    },
    "workflow": {
        "type": "object",
        "required": ["component"],
        "properties": {
            "type": {"const": "workflow"},
            "workspace": {"type": "string"},
            "component": {"$ref": "#/$defs/component"},
        },
    },
    "value": {
        "type": "object",
        "required": ["target", "value"],
        "properties": {
            "target": {"type": "string", "minLength": 1},
            "value": {
                "anyOf": [
                    {"type": "string"},
                    {"type": "array", "items": {"type": "string"}},
                ]
            },
        },
    },
    "job": {
        "type": "object",
        "required": ["workflow"],
        "properties": {
            "type": {"const": "job"},
            "workflow": {"$ref": "#/$defs/workflow"},
            "inputValues": {"type": "array", "items": {"$ref": "#/$defs/value"}},
        },
    },
}


def _root_schema(kind: str) -> dict[str, Any]:
    return {
        "$schema": Draft202012Validator.META_SCHEMA["$id"],
        "title": kind,
        "$ref": f"#/$defs/{kind}",
        "$defs": _DEFINITIONS,
    }


@frozen
class SchemaRegistry:
    """Named JSON Schemas that documents can be checked against.

    Lookup by name is case-insensitive.
    """

    schemas: Mapping[str, Mapping[str, Any]] = field(
        factory=dict,
        converter=lambda schemas: MappingProxyType(
            {name.lower(): schema for name, schema in schemas.items()}
        ),
    )

    @classmethod
    def builtin(cls) -> "SchemaRegistry":
        """Registry holding the schemas of jobs, workflows and components."""
        return cls({kind: _root_schema(kind) for kind in ("job", "workflow", "component")})

    def get(self, name: str) -> Mapping[str, Any] | None:
        return self.schemas.get(name.lower())

    def find_schema(self, name_or_path: str) -> Mapping[str, Any]:
        """Find a schema, trying a file first and then the registered names.

        Args:
            name_or_path: path of a JSON/YAML schema document, or a registered name.

        Returns: the schema.

        Raises:
            ModelError: if there is no such schema, or the file does not hold a valid one.
        """
        path = Path(name_or_path)
        if path.is_file():
            schema = load_document(path)
            try:
                Draft202012Validator.check_schema(schema)
            except SchemaError as exc:
                raise ModelError(f"{path} is not a valid schema: {exc.message}") from exc
            logger.info("Using schema from file: %s", path)
            return schema

        schema = self.get(name_or_path)
        if schema is None:
            logger.debug("Found no schemas for %s", name_or_path)
            raise ModelError(f"could not find schema from: {name_or_path}")
        logger.info("Using built-in schema for type: %s", name_or_path)
        return schema


def validate_document(document: Any, schema: Mapping[str, Any]) -> None:
    """Check a raw document against a JSON Schema.

    Raises:
        ModelError: describing the most relevant violation, if any.
    """
    validator = Draft202012Validator(schema, format_checker=FormatChecker())
    error = best_match(validator.iter_errors(document))
    if error is not None:
        raise ModelError(f"schema validation failed at {error.json_path}: {error.message}")
