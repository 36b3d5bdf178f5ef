"""Check documents against the JSON Schemas of the component model."""

import json
from pathlib import Path

import pytest

from flowify.core import ModelError
from flowify.schemas import SchemaRegistry, validate_document
from flowify.utils import load_document
from ._lib.builders import EXAMPLES


@pytest.fixture
def registry() -> SchemaRegistry:
    return SchemaRegistry.builtin()


@pytest.mark.parametrize(
    "example",
    [
        "job-example.json",
        "map-example.json",
        "if-statement.json",
        "if-else-statement.json",
        "graph-input-volumes.json",
        "graph-throughput-volumes.json",
    ],
)
def test_examples_match_job_schema(registry: SchemaRegistry, example: str) -> None:
    """Test every example job satisfies the built-in job schema."""
    validate_document(load_document(EXAMPLES / example), registry.find_schema("job"))


def test_components_match_component_schema(registry: SchemaRegistry) -> None:
    """Test stored and referencing components satisfy the component schema."""
    schema = registry.find_schema("Component")
    for path in [
        EXAMPLES / "referenced-graph.json",
        EXAMPLES / "components" / "greeter.json",
        EXAMPLES / "components" / "shouter.json",
    ]:
        validate_document(load_document(path), schema)


def test_workflow_schema(registry: SchemaRegistry) -> None:
    """Test the workflow schema accepts the workflow of a job and refuses the job itself."""
    job = load_document(EXAMPLES / "job-example.json")
    schema = registry.find_schema("workflow")

    validate_document(job["workflow"], schema)
    with pytest.raises(ModelError):
        validate_document(job, schema)


def test_schema_violations_are_located(registry: SchemaRegistry) -> None:
    """Test the reported violation points at the offending part of the document."""
    job = load_document(EXAMPLES / "job-example.json")
    job["workflow"]["component"]["inputs"][0]["type"] = "parameters"

    with pytest.raises(ModelError) as exc_info:
        validate_document(job, registry.find_schema("job"))
    assert "$.workflow.component.inputs[0].type" in str(exc_info.value)

    job = load_document(EXAMPLES / "job-example.json")
    job["inputValues"][0]["value"] = 10
    with pytest.raises(ModelError, match=r"inputValues\[0\]\.value"):
        validate_document(job, registry.find_schema("job"))


def test_unknown_implementation_type(registry: SchemaRegistry) -> None:
    """Test implementations must carry one of the known type tags."""
    component = load_document(EXAMPLES / "components" / "greeter.json")
    component["implementation"]["type"] = "loop"

    with pytest.raises(ModelError, match="schema validation failed"):
        validate_document(component, registry.find_schema("component"))


def test_malformed_uid(registry: SchemaRegistry) -> None:
    """Test uids are checked as UUIDs."""
    component = load_document(EXAMPLES / "components" / "greeter.json")
    component["uid"] = "not-a-uuid"

    with pytest.raises(ModelError, match="uid"):
        validate_document(component, registry.find_schema("component"))


def test_schema_from_file(tmp_path: Path, registry: SchemaRegistry) -> None:
    """Test a schema file is preferred over the registered names."""
    schema_file = tmp_path / "job"
    schema_file.write_text(json.dumps({"type": "object", "required": ["owner"]}))

    schema = registry.find_schema(str(schema_file))
    assert schema == {"type": "object", "required": ["owner"]}
    with pytest.raises(ModelError, match="owner"):
        validate_document(load_document(EXAMPLES / "job-example.json"), schema)


def test_invalid_schema_file(tmp_path: Path, registry: SchemaRegistry) -> None:
    """Test a file that is not a schema is refused before use."""
    schema_file = tmp_path / "schema.yaml"
    schema_file.write_text("type: 12\n")

    with pytest.raises(ModelError, match="is not a valid schema"):
        registry.find_schema(str(schema_file))


def test_unknown_schema(registry: SchemaRegistry) -> None:
    """Test names that are neither files nor registered are refused."""
    with pytest.raises(ModelError, match="could not find schema from: brick"):
        registry.find_schema("brick")


def test_registry_is_read_only() -> None:
    """Test registered schemas cannot be swapped out after construction."""
    registry = SchemaRegistry({"Mine": {"type": "object"}})
    assert registry.get("mine") == {"type": "object"}
    assert registry.get("job") is None
    with pytest.raises(TypeError):
        registry.schemas["job"] = {}  # type: ignore[index]
