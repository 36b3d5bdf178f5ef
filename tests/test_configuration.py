"""Check configuration is consistent and usable."""

from contextvars import Context

import pytest

from flowify.core import CONFIGURATION, get_configuration, set_configuration
from flowify.helpers import SecretScope, VolumeScope
from flowify.models import Job
from flowify.transpiler import get_argo_workflow, traverse_component
from ._lib.builders import brick, load_example, port


def test_transpile_with_configuration() -> None:
    """Test configured names end up in the generated templates."""
    job = Job.from_dict(load_example("map-example.json"))

    with set_configuration(map_node_name="each-name"):
        rendered = get_argo_workflow(job).render()
    task = rendered["spec"]["templates"][0]["dag"]["tasks"][0]
    assert task["name"] == "each-name"
    assert rendered["spec"]["templates"][0]["outputs"]["parameters"][0]["valueFrom"] == {
        "parameter": "{{tasks.each-name.outputs.parameters.greeting}}"
    }

    rendered = get_argo_workflow(job).render()
    assert rendered["spec"]["templates"][0]["dag"]["tasks"][0]["name"] == "mapnode"


def test_secret_and_artifact_configuration() -> None:
    """Test the secret object and artifact paths can be overridden."""
    root = brick(1, inputs=[port("token", "env_secret"), port("data", "artifact")])
    templates: list = []
    with set_configuration(secret_object_name="vault", artifact_path_prefix="/inputs/"):
        traverse_component(root, SecretScope({"API_TOKEN": "token"}), VolumeScope(), templates)

    template = templates[0]
    assert template.container["env"][0]["valueFrom"]["secretKeyRef"] == {
        "name": "vault",
        "key": "API_TOKEN",
    }
    assert template.inputs.artifacts[0].path == "/inputs/data"


def test_configuration_is_restored() -> None:
    """Test settings only apply within their block, nested or not."""
    with set_configuration(true_node_name="yes"):
        with set_configuration(false_node_name="no"):
            assert get_configuration("true_node_name") == "yes"
            assert get_configuration("false_node_name") == "no"
        assert get_configuration("false_node_name") == "nodeFalse"
    assert get_configuration("true_node_name") == "nodeTrue"


def test_configuration_leaves_no_trace() -> None:
    """Test a first-time setting does not stay behind as the ambient configuration."""

    def _configure_once() -> None:
        with set_configuration(map_node_name="each"):
            assert CONFIGURATION.get().map_node_name == "each"
        with pytest.raises(LookupError):
            CONFIGURATION.get()
        assert get_configuration("map_node_name") == "mapnode"

    Context().run(_configure_once)


def test_unknown_configuration_key() -> None:
    """Test misspelt settings are refused."""
    with pytest.raises(KeyError):
        with set_configuration(map_name="each"):  # type: ignore[call-arg]
            pass
