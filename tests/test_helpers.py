"""Check the scope, bridging and rendering helpers of the transpiler."""

import pytest

from flowify.core import ExpressionError, ResolutionError, StructuralError
from flowify.helpers import (
    SecretScope,
    VolumeScope,
    bridge_volume,
    expression_to_string,
    get_connected_volume_map,
    get_container_args,
    get_container_volumes,
    get_dependencies,
    get_node_secret_scope,
    resolve,
    volume_from_config,
)
from flowify.models import (
    Argument,
    ArgumentSourceFile,
    Component,
    Data,
    Expression,
    Graph,
    Map,
    Node,
    VolumeResultSource,
)
from ._lib.builders import arg, brick, component, edge, graph, port, result

VOLUME = {"name": "vol-config-0", "emptyDir": {}}


def test_secret_scope_is_persistent() -> None:
    """Scopes are never changed in place."""
    parent = SecretScope({"SECRET_PASS": "secretWF1"})
    child = parent.bind("SECRET_ID", "secretWF2")

    assert dict(parent.entries) == {"SECRET_PASS": "secretWF1"}
    assert dict(child.entries) == {"SECRET_PASS": "secretWF1", "SECRET_ID": "secretWF2"}
    assert child.key_for("secretWF2") == "SECRET_ID"
    assert child.key_for("missing") is None
    assert dict(child.restrict_to(["secretWF2"]).entries) == {"SECRET_ID": "secretWF2"}
    with pytest.raises(TypeError):
        child.entries["other"] = "x"  # type: ignore[index]


def test_node_secret_scope_renames_mapped_secrets() -> None:
    """Secrets crossing into a node are exposed under the node's port names."""
    inputs = [port("secretWF1", "env_secret"), port("secretWF2", "env_secret"), port("seed")]
    mappings = [
        edge("secretWF1", "N1.secretN1"),
        edge("secretWF2", "N1.secretN2"),
        edge("secretWF2", "N2.secretN1"),
        edge("seed", "N1.seedN1"),
    ]
    scope = SecretScope({"SECRET_PASS": "secretWF1", "SECRET_ID": "secretWF2"})

    n1 = get_node_secret_scope("N1", scope, inputs, mappings)
    n2 = get_node_secret_scope("N2", scope, inputs, mappings)

    assert dict(n1.entries) == {"SECRET_PASS": "secretN1", "SECRET_ID": "secretN2"}
    assert dict(n2.entries) == {"SECRET_PASS": "secretWF1", "SECRET_ID": "secretN1"}
    assert dict(scope.entries) == {"SECRET_PASS": "secretWF1", "SECRET_ID": "secretWF2"}


def test_renamed_secret_shadows_same_port_name() -> None:
    """A port name exposes one secret only, the one mapped onto it."""
    scope = SecretScope({"KEY_B": "secretB", "KEY_A": "secretA"})

    assert dict(scope.rebind("KEY_B", "secretA").entries) == {"KEY_B": "secretA"}
    assert dict(scope.bind("KEY_C", "secretC").rebind("KEY_C", "secretB").entries) == {
        "KEY_A": "secretA",
        "KEY_C": "secretB",
    }

    inputs = [port("secretB", "env_secret"), port("secretA", "env_secret")]
    n1 = get_node_secret_scope("N1", scope, inputs, [edge("secretB", "N1.secretA")])
    assert dict(n1.entries) == {"KEY_B": "secretA"}


def test_container_args() -> None:
    """Literal, parameter and artifact arguments render; volumes are left out."""
    args = [
        Argument(source="python run.py"),
        arg("seed", prefix="--seed="),
        arg("data", type="artifact", prefix="--data=", suffix="/index.csv"),
        arg("mount-0", type="volume", prefix="vols/mypath"),
    ]
    assert get_container_args(args) == [
        "python run.py",
        "--seed={{inputs.parameters.seed}}",
        "--data={{inputs.artifacts.data.path}}/index.csv",
    ]

    with pytest.raises(StructuralError, match="Unrecognized argument target type: 'parameterz'"):
        get_container_args([arg("seed", type="parameterz")])
    with pytest.raises(StructuralError):
        get_container_args([Argument(source=ArgumentSourceFile(file="/etc/x"))])


def test_volume_mount_paths() -> None:
    """Mount paths are prefix, port and suffix joined without doubled slashes."""
    volumes = VolumeScope({"mount-0": VOLUME, "mount-1": {"name": "other"}})
    mounts = get_container_volumes(
        [
            arg("mount-0", type="volume", prefix="vols/mypath"),
            arg("mount-1", type="volume", prefix="/mnt/", suffix="sub/"),
            arg("seed"),
        ],
        volumes,
    )
    assert [(mount.name, mount.mount_path) for mount in mounts] == [
        ("vol-config-0", "vols/mypath/mount-0"),
        ("other", "/mnt/mount-1/sub"),
    ]

    with pytest.raises(ResolutionError, match="no such volume mount-2"):
        get_container_volumes([arg("mount-2", type="volume")], volumes)


def test_volume_from_config() -> None:
    """Volume configs are JSON objects with a name."""
    assert volume_from_config('{"name": "vol", "emptyDir": {}}') == {"name": "vol", "emptyDir": {}}
    with pytest.raises(ResolutionError):
        volume_from_config("{not json")
    with pytest.raises(ResolutionError):
        volume_from_config('["vol"]')


def test_expression_to_string() -> None:
    """Literals pass through, ports become input parameters."""
    assert expression_to_string(Expression(left='"4"', operator=">=", right='"5"')) == '"4" >= "5"'
    assert (
        expression_to_string(
            Expression(left=Data(name="number", type="parameter"), operator="<", right="10")
        )
        == "{{inputs.parameters.number}} < 10"
    )
    with pytest.raises(ExpressionError, match="right"):
        expression_to_string(Expression(left="1", operator="==", right=1))  # type: ignore[arg-type]


def test_dependencies_are_distinct() -> None:
    """A node depending twice on the same sibling lists it once."""
    edges = [edge("A.x", "C.x"), edge("B.y", "C.y"), edge("A.z", "C.z"), edge("A.x", "B.x")]
    assert get_dependencies(edges, "C") == ["A", "B"]
    assert get_dependencies(edges, "A") == []


def _writer(number: int) -> Component:
    return brick(
        number,
        inputs=[port("greeting", "volume")],
        outputs=[port("greeting-out", "volume")],
        results=[result("greeting-out", VolumeResultSource(volume="greeting"))],
    )


def test_bridge_volume_through_brick_graph_and_map() -> None:
    """Volume outputs are traced back to the inputs they pass on."""
    writer = _writer(2)
    assert bridge_volume(writer, "greeting-out") == "greeting"

    nested = graph(
        3,
        {"first": _writer(4), "second": _writer(5)},
        edges=[edge("first.greeting-out", "second.greeting")],
        input_mappings=[edge("workdir", "first.greeting")],
        output_mappings=[edge("second.greeting-out", "done")],
        inputs=[port("workdir", "volume")],
        outputs=[port("done", "volume")],
    )
    assert bridge_volume(nested, "done") == "workdir"

    mapped = component(
        6,
        Map(
            node=_writer(7),
            input_mappings=[edge("workdir", "greeting")],
            output_mappings=[edge("greeting-out", "done")],
        ),
        inputs=[port("workdir", "volume")],
        outputs=[port("done", "volume")],
    )
    assert bridge_volume(mapped, "done") == "workdir"

    with pytest.raises(StructuralError, match="'volume' port"):
        bridge_volume(brick(8, outputs=[port("value")]), "value")
    with pytest.raises(ResolutionError):
        bridge_volume(writer, "missing")
    with pytest.raises(StructuralError):
        bridge_volume(component(9, outputs=[port("v", "volume")]), "v")


def test_resolve_walks_upstream() -> None:
    """A claim is resolved through upstream producers to a scoped volume."""
    root = graph(
        1,
        {"writer": _writer(2), "reader": brick(3, inputs=[port("greeting", "volume")])},
        edges=[edge("writer.greeting-out", "reader.greeting")],
    )
    assert isinstance(root.implementation, Graph)
    nodes, edges = root.implementation.nodes, root.implementation.edges
    scoped = {"writer": VolumeScope({"greeting": VOLUME})}

    assert resolve(nodes[1], "greeting", nodes, edges, scoped) == VOLUME
    assert resolve(nodes[0], "greeting", nodes, edges, scoped) == VOLUME

    with pytest.raises(ResolutionError, match="resolve failed"):
        resolve(nodes[1], "greeting", nodes, edges, {})

    reader_volumes = get_connected_volume_map("reader", nodes[1].node, edges, nodes, scoped)
    assert dict(reader_volumes.entries) == {"greeting": VOLUME}
    # Unresolvable claims are skipped.
    assert len(get_connected_volume_map("reader", nodes[1].node, edges, nodes, {})) == 0


def test_resolve_terminates_on_cycles() -> None:
    """A cyclic chain of volume producers is reported rather than followed forever."""
    nodes = [Node(id="a", node=_writer(1)), Node(id="b", node=_writer(2))]
    edges = [edge("a.greeting-out", "b.greeting"), edge("b.greeting-out", "a.greeting")]

    with pytest.raises(ResolutionError, match="cycle"):
        resolve(nodes[0], "greeting", nodes, edges, {})
