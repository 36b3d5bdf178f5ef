"""Check dereferencing of component trees against a component store."""

import pytest
from attrs import evolve

from flowify.core import DereferenceError
from flowify.dereference import (
    ComponentLookup,
    ComponentNotFound,
    LocalComponentStore,
    dereference_component,
)
from flowify.models import (
    Component,
    ComponentReference,
    Conditional,
    CRefVersion,
    Expression,
    Graph,
    Map,
    Version,
)
from ._lib.builders import EXAMPLES, brick, component, graph, load_example, port, ref


class CountingStore(LocalComponentStore):
    """Store recording every lookup."""

    def __init__(self, *components: Component) -> None:
        super().__init__()
        self.lookups: list[ComponentReference | CRefVersion] = []
        for item in components:
            self.add(item)

    def get_component(self, ref: ComponentReference | CRefVersion) -> Component:
        self.lookups.append(ref)
        return super().get_component(ref)


def _versioned(number: int, version: int, tags: list[str] | None = None) -> Component:
    stored = brick(number, outputs=[port(f"v{version}")])
    stored.metadata.version = Version(current=version, tags=tags or [])
    return stored


def test_store_resolves_versions() -> None:
    """Bare references get the latest tagged version, else the highest."""
    store = LocalComponentStore()
    store.add(_versioned(1, 1))
    store.add(_versioned(1, 2, ["latest"]))
    store.add(_versioned(1, 3))
    assert isinstance(store, ComponentLookup)

    assert store.get_component(ref(1)).outputs[0].name == "v2"
    assert store.get_component(CRefVersion(uid=ref(1), version=3)).outputs[0].name == "v3"

    untagged = LocalComponentStore()
    untagged.add(_versioned(2, 1))
    untagged.add(_versioned(2, 4))
    assert untagged.get_component(ref(2)).outputs[0].name == "v4"

    with pytest.raises(ComponentNotFound):
        store.get_component(ref(9))
    with pytest.raises(ComponentNotFound):
        store.get_component(CRefVersion(uid=ref(1), version=7))


def test_dereference_example_graph() -> None:
    """References in a stored graph are replaced by the stored components."""
    store = LocalComponentStore.from_directory(EXAMPLES / "components")
    root = Component.from_dict(load_example("referenced-graph.json"))

    inlined = dereference_component(store, root)

    assert isinstance(inlined.implementation, Graph)
    greet, shout = (node.node for node in inlined.implementation.nodes)
    assert isinstance(greet, Component) and greet.name == "greeter"
    assert isinstance(shout, Component) and shout.name == "shouter"
    assert shout.metadata.version.current == 2
    # The input tree is left alone.
    assert isinstance(root.implementation, Graph)
    assert isinstance(root.implementation.nodes[0].node, ComponentReference)


def test_dereference_is_a_fixpoint() -> None:
    """Dereferencing an inlined tree changes nothing and looks nothing up."""
    leaf = brick(2, inputs=[port("a")])
    store = CountingStore(leaf)
    root = graph(1, {"first": ref(2), "second": CRefVersion(uid=ref(2), version=0)})

    once = dereference_component(store, root)
    assert len(store.lookups) == 2

    twice = dereference_component(store, once)
    assert twice == once
    assert len(store.lookups) == 2


def test_reference_at_the_root_is_looked_up_once() -> None:
    """A root reference costs exactly one lookup."""
    store = CountingStore(brick(5))
    inlined = dereference_component(store, ref(5))
    assert inlined.uid == ref(5)
    assert store.lookups == [ref(5)]


def test_nested_map_and_conditional() -> None:
    """Maps and both branches of conditionals are dereferenced too."""
    store = CountingStore(brick(2), brick(3), brick(4))
    root = component(
        1,
        Map(
            node=component(
                5,
                Conditional(
                    expression=Expression(left="1", operator="==", right="1"),
                    node_true=ref(2),
                    node_false=CRefVersion(uid=ref(3), version=0),
                ),
            )
        ),
    )
    inlined = dereference_component(store, root)

    assert isinstance(inlined.implementation, Map)
    inner = inlined.implementation.node
    assert isinstance(inner, Component)
    assert isinstance(inner.implementation, Conditional)
    assert inner.implementation.node_true == brick(2)
    assert inner.implementation.node_false == brick(3)


def test_missing_component_names_the_node() -> None:
    """Lookup failures are wrapped with the node id."""
    store = LocalComponentStore()
    root = graph(1, {"lonely": ref(404)})

    with pytest.raises(DereferenceError, match="node, id: lonely") as exc:
        dereference_component(store, root)
    assert isinstance(exc.value.__cause__, ComponentNotFound)


def test_any_cannot_be_dereferenced() -> None:
    """Placeholders have no dereference rule."""
    store = LocalComponentStore()
    nested = graph(1, {"stub": component(2)})

    with pytest.raises(DereferenceError, match="unimplemented dereference for type any") as exc:
        dereference_component(store, nested)
    assert "Within node: stub" in exc.value.__notes__


def test_store_rejects_components_without_uid() -> None:
    """Stored components need an identity."""
    anonymous = evolve(brick(1), metadata=evolve(brick(1).metadata, uid=ComponentReference()))
    with pytest.raises(DereferenceError, match="without a uid"):
        LocalComponentStore().add(anonymous)
