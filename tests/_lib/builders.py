"""Helpers for building component trees in tests."""

import uuid
from pathlib import Path
from typing import Any, Iterable

from flowify.models import (
    AnyImplementation,
    Argument,
    ArgumentSourcePort,
    ArgumentTarget,
    Brick,
    Component,
    ComponentReference,
    Data,
    Edge,
    FileResultSource,
    Graph,
    Implementation,
    Metadata,
    Node,
    PortAddress,
    Result,
    ResultSource,
)
from flowify.utils import load_document

EXAMPLES = Path(__file__).parent.parent.parent / "example"


def ref(number: int) -> ComponentReference:
    """Deterministic, non-zero component reference."""
    return ComponentReference(uuid.UUID(int=number))


def port(name: str, type: str = "parameter") -> Data:
    return Data(name=name, type=type)


def arg(port_name: str, type: str = "parameter", prefix: str = "", suffix: str = "") -> Argument:
    return Argument(
        source=ArgumentSourcePort(port=port_name),
        target=ArgumentTarget(type=type, prefix=prefix, suffix=suffix),
    )


def result(port_name: str, source: ResultSource | None = None) -> Result:
    return Result(
        source=source if source is not None else FileResultSource(file=f"/tmp/{port_name}"),
        target=PortAddress(port=port_name),
    )


def edge(source: str, target: str) -> Edge:
    """Edge from "node.port" to "node.port"; a missing node means the enclosing component."""

    def _address(text: str) -> PortAddress:
        node, _, port_name = text.rpartition(".")
        return PortAddress(port=port_name, node=node)

    return Edge(source=_address(source), target=_address(target))


def component(
    number: int,
    implementation: Implementation | None = None,
    inputs: Iterable[Data] = (),
    outputs: Iterable[Data] = (),
    name: str = "",
) -> Component:
    return Component(
        metadata=Metadata(name=name or f"component-{number}", uid=ref(number)),
        inputs=list(inputs),
        outputs=list(outputs),
        implementation=implementation if implementation is not None else AnyImplementation(),
    )


def brick(
    number: int,
    inputs: Iterable[Data] = (),
    outputs: Iterable[Data] = (),
    args: Iterable[Argument | str] = (),
    results: Iterable[Result] = (),
    container: dict[str, Any] | None = None,
) -> Component:
    return component(
        number,
        Brick(
            container=container or {"name": f"brick-{number}", "image": "alpine:latest"},
            args=[
                Argument(source=item) if isinstance(item, str) else item for item in args
            ],
            results=list(results),
        ),
        inputs=inputs,
        outputs=outputs,
    )


def graph(
    number: int,
    nodes: dict[str, Component | ComponentReference],
    edges: Iterable[Edge] = (),
    input_mappings: Iterable[Edge] = (),
    output_mappings: Iterable[Edge] = (),
    inputs: Iterable[Data] = (),
    outputs: Iterable[Data] = (),
) -> Component:
    return component(
        number,
        Graph(
            nodes=[Node(id=node_id, node=child) for node_id, child in nodes.items()],
            edges=list(edges),
            input_mappings=list(input_mappings),
            output_mappings=list(output_mappings),
        ),
        inputs=inputs,
        outputs=outputs,
    )


def load_example(name: str) -> Any:
    """Raw document of one of the example files."""
    return load_document(EXAMPLES / name)
