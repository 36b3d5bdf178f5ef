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

"""Transpiler helpers.

Scope maps for secrets and volumes, resolution of volume claims across
nesting boundaries, and the small renderers turning brick arguments and
conditional expressions into Argo strings.
"""

import json
import logging
import posixpath
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from attrs import field, frozen

from .argo import VolumeMount
from .core import ExpressionError, ResolutionError, StructuralError, TranspileError
from .models import (
    ARTIFACT_PORT,
    PARAMETER_PORT,
    SECRET_PORT,
    VOLUME_PORT,
    Argument,
    ArgumentSourcePort,
    Brick,
    Component,
    Data,
    Edge,
    Expression,
    Graph,
    Map,
    Node,
    PortAddress,
    VolumeResultSource,
)

logger = logging.getLogger(__name__)


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@frozen
class SecretScope:
    """Secrets visible to a component, as secret key -> port (env var) name.

    Never modified in place: every operation returns a new scope, so a child
    scope can only ever be derived from its parent.
    """

    entries: Mapping[str, str] = field(factory=dict, converter=_freeze)

    def key_for(self, name: str) -> str | None:
        """Find the secret key exposed under the port `name`, if any."""
        for key, value in self.entries.items():
            if value == name:
                return key
        return None

    def bind(self, key: str, name: str) -> "SecretScope":
        return SecretScope({**self.entries, key: name})

    def rebind(self, key: str, name: str) -> "SecretScope":
        """Expose `key` under `name`, dropping any other secret exposed under `name`.

        A port name holds exactly one secret, so a renamed secret shadows
        whatever the parent exposed under the same name.
        """
        return SecretScope(
            {
                **{other: value for other, value in self.entries.items() if value != name},
                key: name,
            }
        )

    def restrict_to(self, names: Iterable[str]) -> "SecretScope":
        """Keep only the secrets exposed under one of `names`."""
        allowed = set(names)
        return SecretScope(
            {key: value for key, value in self.entries.items() if value in allowed}
        )

    def items(self) -> Iterator[tuple[str, str]]:
        yield from self.entries.items()

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries


@frozen
class VolumeScope:
    """Volumes visible to a component, as input port name -> Kubernetes volume."""

    entries: Mapping[str, dict[str, Any]] = field(factory=dict, converter=_freeze)

    def get(self, port: str) -> dict[str, Any] | None:
        return self.entries.get(port)

    def bind(self, port: str, volume: dict[str, Any]) -> "VolumeScope":
        return VolumeScope({**self.entries, port: volume})

    def items(self) -> Iterator[tuple[str, dict[str, Any]]]:
        yield from self.entries.items()

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, port: object) -> bool:
        return port in self.entries


ScopedVolumes = Mapping[str, VolumeScope]


def check_input_type(inputs: Iterable[Data], name: str) -> str | None:
    """Type of the input called `name`, or None if there is none."""
    for data in inputs:
        if data.name == name:
            return data.type
    return None


def get_node_secret_scope(
    node_id: str,
    secrets: SecretScope,
    inputs: Iterable[Data],
    input_mappings: Iterable[Edge],
) -> SecretScope:
    """Derive the secret scope of a graph child.

    Every secret crossing into `node_id` through an input mapping is renamed
    to the child's port. Anything else in scope is carried over unchanged and
    pruned later, at the brick.
    """
    inputs = list(inputs)
    node_secrets = secrets
    for mapping in input_mappings:
        if mapping.target.node != node_id:
            continue
        if check_input_type(inputs, mapping.source.port) != SECRET_PORT:
            continue
        key = secrets.key_for(mapping.source.port)
        if key is None:
            logger.debug(
                "No secret in scope for %s, not mapping it to %s.%s",
                mapping.source.port,
                node_id,
                mapping.target.port,
            )
            continue
        node_secrets = node_secrets.rebind(key, mapping.target.port)
    return node_secrets


def get_connected_source_edge(target: PortAddress, edges: Iterable[Edge]) -> Edge:
    """Find the edge ending at `target`.

    Raises:
        ResolutionError: if nothing is connected there.
    """
    for edge in edges:
        if edge.target == target:
            return edge
    raise ResolutionError(
        f"could not find input connected edge: {target.node}.{target.port}"
    )


def get_node(node_id: str, nodes: Iterable[Node]) -> Node:
    for node in nodes:
        if node.id == node_id:
            return node
    raise ResolutionError(f"could not find node {node_id}")


def _as_component(node: Node) -> Component:
    if not isinstance(node.node, Component):
        raise StructuralError(
            f"transpilation requires dereferenced components, at '{node.id}' "
            f"found {type(node.node).__name__}"
        )
    return node.node


def _bridge_brick_volume(brick: Brick, output_port: str) -> str:
    for result in brick.results:
        if result.target.port == output_port and isinstance(
            result.source, VolumeResultSource
        ):
            return result.source.volume
    raise ResolutionError(f"could not bridge {output_port}")


def _bridge_graph_volume(graph: Graph, output_port: str) -> str:
    try:
        edge = get_connected_source_edge(
            PortAddress(port=output_port), graph.output_mappings
        )
    except ResolutionError as exc:
        raise ResolutionError("graph bridge failed on output mappings") from exc

    upstream_id = edge.source.node
    port = edge.source.port
    for _ in range(len(graph.nodes)):
        try:
            node = get_node(upstream_id, graph.nodes)
        except ResolutionError as exc:
            raise ResolutionError(
                f"graph bridge node reference error at '{upstream_id}'"
            ) from exc

        try:
            input_port = bridge_volume(_as_component(node), port)
        except TranspileError as exc:
            raise ResolutionError(f"could not bridge graph node: '{node.id}'") from exc

        for mapping in graph.input_mappings:
            if mapping.target == PortAddress(port=input_port, node=node.id):
                return mapping.source.port

        try:
            upstream = get_connected_source_edge(
                PortAddress(port=input_port, node=node.id), graph.edges
            )
        except ResolutionError as exc:
            raise ResolutionError(f"graph bridge walk failed at '{node.id}'") from exc
        upstream_id = upstream.source.node
        port = upstream.source.port

    raise ResolutionError(
        f"could not bridge graph output '{output_port}' within {len(graph.nodes)} nodes"
    )


def _bridge_map_volume(map_: Map, output_port: str) -> str:
    inner = map_.node
    if not isinstance(inner, Component):
        raise StructuralError(
            f"transpilation requires dereferenced components, found {type(inner).__name__}"
        )

    for output in map_.output_mappings:
        if output.target.port == output_port:
            break
    else:
        raise ResolutionError(f"map bridge failed: no output mapping to '{output_port}'")

    input_port = bridge_volume(inner, output.source.port)
    for mapping in map_.input_mappings:
        if mapping.target.port == input_port:
            return mapping.source.port
    raise ResolutionError(f"map bridge failed: no input mapping to '{input_port}'")


def bridge_volume(component: Component, output_port: str) -> str:
    """Find the input volume port that an output volume port passes on.

    Args:
        component: a dereferenced component.
        output_port: name of one of its volume outputs.

    Returns: name of the matching volume input.

    Raises:
        ResolutionError: if the output is not connected through to an input.
        StructuralError: if the port is not a volume or the implementation cannot be bridged.
    """
    for data in component.outputs:
        if data.name == output_port:
            break
    else:
        raise ResolutionError(f"port '{output_port}' expected at '{component.uid}'")
    if data.type != VOLUME_PORT:
        raise StructuralError(
            f"'volume' port '{output_port}' required at '{component.uid}'"
        )

    implementation = component.implementation
    match implementation:
        case Brick():
            return _bridge_brick_volume(implementation, output_port)
        case Graph():
            return _bridge_graph_volume(implementation, output_port)
        case Map():
            return _bridge_map_volume(implementation, output_port)
        case _:
            raise StructuralError(
                f"volume bridging not implemented for type {implementation.type} "
                f"at {component.uid}.{output_port}"
            )


def resolve(
    node: Node,
    claim: str,
    nodes: list[Node],
    edges: Iterable[Edge],
    scoped_volumes: ScopedVolumes,
) -> dict[str, Any]:
    """Resolve a volume claim on a graph node to a concrete volume.

    Walks upstream, bridging each producer's output back to one of its
    inputs, until a volume injected from the enclosing scope is found. The
    walk visits each node at most once.

    Args:
        node: node holding the claim.
        claim: name of its volume input.
        nodes: all nodes of the graph.
        edges: all edges of the graph.
        scoped_volumes: volumes mapped in from the enclosing component, per node id.

    Returns: the Kubernetes volume.

    Raises:
        ResolutionError: if the chain ends, or loops, before reaching a volume.
    """
    edges = list(edges)
    visited = {node.id}
    for _ in range(len(nodes)):
        scope = scoped_volumes.get(node.id)
        if scope is not None and (volume := scope.get(claim)) is not None:
            return volume

        try:
            edge = get_connected_source_edge(PortAddress(port=claim, node=node.id), edges)
            upstream = get_node(edge.source.node, nodes)
        except ResolutionError as exc:
            raise ResolutionError(
                f"resolve failed for volume '{node.id}.{claim}'"
            ) from exc

        if upstream.id in visited:
            raise ResolutionError(
                f"cycle detected resolving volume '{node.id}.{claim}' through '{upstream.id}'"
            )
        visited.add(upstream.id)

        try:
            claim = bridge_volume(_as_component(upstream), edge.source.port)
        except TranspileError as exc:
            raise ResolutionError(f"resolve node '{node.id}' failed") from exc
        node = upstream

    raise ResolutionError(
        f"could not resolve volume '{node.id}.{claim}' within {len(nodes)} nodes"
    )


def get_connected_volume_map(
    node_id: str,
    component: Component,
    edges: Iterable[Edge],
    nodes: list[Node],
    scoped_volumes: ScopedVolumes,
) -> VolumeScope:
    """Volumes reaching each volume input of a graph child.

    Claims that cannot be resolved are skipped with a warning; a brick
    actually mounting one fails later.
    """
    edges = list(edges)
    node = get_node(node_id, nodes)
    volumes = VolumeScope()
    for data in component.inputs:
        if data.type != VOLUME_PORT:
            continue
        try:
            volume = resolve(node, data.name, nodes, edges, scoped_volumes)
        except ResolutionError as exc:
            logger.warning("could not resolve volume %s.%s: %s", node_id, data.name, exc)
            continue
        volumes = volumes.bind(data.name, volume)
    return volumes


def get_dependencies(edges: Iterable[Edge], node_id: str) -> list[str]:
    """Distinct source nodes of the edges entering `node_id`, in edge order."""
    dependencies: list[str] = []
    for edge in edges:
        if edge.target.node == node_id and edge.source.node not in dependencies:
            dependencies.append(edge.source.node)
    return dependencies


def get_container_args(args: Iterable[Argument]) -> list[str]:
    """Render brick arguments to the container's command line.

    Volume arguments are mounted rather than passed, so they are left out.

    Raises:
        StructuralError: for unknown argument sources or target types.
    """
    rendered: list[str] = []
    for arg in args:
        if isinstance(arg.source, str):
            rendered.append(arg.source)
            continue
        if not isinstance(arg.source, ArgumentSourcePort):
            raise StructuralError(f"Unrecognized argument: {arg.source!r}")

        port = arg.source.port
        prefix, suffix = arg.target.prefix, arg.target.suffix
        if arg.target.type == ARTIFACT_PORT:
            rendered.append(f"{prefix}{{{{inputs.artifacts.{port}.path}}}}{suffix}")
        elif arg.target.type == PARAMETER_PORT:
            rendered.append(f"{prefix}{{{{inputs.parameters.{port}}}}}{suffix}")
        elif arg.target.type != VOLUME_PORT:
            raise StructuralError(
                f"Unrecognized argument target type: '{arg.target.type}' for port '{port}'"
            )
    return rendered


def _join_path(*parts: str) -> str:
    """Join path elements, skipping empty ones, into a clean path."""
    return posixpath.normpath("/".join(part for part in parts if part))


def get_container_volumes(args: Iterable[Argument], volumes: VolumeScope) -> list[VolumeMount]:
    """Mounts for every volume argument of a brick.

    Raises:
        ResolutionError: if an argument refers to a volume that is not in scope.
    """
    mounts = []
    for arg in args:
        if not isinstance(arg.source, ArgumentSourcePort) or arg.target.type != VOLUME_PORT:
            continue
        port = arg.source.port
        volume = volumes.get(port)
        if volume is None:
            raise ResolutionError(f"no such volume {port}")
        mounts.append(
            VolumeMount(
                name=volume["name"],
                mount_path=_join_path(arg.target.prefix, port, arg.target.suffix),
            )
        )
    return mounts


def volume_from_config(config: str) -> dict[str, Any]:
    """Decode a Kubernetes volume from its JSON configuration.

    Raises:
        ResolutionError: if it is not a JSON object with a name.
    """
    try:
        volume = json.loads(config)
    except json.JSONDecodeError as exc:
        raise ResolutionError(f"Could not create volume from config: {config}") from exc
    if not isinstance(volume, dict) or not volume.get("name"):
        raise ResolutionError(f"Volume config needs to be an object with a name: {config}")
    return volume


def _operand_to_string(operand: Any, side: str) -> str:
    if isinstance(operand, str):
        return operand
    if isinstance(operand, Data):
        return f"{{{{inputs.parameters.{operand.name}}}}}"
    raise ExpressionError(f"Incorrect {side} value: {operand!r}")


def expression_to_string(expression: Expression) -> str:
    """Render a conditional expression as an Argo `when` string.

    Literal operands are passed verbatim, ports become input parameter references.
    """
    left = _operand_to_string(expression.left, "left")
    right = _operand_to_string(expression.right, "right")
    return f"{left} {expression.operator} {right}"

