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

"""Component model.

Describes user-authored pipelines as a tree of components, each with typed
ports and exactly one implementation (a container brick, a graph of child
nodes, a map over a single node, a conditional or a placeholder).

Documents use the camelCase JSON layout of the workflow server; every class
here can be built from, and turned back into, that layout with `from_dict`
and `to_dict`. Polymorphic fields are closed unions and are disambiguated
while decoding, either by a sibling `type` tag or by the shape of the value.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable, Mapping, Union

from attrs import define, field, frozen

from .core import ModelError, RawType

BRICK_TYPE = "brick"
ANY_TYPE = "any"
GRAPH_TYPE = "graph"
MAP_TYPE = "map"
CONDITIONAL_TYPE = "conditional"
WORKFLOW_TYPE = "workflow"
JOB_TYPE = "job"
COMPONENT_TYPE = "component"

ARTIFACT_PORT = "artifact"
PARAMETER_PORT = "parameter"
SECRET_PORT = "env_secret"
PARAMETER_ARRAY_PORT = "parameter_array"
VOLUME_PORT = "volume"
PORT_TYPES = (
    ARTIFACT_PORT,
    PARAMETER_PORT,
    SECRET_PORT,
    PARAMETER_ARRAY_PORT,
    VOLUME_PORT,
)

VERSION_INIT = 1
VERSION_TAG_LATEST = "latest"


def _expect_mapping(document: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(document, Mapping):
        raise ModelError(f"Cannot decode {what} from {type(document).__name__}: {document!r}")
    return document


def _drop_empty(representation: dict[str, RawType]) -> dict[str, RawType]:
    return {
        key: value
        for key, value in representation.items()
        if value is not None and value != [] and value != {} and value != ""
    }


@frozen
class ComponentReference:
    """Bare reference to a stored component, by UUID."""

    uid: uuid.UUID = uuid.UUID(int=0)

    @classmethod
    def new(cls) -> ComponentReference:
        """Create a random, non-zero reference."""
        return cls(uuid.uuid4())

    @classmethod
    def parse(cls, text: str) -> ComponentReference:
        """Build a reference from its canonical string form.

        Raises:
            ModelError: if the text is not a UUID.
        """
        try:
            return cls(uuid.UUID(str(text).strip()))
        except ValueError as exc:
            raise ModelError(f"cannot decode ComponentReference from {text!r}") from exc

    def is_zero(self) -> bool:
        """Whether this is the nil UUID, i.e. unset."""
        return self.uid.int == 0

    def __str__(self) -> str:
        return str(self.uid)


@frozen
class CRefVersion:
    """Reference to a specific version of a stored component."""

    uid: ComponentReference = ComponentReference()
    version: int = 0

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> CRefVersion:
        document = _expect_mapping(document, "CRefVersion")
        uid = document.get("uid")
        return cls(
            uid=ComponentReference.parse(uid) if uid else ComponentReference(),
            version=int(document.get("version", 0)),
        )

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty({"uid": str(self.uid), "version": self.version})

    def is_zero(self) -> bool:
        return self.uid.is_zero() and self.version == 0

    def __str__(self) -> str:
        return f"UID: {self.uid}, version: {self.version}"


@define
class Version:
    """Version bookkeeping of a stored document.

    The storage layer owns incrementing these, the transpiler only reads them.
    """

    current: int = 0
    tags: list[str] = field(factory=list)
    previous: CRefVersion = field(factory=CRefVersion)

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Version:
        document = _expect_mapping(document, "version")
        return cls(
            current=int(document.get("current", 0)),
            tags=list(document.get("tags") or []),
            previous=CRefVersion.from_dict(document.get("previous") or {}),
        )

    def to_dict(self) -> dict[str, RawType]:
        representation: dict[str, RawType] = {"current": self.current}
        if self.tags:
            representation["tags"] = list(self.tags)
        if not self.previous.is_zero():
            representation["previous"] = self.previous.to_dict()
        return representation

    def set_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def set_latest_tag(self) -> None:
        self.set_tag(VERSION_TAG_LATEST)

    def initialize_new(self) -> None:
        """Prepare the version of a document that is stored for the first time.

        Raises:
            ModelError: if the document already claims to be a later version.
        """
        if self.current == 0:
            self.current = VERSION_INIT
        elif self.current != VERSION_INIT:
            raise ModelError(
                f"cannot initialize new version with current version set to {self.current}"
            )
        self.set_latest_tag()


@define
class ModifiedBy:
    oid: str = ""
    email: str = ""


@define
class Metadata:
    """Human-facing metadata shared by components, workflows and jobs.

    `modified_by`, `uid` and `timestamp` are read-only for clients.
    """

    name: str = ""
    description: str = ""
    modified_by: ModifiedBy = field(factory=ModifiedBy)
    uid: ComponentReference = ComponentReference()
    version: Version = field(factory=Version)
    timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Metadata:
        modified_by = document.get("modifiedBy") or {}
        uid = document.get("uid")
        timestamp = document.get("timestamp")
        parsed_timestamp: datetime | None
        if isinstance(timestamp, datetime) or not timestamp:
            # YAML documents may already hold a datetime.
            parsed_timestamp = timestamp or None
        else:
            try:
                parsed_timestamp = datetime.fromisoformat(timestamp)
            except (TypeError, ValueError) as exc:
                raise ModelError(f"cannot decode timestamp {timestamp!r}") from exc
        return cls(
            name=document.get("name", ""),
            description=document.get("description", ""),
            modified_by=ModifiedBy(
                oid=modified_by.get("oid", ""), email=modified_by.get("email", "")
            ),
            uid=ComponentReference.parse(uid) if uid else ComponentReference(),
            version=Version.from_dict(document.get("version") or {}),
            timestamp=parsed_timestamp,
        )

    def to_dict(self) -> dict[str, RawType]:
        representation: dict[str, RawType] = {
            "name": self.name,
            "description": self.description,
        }
        if self.modified_by.oid or self.modified_by.email:
            representation["modifiedBy"] = _drop_empty(
                {"oid": self.modified_by.oid, "email": self.modified_by.email}
            )
        if not self.uid.is_zero():
            representation["uid"] = str(self.uid)
        if self.version.current or self.version.tags:
            representation["version"] = self.version.to_dict()
        if self.timestamp is not None:
            representation["timestamp"] = self.timestamp.isoformat()
        return _drop_empty(representation)


@define
class Data:
    """A named, typed port of a component.

    Attributes:
        name: port name, unique among the inputs (or outputs) of a component.
        type: one of `PORT_TYPES`.
        mediatype: free-form hints for the frontend.
        userdata: opaque data that the backend never touches.
    """

    name: str
    type: str
    mediatype: list[str] = field(factory=list)
    userdata: RawType = None

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Data:
        document = _expect_mapping(document, "port")
        if "name" not in document:
            raise ModelError(f"port without a name: {dict(document)!r}")
        return cls(
            name=document["name"],
            type=document.get("type", ""),
            mediatype=list(document.get("mediatype") or []),
            userdata=document.get("userdata"),
        )

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty(
            {
                "name": self.name,
                "mediatype": list(self.mediatype),
                "type": self.type,
                "userdata": self.userdata,
            }
        )


@frozen
class PortAddress:
    """A port on a node; an empty node means the port of the enclosing component."""

    port: str
    node: str = ""

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> PortAddress:
        document = _expect_mapping(document, "port address")
        return cls(port=document.get("port", ""), node=document.get("node", ""))

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty({"node": self.node, "port": self.port})


@frozen
class Edge:
    """Directed port-to-port connection."""

    source: PortAddress
    target: PortAddress

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Edge:
        document = _expect_mapping(document, "edge")
        return cls(
            source=PortAddress.from_dict(document.get("source") or {}),
            target=PortAddress.from_dict(document.get("target") or {}),
        )

    def to_dict(self) -> dict[str, RawType]:
        return {"source": self.source.to_dict(), "target": self.target.to_dict()}


def _edges(documents: Iterable[Any] | None) -> list[Edge]:
    return [Edge.from_dict(document) for document in documents or []]


Operand = Union[str, Data]


def _operand_from_dict(document: Any, side: str) -> Operand:
    if isinstance(document, str):
        return document
    if isinstance(document, Mapping):
        return Data.from_dict(document)
    raise ModelError(f"Cannot decode expression ({side} value) from {document!r}")


def _operand_to_dict(operand: Operand) -> RawType:
    return operand if isinstance(operand, str) else operand.to_dict()


@define
class Expression:
    """Boolean expression guarding a conditional; operands are literals or ports."""

    left: Operand
    operator: str
    right: Operand

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Expression:
        document = _expect_mapping(document, "expression")
        return cls(
            left=_operand_from_dict(document.get("left"), "left"),
            operator=document.get("operator", ""),
            right=_operand_from_dict(document.get("right"), "right"),
        )

    def to_dict(self) -> dict[str, RawType]:
        return {
            "left": _operand_to_dict(self.left),
            "operator": self.operator,
            "right": _operand_to_dict(self.right),
        }


@frozen
class ArgumentSourcePort:
    port: str


@frozen
class ArgumentSourceFile:
    file: str


@define
class ArgumentTarget:
    """How an argument is rendered: its port type plus string decoration."""

    type: str = ""
    prefix: str = ""
    suffix: str = ""


ArgumentSource = Union[str, ArgumentSourcePort, ArgumentSourceFile]


@define
class Argument:
    """A container command-line argument, either literal or bound to an input port."""

    source: ArgumentSource
    target: ArgumentTarget = field(factory=ArgumentTarget)
    description: str = ""

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Argument:
        document = _expect_mapping(document, "argument")
        source = document.get("source")
        parsed: ArgumentSource
        if isinstance(source, str):
            parsed = source
        elif isinstance(source, Mapping) and isinstance(source.get("port"), str):
            parsed = ArgumentSourcePort(port=source["port"])
        elif isinstance(source, Mapping) and isinstance(source.get("file"), str):
            parsed = ArgumentSourceFile(file=source["file"])
        else:
            raise ModelError(f"no decoding implemented for argument source {source!r}")
        target = document.get("target") or {}
        return cls(
            source=parsed,
            target=ArgumentTarget(
                type=target.get("type", ""),
                prefix=target.get("prefix", ""),
                suffix=target.get("suffix", ""),
            ),
            description=document.get("description", ""),
        )

    def to_dict(self) -> dict[str, RawType]:
        source: RawType
        if isinstance(self.source, ArgumentSourcePort):
            source = {"port": self.source.port}
        elif isinstance(self.source, ArgumentSourceFile):
            source = {"file": self.source.file}
        else:
            source = self.source
        representation: dict[str, RawType] = {"source": source}
        target = _drop_empty(
            {
                "type": self.target.type,
                "prefix": self.target.prefix,
                "suffix": self.target.suffix,
            }
        )
        if target:
            representation["target"] = target
        if self.description:
            representation["description"] = self.description
        return representation


@frozen
class FileResultSource:
    file: str


@frozen
class VolumeResultSource:
    volume: str


ResultSource = Union[str, FileResultSource, VolumeResultSource]


@define
class Result:
    """Binds an output port of a brick to where its value comes from."""

    source: ResultSource
    target: PortAddress
    description: str = ""

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Result:
        document = _expect_mapping(document, "result")
        source = document.get("source")
        parsed: ResultSource
        if isinstance(source, str):
            parsed = source
        elif isinstance(source, Mapping) and source.get("volume"):
            parsed = VolumeResultSource(volume=source["volume"])
        elif isinstance(source, Mapping) and isinstance(source.get("file"), str):
            parsed = FileResultSource(file=source["file"])
        else:
            raise ModelError(f"could not decode result source {source!r}")
        return cls(
            source=parsed,
            target=PortAddress.from_dict(document.get("target") or {}),
            description=document.get("description", ""),
        )

    def to_dict(self) -> dict[str, RawType]:
        source: RawType
        if isinstance(self.source, FileResultSource):
            source = {"file": self.source.file}
        elif isinstance(self.source, VolumeResultSource):
            source = {"volume": self.source.volume}
        else:
            source = self.source
        representation: dict[str, RawType] = {
            "source": source,
            "target": self.target.to_dict(),
        }
        if self.description:
            representation["description"] = self.description
        return representation


@define
class Brick:
    """Leaf implementation wrapping a single container.

    Attributes:
        container: Kubernetes container spec, opaque apart from `args`, `env` and `volumeMounts`.
        args: command-line arguments, replacing any `args` in the container spec.
        results: where each output port gets its value from.
    """

    container: dict[str, Any] = field(factory=dict)
    args: list[Argument] = field(factory=list)
    results: list[Result] = field(factory=list)

    type = BRICK_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Brick:
        return cls(
            container=dict(document.get("container") or {}),
            args=[Argument.from_dict(arg) for arg in document.get("args") or []],
            results=[Result.from_dict(res) for res in document.get("results") or []],
        )

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty(
            {
                "type": self.type,
                "container": dict(self.container),
                "args": [arg.to_dict() for arg in self.args],
                "results": [res.to_dict() for res in self.results],
            }
        )


@define
class AnyImplementation:
    """Placeholder implementation with no structure."""

    type = ANY_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> AnyImplementation:
        return cls()

    def to_dict(self) -> dict[str, RawType]:
        return {"type": self.type}


@define
class Node:
    """A child of a graph, holding an inline component or a reference to one.

    Attributes:
        id: node id, unique within the enclosing graph, used as the task name.
        node: the inline component or its (versioned) reference.
        userdata: opaque data that the backend never touches.
    """

    id: str
    node: NodeTarget
    userdata: RawType = None

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Node:
        document = _expect_mapping(document, "node")
        node_id = document.get("id", "")
        try:
            target = node_target_from_dict(document.get("node"))
        except ModelError as exc:
            raise ModelError(
                f"cannot decode node, unrecognized type of node.node, node id: {node_id}"
            ) from exc
        return cls(id=node_id, node=target, userdata=document.get("userdata"))

    def to_dict(self) -> dict[str, RawType]:
        representation: dict[str, RawType] = {
            "id": self.id,
            "node": node_target_to_dict(self.node),
        }
        if self.userdata is not None:
            representation["userdata"] = self.userdata
        return representation


@define
class Graph:
    """DAG of child nodes.

    `input_mappings` connect the graph's own input ports (source node empty) to
    child ports, `output_mappings` connect child ports to the graph's own
    output ports (target node empty).
    """

    nodes: list[Node] = field(factory=list)
    edges: list[Edge] = field(factory=list)
    input_mappings: list[Edge] = field(factory=list)
    output_mappings: list[Edge] = field(factory=list)

    type = GRAPH_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Graph:
        return cls(
            nodes=[Node.from_dict(node) for node in document.get("nodes") or []],
            edges=_edges(document.get("edges")),
            input_mappings=_edges(document.get("inputMappings")),
            output_mappings=_edges(document.get("outputMappings")),
        )

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty(
            {
                "type": self.type,
                "nodes": [node.to_dict() for node in self.nodes],
                "edges": [edge.to_dict() for edge in self.edges],
                "inputMappings": [edge.to_dict() for edge in self.input_mappings],
                "outputMappings": [edge.to_dict() for edge in self.output_mappings],
            }
        )


@define
class Map:
    """Repeated execution of a single child over an array-valued input."""

    node: NodeTarget
    input_mappings: list[Edge] = field(factory=list)
    output_mappings: list[Edge] = field(factory=list)

    type = MAP_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Map:
        try:
            node = node_target_from_dict(document.get("node"))
        except ModelError as exc:
            raise ModelError("cannot decode node of map component") from exc
        return cls(
            node=node,
            input_mappings=_edges(document.get("inputMappings")),
            output_mappings=_edges(document.get("outputMappings")),
        )

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty(
            {
                "type": self.type,
                "node": node_target_to_dict(self.node),
                "inputMappings": [edge.to_dict() for edge in self.input_mappings],
                "outputMappings": [edge.to_dict() for edge in self.output_mappings],
            }
        )


@define
class Conditional:
    """Runs `node_true` when the expression holds, otherwise `node_false` if given.

    Both branches must expose identical input and output ports.
    """

    expression: Expression
    node_true: NodeTarget
    node_false: NodeTarget | None = None
    input_mappings: list[Edge] = field(factory=list)
    output_mappings: list[Edge] = field(factory=list)

    type = CONDITIONAL_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Conditional:
        try:
            node_true = node_target_from_dict(document.get("nodeTrue"))
        except ModelError as exc:
            raise ModelError("cannot decode true node of conditional component") from exc
        node_false = None
        if document.get("nodeFalse") is not None:
            try:
                node_false = node_target_from_dict(document["nodeFalse"])
            except ModelError as exc:
                raise ModelError(
                    "cannot decode false node of conditional component"
                ) from exc
        return cls(
            expression=Expression.from_dict(document.get("expression") or {}),
            node_true=node_true,
            node_false=node_false,
            input_mappings=_edges(document.get("inputMappings")),
            output_mappings=_edges(document.get("outputMappings")),
        )

    def to_dict(self) -> dict[str, RawType]:
        return _drop_empty(
            {
                "type": self.type,
                "expression": self.expression.to_dict(),
                "nodeTrue": node_target_to_dict(self.node_true),
                "nodeFalse": (
                    node_target_to_dict(self.node_false)
                    if self.node_false is not None
                    else None
                ),
                "inputMappings": [edge.to_dict() for edge in self.input_mappings],
                "outputMappings": [edge.to_dict() for edge in self.output_mappings],
            }
        )


Implementation = Union[Brick, Graph, Map, Conditional, AnyImplementation]

IMPLEMENTATIONS: dict[str, type[Brick | Graph | Map | Conditional | AnyImplementation]] = {
    BRICK_TYPE: Brick,
    ANY_TYPE: AnyImplementation,
    GRAPH_TYPE: Graph,
    MAP_TYPE: Map,
    CONDITIONAL_TYPE: Conditional,
}


def implementation_from_dict(document: Any) -> Implementation:
    """Decode an implementation, dispatching on its `type` tag.

    Raises:
        ModelError: if the tag is missing or unknown.
    """
    document = _expect_mapping(document, "implementation")
    kind = document.get("type")
    if kind not in IMPLEMENTATIONS:
        raise ModelError(f"no type decoding implemented for '{kind}'")
    return IMPLEMENTATIONS[kind].from_dict(document)


def _unique_ports(ports: list[Data], direction: str, name: str) -> list[Data]:
    seen: set[str] = set()
    for port in ports:
        if port.name in seen:
            raise ModelError(f"duplicate {direction} port '{port.name}' in component '{name}'")
        seen.add(port.name)
    return ports


@define
class Component:
    """The unit of computation: typed ports plus one implementation."""

    metadata: Metadata = field(factory=Metadata)
    inputs: list[Data] = field(factory=list)
    outputs: list[Data] = field(factory=list)
    implementation: Implementation = field(factory=AnyImplementation)
    type: str = COMPONENT_TYPE

    @property
    def uid(self) -> ComponentReference:
        return self.metadata.uid

    @property
    def name(self) -> str:
        return self.metadata.name

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Component:
        document = _expect_mapping(document, "component")
        metadata = Metadata.from_dict(document)
        label = metadata.name or str(metadata.uid)
        return cls(
            metadata=metadata,
            inputs=_unique_ports(
                [Data.from_dict(port) for port in document.get("inputs") or []],
                "input",
                label,
            ),
            outputs=_unique_ports(
                [Data.from_dict(port) for port in document.get("outputs") or []],
                "output",
                label,
            ),
            implementation=implementation_from_dict(document.get("implementation")),
            type=document.get("type", COMPONENT_TYPE),
        )

    def to_dict(self) -> dict[str, RawType]:
        representation = self.metadata.to_dict()
        representation.update(
            {
                "inputs": [port.to_dict() for port in self.inputs],
                "outputs": [port.to_dict() for port in self.outputs],
                "type": self.type,
                "implementation": self.implementation.to_dict(),
            }
        )
        return representation

    def get_input(self, data: Data) -> Data | None:
        """Find an input port matching both the name and the type of `data`."""
        for port in self.inputs:
            if port.name == data.name and port.type == data.type:
                return port
        return None

    def get_output(self, data: Data) -> Data | None:
        """Find an output port matching both the name and the type of `data`."""
        for port in self.outputs:
            if port.name == data.name and port.type == data.type:
                return port
        return None


NodeTarget = Union[Component, ComponentReference, CRefVersion]


def node_target_from_dict(document: Any) -> NodeTarget:
    """Decode the child of a node: a bare UUID, an inline component or a versioned reference.

    Raises:
        ModelError: if the value fits none of them.
    """
    if isinstance(document, str):
        return ComponentReference.parse(document)
    if isinstance(document, Mapping):
        if "implementation" in document:
            return Component.from_dict(document)
        if "uid" in document:
            return CRefVersion.from_dict(document)
    raise ModelError(f"unrecognized node target: {document!r}")


def node_target_to_dict(target: NodeTarget) -> RawType:
    if isinstance(target, ComponentReference):
        return str(target)
    return target.to_dict()


@define
class Workflow:
    """A root component together with the workspace it runs in."""

    component: Component
    workspace: str = ""
    metadata: Metadata = field(factory=Metadata)
    type: str = WORKFLOW_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Workflow:
        document = _expect_mapping(document, "workflow")
        if "component" not in document:
            raise ModelError("workflow without a component")
        return cls(
            component=Component.from_dict(document["component"]),
            workspace=document.get("workspace", ""),
            metadata=Metadata.from_dict(document),
            type=document.get("type", WORKFLOW_TYPE),
        )

    def to_dict(self) -> dict[str, RawType]:
        representation = self.metadata.to_dict()
        representation.update(
            {
                "component": self.component.to_dict(),
                "type": self.type,
                "workspace": self.workspace,
            }
        )
        return representation


@define
class Value:
    """A concrete value for a top-level input port."""

    target: str
    value: str | list[str]

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Value:
        document = _expect_mapping(document, "value")
        value = document.get("value")
        if not isinstance(value, str) and not (
            isinstance(value, list) and all(isinstance(item, str) for item in value)
        ):
            raise ModelError(
                f"value for '{document.get('target')}' must be a string or a list of strings"
            )
        return cls(target=document.get("target", ""), value=value)

    def to_dict(self) -> dict[str, RawType]:
        value: RawType = list(self.value) if isinstance(self.value, list) else self.value
        return {"target": self.target, "value": value}


@define
class Job:
    """A workflow submitted for execution with its input values."""

    workflow: Workflow
    input_values: list[Value] = field(factory=list)
    metadata: Metadata = field(factory=Metadata)
    type: str = JOB_TYPE

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Job:
        document = _expect_mapping(document, "job")
        if "workflow" not in document:
            raise ModelError("job without a workflow")
        return cls(
            workflow=Workflow.from_dict(document["workflow"]),
            input_values=[Value.from_dict(v) for v in document.get("inputValues") or []],
            metadata=Metadata.from_dict(document),
            type=document.get("type", JOB_TYPE),
        )

    def to_dict(self) -> dict[str, RawType]:
        representation = self.metadata.to_dict()
        representation.update(
            {
                "type": self.type,
                "workflow": self.workflow.to_dict(),
            }
        )
        if self.input_values:
            representation["inputValues"] = [value.to_dict() for value in self.input_values]
        return representation
