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

"""Argo transpiler.

Lowers a dereferenced component tree into a flat list of Argo templates, one
per component, with graphs, maps and conditionals becoming DAG templates
whose tasks call the templates of their children.

Secrets and volumes are threaded through the recursion as immutable scopes;
the parent narrows the scope of each child before recursing into it.
"""

import json
import logging
from typing import Iterable

from .argo import (
    Arguments,
    Artifact,
    ArgoWorkflow,
    DAGTask,
    DAGTemplate,
    EnvVar,
    Inputs,
    Outputs,
    Parameter,
    Template,
    ValueFrom,
    generate_argo,
    remove_duplicated_templates,
)
from .core import StructuralError, TranspileError, get_configuration
from .helpers import (
    ScopedVolumes,
    SecretScope,
    VolumeScope,
    check_input_type,
    expression_to_string,
    get_connected_volume_map,
    get_container_args,
    get_container_volumes,
    get_dependencies,
    get_node_secret_scope,
    volume_from_config,
)
from .models import (
    ARTIFACT_PORT,
    PARAMETER_ARRAY_PORT,
    PARAMETER_PORT,
    SECRET_PORT,
    VOLUME_PORT,
    AnyImplementation,
    Brick,
    Component,
    Conditional,
    Data,
    Edge,
    FileResultSource,
    Graph,
    Job,
    Map,
    NodeTarget,
    Workflow,
)

logger = logging.getLogger(__name__)

ITEM = "{{item}}"


def _require_component(target: NodeTarget | None, where: str) -> Component:
    if not isinstance(target, Component):
        raise StructuralError(
            f"Cannot transpile {where}, expected a dereferenced component "
            f"but found {type(target).__name__}"
        )
    return target


def _mapping_arguments(
    mappings: Iterable[Edge],
    inputs: Inputs,
    child: Component,
    node_id: str | None = None,
) -> tuple[list[Parameter], list[Artifact], str]:
    """Arguments a child receives from the enclosing component's own inputs.

    A parameter fed from a `parameter_array` input fans the task out with
    `withParam`, binding the parameter to each item in turn.

    Args:
        mappings: input mappings of the enclosing component.
        inputs: declared inputs of the enclosing component.
        child: the called component.
        node_id: only consider mappings into this node, if given.

    Returns: parameters, artifacts and the `withParam` value (or "").
    """
    parameters: list[Parameter] = []
    artifacts: list[Artifact] = []
    with_param = ""
    for mapping in mappings:
        if node_id is not None and mapping.target.node != node_id:
            continue
        source = mapping.source.port
        source_parameter = inputs.get_parameter(source)
        if source_parameter is None and inputs.get_artifact(source) is None:
            continue

        target = mapping.target.port
        kind = check_input_type(child.inputs, target)
        if kind == ARTIFACT_PORT:
            artifacts.append(Artifact(name=target, from_=f"{{{{inputs.artifacts.{source}}}}}"))
        elif kind == PARAMETER_PORT:
            if source_parameter is not None and source_parameter.value is not None:
                with_param = f"{{{{inputs.parameters.{source}}}}}"
                parameters.append(Parameter(name=target, value=ITEM))
            else:
                parameters.append(
                    Parameter(name=target, value=f"{{{{inputs.parameters.{source}}}}}")
                )
        elif kind == PARAMETER_ARRAY_PORT:
            parameters.append(
                Parameter(name=target, value=f"{{{{inputs.parameters.{source}}}}}")
            )
        else:
            raise StructuralError(
                f"Unrecognized input mapping target type '{kind}' for port '{target}'"
            )
    return parameters, artifacts, with_param


def _edge_arguments(
    edges: Iterable[Edge], node_id: str, child: Component
) -> tuple[list[Parameter], list[Artifact], str]:
    """Arguments a graph child receives from its siblings."""
    parameters: list[Parameter] = []
    artifacts: list[Artifact] = []
    with_param = ""
    for edge in edges:
        if edge.target.node != node_id:
            continue
        task, port, target = edge.source.node, edge.source.port, edge.target.port
        kind = check_input_type(child.inputs, target)
        if kind == ARTIFACT_PORT:
            artifacts.append(
                Artifact(name=target, from_=f"{{{{tasks.{task}.outputs.artifacts.{port}}}}}")
            )
        elif kind == PARAMETER_PORT:
            parameters.append(
                Parameter(name=target, value=f"{{{{tasks.{task}.outputs.parameters.{port}}}}}")
            )
        elif kind == PARAMETER_ARRAY_PORT:
            value = f"{{{{tasks.{task}.outputs.parameters.{port}}}}}"
            match child.implementation:
                case Brick():
                    with_param = value
                    parameters.append(Parameter(name=target, value=ITEM))
                case Graph() | Map():
                    parameters.append(Parameter(name=target, value=value))
                case _:
                    raise StructuralError(
                        f"Unrecognized implementation type '{child.implementation.type}' "
                        f"for array edge into '{node_id}.{target}'"
                    )
        elif kind == VOLUME_PORT:
            logger.info("Ref volume edge: %s.%s -> %s.%s", task, port, node_id, target)
        else:
            raise StructuralError(
                f"Unrecognized edge target-type, '{kind}', for target port-address "
                f"'{node_id}.{target}'"
            )
    return parameters, artifacts, with_param


def _bind_outputs(outputs: Outputs, output_mappings: Iterable[Edge], task: str | None = None) -> None:
    """Point the declared outputs at the child task producing them."""
    for mapping in output_mappings:
        source_task = task or mapping.source.node
        port = mapping.source.port
        if (parameter := outputs.get_parameter(mapping.target.port)) is not None:
            parameter.value_from = ValueFrom(
                parameter=f"{{{{tasks.{source_task}.outputs.parameters.{port}}}}}"
            )
        if (artifact := outputs.get_artifact(mapping.target.port)) is not None:
            artifact.from_ = f"{{{{tasks.{source_task}.outputs.artifacts.{port}}}}}"


def add_brick(
    name: str,
    brick: Brick,
    inputs: Inputs,
    outputs: Outputs,
    templates: list[Template],
    secrets: SecretScope,
    volumes: VolumeScope,
) -> None:
    """Emit the container template of a brick.

    `secrets` is expected to be already pruned to the brick's own inputs.
    """
    mounts = get_container_volumes(brick.args, volumes)
    for mount in mounts:
        logger.debug("Mounting %s at %s in %s", mount.name, mount.mount_path, name)

    prefix = get_configuration("artifact_path_prefix")
    for artifact in inputs.artifacts:
        artifact.path = f"{prefix}{artifact.name}"

    for result in brick.results:
        if not isinstance(result.source, FileResultSource):
            continue
        if (artifact := outputs.get_artifact(result.target.port)) is not None:
            artifact.path = result.source.file
        if (parameter := outputs.get_parameter(result.target.port)) is not None:
            parameter.value_from = ValueFrom(path=result.source.file)

    secret_object = get_configuration("secret_object_name")
    env = sorted(
        (EnvVar(name=port, secret_name=secret_object, secret_key=key) for key, port in secrets.items()),
        key=lambda var: var.name,
    )

    container = dict(brick.container)
    for key, value in (
        ("args", get_container_args(brick.args)),
        ("volumeMounts", [mount.render() for mount in mounts]),
        ("env", [var.render() for var in env]),
    ):
        if value:
            container[key] = value
        else:
            container.pop(key, None)
    templates.append(Template(name=name, inputs=inputs, outputs=outputs, container=container))


def add_graph(
    name: str,
    graph: Graph,
    inputs: Inputs,
    outputs: Outputs,
    templates: list[Template],
) -> None:
    """Emit the DAG template of a graph, one task per node."""
    tasks = []
    for node in graph.nodes:
        child = node.node
        if not isinstance(child, Component):
            raise StructuralError(
                f"Cannot transpile node id: {node.id}. Object type: {type(child).__name__}"
            )
        try:
            parameters, artifacts, with_param = _mapping_arguments(
                graph.input_mappings, inputs, child, node_id=node.id
            )
            edge_parameters, edge_artifacts, edge_with_param = _edge_arguments(
                graph.edges, node.id, child
            )
        except TranspileError as exc:
            exc.add_note(f"At graph node: {node.id}")
            raise
        tasks.append(
            DAGTask(
                name=node.id,
                template=str(child.uid),
                dependencies=get_dependencies(graph.edges, node.id),
                arguments=Arguments(
                    parameters=parameters + edge_parameters,
                    artifacts=artifacts + edge_artifacts,
                ),
                with_param=edge_with_param or with_param,
            )
        )

    _bind_outputs(outputs, graph.output_mappings)
    templates.append(
        Template(name=name, inputs=inputs, outputs=outputs, dag=DAGTemplate(tasks=tasks))
    )


def add_map(
    name: str,
    map_: Map,
    inputs: Inputs,
    outputs: Outputs,
    templates: list[Template],
) -> None:
    """Emit the DAG template of a map: a single, fanned-out task."""
    child = _require_component(map_.node, f"map subnode of {name}")
    parameters, artifacts, with_param = _mapping_arguments(map_.input_mappings, inputs, child)
    task_name = get_configuration("map_node_name")
    task = DAGTask(
        name=task_name,
        template=str(child.uid),
        arguments=Arguments(parameters=parameters, artifacts=artifacts),
        with_param=with_param,
    )

    _bind_outputs(outputs, map_.output_mappings, task=task_name)
    templates.append(
        Template(name=name, inputs=inputs, outputs=outputs, dag=DAGTemplate(tasks=[task]))
    )


def _check_branches(name: str, node_true: Component, node_false: Component) -> None:
    """Both branches of a conditional have to expose the same ports."""
    if len(node_true.inputs) != len(node_false.inputs) or len(node_true.outputs) != len(
        node_false.outputs
    ):
        raise StructuralError(
            f"Inputs and outputs of true and false nodes of conditional component "
            f"'{name}' have to be the same."
        )
    for data in node_true.inputs:
        if node_false.get_input(data) is None:
            raise StructuralError(
                f"Missing input '{data.name}' in false node of conditional component '{name}'."
            )
    for data in node_true.outputs:
        if node_false.get_output(data) is None:
            raise StructuralError(
                f"Missing output '{data.name}' in false node of conditional component '{name}'."
            )


def add_conditional(
    name: str,
    conditional: Conditional,
    inputs: Inputs,
    outputs: Outputs,
    templates: list[Template],
) -> None:
    """Emit the DAG template of a conditional.

    The true branch runs when the expression holds, the false branch (if any)
    when it does not. Outputs are selected with an Argo ternary expression.
    """
    node_true = _require_component(conditional.node_true, f"true node of {name}")
    node_false = None
    if conditional.node_false is not None:
        node_false = _require_component(conditional.node_false, f"false node of {name}")
        _check_branches(name, node_true, node_false)

    parameters, artifacts, with_param = _mapping_arguments(
        conditional.input_mappings, inputs, node_true
    )
    expression = expression_to_string(conditional.expression)
    true_name = get_configuration("true_node_name")
    false_name = get_configuration("false_node_name")

    tasks = [
        DAGTask(
            name=true_name,
            template=str(node_true.uid),
            arguments=Arguments(parameters=parameters, artifacts=artifacts),
            with_param=with_param,
            when=expression,
        )
    ]
    if node_false is not None:
        tasks.append(
            DAGTask(
                name=false_name,
                template=str(node_false.uid),
                arguments=Arguments(parameters=list(parameters), artifacts=list(artifacts)),
                with_param=with_param,
                when=f"!({expression})",
            )
        )

    for mapping in conditional.output_mappings:
        port = mapping.source.port
        if (parameter := outputs.get_parameter(mapping.target.port)) is not None:
            otherwise = (
                f"tasks.{false_name}.outputs.parameters.{port}" if node_false is not None else '""'
            )
            parameter.value_from = ValueFrom(
                expression=f"{expression} ? tasks.{true_name}.outputs.parameters.{port} : {otherwise}"
            )
        if (artifact := outputs.get_artifact(mapping.target.port)) is not None:
            otherwise = (
                f"tasks.{false_name}.outputs.artifacts.{port}" if node_false is not None else '""'
            )
            artifact.from_expression = (
                f"{expression} ? tasks.{true_name}.outputs.artifacts.{port} : {otherwise}"
            )

    templates.append(
        Template(name=name, inputs=inputs, outputs=outputs, dag=DAGTemplate(tasks=tasks))
    )


def _declare_ports(
    component: Component, secrets: SecretScope, volumes: VolumeScope
) -> tuple[Inputs, Outputs, SecretScope]:
    name = str(component.uid)
    inputs = Inputs()
    for data in component.inputs:
        if data.type == ARTIFACT_PORT:
            inputs.artifacts.append(Artifact(name=data.name))
        elif data.type == PARAMETER_PORT:
            inputs.parameters.append(Parameter(name=data.name))
        elif data.type == PARAMETER_ARRAY_PORT:
            inputs.parameters.append(Parameter(name=data.name, value=ITEM))
        elif data.type == SECRET_PORT:
            if secrets.key_for(data.name) is None:
                secrets = secrets.bind(data.name, data.name)
        elif data.type == VOLUME_PORT:
            logger.info("Ref mount: %s %s", data.name, volumes.get(data.name))
        else:
            raise StructuralError(
                f"cannot append input data (name: {data.name}, type {data.type}) at node {name}"
            )

    outputs = Outputs()
    for data in component.outputs:
        if data.type == ARTIFACT_PORT:
            outputs.artifacts.append(Artifact(name=data.name))
        elif data.type in (PARAMETER_PORT, PARAMETER_ARRAY_PORT):
            outputs.parameters.append(Parameter(name=data.name))
        elif data.type not in (VOLUME_PORT, SECRET_PORT):
            raise StructuralError(
                f"cannot append output data (name: {data.name}, type {data.type}) at node {name}"
            )
    return inputs, outputs, secrets


def _child_scopes(
    component: Component,
    mappings: Iterable[Edge],
    secrets: SecretScope,
    volumes: VolumeScope,
) -> tuple[SecretScope, VolumeScope]:
    """Scopes of the single child of a map or conditional."""
    node_secrets = secrets
    node_volumes = VolumeScope()
    for mapping in mappings:
        kind = check_input_type(component.inputs, mapping.source.port)
        if kind == SECRET_PORT:
            key = secrets.key_for(mapping.source.port)
            if key is not None:
                node_secrets = node_secrets.rebind(key, mapping.target.port)
        elif kind == VOLUME_PORT:
            volume = volumes.get(mapping.source.port)
            if volume is not None:
                node_volumes = node_volumes.bind(mapping.target.port, volume)
                logger.debug(
                    "Rewriting node volumes for %s: %s -> %s",
                    component.name,
                    mapping.source.port,
                    mapping.target.port,
                )
    return node_secrets, node_volumes


def _graph_scoped_volumes(
    component: Component, graph: Graph, volumes: VolumeScope
) -> ScopedVolumes:
    scoped: dict[str, VolumeScope] = {}
    for mapping in graph.input_mappings:
        if check_input_type(component.inputs, mapping.source.port) != VOLUME_PORT:
            continue
        volume = volumes.get(mapping.source.port)
        if volume is None:
            continue
        node_id = mapping.target.node
        scoped[node_id] = scoped.get(node_id, VolumeScope()).bind(mapping.target.port, volume)
        logger.info(
            "Rewriting node volumes for %s: %s -> %s.%s",
            component.name,
            mapping.source.port,
            node_id,
            mapping.target.port,
        )
    return scoped


def traverse_component(
    component: Component,
    secrets: SecretScope,
    volumes: VolumeScope,
    templates: list[Template],
) -> None:
    """Append the templates of `component` and everything below it.

    The component's own template comes before those of its children. Nothing
    is appended unless the whole subtree transpiles.

    Args:
        component: a dereferenced component with a non-zero uid.
        secrets: secrets in scope, as secret key -> port name.
        volumes: volumes in scope, as port name -> Kubernetes volume.
        templates: accumulator owned by the caller.

    Raises:
        TranspileError: on any problem.
    """
    if component.uid.is_zero():
        raise StructuralError(
            f"component ({component.name}) uid ({component.uid}) is required to be "
            "unique and non-zero in transpilation"
        )
    name = str(component.uid)
    inputs, outputs, secrets = _declare_ports(component, secrets, volumes)
    emitted: list[Template] = []

    implementation = component.implementation
    try:
        match implementation:
            case Brick():
                secrets = secrets.restrict_to(data.name for data in component.inputs)
                add_brick(name, implementation, inputs, outputs, emitted, secrets, volumes)
            case Graph():
                add_graph(name, implementation, inputs, outputs, emitted)
            case Map():
                add_map(name, implementation, inputs, outputs, emitted)
            case Conditional():
                add_conditional(name, implementation, inputs, outputs, emitted)
            case AnyImplementation():
                raise StructuralError(
                    f"unimplemented transpilation for type {implementation.type}"
                )
            case _:
                raise StructuralError(
                    f"Unrecognized implementation type: {type(implementation).__name__}"
                )
    except TranspileError as exc:
        exc.add_note(f"Cannot add {implementation.type} node into argo workflow, id {name}")
        raise

    match implementation:
        case Graph():
            scoped_volumes = _graph_scoped_volumes(component, implementation, volumes)
            for node in implementation.nodes:
                child = _require_component(node.node, f"node {node.id} of {name}")
                node_secrets = get_node_secret_scope(
                    node.id, secrets, component.inputs, implementation.input_mappings
                )
                node_volumes = get_connected_volume_map(
                    node.id,
                    child,
                    implementation.edges,
                    implementation.nodes,
                    scoped_volumes,
                )
                try:
                    traverse_component(child, node_secrets, node_volumes, emitted)
                except TranspileError as exc:
                    exc.add_note(f"Within node: {node.id} of {name}")
                    raise
        case Map():
            node_secrets, node_volumes = _child_scopes(
                component, implementation.input_mappings, secrets, volumes
            )
            traverse_component(
                _require_component(implementation.node, f"map subnode of {name}"),
                node_secrets,
                node_volumes,
                emitted,
            )
        case Conditional():
            node_secrets, node_volumes = _child_scopes(
                component, implementation.input_mappings, secrets, volumes
            )
            branches = [implementation.node_true]
            if implementation.node_false is not None:
                branches.append(implementation.node_false)
            for branch in branches:
                traverse_component(
                    _require_component(branch, f"branch of conditional {name}"),
                    node_secrets,
                    node_volumes,
                    emitted,
                )

    templates.extend(emitted)


def parse_component_tree(
    workflow: Workflow,
    secrets: SecretScope,
    volumes: VolumeScope,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> ArgoWorkflow:
    """Transpile a workflow into an Argo workflow, without deduplicating templates.

    The entrypoint is the template of the root component.
    """
    argo_workflow = generate_argo(
        workflow.metadata.name, workflow.workspace, labels, annotations
    )
    templates: list[Template] = []
    traverse_component(workflow.component, secrets, volumes, templates)
    argo_workflow.spec.entrypoint = str(workflow.component.uid)
    argo_workflow.spec.templates = templates
    return argo_workflow


def _root_inputs(job: Job, port_type: str) -> Iterable[tuple[Data, object]]:
    for value in job.input_values:
        for data in job.workflow.component.inputs:
            if data.name == value.target and data.type == port_type:
                yield data, value.value


def get_argo_workflow(
    job: Job,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> ArgoWorkflow:
    """Transpile a job into a ready-to-submit Argo workflow.

    The job's values seed the root scopes: `env_secret` values name the secret
    key behind each root secret input, `volume` values carry the JSON config of
    a Kubernetes volume, and `parameter` / `parameter_array` values become the
    workflow arguments.

    Raises:
        TranspileError: if the job or its workflow cannot be transpiled.
    """
    secrets = SecretScope()
    for data, value in _root_inputs(job, SECRET_PORT):
        if not isinstance(value, str):
            raise StructuralError(f"Cannot convert flowify secret '{data.name}' to string.")
        secrets = secrets.bind(value, data.name)

    volumes = VolumeScope()
    for data, value in _root_inputs(job, VOLUME_PORT):
        if not isinstance(value, str):
            raise StructuralError(
                f"mount config for '{data.name}' must be json encoded string"
            )
        logger.info("Appending volume from config: %s -> (%s)", value, data.name)
        volumes = volumes.bind(data.name, volume_from_config(value))

    argo_workflow = parse_component_tree(
        job.workflow, secrets, volumes, labels or {}, annotations or {}
    )

    parameters = []
    for value in job.input_values:
        for data in job.workflow.component.inputs:
            if data.name != value.target:
                continue
            if data.type == PARAMETER_PORT:
                if not isinstance(value.value, str):
                    raise StructuralError(
                        f"Cannot convert input value to flowify parameter '{value.target}'."
                    )
                parameters.append(Parameter(name=value.target, value=value.value))
            elif data.type == PARAMETER_ARRAY_PORT:
                if not isinstance(value.value, list):
                    raise StructuralError(
                        f"Cannot convert input value to flowify parameter array '{value.target}'."
                    )
                parameters.append(Parameter(name=value.target, value=json.dumps(value.value)))

    spec = argo_workflow.spec
    spec.arguments = Arguments(parameters=parameters)
    spec.templates = remove_duplicated_templates(spec.templates)
    for _, volume in volumes.items():
        if volume not in spec.volumes:
            spec.volumes.append(volume)
    return argo_workflow
