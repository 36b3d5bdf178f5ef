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

"""Argo Workflows structures.

Renderable subset of the [Argo](https://argoproj.github.io/workflows/) workflow
resource, as needed by the transpiler. Each class reduces itself to a plain
dict with Argo's camelCase field names via `render()`; unset fields are left
out of the rendered form.
"""

from typing import Any, Iterable

from attrs import define, field

from .core import RawType

ARGO_API_VERSION = "argoproj.io/v1alpha1"
ARGO_KIND = "Workflow"


def _without_empty(representation: dict[str, Any]) -> dict[str, RawType]:
    return {
        key: value
        for key, value in representation.items()
        if value is not None and value != [] and value != {} and value != ""
    }


@define
class ValueFrom:
    """Where an output parameter takes its value from.

    Attributes:
        path: file inside the container.
        parameter: another (task) parameter.
        expression: an Argo expression.
    """

    path: str = ""
    parameter: str = ""
    expression: str = ""

    def render(self) -> dict[str, RawType]:
        return _without_empty(
            {
                "path": self.path,
                "parameter": self.parameter,
                "expression": self.expression,
            }
        )


@define
class Parameter:
    name: str
    value: str | None = None
    value_from: ValueFrom | None = None

    def render(self) -> dict[str, RawType]:
        representation: dict[str, RawType] = {"name": self.name}
        if self.value is not None:
            representation["value"] = self.value
        if self.value_from is not None:
            representation["valueFrom"] = self.value_from.render()
        return representation


@define
class Artifact:
    name: str
    path: str = ""
    from_: str = ""
    from_expression: str = ""

    def render(self) -> dict[str, RawType]:
        return _without_empty(
            {
                "name": self.name,
                "path": self.path,
                "from": self.from_,
                "fromExpression": self.from_expression,
            }
        )


@define
class _ParametersAndArtifacts:
    parameters: list[Parameter] = field(factory=list)
    artifacts: list[Artifact] = field(factory=list)

    def get_parameter(self, name: str) -> Parameter | None:
        """Find a parameter by name."""
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def get_artifact(self, name: str) -> Artifact | None:
        """Find an artifact by name."""
        for artifact in self.artifacts:
            if artifact.name == name:
                return artifact
        return None

    def render(self) -> dict[str, RawType]:
        return _without_empty(
            {
                "parameters": [parameter.render() for parameter in self.parameters],
                "artifacts": [artifact.render() for artifact in self.artifacts],
            }
        )


@define
class Inputs(_ParametersAndArtifacts):
    """Declared inputs of a template."""


@define
class Outputs(_ParametersAndArtifacts):
    """Declared outputs of a template."""


@define
class Arguments(_ParametersAndArtifacts):
    """Values passed into a task, or into the workflow as a whole."""


@define
class DAGTask:
    """A single invocation of a template within a DAG.

    Attributes:
        name: task name, referenced by `dependencies` and `{{tasks.<name>...}}`.
        template: name of the template to run.
        dependencies: tasks that must complete first.
        arguments: values bound to the template's inputs.
        with_param: JSON list to fan out over, one task per `{{item}}`.
        when: Argo expression guarding execution.
    """

    name: str
    template: str
    dependencies: list[str] = field(factory=list)
    arguments: Arguments = field(factory=Arguments)
    with_param: str = ""
    when: str = ""

    def render(self) -> dict[str, RawType]:
        return _without_empty(
            {
                "name": self.name,
                "template": self.template,
                "dependencies": list(self.dependencies),
                "arguments": self.arguments.render(),
                "withParam": self.with_param,
                "when": self.when,
            }
        )


@define
class DAGTemplate:
    tasks: list[DAGTask] = field(factory=list)

    def render(self) -> dict[str, RawType]:
        return {"tasks": [task.render() for task in self.tasks]}


@define
class VolumeMount:
    """Mount of a workflow-level volume into a container."""

    name: str
    mount_path: str

    def render(self) -> dict[str, RawType]:
        return {"name": self.name, "mountPath": self.mount_path}


@define
class EnvVar:
    """Container environment variable read from a key of a Kubernetes secret."""

    name: str
    secret_name: str
    secret_key: str

    def render(self) -> dict[str, RawType]:
        return {
            "name": self.name,
            "valueFrom": {
                "secretKeyRef": {"name": self.secret_name, "key": self.secret_key}
            },
        }


@define
class Template:
    """An Argo template, either a container or a DAG of tasks.

    Attributes:
        name: unique template name; the component uid.
        inputs: declared inputs.
        outputs: declared outputs.
        container: Kubernetes container spec, already rendered.
        dag: the tasks, for non-leaf components.
    """

    name: str
    inputs: Inputs = field(factory=Inputs)
    outputs: Outputs = field(factory=Outputs)
    container: dict[str, Any] | None = None
    dag: DAGTemplate | None = None

    def render(self) -> dict[str, RawType]:
        representation: dict[str, RawType] = {"name": self.name}
        if inputs := self.inputs.render():
            representation["inputs"] = inputs
        if outputs := self.outputs.render():
            representation["outputs"] = outputs
        if self.container is not None:
            representation["container"] = self.container
        if self.dag is not None:
            representation["dag"] = self.dag.render()
        return representation


@define
class WorkflowSpec:
    entrypoint: str = ""
    templates: list[Template] = field(factory=list)
    arguments: Arguments = field(factory=Arguments)
    volumes: list[dict[str, Any]] = field(factory=list)

    def render(self) -> dict[str, RawType]:
        return _without_empty(
            {
                "entrypoint": self.entrypoint,
                "templates": [template.render() for template in self.templates],
                "arguments": self.arguments.render(),
                "volumes": list(self.volumes),
            }
        )


@define
class ArgoWorkflow:
    """Top-level Argo `Workflow` resource."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(factory=dict)
    annotations: dict[str, str] = field(factory=dict)
    spec: WorkflowSpec = field(factory=WorkflowSpec)

    def render(self) -> dict[str, RawType]:
        """Render to a dict-like structure.

        Returns:
            Reduced form as a native Python dict structure for
            serialization.
        """
        return {
            "apiVersion": ARGO_API_VERSION,
            "kind": ARGO_KIND,
            "metadata": _without_empty(
                {
                    "name": self.name,
                    "namespace": self.namespace,
                    "labels": dict(self.labels),
                    "annotations": dict(self.annotations),
                }
            ),
            "spec": self.spec.render(),
        }


def generate_argo(
    name: str,
    namespace: str,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> ArgoWorkflow:
    """Create the workflow envelope, with an empty spec.

    Args:
        name: workflow name.
        namespace: Kubernetes namespace, i.e. the workspace.
        labels: metadata labels.
        annotations: metadata annotations.
    """
    return ArgoWorkflow(
        name=name,
        namespace=namespace,
        labels=dict(labels or {}),
        annotations=dict(annotations or {}),
    )


def remove_duplicated_templates(templates: Iterable[Template]) -> list[Template]:
    """Keep only the first template of each name, preserving order."""
    seen: set[str] = set()
    unique = []
    for template in templates:
        if template.name not in seen:
            seen.add(template.name)
            unique.append(template)
    return unique
