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

"""CLI for flowify.

Simple CLI for transpiling, dereferencing and validating documents. It is
more likely to use this tool programmatically, but for CI and debugging,
this may be of use.
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Generator

import click

from .core import FlowifyError, set_configuration
from .dereference import LocalComponentStore, dereference_component
from .models import Component, Job, Workflow
from .render import structured_to_raw, write_rendered_output
from .schemas import SchemaRegistry, validate_document
from .transpiler import get_argo_workflow
from .utils import DOCUMENT_KINDS, format_user_args, guess_document_kind, load_document

logger = logging.getLogger(__name__)


def _make_opener(output: str) -> Any:
    if output == "-":

        @contextmanager
        # mode here is ignored
        def _opener(mode: str) -> Generator[IO[Any], None, None]:
            yield sys.stdout

    else:

        @contextmanager
        def _opener(mode: str) -> Generator[IO[Any], None, None]:
            with Path(output).open(mode) as output_f:
                yield output_f

    return _opener


def load_job(path: Path) -> Job:
    """Load a job, wrapping a bare workflow or component into one."""
    document = load_document(path)
    kind = guess_document_kind(document)
    if kind == "job":
        return Job.from_dict(document)
    if kind == "workflow":
        return Job(workflow=Workflow.from_dict(document))
    return Job(workflow=Workflow(component=Component.from_dict(document)))


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level.",
)
@click.pass_context
def main(ctx: click.Context, log_level: str) -> None:
    """Component tree tooling for Argo workflows."""
    logging.basicConfig(level=log_level.upper())
    if ctx.obj is None:
        ctx.obj = SchemaRegistry.builtin()


@main.command()
@click.option(
    "--pretty/--json",
    default=True,
    show_default=True,
    help="Output YAML rather than compact JSON.",
)
@click.option(
    "--store",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory of component documents to dereference against.",
)
@click.option("--transpile-args", default="", help="key:val,... or @FILE.yaml")
@click.option("--labels", default="", help="key:val,... or @FILE.yaml")
@click.option("--annotations", default="", help="key:val,... or @FILE.yaml")
@click.option("--output", default="-")
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def transpile(
    document: Path,
    pretty: bool,
    store: Path | None,
    transpile_args: str,
    labels: str,
    annotations: str,
    output: str,
) -> None:
    """Transpile a job into an Argo workflow.

    DOCUMENT is a job, workflow or component (JSON or YAML); workflows and
    components are transpiled as a job without input values.
    """
    try:
        job = load_job(document)
        if store is not None:
            job.workflow.component = dereference_component(
                LocalComponentStore.from_directory(store), job.workflow.component
            )
        with set_configuration(**format_user_args(transpile_args)):
            argo_workflow = get_argo_workflow(
                job,
                labels={k: str(v) for k, v in format_user_args(labels).items()},
                annotations={k: str(v) for k, v in format_user_args(annotations).items()},
            )
    except (FlowifyError, KeyError) as exc:
        logger.debug("Transpilation failed", exc_info=exc)
        raise click.ClickException(_describe(exc)) from exc

    write_rendered_output(
        structured_to_raw(argo_workflow.render(), pretty=pretty), _make_opener(output)
    )


@main.command()
@click.option(
    "--store",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Directory of component documents to dereference against.",
)
@click.option("--pretty/--json", default=False, show_default=True)
@click.option("--output", default="-")
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def dereference(document: Path, store: Path, pretty: bool, output: str) -> None:
    """Inline every component referenced by a component.

    DOCUMENT is a component (JSON or YAML); references inside it are looked
    up in the STORE directory.
    """
    try:
        component = Component.from_dict(load_document(document))
        component = dereference_component(LocalComponentStore.from_directory(store), component)
    except FlowifyError as exc:
        raise click.ClickException(_describe(exc)) from exc

    write_rendered_output(
        structured_to_raw(component.to_dict(), pretty=pretty), _make_opener(output)
    )


@main.command()
@click.option("--kind", type=click.Choice(DOCUMENT_KINDS), default=None)
@click.option(
    "--schema",
    default=None,
    help="JSON Schema file, or the name of a built-in schema (job, workflow, component).",
)
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def validate(
    registry: SchemaRegistry, document: Path, kind: str | None, schema: str | None
) -> None:
    """Check that a document decodes as a job, workflow or component.

    The kind is guessed from the document if not given. With `--schema`, the
    document is first checked against that JSON Schema.
    """
    try:
        raw = load_document(document)
        if schema is None:
            logger.info("Schema not validated")
        else:
            validate_document(raw, registry.find_schema(schema))
        kind = kind or guess_document_kind(raw)
        {"job": Job, "workflow": Workflow, "component": Component}[kind].from_dict(raw)
    except FlowifyError as exc:
        raise click.ClickException(_describe(exc)) from exc
    click.echo(f"{document}: valid {kind}")


def _describe(exc: BaseException) -> str:
    """Message of an exception along with its notes and causes."""
    lines = [str(exc), *getattr(exc, "__notes__", [])]
    cause = exc.__cause__
    while cause is not None:
        lines.append(f"caused by: {cause}")
        lines.extend(getattr(cause, "__notes__", []))
        cause = cause.__cause__
    return "\n".join(lines)
