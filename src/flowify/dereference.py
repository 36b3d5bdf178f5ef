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

"""Dereferencing of component trees.

Replaces every reference to a stored component by the component itself, so
that the transpiler only ever sees inline components. Storage is abstracted
behind the `ComponentLookup` protocol; `LocalComponentStore` is an in-memory
implementation that can be filled from a directory of documents.
"""

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from attrs import define, evolve, field

from .core import DereferenceError
from .models import (
    AnyImplementation,
    Brick,
    Component,
    ComponentReference,
    Conditional,
    CRefVersion,
    Graph,
    Map,
    Node,
    NodeTarget,
    VERSION_TAG_LATEST,
)
from .utils import load_document

logger = logging.getLogger(__name__)


class ComponentNotFound(LookupError):
    """No stored component matches a reference."""


@runtime_checkable
class ComponentLookup(Protocol):
    """Anything able to fetch a stored component by (versioned) reference."""

    def get_component(self, ref: ComponentReference | CRefVersion) -> Component:
        """Fetch the component.

        Raises:
            LookupError: if there is no such component.
        """
        ...


@define
class LocalComponentStore:
    """In-memory component storage keyed by uid and version.

    A bare `ComponentReference` resolves to the version tagged latest, or to
    the highest stored version if none is tagged.
    """

    components: dict[ComponentReference, dict[int, Component]] = field(factory=dict)

    def add(self, component: Component) -> None:
        """Store a component under its metadata uid and current version.

        Raises:
            DereferenceError: if the component has no uid.
        """
        if component.uid.is_zero():
            raise DereferenceError(f"Cannot store component '{component.name}' without a uid")
        versions = self.components.setdefault(component.uid, {})
        versions[component.metadata.version.current] = component

    def get_component(self, ref: ComponentReference | CRefVersion) -> Component:
        if isinstance(ref, CRefVersion):
            uid, version = ref.uid, ref.version
        else:
            uid, version = ref, None

        versions = self.components.get(uid)
        if not versions:
            raise ComponentNotFound(f"component {uid} not found")

        if version is None:
            tagged = [
                number
                for number, component in versions.items()
                if VERSION_TAG_LATEST in component.metadata.version.tags
            ]
            version = max(tagged) if tagged else max(versions)

        if version not in versions:
            raise ComponentNotFound(f"component {uid} not found in version {version}")
        return versions[version]

    @classmethod
    def from_directory(cls, path: Path) -> "LocalComponentStore":
        """Load every JSON/YAML component document found directly in `path`."""
        store = cls()
        for document_path in sorted(path.iterdir()):
            if document_path.suffix not in (".json", ".yaml", ".yml"):
                continue
            component = Component.from_dict(load_document(document_path))
            logger.debug("Loaded component %s from %s", component.uid, document_path)
            store.add(component)
        return store


def _lookup(lookup: ComponentLookup, target: NodeTarget) -> Component:
    if isinstance(target, Component):
        return target
    return lookup.get_component(target)


def dereference_node(lookup: ComponentLookup, node: Node) -> Node:
    """Return a copy of `node` whose child is a fully inlined component.

    Raises:
        DereferenceError: if the child (or anything below it) cannot be fetched.
    """
    try:
        component = _lookup(lookup, node.node)
    except LookupError as exc:
        raise DereferenceError(f"Cannot dereference node, id: {node.id}") from exc
    try:
        return evolve(node, node=dereference_component(lookup, component))
    except DereferenceError as exc:
        exc.add_note(f"Within node: {node.id}")
        raise


def dereference_component(lookup: ComponentLookup, target: NodeTarget) -> Component:
    """Fetch `target` if it is a reference and inline everything below it.

    Each reference costs exactly one lookup. The result contains no
    `ComponentReference` or `CRefVersion` anywhere in the tree.

    Raises:
        DereferenceError: on lookup failure or for implementations that cannot be dereferenced.
    """
    try:
        component = _lookup(lookup, target)
    except LookupError as exc:
        raise DereferenceError(f"Cannot dereference component {target}") from exc

    implementation = component.implementation
    match implementation:
        case Graph():
            nodes = [dereference_node(lookup, node) for node in implementation.nodes]
            implementation = evolve(implementation, nodes=nodes)
        case Map():
            implementation = evolve(
                implementation,
                node=dereference_component(lookup, implementation.node),
            )
        case Conditional():
            node_false = implementation.node_false
            implementation = evolve(
                implementation,
                node_true=dereference_component(lookup, implementation.node_true),
                node_false=(
                    dereference_component(lookup, node_false)
                    if node_false is not None
                    else None
                ),
            )
        case Brick():
            pass
        case AnyImplementation():
            raise DereferenceError(
                f"unimplemented dereference for type {implementation.type}"
            )
        case _:
            raise DereferenceError(
                f"unimplemented dereference for type {type(implementation).__name__}"
            )
    return evolve(component, implementation=implementation)
