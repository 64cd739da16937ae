#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Module Dependency Cycle Breaking for crossbind

Generated Haskell modules import each other whenever one references an
export of another, so import cycles are common (a class whose method takes a
class from a second module that in turn refers back). GHC accepts cycles
when they are broken with .hs-boot files, and this module decides where
those go.

The modules are treated as a directed graph (an edge A -> B when A's
generated code imports B) and split into strongly connected components.
Modules outside any cycle are emitted as they are. Each module in a cycle
additionally gets a companion boot partial, and every import that stays
inside the cycle is switched to a {-# SOURCE #-} import of that companion.

Everything here is deterministic: nodes and edges are visited in declared
module order, so the same input always produces the same output order.

Usage:
    from crossbind.cycles import resolve_module_cycles

    resolved = resolve_module_cycles(partials, make_boot)
    for item in resolved:
        ext = "hs-boot" if item.is_boot else "hs"
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Sequence

logger = logging.getLogger("Crossbind.Cycles")


# ============================================================
# Strongly Connected Components
# ============================================================


@dataclass
class Component:
    """A strongly connected component of the module graph."""

    members: List[str] = field(default_factory=list)
    cyclic: bool = False


def strongly_connected_components(
    nodes: Sequence[str], edges: Dict[str, Iterable[str]]
) -> List[Component]:
    """
    Splits a directed graph into strongly connected components (Tarjan).

    Components come out dependencies first: if A imports B and they are not
    in the same component, B's component precedes A's. Within a component,
    members are listed in declared node order. Edges to nodes that are not
    in the node list are ignored.

    Args:
        nodes: Node names, in declared order
        edges: Map from a node to the nodes it depends on

    Returns:
        List of components
    """
    order = {name: i for i, name in enumerate(nodes)}
    successors: Dict[str, List[str]] = {}
    for name in nodes:
        targets = {t for t in edges.get(name, ()) if t in order}
        successors[name] = sorted(targets, key=order.__getitem__)

    index_of: Dict[str, int] = {}
    low_link: Dict[str, int] = {}
    stack: List[str] = []
    on_stack = set()
    components: List[Component] = []

    def visit(name: str) -> None:
        index_of[name] = low_link[name] = len(index_of)
        stack.append(name)
        on_stack.add(name)

        for target in successors[name]:
            if target not in index_of:
                visit(target)
                low_link[name] = min(low_link[name], low_link[target])
            elif target in on_stack:
                low_link[name] = min(low_link[name], index_of[target])

        if low_link[name] == index_of[name]:
            members = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                members.append(member)
                if member == name:
                    break
            members.sort(key=order.__getitem__)
            cyclic = len(members) > 1 or name in successors[name]
            components.append(Component(members, cyclic))

    for name in nodes:
        if name not in index_of:
            visit(name)

    return components


# ============================================================
# Cycle Resolution
# ============================================================


@dataclass
class ResolvedPartial:
    """A finished partial; boot partials are the companions of cyclic modules."""

    partial: Any
    is_boot: bool = False


def resolve_module_cycles(
    partials: Sequence[Any], make_boot: Callable[[Any], Any]
) -> List[ResolvedPartial]:
    """
    Breaks import cycles between module partials.

    Each partial must provide:
        name: its module name
        imported_modules(): names of the modules it imports
        with_source_imports(names): a copy whose imports of the given
            modules are marked as {-# SOURCE #-} imports

    Args:
        partials: Module partials, in declared module order
        make_boot: Builds the companion boot partial for a partial

    Returns:
        The partials to emit, components dependencies first
    """
    by_name = {p.name: p for p in partials}
    names = [p.name for p in partials]
    edges = {p.name: [m for m in p.imported_modules() if m != p.name] for p in partials}

    resolved: List[ResolvedPartial] = []
    for component in strongly_connected_components(names, edges):
        if not component.cyclic:
            resolved.append(ResolvedPartial(by_name[component.members[0]]))
            continue

        logger.info(f"Breaking import cycle between modules: {', '.join(component.members)}")
        cycle_names = set(component.members)
        for name in component.members:
            partial = by_name[name]
            boot = make_boot(partial)
            resolved.append(ResolvedPartial(partial.with_source_imports(cycle_names)))
            resolved.append(ResolvedPartial(boot.with_source_imports(cycle_names), is_boot=True))

    return resolved
