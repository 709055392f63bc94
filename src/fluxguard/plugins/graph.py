"""Directed dependency graph over plugin names.

Edges point from a dependency to its dependent, so Kahn's algorithm yields a
load order in which every plugin follows everything it depends on.

Each node remembers the dependencies it declared. Edges exist only between
present nodes: removing a node prunes its edges, and re-adding it restores
edges from nodes that still declare it.

Example:
    >>> graph = DependencyGraph()
    >>> graph.add_node("auth")
    >>> graph.add_node("billing", ["auth"])
    >>> graph.get_load_order()
    ['auth', 'billing']
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable
from dataclasses import dataclass

from fluxguard.foundation.errors import PluginCircularDependencyError


@dataclass(frozen=True, slots=True)
class GraphStats:
    total_plugins: int
    total_dependencies: int
    cyclic_dependencies: bool
    root_plugins: list[str]
    leaf_plugins: list[str]
    load_order: list[str]


class DependencyGraph:
    """Adjacency sets in both directions plus declared dependencies."""

    __slots__ = ("_declared", "_dependents", "_dependencies")

    def __init__(self) -> None:
        self._declared: dict[str, tuple[str, ...]] = {}
        self._dependents: dict[str, set[str]] = {}  # node -> nodes depending on it
        self._dependencies: dict[str, set[str]] = {}  # node -> present nodes it depends on

    # ─────────────────────────────────────────────────────────────────
    # Mutation
    # ─────────────────────────────────────────────────────────────────

    def add_node(self, name: str, dependencies: Iterable[str] = ()) -> None:
        """Add ``name`` (replacing any previous declaration) and wire its edges."""
        if name in self._declared:
            self.remove_node(name)
        declared = tuple(dict.fromkeys(dependencies))
        self._declared[name] = declared
        self._dependents[name] = set()
        self._dependencies[name] = set()
        for dep in declared:
            if dep in self._declared:
                self._link(dep, name)
        for other, other_declared in self._declared.items():
            if other != name and name in other_declared:
                self._link(name, other)

    def remove_node(self, name: str) -> bool:
        if name not in self._declared:
            return False
        for dep in self._dependencies.pop(name):
            self._dependents[dep].discard(name)
        for dependent in self._dependents.pop(name):
            self._dependencies[dependent].discard(name)
        del self._declared[name]
        return True

    def clear(self) -> None:
        self._declared.clear()
        self._dependents.clear()
        self._dependencies.clear()

    def _link(self, dependency: str, dependent: str) -> None:
        self._dependents[dependency].add(dependent)
        self._dependencies[dependent].add(dependency)

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    def has_node(self, name: str) -> bool:
        return name in self._declared

    def __contains__(self, name: object) -> bool:
        return name in self._declared

    @property
    def size(self) -> int:
        return len(self._declared)

    def __len__(self) -> int:
        return len(self._declared)

    def in_degree(self, name: str) -> int:
        return len(self._dependencies[name])

    def get_load_order(self) -> list[str]:
        """Topological order, ties broken by name.

        Raises:
            PluginCircularDependencyError: Some nodes sit on or behind a cycle;
                they are named in the error.
        """
        degree = {name: len(deps) for name, deps in self._dependencies.items()}
        ready = [name for name, d in degree.items() if d == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            name = heapq.heappop(ready)
            order.append(name)
            for dependent in self._dependents[name]:
                degree[dependent] -= 1
                if degree[dependent] == 0:
                    heapq.heappush(ready, dependent)
        if len(order) != len(degree):
            placed = set(order)
            raise PluginCircularDependencyError(sorted(n for n in degree if n not in placed))
        return order

    def find_cycle(self, start: str | None = None) -> list[str] | None:
        """A cycle reachable from ``start`` (or anywhere), closed on its first node.

        Depth-first search with an on-stack set kept apart from the visited
        set, so reaching an already finished node is not mistaken for a cycle.
        """
        visited: set[str] = set()
        on_stack: set[str] = set()
        path: list[str] = []

        def visit(node: str) -> list[str] | None:
            visited.add(node)
            on_stack.add(node)
            path.append(node)
            for nxt in sorted(self._dependencies.get(node, ())):
                if nxt in on_stack:
                    return path[path.index(nxt):] + [nxt]
                if nxt not in visited and (cycle := visit(nxt)) is not None:
                    return cycle
            on_stack.discard(node)
            path.pop()
            return None

        roots = [start] if start is not None else sorted(self._declared)
        for root in roots:
            if root in self._declared and root not in visited and (cycle := visit(root)) is not None:
                return cycle
        return None

    def has_circular_dependency(self, name: str | None = None) -> bool:
        return self.find_cycle(name) is not None

    def get_dependencies(self, name: str) -> list[str]:
        """Direct dependencies present in the graph."""
        return sorted(self._dependencies.get(name, ()))

    def get_dependents(self, name: str) -> list[str]:
        return sorted(self._dependents.get(name, ()))

    def get_all_dependencies(self, name: str) -> list[str]:
        """Transitive dependencies, nearest first."""
        return self._collect(name, self._dependencies)

    def get_all_dependents(self, name: str) -> list[str]:
        return self._collect(name, self._dependents)

    def is_dependent_on(self, name: str, dependency: str) -> bool:
        return dependency in self.get_all_dependencies(name)

    def get_dependency_path(self, source: str, target: str) -> list[str] | None:
        """Dependency chain ``[source, ..., target]``, or None if unreachable."""
        if source not in self._declared or target not in self._declared:
            return None
        seen: set[str] = set()

        def walk(node: str) -> list[str] | None:
            if node == target:
                return [node]
            seen.add(node)
            for dep in sorted(self._dependencies[node]):
                if dep not in seen and (rest := walk(dep)) is not None:
                    return [node, *rest]
            return None

        return walk(source)

    def get_stats(self) -> GraphStats:
        try:
            order, cyclic = self.get_load_order(), False
        except PluginCircularDependencyError:
            order, cyclic = [], True
        return GraphStats(
            total_plugins=len(self._declared),
            total_dependencies=sum(len(d) for d in self._dependents.values()),
            cyclic_dependencies=cyclic,
            root_plugins=sorted(n for n, deps in self._dependencies.items() if not deps),
            leaf_plugins=sorted(n for n, dependents in self._dependents.items() if not dependents),
            load_order=order,
        )

    def to_dot(self) -> str:
        """Graphviz DOT rendering, edges from dependency to dependent."""
        lines = ["digraph PluginDependencies {", "  rankdir=TB;", "  node [shape=box];"]
        lines += [f'  "{name}";' for name in sorted(self._declared)]
        lines += [
            f'  "{name}" -> "{dependent}";'
            for name in sorted(self._dependents)
            for dependent in sorted(self._dependents[name])
        ]
        lines.append("}")
        return "\n".join(lines)

    @staticmethod
    def _collect(name: str, edges: dict[str, set[str]]) -> list[str]:
        seen: set[str] = {name}
        found: list[str] = []
        frontier = sorted(edges.get(name, ()))
        while frontier:
            nxt: list[str] = []
            for node in frontier:
                if node not in seen:
                    seen.add(node)
                    found.append(node)
                    nxt.extend(sorted(edges.get(node, ())))
            frontier = nxt
        return found
