"""Explicit dependency graph of named models.

Each ``ref()`` in a model's SQL becomes an edge from the referenced model to
the referencing one. Builds run in topological order; a cycle is a fatal
configuration error.
"""

import heapq
from collections import defaultdict

from tpch_duck.exceptions import CyclicDependencyError, MissingDependencyError


class ModelGraph:
    """Directed acyclic graph of model names."""

    def __init__(self) -> None:
        self._nodes: set[str] = set()
        self._parents: dict[str, set[str]] = defaultdict(set)
        self._children: dict[str, set[str]] = defaultdict(set)

    @classmethod
    def from_dependencies(cls, dependencies: dict[str, list[str]]) -> "ModelGraph":
        """Build a graph from ``{model: [models it references]}``.

        Raises:
            MissingDependencyError: If a model references an undeclared model
        """
        graph = cls()
        for name in dependencies:
            graph.add_node(name)
        for name, refs in dependencies.items():
            for ref in refs:
                if ref not in dependencies:
                    raise MissingDependencyError(name, ref, list(dependencies))
                graph.add_edge(ref, name)
        return graph

    def add_node(self, name: str) -> None:
        self._nodes.add(name)

    def add_edge(self, upstream: str, downstream: str) -> None:
        self._nodes.update((upstream, downstream))
        self._parents[downstream].add(upstream)
        self._children[upstream].add(downstream)

    @property
    def nodes(self) -> set[str]:
        return set(self._nodes)

    def parents(self, name: str) -> set[str]:
        return set(self._parents.get(name, ()))

    def children(self, name: str) -> set[str]:
        return set(self._children.get(name, ()))

    def upstream(self, name: str) -> set[str]:
        """All transitive ancestors of ``name``."""
        return self._walk(name, self._parents)

    def downstream(self, name: str) -> set[str]:
        """All transitive dependants of ``name``."""
        return self._walk(name, self._children)

    def _walk(self, start: str, edges: dict[str, set[str]]) -> set[str]:
        seen: set[str] = set()
        stack = list(edges.get(start, ()))
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(edges.get(node, ()))
        return seen

    def topological_order(self) -> list[str]:
        """Return nodes so that every model comes after the models it references.

        Ties are broken alphabetically so the order is stable between runs.

        Raises:
            CyclicDependencyError: If the graph contains a cycle
        """
        in_degree = {node: len(self._parents.get(node, ())) for node in self._nodes}
        ready = [node for node, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for child in self._children.get(node, ()):
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    heapq.heappush(ready, child)

        if len(order) != len(self._nodes):
            raise CyclicDependencyError(self._find_cycle())
        return order

    def _find_cycle(self) -> list[str]:
        visiting: list[str] = []
        done: set[str] = set()

        def visit(node: str) -> list[str] | None:
            if node in visiting:
                return visiting[visiting.index(node):] + [node]
            if node in done:
                return None
            visiting.append(node)
            for child in sorted(self._children.get(node, ())):
                cycle = visit(child)
                if cycle:
                    return cycle
            visiting.pop()
            done.add(node)
            return None

        for node in sorted(self._nodes):
            cycle = visit(node)
            if cycle:
                return cycle
        return []

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __repr__(self) -> str:
        edges = sum(len(children) for children in self._children.values())
        return f"ModelGraph({len(self._nodes)} nodes, {edges} edges)"
