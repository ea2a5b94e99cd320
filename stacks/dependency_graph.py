"""Explicit dependency edges between constructs declared in one unit."""

from typing import Dict, List, Optional, Tuple

from constructs import Construct


class DeclarationError(Exception):
    """Base class for misconfigurations detected while declaring resources."""


class DuplicateDescriptorError(DeclarationError):
    """Raised when an identifier is declared twice in the same unit."""


class UnresolvedDependencyError(DeclarationError):
    """Raised when an edge points at an identifier that is not yet declared."""


class DependencyCycleError(DeclarationError):
    """Raised when the declared edges contain a cycle."""


class DependencyGraph:
    """Directed graph of descriptor identifiers owned by a declaration unit.

    Constructs are registered under an identifier that must be unique within
    the unit. Edges may only point at identifiers that already exist in this
    unit or one of its ancestors, so a unit can never depend on a sibling that
    has not been constructed yet. ``apply`` validates the graph and turns every
    edge into a CDK ``node.add_dependency`` call.
    """

    def __init__(self, unit: str, parent: Optional["DependencyGraph"] = None) -> None:
        self.unit = unit
        self.parent = parent
        self._descriptors: Dict[str, Construct] = {}
        self._edges: List[Tuple[str, str]] = []
        self._applied = 0
        self._children: List["DependencyGraph"] = []
        if parent is not None:
            parent._children.append(self)

    def declare(self, descriptor_id: str, construct: Construct) -> Construct:
        """Register a construct and return it unchanged."""
        if descriptor_id in self._descriptors:
            raise DuplicateDescriptorError(
                f"{descriptor_id!r} is already declared in {self.unit}"
            )
        self._descriptors[descriptor_id] = construct
        return construct

    def depends_on(self, source_id: str, *target_ids: str) -> None:
        """Add an ordering edge from ``source_id`` to each target."""
        if source_id not in self._descriptors:
            raise UnresolvedDependencyError(
                f"{source_id!r} is not declared in {self.unit}"
            )
        for target_id in target_ids:
            self.resolve(target_id)
            edge = (source_id, target_id)
            if edge not in self._edges:
                self._edges.append(edge)

    def resolve(self, descriptor_id: str) -> Construct:
        """Look up a construct in this unit, then in its ancestors."""
        return self._owner(descriptor_id)._descriptors[descriptor_id]

    def find(self, construct: Construct) -> Optional[str]:
        """Identifier under which ``construct`` is declared here or in an ancestor."""
        graph: Optional[DependencyGraph] = self
        while graph is not None:
            for descriptor_id, declared in graph._descriptors.items():
                if declared is construct:
                    return descriptor_id
            graph = graph.parent
        return None

    def _owner(self, descriptor_id: str) -> "DependencyGraph":
        graph: Optional[DependencyGraph] = self
        while graph is not None:
            if descriptor_id in graph._descriptors:
                return graph
            graph = graph.parent
        raise UnresolvedDependencyError(
            f"{descriptor_id!r} is not declared in {self.unit} or its ancestors"
        )

    def __contains__(self, descriptor_id: str) -> bool:
        return descriptor_id in self._descriptors

    @property
    def descriptor_ids(self) -> List[str]:
        return list(self._descriptors)

    @property
    def edges(self) -> List[Tuple[str, str]]:
        return list(self._edges)

    def dependencies_of(self, descriptor_id: str) -> List[str]:
        return [target for source, target in self._edges if source == descriptor_id]

    def validate(self) -> List[str]:
        """Check the graph for cycles and return a creation order.

        Identifiers owned by ancestors are treated as already created, see
        ``validate_tree`` for the check across units. Ties are broken by
        declaration order so the result is deterministic.

        Raises:
            DependencyCycleError: If any edge closes a cycle.
        """
        local = list(self._descriptors)
        pending = {
            d: {t for t in self.dependencies_of(d) if t in self._descriptors}
            for d in local
        }

        order: List[str] = []
        while pending:
            ready = [d for d in local if d in pending and not pending[d]]
            if not ready:
                raise DependencyCycleError(
                    f"Dependency cycle in {self.unit} between: "
                    + ", ".join(sorted(pending))
                )
            for descriptor_id in ready:
                order.append(descriptor_id)
                del pending[descriptor_id]
            for remaining in pending.values():
                remaining.difference_update(ready)
        return order

    def validate_tree(self) -> None:
        """Check the edges of this unit and every nested unit for cycles.

        A descriptor that is itself a nested unit stands for everything
        declared inside that unit, so an edge from a nested descriptor to an
        ancestor that depends on the unit closes a cycle.

        Raises:
            DependencyCycleError: If the combined edges contain a cycle.
        """
        graphs = list(self._walk())
        units = {
            (graph.parent, graph.unit): graph
            for graph in graphs
            if graph.parent is not None and graph.unit in graph.parent._descriptors
        }

        def expand(graph, descriptor_id):
            nodes = [(graph, descriptor_id)]
            nested = units.get((graph, descriptor_id))
            if nested is not None:
                for inner in nested._walk():
                    nodes.extend((inner, d) for d in inner._descriptors)
            return nodes

        nodes = [(graph, d) for graph in graphs for d in graph._descriptors]
        pending = {node: set() for node in nodes}
        for graph in graphs:
            for source_id, target_id in graph._edges:
                targets = [
                    t for t in expand(graph._owner(target_id), target_id) if t in pending
                ]
                for source in expand(graph, source_id):
                    pending[source].update(targets)

        while pending:
            ready = [node for node in nodes if node in pending and not pending[node]]
            if not ready:
                raise DependencyCycleError(
                    f"Dependency cycle across the units of {self.unit} between: "
                    + ", ".join(sorted(f"{g.unit}/{d}" for g, d in pending))
                )
            for node in ready:
                del pending[node]
            for remaining in pending.values():
                remaining.difference_update(ready)

    def _walk(self):
        yield self
        for child in self._children:
            yield from child._walk()

    def apply(self) -> List[str]:
        """Validate, then add every edge not yet applied to the CDK tree.

        The root unit also checks the edges of all nested units together.
        """
        order = self.validate()
        if self.parent is None:
            self.validate_tree()
        for source_id, target_id in self._edges[self._applied:]:
            source = self._descriptors[source_id]
            source.node.add_dependency(self.resolve(target_id))
        self._applied = len(self._edges)
        return order
