"""
Field dependency graph.

Records "downstream is computed from upstream" edges across module
boundaries. The graph is not the evaluation engine (recomputation is driven
by store listeners); it is used to:

- reject cycles at registration time, so a feedback loop between modules is
  a startup error instead of an unbounded re-entrant chain at runtime
- mark downstream fields dirty and order them for recomputation
- order modules so upstream owners are recomputed first
- export a node/link view for diagnostics

Edges are universe-agnostic: both universes share one field schema, so the
edge set restricted to either universe is the same graph.
"""
from dataclasses import dataclass
import logging
from typing import Dict, Iterable, List, Optional, Set

from twinstate.config import get_config
from twinstate.errors import DependencyCycleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyEdge:
    upstream: str
    downstream: str
    description: str = ""


class DependencyGraph:
    """Directed acyclic graph of field dependencies."""

    def __init__(self):
        self._downstream: Dict[str, Dict[str, DependencyEdge]] = {}
        self._upstream: Dict[str, Set[str]] = {}
        self._owners: Dict[str, str] = {}
        self._dirty: Set[str] = set()

    # ========== REGISTRATION ==========

    def register_field(self, name: str, owner: Optional[str] = None) -> None:
        """Record a field node and, optionally, the module that owns it."""
        self._downstream.setdefault(name, {})
        self._upstream.setdefault(name, set())
        if owner is not None:
            previous = self._owners.get(name)
            if previous is not None and previous != owner:
                logger.warning(f"Field {name!r} re-registered by {owner!r} (was owned by {previous!r})")
            self._owners[name] = owner

    def add(self, upstream: str, downstream: str, description: str = "") -> DependencyEdge:
        """Record that downstream is computed from upstream.

        Raises:
            DependencyCycleError: if the edge closes a cycle and
                TwinStateConfig.allow_cycles is False.
        """
        existing = self._downstream.get(upstream, {}).get(downstream)
        if existing is not None:
            return existing

        cycle = self._path(downstream, upstream)
        if cycle is not None:
            cycle_path = [upstream] + cycle
            if not get_config().allow_cycles:
                raise DependencyCycleError(cycle_path)
            logger.warning(f"Recording cyclic dependency {' -> '.join(cycle_path)} (allow_cycles=True)")

        self.register_field(upstream)
        self.register_field(downstream)
        edge = DependencyEdge(upstream, downstream, description)
        self._downstream[upstream][downstream] = edge
        self._upstream[downstream].add(upstream)
        logger.debug(f"Dependency {upstream} -> {downstream} {description}".rstrip())
        return edge

    def remove(self, upstream: str, downstream: str) -> None:
        if downstream in self._downstream.get(upstream, {}):
            del self._downstream[upstream][downstream]
            self._upstream[downstream].discard(upstream)

    def _path(self, start: str, goal: str) -> Optional[List[str]]:
        """Return a path start -> ... -> goal along existing edges, or None."""
        if start == goal:
            return [start]
        stack = [(start, [start])]
        visited: Set[str] = set()
        while stack:
            node, path = stack.pop()
            if node in visited:
                continue
            visited.add(node)
            for nxt in self._downstream.get(node, {}):
                if nxt == goal:
                    return path + [nxt]
                if nxt not in visited:
                    stack.append((nxt, path + [nxt]))
        return None

    # ========== QUERIES ==========

    def __contains__(self, name: object) -> bool:
        return name in self._downstream

    @property
    def fields(self) -> List[str]:
        return list(self._downstream)

    def edges(self) -> List[DependencyEdge]:
        return [edge for targets in self._downstream.values() for edge in targets.values()]

    def owner(self, name: str) -> Optional[str]:
        return self._owners.get(name)

    def dependents(self, name: str) -> List[str]:
        """Fields computed directly from name."""
        return list(self._downstream.get(name, {}))

    def dependencies(self, name: str) -> List[str]:
        """Fields name is computed directly from."""
        return sorted(self._upstream.get(name, set()))

    def transitive_dependents(self, name: str) -> Set[str]:
        result: Set[str] = set()
        stack = list(self._downstream.get(name, {}))
        while stack:
            node = stack.pop()
            if node in result:
                continue
            result.add(node)
            stack.extend(self._downstream.get(node, {}))
        return result

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as a closed path, or None if the graph is acyclic.

        Only reachable when edges were added with allow_cycles=True.
        """
        white, grey, black = 0, 1, 2
        color = {node: white for node in self._downstream}
        parent: Dict[str, str] = {}

        for root in self._downstream:
            if color[root] != white:
                continue
            stack = [(root, iter(self._downstream[root]))]
            color[root] = grey
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    color[node] = black
                    stack.pop()
                    continue
                if color.get(child, white) == grey:
                    cycle = [child]
                    cursor = node
                    while cursor != child:
                        cycle.append(cursor)
                        cursor = parent[cursor]
                    cycle.append(child)
                    cycle.reverse()
                    return cycle
                if color.get(child, white) == white:
                    color[child] = grey
                    parent[child] = node
                    stack.append((child, iter(self._downstream.get(child, {}))))
        return None

    # ========== DIRTY TRACKING ==========

    def mark_dirty(self, name: str) -> Set[str]:
        """Mark every transitive dependent of name dirty. Returns the newly marked set."""
        marked = self.transitive_dependents(name) - self._dirty
        self._dirty |= marked
        return marked

    def dirty_fields(self) -> Set[str]:
        return set(self._dirty)

    def clear_dirty(self, names: Optional[Iterable[str]] = None) -> None:
        if names is None:
            self._dirty.clear()
        else:
            self._dirty.difference_update(names)

    def calculation_order(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Topological order of the given fields (default: dirty set) and their dependents.

        Upstream fields come before the fields computed from them.
        """
        seeds = list(names) if names is not None else sorted(self._dirty)
        visited: Set[str] = set()
        order: List[str] = []

        def visit(node: str) -> None:
            if node in visited:
                return
            visited.add(node)
            for child in self._downstream.get(node, {}):
                visit(child)
            order.append(node)

        for seed in seeds:
            visit(seed)
        order.reverse()
        return order

    def module_order(self, owners: Iterable[str]) -> List[str]:
        """Order module ids so that owners of upstream fields come first.

        Modules with no relationship keep their input order.
        """
        owners = list(owners)
        index = {owner: i for i, owner in enumerate(owners)}
        after: Dict[str, Set[str]] = {owner: set() for owner in owners}
        for edge in self.edges():
            up = self._owners.get(edge.upstream)
            down = self._owners.get(edge.downstream)
            if up in after and down in after and up != down:
                after[up].add(down)

        incoming = {owner: 0 for owner in owners}
        for up, downs in after.items():
            for down in downs:
                incoming[down] += 1

        ready = sorted((o for o in owners if incoming[o] == 0), key=index.get)
        ordered: List[str] = []
        while ready:
            current = ready.pop(0)
            ordered.append(current)
            for down in sorted(after[current], key=index.get):
                incoming[down] -= 1
                if incoming[down] == 0:
                    ready.append(down)
            ready.sort(key=index.get)

        if len(ordered) != len(owners):
            # Module-level cycle (only possible with allow_cycles); keep the rest in input order
            ordered.extend(o for o in owners if o not in ordered)
        return ordered

    # ========== DIAGNOSTICS ==========

    def export(self) -> Dict[str, List[Dict[str, str]]]:
        """Export nodes and links as JSON-serializable dicts."""
        nodes = [
            {"id": name, "group": self._owners.get(name, "")}
            for name in self._downstream
        ]
        links = [
            {"source": e.upstream, "target": e.downstream, "description": e.description}
            for e in self.edges()
        ]
        return {"nodes": nodes, "links": links}
