"""
ValueStore: the shared, universe-qualified value store.

Every module publishes its inputs and computed results here and subscribes to
the upstream values it depends on. It is the one shared mutable resource in
the calculator, so its rules are strict:

- Keys are UniverseKey instances; there is no way to address a value without
  naming its universe.
- A write always lands before listeners are notified.
- Listeners run synchronously, in registration order, over a copy of the
  listener list (a callback may add or remove listeners safely).
- A listener that raises is logged and skipped; the others still run.
- Inside transaction(), writes land immediately but notifications are held
  until the outermost transaction exits, so a batch of outputs is visible as
  a whole before any downstream module reacts to it.

Thread safety: Not thread-safe (all operations expected on one thread).
"""
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Tuple

from twinstate.dependency_graph import DependencyGraph
from twinstate.universe import ABSENT, Provenance, Universe, UniverseKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredValue:
    """A value together with how it was produced."""
    key: UniverseKey
    value: Any
    provenance: Provenance


@dataclass(frozen=True)
class ValueChange:
    """Payload delivered to listeners."""
    key: UniverseKey
    value: Any
    old_value: Any
    provenance: Provenance


Listener = Callable[[ValueChange], None]


class ValueStore:
    """Process-wide keyed store of field values for both universes.

    Args:
        graph: Dependency graph used by register_dependency(). A new graph is
            created when omitted.
    """

    def __init__(self, graph: Optional[DependencyGraph] = None):
        self.graph = graph if graph is not None else DependencyGraph()
        self._entries: Dict[UniverseKey, StoredValue] = {}
        self._listeners: Dict[UniverseKey, List[Listener]] = {}
        self._token: int = 0
        self._muted: int = 0
        self._transaction_depth: int = 0
        self._pending: List[ValueChange] = []

    # ========== READ ==========

    def get(self, key: UniverseKey, default: Any = ABSENT) -> Any:
        """Return the stored value, or default (ABSENT) when unset. Never raises."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else default

    def get_entry(self, key: UniverseKey) -> Optional[StoredValue]:
        return self._entries.get(key)

    def provenance(self, key: UniverseKey) -> Optional[Provenance]:
        entry = self._entries.get(key)
        return entry.provenance if entry is not None else None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self, universe: Optional[Universe] = None) -> List[UniverseKey]:
        if universe is None:
            return list(self._entries)
        return [k for k in self._entries if k.universe is universe]

    @property
    def token(self) -> int:
        """Counter bumped on every effective write (for cache invalidation)."""
        return self._token

    # ========== WRITE ==========

    def set(self, key: UniverseKey, value: Any, provenance: Provenance = Provenance.USER) -> None:
        """Store value under key and notify the key's listeners.

        A write that changes neither value nor provenance is a no-op. A DEFAULT
        write never replaces a computed value.
        """
        if not isinstance(key, UniverseKey):
            raise TypeError(f"ValueStore keys must be UniverseKey, got {type(key).__name__}: {key!r}")

        previous = self._entries.get(key)
        if previous is not None:
            if previous.value == value and previous.provenance is provenance:
                return
            if provenance is Provenance.DEFAULT and previous.provenance.is_computed:
                logger.debug(f"Ignoring default write to computed {key}")
                return

        old_value = previous.value if previous is not None else ABSENT
        self._entries[key] = StoredValue(key, value, provenance)
        self._token += 1
        logger.debug(f"set {key} = {value!r} ({provenance.value})")

        change = ValueChange(key, value, old_value, provenance)
        if self._transaction_depth > 0:
            self._pending.append(change)
        else:
            self._notify(change)

    def set_many(
        self,
        values: Mapping[str, Any],
        universe: Universe,
        provenance: Provenance,
    ) -> None:
        """Write several fields of one universe as a single transaction."""
        with self.transaction():
            for name, value in values.items():
                self.set(UniverseKey(name, universe), value, provenance)

    def delete(self, key: UniverseKey) -> None:
        """Remove a stored value without notifying listeners."""
        if self._entries.pop(key, None) is not None:
            self._token += 1

    def clear(self) -> None:
        """Drop all values (listeners are kept)."""
        self._entries.clear()
        self._pending.clear()
        self._token += 1

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Apply writes immediately but defer notifications to the outermost exit.

        Nested transactions are supported; only the outermost one flushes.
        Notifications are flushed even if the block raises, since the writes
        that preceded the error have already landed.
        """
        self._transaction_depth += 1
        try:
            yield
        finally:
            self._transaction_depth -= 1
            if self._transaction_depth == 0:
                pending, self._pending = self._pending, []
                for change in pending:
                    self._notify(change)

    @contextmanager
    def muted(self) -> Generator[None, None, None]:
        """Write without notifying listeners (e.g. while importing a saved project)."""
        self._muted += 1
        try:
            yield
        finally:
            self._muted -= 1

    @property
    def is_muted(self) -> bool:
        return self._muted > 0

    # ========== LISTENERS ==========

    def add_listener(self, key: UniverseKey, callback: Listener) -> None:
        """Subscribe callback to writes on key. Registering the same callback twice is a no-op."""
        callbacks = self._listeners.setdefault(key, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def remove_listener(self, key: UniverseKey, callback: Listener) -> None:
        callbacks = self._listeners.get(key)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def listeners(self, key: UniverseKey) -> List[Listener]:
        return list(self._listeners.get(key, ()))

    def _notify(self, change: ValueChange) -> None:
        if self._muted:
            logger.debug(f"Skipped listeners for {change.key} (muted)")
            return
        for callback in list(self._listeners.get(change.key, ())):
            try:
                callback(change)
            except Exception:
                logger.exception(f"Listener for {change.key} failed")

    # ========== DEPENDENCIES ==========

    def register_dependency(self, upstream: str, downstream: str, note: str = "") -> None:
        """Record a dependency edge. Documentary only: it does not trigger recomputation."""
        self.graph.add(upstream, downstream, note)

    # ========== PUBLICATION NAMESPACE ==========

    def export_state(self, universe: Optional[Universe] = None) -> Dict[str, Any]:
        """Flat publication-name -> value map (bare = Target, prefixed = Reference)."""
        return {
            key.publication_name(): entry.value
            for key, entry in self._entries.items()
            if universe is None or key.universe is universe
        }

    def import_state(
        self,
        data: Mapping[str, Any],
        provenance: Provenance = Provenance.IMPORTED,
    ) -> List[UniverseKey]:
        """Write a publication-name map into the store as one transaction.

        Returns:
            The keys written, in input order.
        """
        written: List[UniverseKey] = []
        with self.transaction():
            for name, value in data.items():
                key = UniverseKey.parse(name)
                self.set(key, value, provenance)
                written.append(key)
        logger.info(f"Imported {len(written)} values")
        return written

    def get_published(self, name: str, default: Any = ABSENT) -> Any:
        """Read through the flat publication namespace."""
        return self.get(UniverseKey.parse(name), default)

    def items(self, universe: Optional[Universe] = None) -> List[Tuple[UniverseKey, Any]]:
        return [
            (key, entry.value) for key, entry in self._entries.items()
            if universe is None or key.universe is universe
        ]
