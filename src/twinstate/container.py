"""
UniverseContainer: the per-module active-universe facade (ModeManager).

A module talks to one container. The container owns the module's two
sub-stores and exposes a single "current" view over them:

    container.get("dailyHours")      # from whichever universe is active
    container.set("dailyHours", 12)  # active sub-store, then the ValueStore

Two notions of "active" are kept apart:

- current_mode is what the user is looking at. switch_mode() changes it and
  re-renders; it never recomputes and never writes.
- the pass universe is set by the orchestrator while one recomputation pass
  runs (computing()). It overrides current_mode for get/set and is always
  restored in a finally block, so an exception cannot leave it stuck.

Compute functions do not depend on either flag: they receive a
UniverseAccessor bound to exactly one universe.
"""
from contextlib import contextmanager
import logging
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional

from twinstate.config import get_config
from twinstate.fields import FieldSchema, parse_numeric
from twinstate.module_state import ModuleState, UniverseState
from twinstate.persistence import PersistenceAdapter
from twinstate.universe import ABSENT, Provenance, Universe, UniverseKey
from twinstate.value_store import ValueStore

logger = logging.getLogger(__name__)


class UniverseAccessor:
    """Read access to one universe, handed to compute functions.

    Own fields are read from the module's sub-store for this universe. Any
    other field is read from the ValueStore under this universe's key. There is
    no fallback to the other universe: a missing upstream value yields the
    caller's default.
    """

    def __init__(self, container: 'UniverseContainer', universe: Universe):
        self._container = container
        self.universe = universe

    def __repr__(self) -> str:
        return f"UniverseAccessor({self._container.module_id}, {self.universe.value})"

    @property
    def is_reference(self) -> bool:
        return self.universe is Universe.REFERENCE

    def get(self, name: str, default: Any = ABSENT) -> Any:
        if name in self._container.schema:
            return self._container.state(self.universe).get(name, default)
        return self.upstream(name, default)

    __getitem__ = get

    def upstream(self, name: str, default: Any = ABSENT) -> Any:
        """Published value of name in this universe."""
        return self._container.store.get(UniverseKey(name, self.universe), default)

    def number(self, name: str, fallback: Optional[float] = None) -> float:
        """Numeric value of name; unparseable or missing values give the fallback.

        For declared fields the fallback defaults to the parsed declared
        default, otherwise to TwinStateConfig.numeric_fallback.
        """
        if fallback is None:
            spec = self._container.schema.get(name)
            fallback = parse_numeric(spec.default) if spec is not None else get_config().numeric_fallback
        return parse_numeric(self.get(name), fallback)

    def text(self, name: str, default: str = "") -> str:
        value = self.get(name)
        if value is ABSENT or value is None:
            return default
        return str(value)


class UniverseContainer:
    """Owns a module's TargetState/ReferenceState and routes reads and writes.

    Args:
        module_id: Stable module id, used for persisted slot names.
        schema: Field declarations for this module.
        store: Shared ValueStore results are bridged into.
        persistence: Optional PersistenceAdapter for user edits.
        reference_overrides: Reference-side defaults that replace the declared
            ones (e.g. code minimums from a reference standard).
    """

    def __init__(
        self,
        module_id: str,
        schema: FieldSchema,
        store: ValueStore,
        persistence: Optional[PersistenceAdapter] = None,
        reference_overrides: Optional[Mapping[str, Any]] = None,
    ):
        self.module_id = module_id
        self.schema = schema
        self.store = store
        self.persistence = persistence
        self.module_state = ModuleState(module_id)
        self.current_mode: Universe = Universe.TARGET
        self._reference_overrides: Dict[str, Any] = dict(reference_overrides or {})
        self._pass_stack: List[Universe] = []
        self._render_callbacks: List[Callable[[Universe, Dict[str, Any]], None]] = []
        self._recompute_hook: Optional[Callable[[], Any]] = None

    def __repr__(self) -> str:
        return f"UniverseContainer({self.module_id!r}, mode={self.current_mode.value})"

    # ========== ACTIVE UNIVERSE ==========

    @property
    def active_universe(self) -> Universe:
        """Pass universe while a recomputation pass runs, else current_mode."""
        return self._pass_stack[-1] if self._pass_stack else self.current_mode

    @property
    def is_computing(self) -> bool:
        return bool(self._pass_stack)

    @contextmanager
    def computing(self, universe: Universe) -> Generator[UniverseAccessor, None, None]:
        """Route get/set to universe for the duration of one pass.

        The previous active universe is restored even if the block raises.
        """
        self._pass_stack.append(universe)
        try:
            yield self.accessor(universe)
        finally:
            self._pass_stack.pop()

    def accessor(self, universe: Universe) -> UniverseAccessor:
        return UniverseAccessor(self, universe)

    def state(self, universe: Universe) -> UniverseState:
        return self.module_state.for_universe(universe)

    def get_current_state(self) -> UniverseState:
        """Sub-store for the active universe (for bulk operations)."""
        return self.state(self.active_universe)

    # ========== DEFAULTS ==========

    @property
    def reference_overrides(self) -> Dict[str, Any]:
        return dict(self._reference_overrides)

    def set_reference_overrides(self, overrides: Optional[Mapping[str, Any]], merge: bool = False) -> None:
        """Replace the Reference default overrides used by future reseeds.

        With merge=True the given entries are layered over the existing ones.
        """
        base = self._reference_overrides if merge else {}
        self._reference_overrides = {**base, **(overrides or {})}

    def defaults(self, universe: Universe) -> Dict[str, Any]:
        overrides = self._reference_overrides if universe is Universe.REFERENCE else None
        return self.schema.defaults(universe, overrides)

    # ========== LIFECYCLE ==========

    def set_recompute_hook(self, hook: Optional[Callable[[], Any]]) -> None:
        """Callable run after reset_to_defaults() (normally the orchestrator's calculate_all)."""
        self._recompute_hook = hook

    def initialize(self) -> None:
        """Seed both sub-stores from persisted data or defaults and publish inputs."""
        for universe in Universe:
            self._seed(universe)
        self.publish_inputs()

    def _seed(self, universe: Universe) -> None:
        state = self.state(universe)
        defaults = self.defaults(universe)
        record = self.persistence.load(self.module_id, universe) if self.persistence else None

        if record is None:
            state.set_defaults(defaults)
            return

        values = dict(defaults)
        provenance = {name: Provenance.DEFAULT for name in values}
        ignored = []
        for name, value in record.values.items():
            if name not in self.schema:
                ignored.append(name)
                continue
            values[name] = value
            provenance[name] = record.provenance.get(name, Provenance.USER)
        if ignored:
            logger.info(f"{self.module_id}/{universe.value}: ignoring unknown persisted fields {ignored}")
        state.load(values, provenance)
        logger.debug(f"{self.module_id}/{universe.value}: restored {len(record.values)} persisted fields")

    def publish_inputs(self, universe: Optional[Universe] = None) -> None:
        """Bridge every input field of the sub-store(s) into the ValueStore."""
        universes = [universe] if universe is not None else list(Universe)
        with self.store.transaction():
            for u in universes:
                state = self.state(u)
                for spec in self.schema.inputs:
                    if spec.name in state:
                        self.store.set(
                            UniverseKey(spec.name, u),
                            state.get(spec.name),
                            state.get_provenance(spec.name) or Provenance.DEFAULT,
                        )

    def reset_to_defaults(self) -> None:
        """Discard persisted and in-memory state for both universes and recompute once."""
        logger.info(f"{self.module_id}: resetting both universes to defaults")
        if self.persistence is not None:
            self.persistence.clear(self.module_id)
        for universe in Universe:
            self.state(universe).set_defaults(self.defaults(universe))
        self.publish_inputs()
        if self._recompute_hook is not None:
            self._recompute_hook()
        self.refresh_ui()

    def save(self, universe: Universe) -> None:
        if self.persistence is None:
            return
        state = self.state(universe)
        self.persistence.save(self.module_id, universe, state.values, state.provenance)
        state.mark_clean()

    # ========== READ / WRITE ==========

    def get(self, name: str, default: Any = ABSENT) -> Any:
        """Value of name in the active universe's sub-store."""
        return self.get_current_state().get(name, default)

    def set(
        self,
        name: str,
        value: Any,
        provenance: Provenance = Provenance.USER,
        universe: Optional[Universe] = None,
    ) -> None:
        """Write the active (or given) universe's sub-store, then bridge to the ValueStore.

        User and imported writes persist that universe's slot.
        """
        if name not in self.schema:
            logger.warning(
                f"set({name!r}) called on {self.module_id} but field is not declared. "
                f"Available: {self.schema.names[:5]}..."
            )
            return

        target = universe if universe is not None else self.active_universe
        state = self.state(target)
        current = state.get_provenance(name)
        if provenance is Provenance.DEFAULT and current is not None and current.is_computed:
            logger.debug(f"{self.module_id}: ignoring default write to computed {name!r}")
            return
        state.set(name, value, provenance)

        if provenance.is_user and get_config().persist_user_writes:
            self.save(target)

        self.store.set(UniverseKey(name, target), value, provenance)

    def sync_from_store(self, names: Optional[List[str]] = None) -> List[UniverseKey]:
        """Pull published input values into the sub-stores, universe by universe.

        Used after an external import wrote the ValueStore directly. Each
        universe only reads its own keys.

        Returns:
            Keys whose published value differed from the sub-store and were copied.
        """
        names = names if names is not None else [s.name for s in self.schema.inputs]
        synced: List[UniverseKey] = []
        for universe in Universe:
            state = self.state(universe)
            for name in names:
                if name not in self.schema:
                    continue
                key = UniverseKey(name, universe)
                published = self.store.get(key)
                if published is ABSENT or published == state.get(name):
                    continue
                state.set(name, published, self.store.provenance(key) or Provenance.IMPORTED)
                synced.append(key)
            if state.dirty and get_config().persist_user_writes:
                self.save(universe)
        return synced

    # ========== VIEW ==========

    def switch_mode(self, mode: Any) -> bool:
        """Change the visible universe. Pure view change: nothing is recomputed or written.

        Returns:
            True if the mode changed.
        """
        mode = Universe.coerce(mode)
        if mode is self.current_mode:
            return False
        self.current_mode = mode
        logger.debug(f"{self.module_id}: switched to {mode.value.upper()} mode")
        self.refresh_ui()
        return True

    @property
    def is_reference_mode(self) -> bool:
        return self.current_mode is Universe.REFERENCE

    def display_value(self, name: str) -> Any:
        """Value shown for name in the visible universe.

        Computed fields come from the already-published result; inputs from
        the sub-store.
        """
        universe = self.current_mode
        spec = self.schema.get(name)
        if spec is not None and spec.computed:
            return self.store.get(UniverseKey(name, universe), self.state(universe).get(name))
        return self.state(universe).get(name)

    def display_values(self) -> Dict[str, Any]:
        return {name: self.display_value(name) for name in self.schema.names}

    def on_render(self, callback: Callable[[Universe, Dict[str, Any]], None]) -> None:
        """Subscribe to re-render requests. Callback receives (universe, display values)."""
        if callback not in self._render_callbacks:
            self._render_callbacks.append(callback)

    def off_render(self, callback: Callable[[Universe, Dict[str, Any]], None]) -> None:
        if callback in self._render_callbacks:
            self._render_callbacks.remove(callback)

    def refresh_ui(self) -> None:
        """Fire render callbacks with the visible universe's values (best-effort)."""
        if not self._render_callbacks:
            return
        values = self.display_values()
        for callback in list(self._render_callbacks):
            try:
                callback(self.current_mode, values)
            except Exception as e:
                logger.warning(f"Error in render callback for {self.module_id}: {e}")
