"""
CalculatorModule: one section of the calculator wired onto the shared core.

A module is a field schema plus a pure compute function. Everything else is
provided by the core:

- a UniverseContainer holding its Target/Reference sub-stores
- a RecalculationOrchestrator running compute once per universe
- dependency edges for every declared upstream field
- listeners on BOTH universes of every foreign upstream field, registered
  in one place so a Reference listener can never be forgotten

The ValueStore (and through it the DependencyGraph) and the optional
PersistenceAdapter are injected; a module never reaches for global state.

Example:
    schema = FieldSchema([
        FieldSpec("dailyHours", default=12, reference_default=8),
        FieldSpec("annualOccupiedHours", dependencies=("dailyHours",), computed=True),
    ])

    def compute(acc):
        return {"annualOccupiedHours": acc.number("dailyHours") * 365}

    occupancy = CalculatorModule("occupancy", schema, compute, store)
    occupancy.initialize()
    occupancy.edit("dailyHours", 10)
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from twinstate.container import UniverseContainer
from twinstate.fields import FieldSchema
from twinstate.orchestrator import ComputeFn, RecalculationOrchestrator
from twinstate.persistence import PersistenceAdapter
from twinstate.universe import ABSENT, Provenance, Universe, UniverseKey
from twinstate.value_store import ValueChange, ValueStore

logger = logging.getLogger(__name__)


class CalculatorModule:
    """A schema + compute function bound to the shared store.

    Args:
        module_id: Stable id (also used for persisted slot names).
        schema: Field declarations.
        compute: accessor -> {output: value}, called once per universe.
        store: Shared ValueStore.
        persistence: Optional PersistenceAdapter.
        reference_overrides: Reference-side default overrides.
    """

    def __init__(
        self,
        module_id: str,
        schema: FieldSchema,
        compute: ComputeFn,
        store: ValueStore,
        persistence: Optional[PersistenceAdapter] = None,
        reference_overrides: Optional[Mapping[str, Any]] = None,
    ):
        self.module_id = module_id
        self.schema = schema
        self.store = store
        self.container = UniverseContainer(
            module_id, schema, store,
            persistence=persistence,
            reference_overrides=reference_overrides,
        )
        self.orchestrator = RecalculationOrchestrator(self.container, compute)
        self.container.set_recompute_hook(self.orchestrator.calculate_all)
        self._listening: List[UniverseKey] = []
        self.initialized = False

        self._register_dependencies()

    def __repr__(self) -> str:
        return f"CalculatorModule({self.module_id!r}, {len(self.schema)} fields)"

    # ========== WIRING ==========

    def _register_dependencies(self) -> None:
        graph = self.store.graph
        for spec in self.schema:
            graph.register_field(spec.name, owner=self.module_id)
        for upstream, downstream in self.schema.edges():
            self.store.register_dependency(upstream, downstream, f"[{self.module_id}]")

    def _listen_upstream(self) -> None:
        """Listen to both universes of every foreign upstream field (idempotent)."""
        for name in self.schema.external_dependencies():
            for universe in Universe:
                key = UniverseKey(name, universe)
                self.store.add_listener(key, self._on_upstream_change)
                if key not in self._listening:
                    self._listening.append(key)

    def detach(self) -> None:
        """Remove this module's store listeners."""
        for key in self._listening:
            self.store.remove_listener(key, self._on_upstream_change)
        self._listening.clear()

    def _on_upstream_change(self, change: ValueChange) -> None:
        if not self.initialized:
            return
        logger.debug(f"{self.module_id}: upstream {change.key} changed, recalculating")
        self.store.graph.mark_dirty(change.key.field)
        self.calculate_all()

    # ========== LIFECYCLE ==========

    def initialize(self, calculate: bool = True) -> None:
        """Load or seed state, publish inputs, start listening and optionally compute.

        Safe to call again: listener registration is idempotent.
        """
        self.container.initialize()
        self._listen_upstream()
        self.initialized = True
        if calculate:
            self.calculate_all()

    def calculate_all(self) -> Dict[Universe, Dict[str, Any]]:
        results = self.orchestrator.calculate_all()
        self.store.graph.clear_dirty(self.schema.names)
        self.container.refresh_ui()
        return results

    def reset(self) -> None:
        """Destructive reset of both universes, followed by one recomputation."""
        self.orchestrator.reset()
        self.container.reset_to_defaults()
        self.store.graph.clear_dirty(self.schema.names)

    # ========== USER-FACING ==========

    @property
    def current_mode(self) -> Universe:
        return self.container.current_mode

    def switch_mode(self, mode: Any) -> bool:
        return self.container.switch_mode(mode)

    def edit(
        self,
        name: str,
        value: Any,
        universe: Optional[Universe] = None,
        provenance: Provenance = Provenance.USER,
    ) -> None:
        """A user edit: write the active (or given) universe, then recompute both."""
        if name not in self.schema:
            logger.warning(f"{self.module_id}: edit of undeclared field {name!r} ignored")
            return
        if self.schema[name].computed:
            logger.warning(f"{self.module_id}: {name!r} is computed; the next pass will overwrite the edit")
        self.container.set(name, value, provenance, universe=universe)
        self.store.graph.mark_dirty(name)
        self.calculate_all()

    def get(self, name: str, universe: Optional[Universe] = None) -> Any:
        """Value of name: sub-store for inputs, published result for outputs."""
        universe = universe if universe is not None else self.container.active_universe
        spec = self.schema.get(name)
        if spec is not None and spec.computed:
            return self.store.get(UniverseKey(name, universe))
        return self.container.state(universe).get(name, ABSENT)

    def values(self, universe: Universe) -> Dict[str, Any]:
        return {name: self.get(name, universe) for name in self.schema.names}
