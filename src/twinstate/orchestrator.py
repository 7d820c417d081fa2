"""
RecalculationOrchestrator: runs a module's compute function once per universe.

calculate_all() always recomputes both universes, even when only one of them
changed, because the cost is a handful of float operations and it removes any
question of which side is stale.

Pass order is Reference first, then Target. Each pass:

1. enters container.computing(universe), so nested container calls resolve
   to the pass universe (restored in finally)
2. calls compute(accessor) with an accessor bound to that universe
3. buffers the outputs, stores them in the sub-store and publishes them to
   the ValueStore in one transaction, so downstream listeners only ever see
   a complete set of results

A failing pass is logged and publishes zero-valued outputs; the other pass
still runs.

If the user was looking at Reference when the call started, the Reference
results are written once more with COMPUTED_PERSISTENT provenance after both
passes. A downstream module triggered by the Target pass can otherwise
interleave a write over a Reference output.
"""
import logging
from typing import Any, Callable, Dict, Mapping

from twinstate.container import UniverseAccessor, UniverseContainer
from twinstate.guard import ReentrancyGuard
from twinstate.universe import Provenance, Universe, UniverseKey

logger = logging.getLogger(__name__)

ComputeFn = Callable[[UniverseAccessor], Mapping[str, Any]]

PASS_ORDER = (Universe.REFERENCE, Universe.TARGET)


class RecalculationOrchestrator:
    """Dual-pass recomputation for one module.

    Args:
        container: The module's UniverseContainer.
        compute: Pure function accessor -> {output field: value}.
    """

    def __init__(self, container: UniverseContainer, compute: ComputeFn):
        self.container = container
        self.compute = compute
        self._last_results: Dict[Universe, Dict[str, Any]] = {u: {} for u in Universe}
        self._guard: ReentrancyGuard[Dict[Universe, Dict[str, Any]]] = ReentrancyGuard(
            f"{container.module_id}.calculate_all", fallback={}
        )
        self.pass_count = 0
        self.failures = 0

    def __repr__(self) -> str:
        return f"RecalculationOrchestrator({self.container.module_id!r})"

    @property
    def in_progress(self) -> bool:
        return self._guard.active

    def last_results(self, universe: Universe) -> Dict[str, Any]:
        return dict(self._last_results[universe])

    def calculate_all(self) -> Dict[Universe, Dict[str, Any]]:
        """Recompute and publish both universes.

        A re-entrant call (a listener triggered by this module's own output
        calling back in) returns the previous results without recomputing.

        Returns:
            {Universe: outputs} for the two passes.
        """
        results = self._guard.run(self._calculate_all) or {}
        return {universe: dict(outputs) for universe, outputs in results.items()}

    def _calculate_all(self) -> Dict[Universe, Dict[str, Any]]:
        mode_at_start = self.container.current_mode

        results: Dict[Universe, Dict[str, Any]] = {}
        for universe in PASS_ORDER:
            results[universe] = self._run_pass(universe)

        if mode_at_start is Universe.REFERENCE:
            self._rewrite_reference_results()

        return results

    def _run_pass(self, universe: Universe) -> Dict[str, Any]:
        module_id = self.container.module_id
        self.pass_count += 1
        with self.container.computing(universe) as accessor:
            try:
                outputs = dict(self.compute(accessor) or {})
            except Exception:
                self.failures += 1
                logger.exception(f"{module_id}: {universe.value} pass failed, publishing zero outputs")
                outputs = self.container.schema.zero_outputs()

            self._apply(universe, outputs)

        self._last_results[universe] = dict(outputs)
        return outputs

    def _apply(self, universe: Universe, outputs: Mapping[str, Any], provenance: Provenance = Provenance.COMPUTED) -> None:
        """Write outputs into the sub-store and publish them as one batch."""
        state = self.container.state(universe)
        store = self.container.store
        with store.transaction():
            for name, value in outputs.items():
                if name not in self.container.schema:
                    logger.debug(f"{self.container.module_id}: publishing undeclared output {name!r}")
                else:
                    state.set(name, value, provenance)
                store.set(UniverseKey(name, universe), value, provenance)

    def _rewrite_reference_results(self) -> None:
        results = {
            name: value for name, value in self._last_results[Universe.REFERENCE].items()
            if value is not None
        }
        if not results:
            return
        logger.debug(f"{self.container.module_id}: re-asserting {len(results)} Reference results")
        self._apply(Universe.REFERENCE, results, Provenance.COMPUTED_PERSISTENT)

    def reset(self) -> None:
        """Forget cached results (used by module reset)."""
        self._last_results = {u: {} for u in Universe}
        self._guard.reset()
