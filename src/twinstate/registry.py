"""
ModuleRegistry: the "run everything" coordinator.

Holds every CalculatorModule sharing one ValueStore and provides the
operations that span modules:

- the global Target/Reference display toggle
- a full recomputation in dependency order
- mirroring Target inputs into Reference, optionally overlaid with a
  reference standard
- destructive reset of every module
- importing a flat publication-name map (e.g. from a saved project)

Registration lifecycle callbacks let a UI keep its section list in sync.

Thread safety: Not thread-safe (all operations expected on one thread).
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from twinstate.errors import DuplicateModuleError, UnknownModuleError
from twinstate.module import CalculatorModule
from twinstate.standards import ReferenceStandards
from twinstate.universe import ABSENT, Provenance, Universe, UniverseKey
from twinstate.value_store import ValueStore

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """Registry of calculator modules over one shared ValueStore.

    Args:
        store: The shared ValueStore.
        standards: Optional ReferenceStandards used by
            mirror_target_with_reference() and apply_standard().
    """

    def __init__(self, store: ValueStore, standards: Optional[ReferenceStandards] = None):
        self.store = store
        self.standards = standards if standards is not None else ReferenceStandards()
        self._modules: Dict[str, CalculatorModule] = {}
        self._mode: Universe = Universe.TARGET
        self._on_register_callbacks: List[Callable[[str, CalculatorModule], None]] = []
        self._on_unregister_callbacks: List[Callable[[str, CalculatorModule], None]] = []
        self._on_mode_callbacks: List[Callable[[Universe], None]] = []

    # ========== CALLBACKS ==========

    def add_register_callback(self, callback: Callable[[str, CalculatorModule], None]) -> None:
        """Subscribe to module registration events."""
        if callback not in self._on_register_callbacks:
            self._on_register_callbacks.append(callback)

    def remove_register_callback(self, callback: Callable[[str, CalculatorModule], None]) -> None:
        if callback in self._on_register_callbacks:
            self._on_register_callbacks.remove(callback)

    def add_unregister_callback(self, callback: Callable[[str, CalculatorModule], None]) -> None:
        """Subscribe to module unregistration events."""
        if callback not in self._on_unregister_callbacks:
            self._on_unregister_callbacks.append(callback)

    def remove_unregister_callback(self, callback: Callable[[str, CalculatorModule], None]) -> None:
        if callback in self._on_unregister_callbacks:
            self._on_unregister_callbacks.remove(callback)

    def add_mode_callback(self, callback: Callable[[Universe], None]) -> None:
        """Subscribe to global mode toggles. Callback receives the new Universe."""
        if callback not in self._on_mode_callbacks:
            self._on_mode_callbacks.append(callback)

    def remove_mode_callback(self, callback: Callable[[Universe], None]) -> None:
        if callback in self._on_mode_callbacks:
            self._on_mode_callbacks.remove(callback)

    def _fire(self, callbacks: List[Callable], *args: Any) -> None:
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Error in registry callback: {e}")

    # ========== REGISTRATION ==========

    def register(self, module: CalculatorModule) -> CalculatorModule:
        """Add a module. Its store must be the registry's store."""
        if module.module_id in self._modules:
            raise DuplicateModuleError(f"Module {module.module_id!r} is already registered")
        if module.store is not self.store:
            raise ValueError(f"Module {module.module_id!r} uses a different ValueStore")
        self._modules[module.module_id] = module
        if module.current_mode is not self._mode:
            module.switch_mode(self._mode)
        logger.debug(f"Registered module {module.module_id!r}")
        self._fire(self._on_register_callbacks, module.module_id, module)
        return module

    def unregister(self, module_id: str) -> CalculatorModule:
        module = self.get(module_id)
        del self._modules[module_id]
        module.detach()
        logger.debug(f"Unregistered module {module_id!r}")
        self._fire(self._on_unregister_callbacks, module_id, module)
        return module

    def get(self, module_id: str) -> CalculatorModule:
        try:
            return self._modules[module_id]
        except KeyError:
            raise UnknownModuleError(module_id) from None

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def modules(self) -> List[CalculatorModule]:
        return list(self._modules.values())

    def ordered_modules(self) -> List[CalculatorModule]:
        """Modules with owners of upstream fields first."""
        order = self.store.graph.module_order(self._modules)
        return [self._modules[module_id] for module_id in order]

    def owner_of(self, field: str) -> Optional[CalculatorModule]:
        for module in self._modules.values():
            if field in module.schema:
                return module
        return None

    def _select(self, module_ids: Optional[Iterable[str]]) -> List[CalculatorModule]:
        if module_ids is None:
            return self.ordered_modules()
        return [self.get(module_id) for module_id in module_ids]

    # ========== LIFECYCLE ==========

    def initialize_all(self) -> None:
        """Initialize every module without computing, then compute once in order."""
        for module in self.ordered_modules():
            module.initialize(calculate=False)
        self.calculate_all()

    def calculate_all(self) -> None:
        """Recompute every module once, upstream owners first."""
        for module in self.ordered_modules():
            module.calculate_all()

    def reset_all(self) -> None:
        """Destructive reset of every module, then one ordered recomputation."""
        logger.info(f"Resetting {len(self._modules)} modules to defaults")
        for module in self.ordered_modules():
            module.orchestrator.reset()
            module.container.set_recompute_hook(None)
            try:
                module.container.reset_to_defaults()
            finally:
                module.container.set_recompute_hook(module.orchestrator.calculate_all)
        self.calculate_all()

    # ========== MODE ==========

    @property
    def mode(self) -> Universe:
        return self._mode

    def is_reference_mode(self) -> bool:
        return self._mode is Universe.REFERENCE

    def switch_all_modes(self, mode: Any) -> int:
        """Switch every module's visible universe. Nothing is recomputed.

        Returns:
            Number of modules whose mode changed.
        """
        mode = Universe.coerce(mode)
        self._mode = mode
        switched = 0
        for module in self._modules.values():
            try:
                if module.switch_mode(mode):
                    switched += 1
            except Exception:
                logger.exception(f"Error switching {module.module_id} to {mode.value}")
        logger.info(f"Switched {switched}/{len(self._modules)} modules to {mode.value.upper()} mode")
        self._fire(self._on_mode_callbacks, mode)
        return switched

    def toggle_mode(self) -> Universe:
        self.switch_all_modes(self._mode.other)
        return self._mode

    def compare_value(self, field: str) -> Any:
        """Published value of field in the universe that is NOT being displayed."""
        return self.store.get(UniverseKey(field, self._mode.other))

    # ========== MIRRORING ==========

    def mirror_target(self, module_ids: Optional[Iterable[str]] = None) -> int:
        """Copy every Target input into the Reference universe, then recompute.

        Returns:
            Number of fields copied.
        """
        copied = 0
        modules = self._select(module_ids)
        with self.store.transaction():
            for module in modules:
                target = module.container.state(Universe.TARGET)
                for spec in module.schema.inputs:
                    value = target.get(spec.name)
                    if value is ABSENT or value is None or value == "":
                        continue
                    module.container.set(spec.name, value, Provenance.USER, universe=Universe.REFERENCE)
                    copied += 1
        logger.info(f"Mirror Target: copied {copied} fields across {len(modules)} modules")
        for module in modules:
            module.calculate_all()
        return copied

    def apply_standard(self, standard: str, module_ids: Optional[Iterable[str]] = None) -> int:
        """Overlay a reference standard onto Reference inputs and make it the Reference default.

        Returns:
            Number of fields overlaid.
        """
        applied = 0
        modules = self._select(module_ids)
        with self.store.transaction():
            for module in modules:
                inputs = [s.name for s in module.schema.inputs]
                overrides = self.standards.overrides_for(standard, inputs)
                module.container.set_reference_overrides(overrides, merge=True)
                for name, value in overrides.items():
                    module.container.set(name, value, Provenance.USER, universe=Universe.REFERENCE)
                    applied += 1
        logger.info(f"Applied {applied} values from standard {standard!r}")
        for module in modules:
            module.calculate_all()
        return applied

    def mirror_target_with_reference(self, standard: str, module_ids: Optional[Iterable[str]] = None) -> int:
        """Mirror Target into Reference, then overlay the standard's values.

        Returns:
            Number of standard values overlaid.
        """
        module_ids = list(module_ids) if module_ids is not None else None
        self.standards.get(standard)  # fail before mirroring
        self.mirror_target(module_ids)
        return self.apply_standard(standard, module_ids)

    # ========== IMPORT / EXPORT ==========

    def export_state(self) -> Dict[str, Any]:
        return self.store.export_state()

    def import_state(self, data: Mapping[str, Any]) -> int:
        """Import a publication-name map into every module, then recompute once.

        Listeners are muted during the write so modules do not recompute
        against a half-imported state.

        Returns:
            Number of sub-store values updated.
        """
        with self.store.muted():
            self.store.import_state(data, Provenance.IMPORTED)
        updated = 0
        for module in self._modules.values():
            updated += len(module.container.sync_from_store())
        self.calculate_all()
        return updated
