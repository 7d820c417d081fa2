"""
Per-module state: one flat sub-store per universe.

A ModuleState is the (TargetState, ReferenceState) pair owned by a single
calculator module. Each side is a plain field -> value map with a matching
provenance map, so it can be serialized, compared and reseeded without
touching the shared ValueStore.
"""
import copy
import logging
from typing import Any, Dict, Iterator, Mapping, Optional

from twinstate.universe import ABSENT, Provenance, Universe

logger = logging.getLogger(__name__)


class UniverseState:
    """Sub-store for one universe of one module.

    Attributes:
        universe: Which universe this side holds.
        values: Field name -> raw value.
        provenance: Field name -> Provenance of the current value.
        initialized: True once seeded from defaults or persisted data.
        dirty: True when a user write has not yet been persisted.
    """

    def __init__(self, universe: Universe):
        self.universe = universe
        self.values: Dict[str, Any] = {}
        self.provenance: Dict[str, Provenance] = {}
        self.initialized: bool = False
        self.dirty: bool = False

    def __repr__(self) -> str:
        return f"UniverseState({self.universe.value}, {len(self.values)} fields)"

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def get(self, name: str, default: Any = ABSENT) -> Any:
        return self.values.get(name, default)

    def get_provenance(self, name: str) -> Optional[Provenance]:
        return self.provenance.get(name)

    def set(self, name: str, value: Any, provenance: Provenance = Provenance.USER) -> None:
        self.values[name] = value
        self.provenance[name] = provenance
        if provenance.is_user:
            self.dirty = True

    def update(self, values: Mapping[str, Any], provenance: Provenance) -> None:
        for name, value in values.items():
            self.set(name, value, provenance)

    def set_defaults(self, defaults: Mapping[str, Any]) -> None:
        """Replace all contents with defaults."""
        self.values = dict(defaults)
        self.provenance = {name: Provenance.DEFAULT for name in self.values}
        self.initialized = True
        self.dirty = False

    def load(self, values: Mapping[str, Any], provenance: Mapping[str, Provenance]) -> None:
        """Replace all contents with previously persisted data."""
        self.values = dict(values)
        self.provenance = {
            name: provenance.get(name, Provenance.USER) for name in self.values
        }
        self.initialized = True
        self.dirty = False

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the value map."""
        return copy.deepcopy(self.values)

    def user_values(self) -> Dict[str, Any]:
        """Values whose provenance is user or imported."""
        return {
            name: value for name, value in self.values.items()
            if self.provenance.get(name, Provenance.DEFAULT).is_user
        }

    def mark_clean(self) -> None:
        self.dirty = False


class ModuleState:
    """The (TargetState, ReferenceState) pair for one module."""

    def __init__(self, module_id: str):
        self.module_id = module_id
        self.target = UniverseState(Universe.TARGET)
        self.reference = UniverseState(Universe.REFERENCE)

    def for_universe(self, universe: Universe) -> UniverseState:
        return self.target if universe is Universe.TARGET else self.reference

    def __iter__(self) -> Iterator[UniverseState]:
        yield self.target
        yield self.reference

    @property
    def initialized(self) -> bool:
        return self.target.initialized and self.reference.initialized
