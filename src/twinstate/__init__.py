"""
Dual-universe reactive value store for building-energy calculators.

Every field in the calculator exists twice: once in the Target universe (the
user's design) and once in the Reference universe (the code-minimum
baseline). This package keeps the two universes isolated while changes
propagate between calculator modules.

Key Features:
- Typed UniverseKey: no value can be read or written without naming its universe
- Synchronous, listener-driven recomputation across modules
- Per-module Target/Reference sub-stores with persistence
- Dual-pass recomputation with guaranteed restore of the pass universe
- Dependency graph with cycle detection at registration time
- Transactional batch publication of results

Quick Start:
    >>> from twinstate import (
    ...     ValueStore, FieldSchema, FieldSpec, CalculatorModule, Universe,
    ... )
    >>> store = ValueStore()
    >>> schema = FieldSchema([
    ...     FieldSpec("dailyHours", default=12, reference_default=8),
    ...     FieldSpec("annualOccupiedHours", dependencies=("dailyHours",), computed=True),
    ... ])
    >>> occupancy = CalculatorModule(
    ...     "occupancy", schema,
    ...     lambda acc: {"annualOccupiedHours": acc.number("dailyHours") * 365},
    ...     store,
    ... )
    >>> occupancy.initialize()
    >>> occupancy.get("annualOccupiedHours", Universe.TARGET)
    4380.0
    >>> occupancy.get("annualOccupiedHours", Universe.REFERENCE)
    2920.0

Architecture:
    user edit -> UniverseContainer (active sub-store)
              -> ValueStore (universe-qualified key)
              -> listeners in dependent modules
              -> RecalculationOrchestrator.calculate_all() (Reference pass, Target pass)
              -> ValueStore (batch publication)

Modules:
    - universe: Universe, UniverseKey, Provenance, ABSENT
    - fields: FieldSpec, FieldSchema, parse_numeric
    - dependency_graph: DependencyGraph with cycle detection
    - value_store: ValueStore, listeners, transactions
    - module_state: per-universe sub-stores
    - persistence: PersistenceAdapter and backends
    - container: UniverseContainer (mode manager) and UniverseAccessor
    - guard: ReentrancyGuard
    - orchestrator: RecalculationOrchestrator
    - module: CalculatorModule
    - registry: ModuleRegistry (cross-module coordinator)
    - standards: ReferenceStandards
    - config: TwinStateConfig
"""

# Configuration
from twinstate.config import (
    TwinStateConfig,
    set_config,
    get_config,
    reset_config,
    config_override,
)

# Errors
from twinstate.errors import (
    TwinStateError,
    DependencyCycleError,
    UnknownModuleError,
    DuplicateModuleError,
    UnknownStandardError,
)

# Keys
from twinstate.universe import ABSENT, Provenance, Universe, UniverseKey

# Fields
from twinstate.fields import FieldSchema, FieldSpec, FieldType, parse_numeric

# Graph and store
from twinstate.dependency_graph import DependencyEdge, DependencyGraph
from twinstate.value_store import StoredValue, ValueChange, ValueStore

# Module state
from twinstate.module_state import ModuleState, UniverseState
from twinstate.persistence import (
    JsonDirectoryBackend,
    MemoryBackend,
    PersistedState,
    PersistenceAdapter,
)
from twinstate.container import UniverseAccessor, UniverseContainer
from twinstate.guard import ReentrancyGuard
from twinstate.orchestrator import RecalculationOrchestrator

# Composition
from twinstate.module import CalculatorModule
from twinstate.registry import ModuleRegistry
from twinstate.standards import ReferenceStandards

# Logging
from twinstate.logging_config import setup_logging

__all__ = [
    # Configuration
    'TwinStateConfig',
    'set_config',
    'get_config',
    'reset_config',
    'config_override',
    # Errors
    'TwinStateError',
    'DependencyCycleError',
    'UnknownModuleError',
    'DuplicateModuleError',
    'UnknownStandardError',
    # Keys
    'ABSENT',
    'Provenance',
    'Universe',
    'UniverseKey',
    # Fields
    'FieldSchema',
    'FieldSpec',
    'FieldType',
    'parse_numeric',
    # Graph and store
    'DependencyEdge',
    'DependencyGraph',
    'StoredValue',
    'ValueChange',
    'ValueStore',
    # Module state
    'ModuleState',
    'UniverseState',
    'JsonDirectoryBackend',
    'MemoryBackend',
    'PersistedState',
    'PersistenceAdapter',
    'UniverseAccessor',
    'UniverseContainer',
    'ReentrancyGuard',
    'RecalculationOrchestrator',
    # Composition
    'CalculatorModule',
    'ModuleRegistry',
    'ReferenceStandards',
    # Logging
    'setup_logging',
]

__version__ = '1.0.0'
__description__ = 'Dual-universe reactive value store with dependency-driven recomputation'
