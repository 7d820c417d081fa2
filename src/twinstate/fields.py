"""
Field declarations consumed by the core.

A module describes its rows as FieldSpec declarations: name, default, value
type and upstream dependencies. The core never interprets what a field means
physically; it only needs to know how to seed it, how to coerce it when a
compute function asks for a number, and which other fields feed it.
"""
from dataclasses import dataclass
from enum import Enum
import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from twinstate.config import get_config
from twinstate.universe import ABSENT, Universe

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"[$£€¥]")


def parse_numeric(value: Any, fallback: Optional[float] = None) -> float:
    """Parse user or published input as a number, never raising.

    Strips currency symbols, thousands separators and whitespace. Empty
    strings, "N/A", None, ABSENT and anything unparseable yield the fallback
    (TwinStateConfig.numeric_fallback when not given).

    Args:
        value: Raw value (str, int, float, None, ABSENT).
        fallback: Value returned when parsing fails.

    Returns:
        Parsed float or the fallback.
    """
    if fallback is None:
        fallback = get_config().numeric_fallback

    if value is None or value is ABSENT or isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        number = float(value)
        return fallback if number != number else number  # NaN

    if isinstance(value, str):
        cleaned = _CURRENCY_RE.sub("", value).replace(",", "").strip()
        if not cleaned or cleaned.upper() == "N/A":
            return fallback
        try:
            number = float(cleaned)
        except ValueError:
            logger.debug(f"parse_numeric: {value!r} is not numeric, using {fallback}")
            return fallback
        return fallback if number != number else number

    return fallback


class FieldType(Enum):
    """Value types a field can declare."""
    NUMBER = "number"
    CHOICE = "choice"  # enumerated string (dropdown)
    TEXT = "text"


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one field.

    Attributes:
        name: Stable field name, unique across all modules.
        default: Default value for the Target universe.
        type: Value type.
        dependencies: Upstream field names this field is computed from.
        computed: True for output fields written by the compute function.
        reference_default: Default for the Reference universe when it differs
            from the Target default (e.g. a code-minimum value).
        options: Allowed values for CHOICE fields.
        description: Free text, used in diagnostics only.
    """
    name: str
    default: Any = None
    type: FieldType = FieldType.NUMBER
    dependencies: Tuple[str, ...] = ()
    computed: bool = False
    reference_default: Any = ABSENT
    options: Tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self):
        # Accept lists for convenience; keep the dataclass hashable
        if not isinstance(self.dependencies, tuple):
            object.__setattr__(self, 'dependencies', tuple(self.dependencies))
        if not isinstance(self.options, tuple):
            object.__setattr__(self, 'options', tuple(self.options))

    def default_for(self, universe: Universe) -> Any:
        if universe is Universe.REFERENCE and self.reference_default is not ABSENT:
            return self.reference_default
        return self.default

    def zero_value(self) -> Any:
        """Value published for this field when its compute pass fails."""
        return 0.0 if self.type is FieldType.NUMBER else self.default

    def coerce(self, value: Any) -> Any:
        """Coerce a raw value to this field's type for compute functions."""
        if self.type is FieldType.NUMBER:
            return parse_numeric(value, parse_numeric(self.default))
        if value is None or value is ABSENT:
            return self.default
        value = str(value)
        if self.type is FieldType.CHOICE and self.options and value not in self.options:
            logger.warning(f"Field {self.name!r}: {value!r} is not one of {list(self.options)}")
        return value


class FieldSchema:
    """Ordered collection of a module's FieldSpec declarations."""

    def __init__(self, specs: Iterable[FieldSpec]):
        self._specs: Dict[str, FieldSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate field declaration: {spec.name!r}")
            self._specs[spec.name] = spec

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __getitem__(self, name: str) -> FieldSpec:
        return self._specs[name]

    def get(self, name: str) -> Optional[FieldSpec]:
        return self._specs.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._specs)

    @property
    def inputs(self) -> List[FieldSpec]:
        return [s for s in self._specs.values() if not s.computed]

    @property
    def outputs(self) -> List[FieldSpec]:
        return [s for s in self._specs.values() if s.computed]

    def external_dependencies(self) -> List[str]:
        """Upstream fields declared by this schema but owned elsewhere."""
        seen: List[str] = []
        for spec in self._specs.values():
            for dep in spec.dependencies:
                if dep not in self._specs and dep not in seen:
                    seen.append(dep)
        return seen

    def edges(self) -> List[Tuple[str, str]]:
        """All (upstream, downstream) pairs declared in this schema."""
        return [(dep, spec.name) for spec in self._specs.values() for dep in spec.dependencies]

    def defaults(
        self,
        universe: Universe,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Seed values for the input fields of one universe.

        Args:
            universe: Which universe's defaults to use.
            overrides: Per-field values that replace declared defaults
                (e.g. a reference standard applied to the Reference side).
                Keys that are not declared inputs are ignored.

        Returns:
            Flat map of input field name to default value.
        """
        seeded = {spec.name: spec.default_for(universe) for spec in self.inputs}
        if overrides:
            for name, value in overrides.items():
                if name in seeded:
                    seeded[name] = value
        return seeded

    def zero_outputs(self) -> Dict[str, Any]:
        return {spec.name: spec.zero_value() for spec in self.outputs}

    @classmethod
    def from_tuples(cls, rows: Sequence[Tuple]) -> 'FieldSchema':
        """Build a schema from (name, default, type, dependencies) tuples.

        A field with dependencies is treated as computed.
        """
        specs = []
        for row in rows:
            padded = tuple(row) + (None, FieldType.NUMBER, ())[max(len(row) - 1, 0):]
            name, default, field_type, deps = padded[:4]
            deps = tuple(deps or ())
            specs.append(FieldSpec(
                name=name,
                default=default,
                type=FieldType(field_type) if not isinstance(field_type, FieldType) else field_type,
                dependencies=deps,
                computed=bool(deps),
            ))
        return cls(specs)
