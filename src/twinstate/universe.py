"""
Universe-qualified keys for the dual-universe value store.

Every stored value belongs to exactly one universe. Rather than tagging
Reference values with a string prefix at each call site, the store only
accepts UniverseKey instances: the universe travels with the field name, so a
forgotten prefix cannot silently read or write the other universe.

The string prefix still exists, but only at the edge: publication_name() and
parse() translate to and from the flat namespace that external collaborators
(CSV export, UI bindings) use.
"""
from dataclasses import dataclass
from enum import Enum

from twinstate.config import get_config


class Universe(Enum):
    """The two parallel evaluation universes."""
    TARGET = "target"
    REFERENCE = "reference"

    @property
    def other(self) -> 'Universe':
        return Universe.REFERENCE if self is Universe.TARGET else Universe.TARGET

    @classmethod
    def coerce(cls, value) -> 'Universe':
        """Accept a Universe or its string value ("target"/"reference")."""
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


class Provenance(Enum):
    """How a stored value was produced."""
    DEFAULT = "default"
    USER = "user"
    IMPORTED = "imported"
    COMPUTED = "computed"
    COMPUTED_PERSISTENT = "computed-persistent"

    @property
    def is_computed(self) -> bool:
        return self in (Provenance.COMPUTED, Provenance.COMPUTED_PERSISTENT)

    @property
    def is_user(self) -> bool:
        """User-originated values are the ones that get persisted."""
        return self in (Provenance.USER, Provenance.IMPORTED)


class _Absent:
    """Sentinel for "no value stored". Falsy, singleton, readable in logs."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@dataclass(frozen=True)
class UniverseKey:
    """Compound key (field, universe) used for every store read and write."""
    field: str
    universe: Universe = Universe.TARGET

    @classmethod
    def target(cls, field: str) -> 'UniverseKey':
        return cls(field, Universe.TARGET)

    @classmethod
    def reference(cls, field: str) -> 'UniverseKey':
        return cls(field, Universe.REFERENCE)

    def in_universe(self, universe: Universe) -> 'UniverseKey':
        """Same field, other (or same) universe."""
        return UniverseKey(self.field, universe)

    def publication_name(self) -> str:
        """Flat external name: bare for Target, prefixed for Reference."""
        if self.universe is Universe.REFERENCE:
            return f"{get_config().reference_prefix}{self.field}"
        return self.field

    @classmethod
    def parse(cls, name: str) -> 'UniverseKey':
        """Inverse of publication_name()."""
        prefix = get_config().reference_prefix
        if prefix and name.startswith(prefix) and len(name) > len(prefix):
            return cls(name[len(prefix):], Universe.REFERENCE)
        return cls(name, Universe.TARGET)

    def __str__(self) -> str:
        return self.publication_name()
