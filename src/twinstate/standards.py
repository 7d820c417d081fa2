"""
Reference standards: named sets of code-minimum values.

The Reference universe is usually seeded from a building-code standard rather
than from the user's defaults. A standard is just a flat field -> value map;
modules pick the entries for the fields they declare.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping

from twinstate.errors import UnknownStandardError

logger = logging.getLogger(__name__)


class ReferenceStandards:
    """Registry of named reference standards."""

    def __init__(self, standards: Mapping[str, Mapping[str, Any]] = None):
        self._standards: Dict[str, Dict[str, Any]] = {}
        for name, overrides in (standards or {}).items():
            self.register(name, overrides)

    def register(self, name: str, overrides: Mapping[str, Any]) -> None:
        if name in self._standards:
            logger.warning(f"Overwriting reference standard {name!r}")
        self._standards[name] = dict(overrides)

    def __contains__(self, name: object) -> bool:
        return name in self._standards

    def names(self) -> List[str]:
        return list(self._standards)

    def get(self, name: str) -> Dict[str, Any]:
        try:
            return dict(self._standards[name])
        except KeyError:
            raise UnknownStandardError(name) from None

    def overrides_for(self, name: str, fields: Iterable[str]) -> Dict[str, Any]:
        """The standard's values restricted to the given fields."""
        standard = self.get(name)
        return {f: standard[f] for f in fields if f in standard}
