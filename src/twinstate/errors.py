"""Exceptions raised for configuration-time errors.

Runtime faults inside compute functions never surface as exceptions; they are
logged and replaced by fallback values. Only wiring mistakes made while the
calculator is being assembled raise.
"""
from typing import Sequence


class TwinStateError(Exception):
    """Base class for all twinstate errors."""


class DependencyCycleError(TwinStateError):
    """A dependency edge would close a cycle in the field graph."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle: {' -> '.join(self.cycle)}")


class UnknownModuleError(TwinStateError, KeyError):
    """No module is registered under the requested id."""


class DuplicateModuleError(TwinStateError):
    """A module id was registered twice."""


class UnknownStandardError(TwinStateError, KeyError):
    """No reference standard is registered under the requested name."""
