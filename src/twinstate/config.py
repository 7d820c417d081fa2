"""
Framework configuration for twinstate.

Holds the pluggable settings shared by every module: the Reference
publication prefix, cycle policy, persistence behavior and the numeric
fallback used when parsing user input.

Configuration is a frozen dataclass stored at module level. Tests and
applications swap it with set_config() or temporarily with config_override().
"""
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Generator


@dataclass(frozen=True)
class TwinStateConfig:
    """Settings for the dual-universe store.

    Attributes:
        reference_prefix: Prefix that marks a Reference-universe publication
            name (bare names are Target).
        allow_cycles: If False, a dependency edge that closes a cycle is a
            configuration error. If True, it is recorded with a warning and
            re-entrancy guards are relied on instead.
        persist_user_writes: Save a universe's sub-store on every user or
            imported write.
        numeric_fallback: Value substituted for unparseable numeric input.
        slot_template: Format string for persisted slot names.
        schema_version: Version tag written into persisted records.
    """
    reference_prefix: str = "ref_"
    allow_cycles: bool = False
    persist_user_writes: bool = True
    numeric_fallback: float = 0.0
    slot_template: str = "{module_id}_{universe}_STATE"
    schema_version: int = 1


_config: TwinStateConfig = TwinStateConfig()


def set_config(config: TwinStateConfig) -> None:
    """Replace the active configuration."""
    global _config
    _config = config


def get_config() -> TwinStateConfig:
    """Return the active configuration."""
    return _config


def reset_config() -> None:
    """Restore the default configuration."""
    set_config(TwinStateConfig())


@contextmanager
def config_override(**changes: Any) -> Generator[TwinStateConfig, None, None]:
    """Temporarily replace individual configuration fields.

    Usage:
        with config_override(allow_cycles=True):
            graph.add("a", "b")
    """
    previous = get_config()
    set_config(replace(previous, **changes))
    try:
        yield get_config()
    finally:
        set_config(previous)
