"""Pytest configuration and shared fixtures."""
import pytest

import twinstate.config as config_module
from twinstate import (
    CalculatorModule,
    FieldSchema,
    FieldSpec,
    FieldType,
    MemoryBackend,
    ModuleRegistry,
    PersistenceAdapter,
    ReferenceStandards,
    ValueStore,
)


def occupancy_schema() -> FieldSchema:
    """Occupancy section: two inputs, two outputs."""
    return FieldSchema([
        FieldSpec("occupants", default=100),
        FieldSpec("dailyHours", default=10, reference_default=8),
        FieldSpec("occupancyType", default="Office", type=FieldType.CHOICE,
                  options=("Office", "Residential", "Care")),
        FieldSpec("annualOccupiedHours", default=0, dependencies=("dailyHours",), computed=True),
        FieldSpec("occupantHours", default=0,
                  dependencies=("occupants", "annualOccupiedHours"), computed=True),
    ])


def compute_occupancy(acc):
    annual = acc.number("dailyHours") * 365
    return {
        "annualOccupiedHours": annual,
        "occupantHours": acc.number("occupants") * annual,
    }


def gains_schema() -> FieldSchema:
    """Internal gains section: reads occupancy results published by another module."""
    return FieldSchema([
        FieldSpec("gainPerOccupant", default=70, reference_default=75),
        FieldSpec("internalGains", default=0,
                  dependencies=("gainPerOccupant", "occupantHours"), computed=True),
    ])


def compute_gains(acc):
    return {"internalGains": acc.number("gainPerOccupant") * acc.number("occupantHours") / 1000}


@pytest.fixture(autouse=True)
def reset_config():
    """Restore the module-level configuration after each test."""
    original = config_module._config
    yield
    config_module._config = original


@pytest.fixture
def schema():
    return occupancy_schema()


@pytest.fixture
def store():
    return ValueStore()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def persistence(backend):
    return PersistenceAdapter(backend)


@pytest.fixture
def make_occupancy(store, persistence):
    """Factory for an (uninitialized) occupancy module on the shared store."""
    def _make(**kwargs):
        kwargs.setdefault("persistence", persistence)
        return CalculatorModule("occupancy", occupancy_schema(), compute_occupancy, store, **kwargs)
    return _make


@pytest.fixture
def occupancy(make_occupancy):
    module = make_occupancy()
    module.initialize()
    return module


@pytest.fixture
def gains(store, persistence, occupancy):
    module = CalculatorModule("gains", gains_schema(), compute_gains, store, persistence=persistence)
    module.initialize()
    return module


@pytest.fixture
def standards():
    return ReferenceStandards({
        "CODE-2020": {"dailyHours": 9, "gainPerOccupant": 80},
    })


@pytest.fixture
def registry(store, standards, occupancy, gains):
    reg = ModuleRegistry(store, standards)
    reg.register(gains)
    reg.register(occupancy)
    return reg
