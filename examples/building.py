"""
Two-section building calculator wired onto twinstate.

Occupancy computes annual occupied hours; internal gains reads the published
occupant hours. Both sections run in the Target universe (the design) and the
Reference universe (the code minimum) side by side.

Run with:
    python examples/building.py [state-directory]
"""
import logging
import sys
import tempfile

from twinstate import (
    CalculatorModule,
    FieldSchema,
    FieldSpec,
    FieldType,
    JsonDirectoryBackend,
    ModuleRegistry,
    PersistenceAdapter,
    ReferenceStandards,
    Universe,
    ValueStore,
    setup_logging,
)

logger = logging.getLogger("twinstate.examples.building")


OCCUPANCY = FieldSchema([
    FieldSpec("occupants", default=126, description="Number of occupants"),
    FieldSpec("dailyHours", default=12, reference_default=8, description="Occupied hours per day"),
    FieldSpec("occupancyType", default="Office", type=FieldType.CHOICE,
              options=("Office", "Residential", "Care")),
    FieldSpec("annualOccupiedHours", dependencies=("dailyHours",), computed=True),
    FieldSpec("occupantHours", dependencies=("occupants", "annualOccupiedHours"), computed=True),
])

GAINS = FieldSchema([
    FieldSpec("gainPerOccupant", default=70, reference_default=75, description="W per occupant"),
    FieldSpec("internalGains", dependencies=("gainPerOccupant", "occupantHours"), computed=True),
])


def compute_occupancy(acc):
    annual = acc.number("dailyHours") * 365
    return {
        "annualOccupiedHours": annual,
        "occupantHours": acc.number("occupants") * annual,
    }


def compute_gains(acc):
    # kWh/yr
    return {"internalGains": acc.number("gainPerOccupant") * acc.number("occupantHours") / 1000}


def build(state_dir: str) -> ModuleRegistry:
    store = ValueStore()
    persistence = PersistenceAdapter(JsonDirectoryBackend(state_dir))
    standards = ReferenceStandards({"CODE-2020": {"dailyHours": 9, "gainPerOccupant": 80}})

    registry = ModuleRegistry(store, standards)
    registry.register(CalculatorModule("gains", GAINS, compute_gains, store, persistence=persistence))
    registry.register(CalculatorModule("occupancy", OCCUPANCY, compute_occupancy, store, persistence=persistence))
    registry.initialize_all()
    return registry


def report(registry: ModuleRegistry) -> None:
    for module in registry.ordered_modules():
        for spec in module.schema.outputs:
            logger.info(
                f"{spec.name:>20}: target={module.get(spec.name, Universe.TARGET):>12} "
                f"reference={module.get(spec.name, Universe.REFERENCE):>12}"
            )


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    setup_logging(logging.INFO)
    state_dir = argv[0] if argv else tempfile.mkdtemp(prefix="twinstate-")

    registry = build(state_dir)
    report(registry)

    occupancy = registry.get("occupancy")
    occupancy.edit("dailyHours", 10, universe=Universe.REFERENCE)
    registry.toggle_mode()
    logger.info(f"Target value while viewing Reference: {registry.compare_value('internalGains')}")

    registry.mirror_target_with_reference("CODE-2020")
    report(registry)
    logger.info(f"State saved under {state_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
