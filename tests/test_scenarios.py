"""End-to-end scenarios across modules and universes."""
from twinstate import (
    CalculatorModule,
    ModuleRegistry,
    Provenance,
    Universe,
    UniverseKey,
    ValueStore,
)

from conftest import compute_gains, compute_occupancy, gains_schema, occupancy_schema


class TestOccupancyScenario:
    """Occupancy hours in both universes."""

    def test_target_and_reference_annual_hours(self, occupancy):
        occupancy.edit("occupants", 126)
        occupancy.edit("dailyHours", 12)

        assert occupancy.get("annualOccupiedHours", Universe.TARGET) == 4380
        assert occupancy.get("annualOccupiedHours", Universe.REFERENCE) == 2920
        assert occupancy.get("occupantHours", Universe.TARGET) == 126 * 4380
        assert occupancy.get("occupantHours", Universe.REFERENCE) == 100 * 2920

    def test_reference_edit_leaves_target_untouched(self, occupancy, store):
        target_before = store.export_state(Universe.TARGET)

        occupancy.edit("dailyHours", 9, universe=Universe.REFERENCE)

        assert store.export_state(Universe.TARGET) == target_before
        assert store.get_published("ref_dailyHours") == 9
        assert store.get_published("ref_annualOccupiedHours") == 9 * 365

    def test_target_edit_leaves_reference_untouched(self, occupancy, store):
        reference_before = store.export_state(Universe.REFERENCE)
        occupancy.edit("dailyHours", 12)
        assert store.export_state(Universe.REFERENCE) == reference_before

    def test_edit_in_reference_mode_goes_to_reference(self, occupancy, store):
        occupancy.switch_mode(Universe.REFERENCE)
        occupancy.edit("occupants", 50)
        assert occupancy.get("occupants", Universe.REFERENCE) == 50
        assert occupancy.get("occupants", Universe.TARGET) == 100
        assert store.get(UniverseKey.reference("occupantHours")) == 50 * 2920

    def test_editing_computed_field_warns(self, occupancy, caplog):
        occupancy.edit("annualOccupiedHours", 1)
        assert "is computed" in caplog.text
        assert occupancy.get("annualOccupiedHours", Universe.TARGET) == 3650

    def test_undeclared_edit_ignored(self, occupancy, store, caplog):
        token = store.token
        occupancy.edit("notAField", 1)
        assert store.token == token
        assert "undeclared" in caplog.text


class TestCrossModulePropagation:
    """Changes flow from occupancy to gains through store listeners."""

    def test_initial_values(self, gains):
        assert gains.get("internalGains", Universe.TARGET) == 25550.0
        assert gains.get("internalGains", Universe.REFERENCE) == 21900.0

    def test_target_change_propagates(self, occupancy, gains):
        occupancy.edit("dailyHours", 12)
        assert gains.get("internalGains", Universe.TARGET) == 30660.0
        assert gains.get("internalGains", Universe.REFERENCE) == 21900.0

    def test_reference_change_propagates_to_reference_only(self, occupancy, gains):
        occupancy.edit("dailyHours", 9, universe=Universe.REFERENCE)
        assert gains.get("internalGains", Universe.REFERENCE) == 24637.5
        assert gains.get("internalGains", Universe.TARGET) == 25550.0

    def test_listens_to_both_universes(self, gains, store):
        for universe in Universe:
            key = UniverseKey("occupantHours", universe)
            assert gains._on_upstream_change in store.listeners(key)

    def test_detach(self, occupancy, gains):
        gains.detach()
        occupancy.edit("dailyHours", 12)
        assert gains.get("internalGains", Universe.TARGET) == 25550.0

    def test_uninitialized_module_ignores_changes(self, store, occupancy):
        module = CalculatorModule("gains", gains_schema(), compute_gains, store)
        module.container.initialize()
        module._listen_upstream()
        occupancy.edit("dailyHours", 12)
        assert module.orchestrator.pass_count == 0


class TestReset:
    """Reset gives the same state as a fresh module."""

    def test_reset_matches_fresh_module(self, occupancy):
        occupancy.edit("occupants", 126)
        occupancy.edit("dailyHours", 6, universe=Universe.REFERENCE)
        occupancy.edit("occupancyType", "Care")

        occupancy.reset()

        fresh = CalculatorModule("occupancy", occupancy_schema(), compute_occupancy, ValueStore())
        fresh.initialize()
        for universe in Universe:
            assert occupancy.values(universe) == fresh.values(universe)

    def test_reset_recomputes_once(self, occupancy):
        passes = occupancy.orchestrator.pass_count
        occupancy.reset()
        assert occupancy.orchestrator.pass_count == passes + 2

    def test_reset_updates_dependents(self, occupancy, gains):
        occupancy.edit("dailyHours", 12)
        occupancy.reset()
        assert gains.get("internalGains", Universe.TARGET) == 25550.0


class TestPersistenceScenario:
    """User edits survive a reload."""

    def test_reload_restores_user_values(self, occupancy, persistence):
        occupancy.edit("occupants", 126)
        occupancy.edit("dailyHours", 7, universe=Universe.REFERENCE)

        reloaded = CalculatorModule(
            "occupancy", occupancy_schema(), compute_occupancy, ValueStore(),
            persistence=persistence,
        )
        reloaded.initialize()

        assert reloaded.get("occupants", Universe.TARGET) == 126
        assert reloaded.get("dailyHours", Universe.REFERENCE) == 7
        assert reloaded.get("dailyHours", Universe.TARGET) == 10
        assert reloaded.get("annualOccupiedHours", Universe.REFERENCE) == 7 * 365
        assert reloaded.container.state(Universe.TARGET).get_provenance("occupants") is Provenance.USER


class TestRegistryScenario:
    """The global toggle and mirroring over two modules."""

    def test_toggle_then_compare(self, registry):
        registry.switch_all_modes(Universe.REFERENCE)
        assert registry.compare_value("annualOccupiedHours") == 3650
        registry.toggle_mode()
        assert registry.compare_value("annualOccupiedHours") == 2920

    def test_mirror_with_standard(self, registry, occupancy, gains):
        occupancy.edit("dailyHours", 12)
        registry.mirror_target_with_reference("CODE-2020")

        assert occupancy.get("dailyHours", Universe.REFERENCE) == 9
        assert gains.get("gainPerOccupant", Universe.REFERENCE) == 80
        assert gains.get("internalGains", Universe.REFERENCE) == 80 * 100 * 9 * 365 / 1000
        assert occupancy.get("dailyHours", Universe.TARGET) == 12

    def test_standard_keeps_constructor_overrides(self, standards):
        """Applying a standard layers over the module's own Reference overrides."""
        store = ValueStore()
        registry = ModuleRegistry(store, standards)
        module = registry.register(CalculatorModule(
            "occupancy", occupancy_schema(), compute_occupancy, store,
            reference_overrides={"occupants": 50},
        ))
        registry.initialize_all()

        registry.apply_standard("CODE-2020")
        module.reset()

        assert module.get("occupants", Universe.REFERENCE) == 50
        assert module.get("dailyHours", Universe.REFERENCE) == 9
        assert module.get("occupantHours", Universe.REFERENCE) == 50 * 9 * 365

    def test_initialize_all_computes_upstream_first(self):
        store = ValueStore()
        registry = ModuleRegistry(store)
        gains = registry.register(CalculatorModule("gains", gains_schema(), compute_gains, store))
        registry.register(CalculatorModule("occupancy", occupancy_schema(), compute_occupancy, store))
        registry.initialize_all()
        assert gains.get("internalGains", Universe.TARGET) == 25550.0
        assert gains.get("internalGains", Universe.REFERENCE) == 21900.0
