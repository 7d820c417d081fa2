"""Tests for DependencyGraph registration, cycle detection and ordering."""
import pytest

from twinstate import DependencyCycleError, DependencyGraph, ValueStore, config_override


@pytest.fixture
def chain():
    """a -> b -> c"""
    graph = DependencyGraph()
    graph.add("a", "b")
    graph.add("b", "c")
    return graph


class TestRegistration:
    """Test adding and removing edges."""

    def test_add_records_both_directions(self, chain):
        assert chain.dependents("a") == ["b"]
        assert chain.dependencies("c") == ["b"]
        assert set(chain.fields) == {"a", "b", "c"}

    def test_add_is_idempotent(self, chain):
        first = chain.edges()[0]
        assert chain.add(first.upstream, first.downstream) is first
        assert len(chain.edges()) == 2

    def test_remove(self, chain):
        chain.remove("b", "c")
        assert chain.dependents("b") == []
        assert chain.dependencies("c") == []

    def test_owner(self):
        graph = DependencyGraph()
        graph.register_field("dailyHours", owner="occupancy")
        assert graph.owner("dailyHours") == "occupancy"
        assert graph.owner("unknown") is None

    def test_owner_conflict_warns(self, caplog):
        graph = DependencyGraph()
        graph.register_field("x", owner="m1")
        graph.register_field("x", owner="m2")
        assert graph.owner("x") == "m2"
        assert "re-registered" in caplog.text


class TestCycles:
    """Test cycle rejection and the allow_cycles escape hatch."""

    def test_closing_edge_raises(self, chain):
        with pytest.raises(DependencyCycleError) as exc_info:
            chain.add("c", "a")
        assert exc_info.value.cycle == ["c", "a", "b", "c"]
        assert "c -> a -> b -> c" in str(exc_info.value)

    def test_rejected_edge_is_not_recorded(self, chain):
        with pytest.raises(DependencyCycleError):
            chain.add("c", "a")
        assert chain.dependents("c") == []
        assert chain.find_cycle() is None

    def test_self_edge_is_a_cycle(self):
        graph = DependencyGraph()
        with pytest.raises(DependencyCycleError) as exc_info:
            graph.add("a", "a")
        assert exc_info.value.cycle == ["a", "a"]

    def test_allow_cycles_records_with_warning(self, chain, caplog):
        with config_override(allow_cycles=True):
            chain.add("c", "a")
        assert "c" in chain.dependencies("a")
        assert "cyclic dependency" in caplog.text

    def test_find_cycle_returns_closed_path(self, chain):
        with config_override(allow_cycles=True):
            chain.add("c", "a")
        cycle = chain.find_cycle()
        assert cycle == ["a", "b", "c", "a"]

    def test_store_register_dependency_rejects_cycle(self):
        store = ValueStore()
        store.register_dependency("x", "y", "[m1]")
        with pytest.raises(DependencyCycleError):
            store.register_dependency("y", "x", "[m2]")


class TestDirtyTracking:
    """Test dirty marking and calculation order."""

    def test_mark_dirty_marks_transitive_dependents(self, chain):
        assert chain.mark_dirty("a") == {"b", "c"}
        assert chain.dirty_fields() == {"b", "c"}

    def test_mark_dirty_returns_only_new_fields(self, chain):
        chain.mark_dirty("b")
        assert chain.mark_dirty("a") == {"b"}

    def test_clear_dirty(self, chain):
        chain.mark_dirty("a")
        chain.clear_dirty(["b"])
        assert chain.dirty_fields() == {"c"}
        chain.clear_dirty()
        assert chain.dirty_fields() == set()

    def test_calculation_order_is_upstream_first(self):
        graph = DependencyGraph()
        graph.add("a", "c")
        graph.add("a", "b")
        graph.add("b", "c")
        assert graph.calculation_order(["a"]) == ["a", "b", "c"]

    def test_calculation_order_defaults_to_dirty_set(self, chain):
        chain.mark_dirty("a")
        assert chain.calculation_order() == ["b", "c"]


class TestModuleOrder:
    """Test ordering of module owners."""

    def test_upstream_owner_first(self):
        graph = DependencyGraph()
        graph.register_field("occupantHours", owner="occupancy")
        graph.register_field("internalGains", owner="gains")
        graph.add("occupantHours", "internalGains")
        assert graph.module_order(["gains", "occupancy", "envelope"]) == ["occupancy", "gains", "envelope"]

    def test_unrelated_modules_keep_input_order(self):
        graph = DependencyGraph()
        assert graph.module_order(["b", "a", "c"]) == ["b", "a", "c"]


class TestExport:
    """Test diagnostic export."""

    def test_export_nodes_and_links(self):
        graph = DependencyGraph()
        graph.register_field("dailyHours", owner="occupancy")
        graph.add("dailyHours", "annualOccupiedHours", "[occupancy]")
        exported = graph.export()
        assert {"id": "dailyHours", "group": "occupancy"} in exported["nodes"]
        assert {"id": "annualOccupiedHours", "group": ""} in exported["nodes"]
        assert exported["links"] == [
            {"source": "dailyHours", "target": "annualOccupiedHours", "description": "[occupancy]"}
        ]
