"""Tests for ReentrancyGuard."""
import pytest

from twinstate import ReentrancyGuard


class TestReentrancyGuard:
    """Test short-circuiting of re-entrant calls."""

    def test_recursive_call_runs_body_once(self):
        guard = ReentrancyGuard("free cooling", fallback=0.0)
        executions = []

        @guard
        def limit(depth):
            executions.append(depth)
            inner = limit(depth + 1)
            return 10.0 + inner

        assert limit(0) == 10.0
        assert executions == [0]
        assert guard.calls == 1
        assert guard.short_circuits == 1

    def test_each_outer_call_runs_once(self):
        guard = ReentrancyGuard("counter")
        counter = {"n": 0}

        def body():
            counter["n"] += 1
            guard.run(body)
            return counter["n"]

        assert guard.run(body) == 1
        assert guard.run(body) == 2
        assert counter["n"] == 2

    def test_reentry_returns_last_completed_value(self):
        guard = ReentrancyGuard("cached", fallback=-1)
        inner_results = []

        def body(value):
            inner_results.append(guard.run(body, value * 100))
            return value

        guard.run(body, 1)
        guard.run(body, 2)
        assert inner_results == [-1, 1]
        assert guard.last_value == 2

    def test_flag_cleared_after_exception(self):
        guard = ReentrancyGuard("failing")

        def body():
            assert guard.active
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            guard.run(body)
        assert not guard.active
        assert guard.run(lambda: "ok") == "ok"

    def test_decorator_exposes_guard(self):
        guard = ReentrancyGuard("decorated")

        @guard
        def fn():
            return 1

        assert fn.guard is guard
        assert fn.__name__ == "fn"

    def test_reset(self):
        guard = ReentrancyGuard("reset", fallback="none")
        guard.run(lambda: "value")
        guard.reset()
        assert guard.last_value == "none"
        assert guard.calls == 0
