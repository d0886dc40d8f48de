"""
Tests for taxflow_engines.tracer -- ENGINE_TRACE log records.
"""

from decimal import Decimal

from taxflow_engines.penalty import calculate_penalty
from taxflow_engines.tracer import compute_input_fingerprint, traced_engine


class TestFingerprint:
    def test_deterministic(self):
        args = {"amount": Decimal("100"), "days_overdue": 3}
        assert compute_input_fingerprint(("amount", "days_overdue"), args) == \
            compute_input_fingerprint(("amount", "days_overdue"), dict(args))

    def test_sensitive_to_inputs(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("100")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("101")})
        assert a != b
        assert len(a) == 16

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})


class TestTracedEngine:
    def test_result_unchanged_and_trace_logged(self, captured_logs):
        @traced_engine("demo", "2.1", fingerprint_fields=("a",))
        def add(a, b=1):
            return a + b

        assert add(2, b=3) == 5

        traces = [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "demo"
        assert traces[0]["engine_version"] == "2.1"
        assert traces[0]["input_fingerprint"]

    def test_penalty_engine_is_traced(self, captured_logs):
        calculate_penalty(Decimal("1000"), 5)
        names = [r.get("engine_name") for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert "penalty" in names
