"""
tests/test_scheduler.py - Concurrent fan-out tests.
"""

import logging
import threading

from chainstate.network import Network
from chainstate.scheduler import CheckResult, FanoutScheduler
from chainstate.status import ChainStatus, StatusLevel


class StubEvaluator:
    def __init__(self, statuses):
        self.statuses = statuses
        self.seen = []
        self._lock = threading.Lock()

    def evaluate(self, endpoint):
        with self._lock:
            self.seen.append(endpoint)
        status = self.statuses[endpoint]
        if isinstance(status, Exception):
            raise status
        return status


def networks(*endpoints):
    return [Network(endpoint) for endpoint in endpoints]


def test_run_returns_results_in_network_order():
    evaluator = StubEvaluator(
        {
            "http://a": ChainStatus.ok("chain 1, block 5"),
            "http://b": ChainStatus.warn("chain 1, zero head block"),
            "http://c": ChainStatus.fail("chain id: refused"),
        }
    )
    results = FanoutScheduler(evaluator).run(networks("http://a", "http://b", "http://c"))
    assert [r.endpoint for r in results] == ["http://a", "http://b", "http://c"]
    assert results[1] == CheckResult("http://b", ChainStatus.warn("chain 1, zero head block"))
    assert sorted(evaluator.seen) == ["http://a", "http://b", "http://c"]


def test_units_run_concurrently():
    barrier = threading.Barrier(3, timeout=5)

    class BarrierEvaluator:
        def evaluate(self, endpoint):
            # deadlocks unless all three run at once
            barrier.wait()
            return ChainStatus.ok(endpoint)

    results = FanoutScheduler(BarrierEvaluator()).run(networks("http://a", "http://b", "http://c"))
    assert all(r.status.is_ok for r in results)


def test_one_failing_unit_does_not_stop_the_others():
    evaluator = StubEvaluator(
        {
            "http://a": ChainStatus.ok("fine"),
            "http://b": RuntimeError("bug"),
            "http://c": ChainStatus.ok("fine"),
        }
    )
    results = FanoutScheduler(evaluator).run(networks("http://a", "http://b", "http://c"))
    assert len(results) == 3
    assert results[1].status.level is StatusLevel.FAIL
    assert "bug" in results[1].status.message


def test_healthy_endpoints_collects_only_ok():
    evaluator = StubEvaluator(
        {
            "http://a": ChainStatus.ok("fine"),
            "http://b": ChainStatus.warn("syncing"),
            "http://c": ChainStatus.fail("down"),
            "http://d": ChainStatus.ok("fine"),
            "http://e": ValueError("bug"),
        }
    )
    healthy = FanoutScheduler(evaluator).healthy_endpoints(
        networks("http://a", "http://b", "http://c", "http://d", "http://e")
    )
    assert sorted(healthy) == ["http://a", "http://d"]


def test_empty_input():
    scheduler = FanoutScheduler(StubEvaluator({}))
    assert scheduler.run([]) == []
    assert scheduler.healthy_endpoints([]) == []


def test_log_all_prefixes_address(caplog):
    evaluator = StubEvaluator(
        {"http://a": ChainStatus.ok("chain 1, block 5"), "http://b": ChainStatus.fail("down")}
    )
    with caplog.at_level(logging.INFO, logger="chainstate"):
        FanoutScheduler(evaluator).log_all(networks("http://a", "http://b"))
    messages = sorted(record.getMessage() for record in caplog.records if record.name == "chainstate.status")
    assert messages == ["http://a chain 1, block 5", "http://b down"]


def test_failing_callback_is_isolated():
    evaluator = StubEvaluator({"http://a": ChainStatus.ok("x"), "http://b": ChainStatus.ok("y")})

    def on_result(endpoint, status):
        if endpoint == "http://a":
            raise RuntimeError("sink broken")

    results = FanoutScheduler(evaluator).run(networks("http://a", "http://b"), on_result)
    assert len(results) == 2
