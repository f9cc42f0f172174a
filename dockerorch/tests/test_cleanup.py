# Where: dockerorch/tests/test_cleanup.py
# What: Unit tests for leftover container cleanup.
# Why: Every removal strategy must run even when another one fails.
from __future__ import annotations

from conftest import FakeExecutor
from dockerorch import cleanup
from dockerorch.exceptions import ProcessTimeoutError

PROJECT = "webstack-orderit-070809123456"
LABEL = f"label=com.docker.compose.project={PROJECT}"


def test_cleanup_on_clean_project_is_a_noop(fake_clock):
    executor = FakeExecutor()

    report = cleanup.CleanupCoordinator(executor, fake_clock).run(PROJECT)

    assert report.ok
    assert report.removed == []
    assert executor.calls == [
        ["docker", "ps", "-aq", "--filter", f"name={PROJECT}"],
        ["docker", "container", "prune", "-f", "--filter", LABEL],
        ["docker", "ps", "-aq", "--filter", LABEL],
    ]
    assert fake_clock.sleeps == [0.5, 0.5]


def test_cleanup_is_idempotent(fake_clock):
    executor = FakeExecutor()
    coordinator = cleanup.CleanupCoordinator(executor, fake_clock)

    first = coordinator.run(PROJECT)
    second = coordinator.run(PROJECT)

    assert first.ok and second.ok
    assert executor.calls[:3] == executor.calls[3:]


def test_cleanup_removes_containers_by_name_and_label(fake_clock):
    def handler(cmd):
        if cmd[:3] == ["docker", "ps", "-aq"] and cmd[-1] == f"name={PROJECT}":
            return 0, "aaa\nbbb\n"
        if cmd[:3] == ["docker", "ps", "-aq"]:
            return 0, "ccc\n"
        return 0, ""

    executor = FakeExecutor(handler)

    report = cleanup.CleanupCoordinator(executor, fake_clock, pause_seconds=0).run(PROJECT)

    assert ["docker", "rm", "-f", "aaa", "bbb"] in executor.calls
    assert ["docker", "rm", "-f", "ccc"] in executor.calls
    assert report.removed == ["aaa", "bbb", "ccc"]
    assert report.ok


def test_cleanup_strategy_failure_does_not_stop_later_strategies(fake_clock):
    def handler(cmd):
        if cmd[-1] == f"name={PROJECT}":
            raise ProcessTimeoutError(cmd, 15.0)
        if cmd[:2] == ["docker", "container"]:
            return 1, "prune already running"
        if cmd[:3] == ["docker", "ps", "-aq"]:
            return 0, "ddd\neee\n"
        if cmd == ["docker", "rm", "-f", "ddd"]:
            return 1, "removal of container ddd is already in progress"
        return 0, ""

    executor = FakeExecutor(handler)

    report = cleanup.CleanupCoordinator(executor, fake_clock).run(PROJECT)

    assert not report.ok
    assert [outcome.ok for outcome in report.outcomes] == [False, False, False]
    assert report.removed == ["eee"]
    assert ["docker", "rm", "-f", "eee"] in executor.calls
    assert any("timed out" in failure for failure in report.failures)
    assert any("ddd" in failure for failure in report.failures)


def test_cleanup_report_merge():
    first = cleanup.CleanupReport(PROJECT, [cleanup.StrategyOutcome("a", removed=["x"])])
    second = cleanup.CleanupReport(PROJECT, [cleanup.StrategyOutcome("b", ok=False, errors=["boom"])])

    merged = first.merge(second)

    assert merged.removed == ["x"]
    assert merged.failures == ["b: boom"]
    assert not merged.ok
