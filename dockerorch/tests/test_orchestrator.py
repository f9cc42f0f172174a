# Where: dockerorch/tests/test_orchestrator.py
# What: Unit tests for the compose lifecycle state machine.
# Why: Teardown must always run and startup failures must never leak containers.
from __future__ import annotations

import json

import pytest

from conftest import FakeClock, FakeExecutor
from dockerorch.config import OrchestrationConfig
from dockerorch.exceptions import ConfigurationError, ReadinessTimeoutError, StartupFailedError
from dockerorch.models import CyclePhase, LifecycleMode, ServiceStatus
from dockerorch.orchestrator import orchestrator_for
from dockerorch.services import PropertyService


def _ps_output(web_state: str = "running", health: str = "healthy") -> str:
    return json.dumps(
        {
            "ID": "c0ffee",
            "Name": "proj-web-1",
            "Service": "web",
            "State": web_state,
            "Health": health,
            "Publishers": [{"TargetPort": 8080, "PublishedPort": 49153, "Protocol": "tcp"}],
        }
    )


def _docker(ps_output: str = "", up_result: tuple[int, str] = (0, "")):
    def handler(cmd):
        if "compose" in cmd and "ps" in cmd:
            return 0, ps_output
        if "compose" in cmd and "up" in cmd:
            return up_result
        return 0, ""

    return FakeExecutor(handler)


def _config(tmp_path, compose_files, **overrides) -> OrchestrationConfig:
    values = {
        "stack_name": "webStack",
        "compose_files": [str(path) for path in compose_files],
        "working_dir": str(tmp_path),
        "timeout_seconds": 4,
        "poll_seconds": 1,
    }
    values.update(overrides)
    return OrchestrationConfig(**values)


def _orchestrator(config, executor, store, clock=None):
    return orchestrator_for(
        config, properties=PropertyService(store), executor=executor, clock=clock or FakeClock()
    )


def _count(executor, *fragment):
    return len(executor.calls_with(*fragment))


def test_missing_compose_file_rolls_back_and_raises(tmp_path):
    executor = _docker()
    store: dict[str, str] = {}
    orchestrator = _orchestrator(_config(tmp_path, ["missing.yml"]), executor, store)

    with pytest.raises(StartupFailedError, match="compose file not found"):
        orchestrator.start("OrderIT")

    assert _count(executor, "up", "-d") == 0
    assert _count(executor, "down", "--remove-orphans", "--volumes") == 1
    # Pre-start cleanup plus rollback cleanup.
    assert _count(executor, "container", "prune") == 2
    assert store == {}


def test_compose_up_failure_rolls_back_and_keeps_startup_error(tmp_path, compose_file):
    executor = _docker(up_result=(1, "port is already allocated"))
    orchestrator = _orchestrator(_config(tmp_path, [compose_file]), executor, {})

    with pytest.raises(StartupFailedError, match="port is already allocated"):
        orchestrator.start("OrderIT")

    assert _count(executor, "down", "--remove-orphans", "--volumes") == 1
    assert _count(executor, "container", "prune") == 2


def test_class_cycle_start_records_state_and_stop_withdraws_it(tmp_path, compose_file):
    executor = _docker(_ps_output())
    store: dict[str, str] = {}
    config = _config(tmp_path, [compose_file], wait_for_healthy=["web"], wait_for_running=["web"])
    orchestrator = _orchestrator(config, executor, store)

    ctx = orchestrator.start("OrderIT", "ignored_for_class_scope")

    assert ctx.phase is CyclePhase.RUNNING_GUARDED_CODE
    assert ctx.case is None
    assert ctx.project_name.startswith("webstack-orderit-")
    assert not ctx.degraded
    assert [result.target for result in ctx.wait_results] == [ServiceStatus.HEALTHY, ServiceStatus.RUNNING]
    assert ctx.service("web").host_port(8080) == 49153
    assert ctx.state_file.name == "webStack-OrderIT-state.json"
    assert store["COMPOSE_STATE_FILE"] == str(ctx.state_file)
    assert store["COMPOSE_PROJECT_NAME"] == ctx.project_name

    report = orchestrator.stop(ctx)

    assert report.ok
    assert ctx.phase is CyclePhase.IDLE
    assert store == {}
    assert ctx.state_file.exists()
    assert _count(executor, "down", "--remove-orphans", "--volumes") == 1


def test_method_lifecycle_requires_case_name(tmp_path, compose_file):
    config = _config(tmp_path, [compose_file], lifecycle=LifecycleMode.METHOD)
    executor = _docker(_ps_output())
    orchestrator = _orchestrator(config, executor, {})

    with pytest.raises(ConfigurationError, match="needs a test case name"):
        orchestrator.start("OrderIT")

    assert executor.calls == []


def test_method_lifecycle_names_project_and_state_after_case(tmp_path, compose_file):
    config = _config(tmp_path, [compose_file], lifecycle="method")
    orchestrator = _orchestrator(config, _docker(_ps_output()), {})

    with orchestrator.cycle("OrderIT", "test_create") as ctx:
        assert ctx.project_name.startswith("webstack-orderit-test_create-")
        assert ctx.state_file.name == "webStack-OrderIT-test_create-state.json"
        document = json.loads(ctx.state_file.read_text(encoding="utf-8"))
        assert document["testMethod"] == "test_create"


def test_guarded_code_failure_still_tears_down(tmp_path, compose_file):
    executor = _docker(_ps_output())
    store: dict[str, str] = {}
    orchestrator = _orchestrator(_config(tmp_path, [compose_file]), executor, store)

    with pytest.raises(AssertionError, match="expected 201"):
        with orchestrator.cycle("OrderIT") as ctx:
            assert store["COMPOSE_PROJECT_NAME"] == ctx.project_name
            raise AssertionError("expected 201")

    assert ctx.phase is CyclePhase.IDLE
    assert _count(executor, "down", "--remove-orphans", "--volumes") == 1
    assert store == {}
    # Pre-start cleanup plus teardown cleanup, all three strategies each time.
    assert _count(executor, "ps", "-aq") == 4
    assert _count(executor, "container", "prune") == 2


def test_readiness_timeout_is_degraded_not_fatal(tmp_path, compose_file):
    clock = FakeClock()
    executor = _docker(_ps_output(health="starting"))
    orchestrator = _orchestrator(
        _config(tmp_path, [compose_file], wait_for_healthy=["web"]), executor, {}, clock
    )

    ctx = orchestrator.start("OrderIT")

    assert ctx.degraded
    assert ctx.phase is CyclePhase.RUNNING_GUARDED_CODE
    assert ctx.wait_results[0].pending() == ["web"]
    assert ctx.state_file.exists()
    orchestrator.stop(ctx)


def test_strict_readiness_timeout_rolls_back(tmp_path, compose_file):
    executor = _docker(_ps_output(health="starting"))
    store: dict[str, str] = {}
    config = _config(
        tmp_path, [compose_file], wait_for_healthy=["web"], fail_on_readiness_timeout=True
    )
    orchestrator = _orchestrator(config, executor, store)

    with pytest.raises(ReadinessTimeoutError, match="web=running"):
        orchestrator.start("OrderIT")

    assert _count(executor, "down", "--remove-orphans", "--volumes") == 1
    assert store == {}


def test_stop_survives_every_teardown_failure(tmp_path, compose_file, monkeypatch):
    def handler(cmd):
        if "compose" in cmd and "ps" in cmd:
            return 0, _ps_output()
        if "down" in cmd or cmd[:2] == ["docker", "container"]:
            return 1, "Cannot connect to the Docker daemon"
        return 0, ""

    executor = FakeExecutor(handler)
    orchestrator = _orchestrator(_config(tmp_path, [compose_file]), executor, {})
    ctx = orchestrator.start("OrderIT")

    def broken_discard(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(orchestrator.recorder, "discard", broken_discard)

    report = orchestrator.stop(ctx)

    assert not report.ok
    assert ctx.phase is CyclePhase.IDLE


def test_undeclared_wait_target_only_warns(tmp_path, compose_file, caplog):
    orchestrator = _orchestrator(
        _config(tmp_path, [compose_file], wait_for_running=["web", "worker"], timeout_seconds=1),
        _docker(_ps_output()),
        {},
    )

    with caplog.at_level("WARNING", logger="dockerorch"):
        ctx = orchestrator.start("OrderIT")
    orchestrator.stop(ctx)

    assert "['worker']" in caplog.text
    assert ctx.degraded
