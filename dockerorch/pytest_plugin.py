# Where: dockerorch/pytest_plugin.py
# What: pytest hooks and fixtures that run compose cycles around marked tests.
# Why: The compose_up marker is the explicit configuration surface for test code.
from __future__ import annotations

import logging
from typing import Any, Iterator

import pytest

from dockerorch.config import OrchestrationConfig, resolve_config
from dockerorch.constants import DEFAULT_STATE_DIR
from dockerorch.logging_config import setup_logging
from dockerorch.models import CycleContext, LifecycleMode
from dockerorch.orchestrator import orchestrator_for

logger = logging.getLogger(__name__)

MARKER = "compose_up"


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addini(
        "compose_state_dir",
        help="Directory for compose state files (default: build/compose-state)",
        default="",
    )
    parser.addini(
        "compose_log_config",
        help="Logging YAML applied at session start (empty keeps pytest's logging)",
        default="",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER}(stack_name=None, compose_files=None, lifecycle='class', wait_for_healthy=(), "
        "wait_for_running=(), timeout_seconds=60, poll_seconds=2, project_name=None, "
        "env_files=(), correlation_id=None): run the test class (or each test) against an "
        "isolated docker compose stack",
    )
    log_config = config.getini("compose_log_config")
    if log_config:
        setup_logging(config.rootpath / log_config)


def marker_config(node: pytest.Item | pytest.Collector, pytestconfig: pytest.Config) -> OrchestrationConfig | None:
    """Resolve the closest compose_up marker of a node, or None when unmarked."""
    marker = node.get_closest_marker(MARKER)
    if marker is None:
        return None
    if marker.args:
        raise pytest.UsageError(
            f"@pytest.mark.{MARKER} takes keyword arguments only (got {marker.args!r} on {node.nodeid})"
        )
    explicit: dict[str, Any] = dict(marker.kwargs)
    explicit.setdefault("working_dir", str(pytestconfig.rootpath))
    config = resolve_config(explicit)

    state_dir = pytestconfig.getini("compose_state_dir")
    if state_dir and config.state_dir == DEFAULT_STATE_DIR:
        config = config.model_copy(update={"state_dir": state_dir})
    return config


def _module_group(request: pytest.FixtureRequest) -> str:
    return request.module.__name__.rsplit(".", 1)[-1]


def _group_cycle(request: pytest.FixtureRequest, group: str) -> Iterator[CycleContext | None]:
    config = marker_config(request.node, request.config)
    if config is None or config.lifecycle is not LifecycleMode.CLASS:
        yield None
        return
    with orchestrator_for(config).cycle(group) as ctx:
        yield ctx


@pytest.fixture(scope="module")
def _compose_module_cycle(request: pytest.FixtureRequest) -> Iterator[CycleContext | None]:
    yield from _group_cycle(request, _module_group(request))


@pytest.fixture(scope="class", autouse=True)
def _compose_class_cycle(request: pytest.FixtureRequest) -> Iterator[CycleContext | None]:
    # Module-level tests in a marked module share one stack per module.
    if request.cls is None:
        yield request.getfixturevalue("_compose_module_cycle")
        return
    yield from _group_cycle(request, request.cls.__name__)


@pytest.fixture(autouse=True)
def _compose_method_cycle(
    request: pytest.FixtureRequest, _compose_class_cycle: CycleContext | None
) -> Iterator[CycleContext | None]:
    config = marker_config(request.node, request.config)
    if config is None:
        yield _compose_class_cycle
        return
    if config.lifecycle is LifecycleMode.CLASS and _compose_class_cycle is not None:
        yield _compose_class_cycle
        return
    # A class-lifecycle marker on a single test function runs one cycle around that test,
    # named after its class or module.
    group = request.cls.__name__ if request.cls is not None else _module_group(request)
    case = request.node.name if config.lifecycle is LifecycleMode.METHOD else None
    with orchestrator_for(config).cycle(group, case) as ctx:
        yield ctx


@pytest.fixture
def compose_stack(_compose_method_cycle: CycleContext | None) -> CycleContext:
    """The running stack of the current test, as started by the compose_up marker."""
    if _compose_method_cycle is None:
        pytest.fail(f"compose_stack needs a @pytest.mark.{MARKER} marker on the test", pytrace=False)
    return _compose_method_cycle
