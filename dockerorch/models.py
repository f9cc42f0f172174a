# Where: dockerorch/models.py
# What: Dataclasses and enums for compose stacks, readiness and orchestration cycles.
# Why: Keep cycle inputs explicit and avoid implicit global state.
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dockerorch.config import OrchestrationConfig


class ServiceStatus(str, enum.Enum):
    UNKNOWN = "unknown"
    RUNNING = "running"
    HEALTHY = "healthy"
    STOPPED = "stopped"
    RESTARTING = "restarting"

    def satisfies(self, target: "ServiceStatus") -> bool:
        """HEALTHY implies RUNNING; every other target needs an exact match."""
        if target is ServiceStatus.RUNNING:
            return self in (ServiceStatus.RUNNING, ServiceStatus.HEALTHY)
        return self is target


class Scope(enum.Enum):
    GROUP = "group"
    GROUP_AND_CASE = "group_and_case"


class LifecycleMode(str, enum.Enum):
    CLASS = "class"
    METHOD = "method"

    @property
    def scope(self) -> Scope:
        return Scope.GROUP if self is LifecycleMode.CLASS else Scope.GROUP_AND_CASE


class WaitOutcome(enum.Enum):
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"


class CyclePhase(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    DEGRADED = "degraded"
    RUNNING_GUARDED_CODE = "running_guarded_code"
    TEARING_DOWN = "tearing_down"


@dataclass(frozen=True)
class PortMapping:
    container_port: int
    host_port: int
    protocol: str = "tcp"


@dataclass
class ServiceInfo:
    container_id: str
    container_name: str
    status: ServiceStatus
    published_ports: list[PortMapping] = field(default_factory=list)

    def host_port(self, container_port: int, protocol: str = "tcp") -> int | None:
        for port in self.published_ports:
            if port.container_port == container_port and port.protocol == protocol:
                return port.host_port
        return None


@dataclass(frozen=True)
class ProjectIdentity:
    base: str
    group: str
    case: str | None
    generated_at: datetime
    token: str

    def __str__(self) -> str:
        return self.token


@dataclass
class ComposeState:
    identity: ProjectIdentity
    compose_files: list[Path]
    services: dict[str, ServiceInfo] = field(default_factory=dict)


@dataclass(frozen=True)
class WaitSpec:
    identity: ProjectIdentity
    services: tuple[str, ...]
    target: ServiceStatus
    timeout: float
    poll_interval: float


@dataclass
class WaitResult:
    outcome: WaitOutcome
    target: ServiceStatus
    elapsed: float
    attempts: int
    last_statuses: dict[str, ServiceStatus] = field(default_factory=dict)

    @property
    def satisfied(self) -> bool:
        return self.outcome is WaitOutcome.SATISFIED

    def pending(self) -> list[str]:
        return sorted(
            name for name, status in self.last_statuses.items() if not status.satisfies(self.target)
        )


@dataclass(frozen=True)
class LogsSpec:
    services: tuple[str, ...] = ()
    tail_lines: int = 0
    follow: bool = False


@dataclass
class CycleContext:
    """Bookkeeping private to one orchestration cycle."""

    config: "OrchestrationConfig"
    identity: ProjectIdentity
    group: str
    case: str | None = None
    compose_state: ComposeState | None = None
    state_file: Path | None = None
    wait_results: list[WaitResult] = field(default_factory=list)
    correlation_id: str | None = None
    phase: CyclePhase = CyclePhase.IDLE

    @property
    def project_name(self) -> str:
        return self.identity.token

    @property
    def degraded(self) -> bool:
        return any(not result.satisfied for result in self.wait_results)

    def service(self, name: str) -> ServiceInfo | None:
        if self.compose_state is None:
            return None
        return self.compose_state.services.get(name)
