"""
Docker Compose lifecycle orchestration for integration tests.

Starts an isolated compose project per test class (or per test), waits for its
services, records their ports in a state file and always tears the project down.
"""

from .config import OrchestrationConfig, resolve_config
from .exceptions import (
    ConfigurationConflictError,
    ConfigurationError,
    DockerOrchError,
    ReadinessTimeoutError,
    StartupFailedError,
)
from .models import CycleContext, LifecycleMode, ServiceStatus
from .orchestrator import LifecycleOrchestrator, orchestrator_for
from .state import host_port, load_state, locate_state_file

__version__ = "0.1.0"

__all__ = [
    "OrchestrationConfig",
    "resolve_config",
    "ConfigurationConflictError",
    "ConfigurationError",
    "DockerOrchError",
    "ReadinessTimeoutError",
    "StartupFailedError",
    "CycleContext",
    "LifecycleMode",
    "ServiceStatus",
    "LifecycleOrchestrator",
    "orchestrator_for",
    "host_port",
    "load_state",
    "locate_state_file",
]
