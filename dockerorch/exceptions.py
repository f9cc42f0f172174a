"""
Custom exception classes.

Represent errors raised while configuring, starting or waiting on a compose stack.
Teardown and parsing problems are never raised; they are logged where they occur.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from dockerorch.models import WaitResult, WaitSpec


class DockerOrchError(Exception):
    """Base exception class for compose orchestration."""

    pass


class ConfigurationError(DockerOrchError, ValueError):
    """Raised when orchestration configuration is missing or invalid."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.suggestion = suggestion
        full = message if not suggestion else f"{message}\n\n{suggestion}"
        super().__init__(full)


class ConfigurationConflictError(ConfigurationError):
    """Raised when an override property and explicit configuration disagree."""

    def __init__(self, field: str, property_key: str, property_value: object, explicit: object):
        self.field = field
        self.property_key = property_key
        self.property_value = property_value
        self.explicit = explicit
        super().__init__(
            f"Configuration conflict for {field}: specified in BOTH the environment "
            f"('{property_key}' = {property_value!r}) AND the compose_up marker "
            f"({field} = {explicit!r}).",
            "Remove one to resolve the conflict. Recommended: configure the stack through "
            "the build environment only and use @pytest.mark.compose_up with no arguments.",
        )


class StartupFailedError(DockerOrchError):
    """Raised when a compose stack could not be started."""

    def __init__(self, stack_name: str, project_name: str, output: str = "", reason: str = ""):
        self.stack_name = stack_name
        self.project_name = project_name
        self.output = output
        detail = reason or "docker compose up failed"
        message = f"Failed to start compose stack '{stack_name}' with project '{project_name}': {detail}"
        if output:
            message = f"{message}\n{output.rstrip()}"
        super().__init__(message)


class ComposeFileNotFoundError(StartupFailedError):
    """Raised before any process runs when a compose file does not exist."""

    def __init__(self, stack_name: str, project_name: str, path: str):
        self.path = path
        super().__init__(stack_name, project_name, reason=f"compose file not found: {path}")


class ProcessTimeoutError(DockerOrchError):
    """Raised when an external command exceeded its hard timeout and was killed."""

    def __init__(self, command: Sequence[str], timeout: float, output: str = ""):
        self.command = list(command)
        self.timeout = timeout
        self.output = output
        super().__init__(f"Command timed out after {timeout:g}s: {' '.join(self.command)}")


class ReadinessTimeoutError(DockerOrchError):
    """Raised by strict callers when services did not reach their target state."""

    def __init__(self, spec: "WaitSpec", result: "WaitResult"):
        self.spec = spec
        self.result = result
        pending = ", ".join(
            f"{name}={status.value}" for name, status in sorted(result.last_statuses.items())
        )
        super().__init__(
            f"Timeout waiting for services to reach {spec.target.value} in project "
            f"'{spec.identity.token}' after {result.elapsed:.1f}s: {list(spec.services)}"
            + (f" (last seen: {pending})" if pending else "")
        )
