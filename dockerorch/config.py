"""
Orchestration configuration definition.

Explicit configuration (the ``compose_up`` marker or a direct caller) is merged with
override properties set by the surrounding build as ``DOCKER_COMPOSE_*`` environment
variables. Uses pydantic for validation and pydantic-settings for the overrides.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dockerorch.constants import (
    DEFAULT_POLL_SECONDS,
    DEFAULT_STATE_DIR,
    DEFAULT_TIMEOUT_SECONDS,
    PROPERTY_PREFIX,
)
from dockerorch.exceptions import ConfigurationConflictError, ConfigurationError
from dockerorch.models import LifecycleMode

_SUGGESTIONS = {
    "stack_name": (
        "Configure the stack using one of these approaches:\n"
        "  Option 1 - set DOCKER_COMPOSE_STACK (and DOCKER_COMPOSE_FILES) in the build environment\n"
        "             and use @pytest.mark.compose_up with no arguments (RECOMMENDED)\n"
        "  Option 2 - @pytest.mark.compose_up(stack_name='myStack', compose_files=['compose.yml'])"
    ),
    "compose_files": (
        "Configure compose files using one of these approaches:\n"
        "  Option 1 - DOCKER_COMPOSE_FILES=path/to/app.yml[,path/to/override.yml]\n"
        "  Option 2 - @pytest.mark.compose_up(compose_files=['path/to/app.yml'])"
    ),
    "timeout_seconds": "Use a positive number of seconds, e.g. timeout_seconds=60.",
    "poll_seconds": "Use a positive number of seconds, e.g. poll_seconds=2.",
    "lifecycle": "Use 'class' (one stack per test class) or 'method' (one stack per test).",
}


def split_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return [item.strip() for item in items if item and item.strip()]


class OrchestrationConfig(BaseModel):
    """
    Validated configuration for one compose stack under test.
    """

    stack_name: str = Field(..., description="Stack name used in logs and state file names")
    compose_files: list[str] = Field(..., description="Compose files, applied in order")
    lifecycle: LifecycleMode = Field(default=LifecycleMode.CLASS, description="class or method")
    wait_for_running: list[str] = Field(default_factory=list, description="Services to wait RUNNING")
    wait_for_healthy: list[str] = Field(default_factory=list, description="Services to wait HEALTHY")
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, description="Wait timeout")
    poll_seconds: float = Field(default=DEFAULT_POLL_SECONDS, description="Wait poll interval")
    project_name_base: str | None = Field(default=None, description="Project name base")
    env_files: list[str] = Field(default_factory=list, description="--env-file arguments")
    working_dir: str | None = Field(default=None, description="Base for relative paths")
    state_dir: str = Field(default=DEFAULT_STATE_DIR, description="State file directory")
    correlation_id: str | None = Field(default=None, description="Per-cycle discovery key")
    fail_on_readiness_timeout: bool = Field(
        default=False, description="Escalate readiness timeouts to fatal errors"
    )

    @field_validator("stack_name")
    @classmethod
    def _stack_name_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("stack name must not be empty")
        return value

    @field_validator("compose_files", "wait_for_running", "wait_for_healthy", "env_files", mode="before")
    @classmethod
    def _normalize_lists(cls, value: Any) -> list[str]:
        return split_list(value)

    @field_validator("compose_files")
    @classmethod
    def _compose_files_present(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one compose file is required")
        return value

    @field_validator("lifecycle", mode="before")
    @classmethod
    def _parse_lifecycle(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("timeout_seconds", "poll_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @property
    def project_base(self) -> str:
        return self.project_name_base or self.stack_name


class ComposeProperties(BaseSettings):
    """
    Override properties read from ``DOCKER_COMPOSE_*`` environment variables.

    Values are kept as raw strings; lists are comma-separated.
    """

    STACK: str = Field(default="", description="Stack name")
    FILES: str = Field(default="", description="Comma-separated compose files")
    LIFECYCLE: str = Field(default="", description="class or method")
    PROJECT_NAME: str = Field(default="", description="Project name base")
    WAIT_FOR_HEALTHY: str = Field(default="", description="Comma-separated services")
    WAIT_FOR_RUNNING: str = Field(default="", description="Comma-separated services")
    TIMEOUT_SECONDS: str = Field(default="", description="Wait timeout in seconds")
    POLL_SECONDS: str = Field(default="", description="Wait poll interval in seconds")
    ENV_FILES: str = Field(default="", description="Comma-separated env files")
    STATE_DIR: str = Field(default="", description="State file directory")

    model_config = SettingsConfigDict(env_prefix=PROPERTY_PREFIX, case_sensitive=True, extra="ignore")


def _parse_seconds(field: str, raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid {field} value: {raw!r}. Must be a positive number.", _SUGGESTIONS[field]
        ) from None


def _parse_lifecycle(raw: Any) -> LifecycleMode:
    if isinstance(raw, LifecycleMode):
        return raw
    try:
        return LifecycleMode(str(raw).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Invalid lifecycle mode: {raw!r}. Must be 'class' or 'method'.", _SUGGESTIONS["lifecycle"]
        ) from None


def _text(raw: Any) -> str:
    return str(raw).strip()


# field -> (property attribute, normalizer used for comparison and merge)
_PROPERTY_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "stack_name": ("STACK", _text),
    "compose_files": ("FILES", split_list),
    "lifecycle": ("LIFECYCLE", _parse_lifecycle),
    "project_name_base": ("PROJECT_NAME", _text),
    "wait_for_healthy": ("WAIT_FOR_HEALTHY", split_list),
    "wait_for_running": ("WAIT_FOR_RUNNING", split_list),
    "timeout_seconds": ("TIMEOUT_SECONDS", lambda raw: _parse_seconds("timeout_seconds", raw)),
    "poll_seconds": ("POLL_SECONDS", lambda raw: _parse_seconds("poll_seconds", raw)),
    "env_files": ("ENV_FILES", split_list),
    "state_dir": ("STATE_DIR", _text),
}

# Marker spellings accepted in addition to the field names.
_ALIASES = {
    "compose_file": "compose_files",
    "project_name": "project_name_base",
}


def _supplied(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, set)):
        return len(value) > 0
    return True


def _normalize_explicit(explicit: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in explicit.items():
        field = _ALIASES.get(key, key)
        if field not in OrchestrationConfig.model_fields:
            raise ConfigurationError(
                f"Unknown compose configuration option: {key!r}",
                f"Supported options: {', '.join(sorted(OrchestrationConfig.model_fields))}",
            )
        if key == "compose_file":
            continue
        normalized[field] = value
    # compose_files wins over a single compose_file.
    if not _supplied(normalized.get("compose_files")) and _supplied(explicit.get("compose_file")):
        normalized["compose_files"] = [explicit["compose_file"]]
    return normalized


def load_properties() -> ComposeProperties:
    return ComposeProperties()


def resolve_config(
    explicit: Mapping[str, Any] | None = None,
    properties: ComposeProperties | None = None,
) -> OrchestrationConfig:
    """
    Merge explicit configuration with override properties and validate the result.

    A value supplied by both sources must agree; a disagreement raises
    ConfigurationConflictError instead of silently picking one.
    """
    values = _normalize_explicit(explicit or {})
    props = properties if properties is not None else load_properties()

    for field, (attr, normalize) in _PROPERTY_FIELDS.items():
        raw = getattr(props, attr)
        if not _supplied(raw.strip()):
            continue
        from_property = normalize(raw)
        if _supplied(values.get(field)):
            from_explicit = normalize(values[field])
            if from_explicit != from_property:
                raise ConfigurationConflictError(
                    field, f"{PROPERTY_PREFIX}{attr}", raw, values[field]
                )
        values[field] = from_property

    for field in ("stack_name", "compose_files"):
        if not _supplied(values.get(field)):
            raise ConfigurationError(
                f"{field.replace('_', ' ').capitalize()} not configured for compose stack.",
                _SUGGESTIONS[field],
            )

    try:
        return OrchestrationConfig(**values)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else ""
        raise ConfigurationError(
            f"Invalid compose configuration for {field or 'stack'}: {error['msg']} "
            f"(got {error.get('input')!r})",
            _SUGGESTIONS.get(field),
        ) from exc
