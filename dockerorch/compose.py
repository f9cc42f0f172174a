# Where: dockerorch/compose.py
# What: docker compose up/down/ps/logs for one isolated compose project.
# Why: Separate command construction and result handling from cycle orchestration.
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

import yaml

from dockerorch import constants
from dockerorch.exceptions import (
    ComposeFileNotFoundError,
    DockerOrchError,
    ProcessTimeoutError,
    StartupFailedError,
)
from dockerorch.models import ComposeState, LogsSpec, ProjectIdentity, ServiceInfo
from dockerorch.parser import parse_service_records
from dockerorch.services import FileService, ProcessExecutor

logger = logging.getLogger(__name__)


def compose_base_cmd(
    *,
    project_name: str,
    compose_files: Sequence[Path] = (),
    env_files: Sequence[Path] = (),
) -> list[str]:
    cmd = [constants.DOCKER_BIN, "compose"]
    for compose_file in compose_files:
        cmd.extend(["-f", str(compose_file)])
    cmd.extend(["-p", project_name])
    for env_file in env_files:
        cmd.extend(["--env-file", str(env_file)])
    return cmd


class StackController:
    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        files: FileService | None = None,
    ) -> None:
        self.executor = executor or ProcessExecutor()
        self.files = files or FileService()

    def resolve_files(self, paths: Iterable[str | Path]) -> list[Path]:
        return [self.files.resolve(path) for path in paths]

    def up(
        self,
        compose_files: Sequence[str | Path],
        identity: ProjectIdentity,
        *,
        stack_name: str | None = None,
        env_files: Sequence[str | Path] = (),
    ) -> ComposeState:
        stack = stack_name or identity.base
        resolved = self.resolve_files(compose_files)
        for path in resolved:
            if not self.files.exists(path):
                raise ComposeFileNotFoundError(stack, identity.token, str(path))
        resolved_env = self.resolve_files(env_files)

        cmd = compose_base_cmd(
            project_name=identity.token, compose_files=resolved, env_files=resolved_env
        )
        cmd.extend(["up", "-d", "--remove-orphans"])
        logger.info("Starting compose stack '%s' (project: %s)", stack, identity.token)
        try:
            result = self.executor.run(
                cmd, cwd=resolved[0].parent if resolved else None, timeout=constants.TIMEOUT_COMPOSE_UP
            )
        except ProcessTimeoutError as exc:
            raise StartupFailedError(stack, identity.token, exc.output, reason=str(exc)) from exc
        except OSError as exc:
            raise StartupFailedError(stack, identity.token, reason=str(exc)) from exc

        if not result.ok:
            logger.error(
                "docker compose up failed with exit code %s: %s", result.returncode, " ".join(cmd)
            )
            raise StartupFailedError(
                stack,
                identity.token,
                result.output,
                reason=f"docker compose up exited with code {result.returncode}",
            )

        services = self.services(identity, compose_files=resolved)
        logger.info("Compose stack '%s' started with %d service(s)", stack, len(services))
        return ComposeState(identity=identity, compose_files=resolved, services=services)

    def down(self, identity: ProjectIdentity, compose_files: Sequence[str | Path] = ()) -> bool:
        """Stop the project; failures are logged and reported as False, never raised."""
        resolved = [path for path in self.resolve_files(compose_files) if self.files.exists(path)]
        cmd = compose_base_cmd(project_name=identity.token, compose_files=resolved)
        cmd.extend(["down", "--remove-orphans", "--volumes"])
        try:
            result = self.executor.run(cmd, timeout=constants.TIMEOUT_COMPOSE_DOWN)
        except (DockerOrchError, OSError) as exc:
            logger.warning("Failed to stop compose project '%s': %s", identity.token, exc)
            return False
        if not result.ok:
            logger.warning(
                "Failed to cleanly stop compose project '%s' (exit %s): %s",
                identity.token,
                result.returncode,
                result.output.strip(),
            )
            return False
        logger.info("Compose project '%s' stopped", identity.token)
        return True

    def services(
        self,
        identity: ProjectIdentity,
        *,
        compose_files: Sequence[Path] = (),
    ) -> dict[str, ServiceInfo]:
        cmd = compose_base_cmd(project_name=identity.token, compose_files=compose_files)
        cmd.extend(["ps", "--all", "--format", "json"])
        try:
            result = self.executor.run(cmd, timeout=constants.TIMEOUT_COMPOSE_PS)
        except (DockerOrchError, OSError) as exc:
            logger.warning("Failed to query services for '%s': %s", identity.token, exc)
            return {}
        if not result.ok:
            logger.warning(
                "Failed to query services for '%s': %s", identity.token, result.output.strip()
            )
            return {}
        return parse_service_records(result.output)

    def capture_logs(self, identity: ProjectIdentity, spec: LogsSpec | None = None) -> str:
        spec = spec or LogsSpec()
        cmd = compose_base_cmd(project_name=identity.token)
        cmd.extend(["logs", "--no-color"])
        if spec.follow:
            cmd.append("--follow")
        if spec.tail_lines > 0:
            cmd.extend(["--tail", str(spec.tail_lines)])
        cmd.extend(spec.services)
        try:
            result = self.executor.run(cmd, timeout=constants.TIMEOUT_COMPOSE_LOGS)
        except ProcessTimeoutError as exc:
            if not spec.follow:
                raise
            # A followed log stream never ends on its own; the hard timeout bounds it.
            logger.info("Stopped following logs of '%s' after %gs", identity.token, exc.timeout)
            return exc.output
        if not result.ok:
            raise DockerOrchError(f"Failed to capture logs for '{identity.token}': {result.output}")
        return result.output

    def declared_services(self, compose_files: Sequence[str | Path]) -> set[str]:
        declared: set[str] = set()
        for path in self.resolve_files(compose_files):
            if not self.files.exists(path):
                continue
            try:
                document = yaml.safe_load(self.files.read_text(path)) or {}
            except (OSError, yaml.YAMLError) as exc:
                logger.debug("Could not read compose file %s: %s", path, exc)
                continue
            services = document.get("services") if isinstance(document, dict) else None
            if isinstance(services, dict):
                declared.update(str(name) for name in services)
        return declared
