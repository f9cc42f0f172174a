# Where: dockerorch/cleanup.py
# What: Best-effort removal of containers left behind by a compose project.
# Why: Leaked containers are the worst outcome; every strategy runs even if another fails.
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from dockerorch import constants
from dockerorch.exceptions import DockerOrchError
from dockerorch.parser import split_ids
from dockerorch.services import Clock, ProcessExecutor

logger = logging.getLogger(__name__)


@dataclass
class StrategyOutcome:
    name: str
    ok: bool = True
    removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class CleanupReport:
    project_name: str
    outcomes: list[StrategyOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def removed(self) -> list[str]:
        seen: list[str] = []
        for outcome in self.outcomes:
            for container_id in outcome.removed:
                if container_id not in seen:
                    seen.append(container_id)
        return seen

    @property
    def failures(self) -> list[str]:
        return [f"{o.name}: {error}" for o in self.outcomes for error in o.errors]

    def merge(self, other: "CleanupReport") -> "CleanupReport":
        self.outcomes.extend(other.outcomes)
        return self


def _label_filter(project_name: str) -> str:
    return f"label={constants.COMPOSE_PROJECT_LABEL}={project_name}"


class CleanupCoordinator:
    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        clock: Clock | None = None,
        *,
        pause_seconds: float = constants.CLEANUP_PAUSE_SECONDS,
    ) -> None:
        self.executor = executor or ProcessExecutor()
        self.clock = clock or Clock()
        self.pause_seconds = pause_seconds

    def run(self, project_name: str) -> CleanupReport:
        logger.info("Cleaning up containers for project: %s", project_name)
        report = CleanupReport(project_name=project_name)
        strategies: list[tuple[str, Callable[[str, StrategyOutcome], None]]] = [
            ("remove-by-name", self.remove_by_name),
            ("prune-by-label", self.prune_by_label),
            ("remove-by-label", self.remove_by_label),
        ]
        for index, (name, strategy) in enumerate(strategies):
            if index:
                self.clock.sleep(self.pause_seconds)
            outcome = StrategyOutcome(name=name)
            try:
                strategy(project_name, outcome)
            except (DockerOrchError, OSError) as exc:
                outcome.ok = False
                outcome.errors.append(str(exc))
            report.outcomes.append(outcome)

        if not report.ok:
            logger.warning(
                "Some cleanup operations failed for %s but test execution will continue: %s",
                project_name,
                "; ".join(report.failures),
            )
        return report

    def _list(self, filt: str) -> list[str]:
        result = self.executor.run(
            [constants.DOCKER_BIN, "ps", "-aq", "--filter", filt],
            timeout=constants.TIMEOUT_CONTAINER_OP,
        )
        if not result.ok:
            raise DockerOrchError(f"docker ps --filter {filt} failed: {result.output.strip()}")
        return split_ids(result.output)

    def remove_by_name(self, project_name: str, outcome: StrategyOutcome) -> None:
        container_ids = self._list(f"name={project_name}")
        if not container_ids:
            return
        logger.info("  - Force removing containers matching name %s: %s", project_name, container_ids)
        result = self.executor.run(
            [constants.DOCKER_BIN, "rm", "-f", *container_ids],
            timeout=constants.TIMEOUT_CONTAINER_OP,
        )
        if not result.ok:
            outcome.ok = False
            outcome.errors.append(f"docker rm -f failed: {result.output.strip()}")
            return
        outcome.removed.extend(container_ids)

    def prune_by_label(self, project_name: str, outcome: StrategyOutcome) -> None:
        result = self.executor.run(
            [constants.DOCKER_BIN, "container", "prune", "-f", "--filter", _label_filter(project_name)],
            timeout=constants.TIMEOUT_CONTAINER_PRUNE,
        )
        if not result.ok:
            outcome.ok = False
            outcome.errors.append(f"docker container prune failed: {result.output.strip()}")

    def remove_by_label(self, project_name: str, outcome: StrategyOutcome) -> None:
        container_ids = self._list(_label_filter(project_name))
        if not container_ids:
            logger.debug("No containers found with compose label: %s", project_name)
            return
        for container_id in container_ids:
            try:
                result = self.executor.run(
                    [constants.DOCKER_BIN, "rm", "-f", container_id],
                    timeout=constants.TIMEOUT_CONTAINER_OP,
                )
            except (DockerOrchError, OSError) as exc:
                outcome.ok = False
                outcome.errors.append(f"{container_id}: {exc}")
                logger.warning("  - Failed to remove container %s: %s", container_id, exc)
                continue
            if result.ok:
                outcome.removed.append(container_id)
                logger.info("  - Removed container by label: %s", container_id)
            else:
                outcome.ok = False
                outcome.errors.append(f"{container_id}: {result.output.strip()}")
                logger.warning(
                    "  - Failed to remove container %s: %s", container_id, result.output.strip()
                )
