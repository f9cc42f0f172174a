# Where: dockerorch/orchestrator.py
# What: One compose lifecycle state machine shared by class- and method-scoped cycles.
# Why: Setup and teardown ordering lives here; the scope only changes naming.
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from dockerorch.cleanup import CleanupCoordinator, CleanupReport
from dockerorch.compose import StackController
from dockerorch.config import OrchestrationConfig
from dockerorch.exceptions import ConfigurationError
from dockerorch.identity import generate_identity
from dockerorch.models import CycleContext, CyclePhase, Scope, ServiceStatus, WaitSpec
from dockerorch.readiness import ReadinessWaiter, raise_for_timeout
from dockerorch.services import Clock, FileService, ProcessExecutor, PropertyService
from dockerorch.state import StateRecorder

logger = logging.getLogger(__name__)


class LifecycleOrchestrator:
    def __init__(
        self,
        config: OrchestrationConfig,
        *,
        controller: StackController,
        waiter: ReadinessWaiter,
        cleanup: CleanupCoordinator,
        recorder: StateRecorder,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.controller = controller
        self.waiter = waiter
        self.cleanup = cleanup
        self.recorder = recorder
        self.clock = clock or Clock()

    @property
    def scope(self) -> Scope:
        return self.config.lifecycle.scope

    def start(self, group: str, case: str | None = None) -> CycleContext:
        if self.scope is Scope.GROUP_AND_CASE and not case:
            raise ConfigurationError(
                f"Lifecycle '{self.config.lifecycle.value}' needs a test case name for stack "
                f"'{self.config.stack_name}'.",
                "Start method-scoped cycles with both the test class and test method names.",
            )
        if self.scope is Scope.GROUP:
            case = None

        config = self.config
        identity = generate_identity(config.project_base, group, case, now=self.clock.now())
        ctx = CycleContext(
            config=config,
            identity=identity,
            group=group,
            case=case,
            correlation_id=config.correlation_id,
        )
        ctx.phase = CyclePhase.STARTING
        scope_label = f"{group}.{case}" if case else group
        logger.info(
            "=== Starting Docker Compose stack '%s' for %s (project: %s) ===",
            config.stack_name,
            scope_label,
            identity.token,
            extra={"project": identity.token, "stack": config.stack_name},
        )
        self._warn_undeclared_targets()

        self.cleanup.run(identity.token)
        try:
            ctx.compose_state = self.controller.up(
                config.compose_files,
                identity,
                stack_name=config.stack_name,
                env_files=config.env_files,
            )
            self._wait_for_services(ctx)
            self._record_state(ctx)
        except BaseException:
            logger.error("Startup failed for project '%s', attempting cleanup...", identity.token)
            self._rollback(ctx)
            raise

        ctx.phase = CyclePhase.RUNNING_GUARDED_CODE
        return ctx

    def stop(self, ctx: CycleContext) -> CleanupReport:
        """Tear the cycle down; every sub-step runs and none of them raises."""
        ctx.phase = CyclePhase.TEARING_DOWN
        logger.info(
            "=== Stopping Docker Compose stack '%s' (project: %s) ===",
            ctx.config.stack_name,
            ctx.project_name,
            extra={"project": ctx.project_name, "stack": ctx.config.stack_name},
        )
        failed: list[str] = []
        report = CleanupReport(project_name=ctx.project_name)

        try:
            if not self.controller.down(ctx.identity, self._compose_files(ctx)):
                failed.append("compose down")
        except Exception as exc:
            logger.warning("Compose down failed for %s: %s", ctx.config.stack_name, exc)
            failed.append("compose down")

        try:
            report = self.cleanup.run(ctx.project_name)
            if not report.ok:
                failed.append("container cleanup")
        except Exception as exc:
            logger.warning("Container cleanup failed for %s: %s", ctx.project_name, exc)
            failed.append("container cleanup")

        try:
            self.recorder.discard(
                ctx.identity, ctx.state_file, correlation_id=ctx.correlation_id
            )
        except Exception as exc:
            logger.warning("State cleanup failed for %s: %s", ctx.project_name, exc)

        ctx.phase = CyclePhase.IDLE
        if failed:
            logger.warning(
                "Teardown of project '%s' was incomplete (%s) but test execution will continue",
                ctx.project_name,
                ", ".join(failed),
            )
        return report

    @contextmanager
    def cycle(self, group: str, case: str | None = None) -> Iterator[CycleContext]:
        """Run guarded code against a started stack; teardown always follows."""
        ctx = self.start(group, case)
        try:
            yield ctx
        finally:
            self.stop(ctx)

    def _compose_files(self, ctx: CycleContext) -> list[Path]:
        if ctx.compose_state is not None:
            return list(ctx.compose_state.compose_files)
        return self.controller.resolve_files(ctx.config.compose_files)

    def _warn_undeclared_targets(self) -> None:
        targets = set(self.config.wait_for_healthy) | set(self.config.wait_for_running)
        if not targets:
            return
        declared = self.controller.declared_services(self.config.compose_files)
        missing = sorted(targets - declared) if declared else []
        if missing:
            logger.warning(
                "Wait targets not declared in any compose file of stack '%s': %s",
                self.config.stack_name,
                missing,
            )

    def _wait_for_services(self, ctx: CycleContext) -> None:
        config = ctx.config
        for target, services in (
            (ServiceStatus.HEALTHY, config.wait_for_healthy),
            (ServiceStatus.RUNNING, config.wait_for_running),
        ):
            if not services:
                continue
            spec = WaitSpec(
                identity=ctx.identity,
                services=tuple(services),
                target=target,
                timeout=config.timeout_seconds,
                poll_interval=config.poll_seconds,
            )
            result = self.waiter.wait(spec)
            ctx.wait_results.append(result)
            if config.fail_on_readiness_timeout:
                raise_for_timeout(spec, result)
        ctx.phase = CyclePhase.DEGRADED if ctx.degraded else CyclePhase.READY

    def _record_state(self, ctx: CycleContext) -> None:
        if ctx.compose_state is not None:
            # Status captured right after "up" predates the readiness wait.
            refreshed = self.controller.services(
                ctx.identity, compose_files=ctx.compose_state.compose_files
            )
            if refreshed:
                ctx.compose_state.services = refreshed
        ctx.state_file = self.recorder.record(
            ctx.config.stack_name,
            ctx.identity,
            ctx.config.lifecycle,
            ctx.group,
            ctx.case,
            ctx.compose_state,
            correlation_id=ctx.correlation_id,
        )

    def _rollback(self, ctx: CycleContext) -> None:
        try:
            self.cleanup.run(ctx.project_name)
        except Exception as exc:
            logger.warning("Cleanup after startup failure also failed: %s", exc)
        try:
            self.controller.down(ctx.identity, self._compose_files(ctx))
        except Exception as exc:
            logger.warning("Compose down after startup failure also failed: %s", exc)
        ctx.phase = CyclePhase.IDLE


def orchestrator_for(
    config: OrchestrationConfig,
    *,
    properties: PropertyService | None = None,
    executor: ProcessExecutor | None = None,
    clock: Clock | None = None,
) -> LifecycleOrchestrator:
    """Build an orchestrator wired to the real docker CLI, clock and filesystem."""
    clock = clock or Clock()
    executor = executor or ProcessExecutor()
    files = FileService(Path(config.working_dir) if config.working_dir else None)
    controller = StackController(executor, files)
    return LifecycleOrchestrator(
        config,
        controller=controller,
        waiter=ReadinessWaiter(controller.services, clock),
        cleanup=CleanupCoordinator(executor, clock),
        recorder=StateRecorder(
            config.state_dir, files=files, properties=properties or PropertyService(), clock=clock
        ),
        clock=clock,
    )
