# Where: dockerorch/readiness.py
# What: Poll compose service status until a target state is reached or time runs out.
# Why: Readiness is reported, not enforced; callers decide whether a timeout is fatal.
from __future__ import annotations

import logging
from typing import Callable

from dockerorch.exceptions import DockerOrchError, ReadinessTimeoutError
from dockerorch.models import (
    ProjectIdentity,
    ServiceInfo,
    ServiceStatus,
    WaitOutcome,
    WaitResult,
    WaitSpec,
)
from dockerorch.services import Clock

logger = logging.getLogger(__name__)

StatusQuery = Callable[[ProjectIdentity], dict[str, ServiceInfo]]


class ReadinessWaiter:
    def __init__(self, query: StatusQuery, clock: Clock | None = None) -> None:
        self.query = query
        self.clock = clock or Clock()

    def _observe(self, spec: WaitSpec) -> dict[str, ServiceStatus]:
        try:
            services = self.query(spec.identity)
        except (DockerOrchError, OSError) as exc:
            logger.debug("Status query failed for '%s': %s", spec.identity.token, exc)
            services = {}
        return {
            name: services[name].status if name in services else ServiceStatus.UNKNOWN
            for name in spec.services
        }

    def wait(self, spec: WaitSpec) -> WaitResult:
        logger.info(
            "Waiting for services to be %s: %s", spec.target.value.upper(), list(spec.services)
        )
        started = self.clock.monotonic()
        attempts = 0
        statuses: dict[str, ServiceStatus] = {}
        while True:
            attempts += 1
            statuses = self._observe(spec)
            elapsed = self.clock.monotonic() - started
            if all(status.satisfies(spec.target) for status in statuses.values()):
                logger.info(
                    "All services are %s after %d attempt(s) (%.1fs)",
                    spec.target.value.upper(),
                    attempts,
                    elapsed,
                )
                return WaitResult(WaitOutcome.SATISFIED, spec.target, elapsed, attempts, statuses)

            remaining = spec.timeout - elapsed
            if remaining <= 0:
                result = WaitResult(WaitOutcome.TIMED_OUT, spec.target, elapsed, attempts, statuses)
                logger.warning(
                    "Services did not reach %s within %gs in project '%s'; still pending: %s",
                    spec.target.value.upper(),
                    spec.timeout,
                    spec.identity.token,
                    result.pending(),
                )
                return result
            self.clock.sleep(min(spec.poll_interval, remaining))


def raise_for_timeout(spec: WaitSpec, result: WaitResult) -> None:
    if not result.satisfied:
        raise ReadinessTimeoutError(spec, result)
