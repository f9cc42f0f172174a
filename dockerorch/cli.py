# Where: dockerorch/cli.py
# What: Command-line front end for starting, inspecting and tearing down stacks.
# Why: Run the same lifecycle steps outside pytest (CI scripts, local debugging).
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Sequence

from dockerorch.cleanup import CleanupCoordinator
from dockerorch.compose import StackController
from dockerorch.config import resolve_config
from dockerorch.constants import PROP_PROJECT_NAME, PROP_STATE_FILE
from dockerorch.exceptions import DockerOrchError
from dockerorch.identity import existing_identity
from dockerorch.logging_config import setup_logging
from dockerorch.models import LogsSpec
from dockerorch.orchestrator import orchestrator_for
from dockerorch.services import Clock, ProcessExecutor, PropertyService

logger = logging.getLogger(__name__)


def _add_project_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project",
        type=str,
        help=f"Compose project name (default: ${PROP_PROJECT_NAME})",
    )
    parser.add_argument(
        "-f",
        "--file",
        dest="compose_files",
        action="append",
        default=[],
        help="Compose file (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockerorch", description="Docker Compose lifecycle for integration tests"
    )
    parser.add_argument("--log-config", type=str, help="Logging YAML (default: packaged logging.yml)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    up = subparsers.add_parser("up", help="Start an isolated stack and write its state file")
    up.add_argument("--stack", dest="stack_name", type=str, help="Stack name")
    up.add_argument(
        "-f", "--file", dest="compose_files", action="append", default=[], help="Compose file (repeatable)"
    )
    up.add_argument("--lifecycle", choices=["class", "method"], help="Naming scope of the project")
    up.add_argument("--group", default="cli", help="Test class (group) name used in names")
    up.add_argument("--case", type=str, help="Test method (case) name; required for --lifecycle method")
    up.add_argument("--project-name", dest="project_name", type=str, help="Project name base")
    up.add_argument("--wait-healthy", dest="wait_for_healthy", action="append", default=[], help="Service to wait HEALTHY")
    up.add_argument("--wait-running", dest="wait_for_running", action="append", default=[], help="Service to wait RUNNING")
    up.add_argument("--timeout", dest="timeout_seconds", type=float, help="Readiness timeout in seconds")
    up.add_argument("--poll", dest="poll_seconds", type=float, help="Readiness poll interval in seconds")
    up.add_argument("--env-file", dest="env_files", action="append", default=[], help="Env file (repeatable)")
    up.add_argument("--state-dir", dest="state_dir", type=str, help="State file directory")
    up.add_argument("--correlation-id", dest="correlation_id", type=str, help="Discovery key for the state file")
    up.add_argument(
        "--strict",
        dest="fail_on_readiness_timeout",
        action="store_true",
        help="Fail (and tear down) when services do not become ready in time",
    )

    down = subparsers.add_parser("down", help="Stop a project and remove its leftovers")
    _add_project_argument(down)

    cleanup = subparsers.add_parser("cleanup", help="Remove containers left behind by a project")
    _add_project_argument(cleanup)

    ps = subparsers.add_parser("ps", help="Show service status and published ports")
    _add_project_argument(ps)

    logs = subparsers.add_parser("logs", help="Print service logs")
    _add_project_argument(logs)
    logs.add_argument("--tail", dest="tail_lines", type=int, default=0, help="Only the last N lines")
    logs.add_argument("--follow", action="store_true", help="Follow until the logs timeout")
    logs.add_argument("services", nargs="*", help="Services to include (default: all)")
    return parser


def _explicit_from_args(args: argparse.Namespace) -> dict[str, Any]:
    keys = (
        "stack_name",
        "compose_files",
        "lifecycle",
        "project_name",
        "wait_for_healthy",
        "wait_for_running",
        "timeout_seconds",
        "poll_seconds",
        "env_files",
        "state_dir",
        "correlation_id",
    )
    explicit = {key: getattr(args, key) for key in keys if getattr(args, key) not in (None, [])}
    if args.fail_on_readiness_timeout:
        explicit["fail_on_readiness_timeout"] = True
    return explicit


def _project_name(args: argparse.Namespace, properties: PropertyService) -> str:
    project = args.project or properties.get(PROP_PROJECT_NAME)
    if not project:
        raise DockerOrchError(
            f"No compose project given. Pass --project or set {PROP_PROJECT_NAME}."
        )
    return project


def cmd_up(args: argparse.Namespace, properties: PropertyService) -> int:
    config = resolve_config(_explicit_from_args(args))
    orchestrator = orchestrator_for(config, properties=properties)
    ctx = orchestrator.start(args.group, args.case)
    print(f"{PROP_PROJECT_NAME}={ctx.project_name}")
    if ctx.state_file is not None:
        print(f"{PROP_STATE_FILE}={ctx.state_file}")
    if ctx.degraded:
        logger.warning("Stack '%s' started but not every service is ready", config.stack_name)
    return 0


def cmd_down(args: argparse.Namespace, properties: PropertyService) -> int:
    clock = Clock()
    executor = ProcessExecutor()
    identity = existing_identity(_project_name(args, properties), now=clock.now())
    stopped = StackController(executor).down(identity, args.compose_files)
    report = CleanupCoordinator(executor, clock).run(identity.token)
    return 0 if stopped and report.ok else 1


def cmd_cleanup(args: argparse.Namespace, properties: PropertyService) -> int:
    report = CleanupCoordinator().run(_project_name(args, properties))
    for container_id in report.removed:
        print(container_id)
    return 0 if report.ok else 1


def cmd_ps(args: argparse.Namespace, properties: PropertyService) -> int:
    controller = StackController()
    identity = existing_identity(_project_name(args, properties), now=Clock().now())
    services = controller.services(
        identity, compose_files=controller.resolve_files(args.compose_files)
    )
    for name, info in sorted(services.items()):
        ports = ", ".join(
            f"{port.host_port}->{port.container_port}/{port.protocol}" for port in info.published_ports
        )
        print(f"{name}\t{info.status.value}\t{info.container_name}\t{ports}")
    return 0


def cmd_logs(args: argparse.Namespace, properties: PropertyService) -> int:
    identity = existing_identity(_project_name(args, properties), now=Clock().now())
    spec = LogsSpec(services=tuple(args.services), tail_lines=args.tail_lines, follow=args.follow)
    sys.stdout.write(StackController().capture_logs(identity, spec))
    return 0


COMMANDS = {
    "up": cmd_up,
    "down": cmd_down,
    "cleanup": cmd_cleanup,
    "ps": cmd_ps,
    "logs": cmd_logs,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_config)
    try:
        return COMMANDS[args.command](args, PropertyService())
    except DockerOrchError as exc:
        logger.error("%s", exc)
        return 1
