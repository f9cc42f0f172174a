# Where: dockerorch/state.py
# What: Persist the started stack's service/port topology and publish where to find it.
# Why: Test code in other processes discovers the stack without a direct call contract.
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from dockerorch import constants
from dockerorch.identity import safe_filename_part
from dockerorch.models import ComposeState, LifecycleMode, ProjectIdentity
from dockerorch.services import Clock, FileService, PropertyService

logger = logging.getLogger(__name__)


def state_file_name(stack_name: str, group: str, case: str | None = None) -> str:
    parts = [stack_name, group] + ([case] if case else [])
    return "-".join(safe_filename_part(part) for part in parts) + constants.STATE_FILE_SUFFIX


def build_state_document(
    stack_name: str,
    identity: ProjectIdentity,
    lifecycle: LifecycleMode,
    group: str,
    case: str | None,
    compose_state: ComposeState,
    timestamp: str,
) -> dict[str, Any]:
    document: dict[str, Any] = {
        "stackName": stack_name,
        "projectName": identity.token,
        "lifecycle": lifecycle.value,
        "testClass": group,
    }
    if lifecycle is LifecycleMode.METHOD:
        document["testMethod"] = case
    document["timestamp"] = timestamp
    document["services"] = {
        name: {
            "containerId": info.container_id,
            "containerName": info.container_name,
            "state": info.status.value,
            "publishedPorts": [
                {"container": port.container_port, "host": port.host_port, "protocol": port.protocol}
                for port in info.published_ports
            ],
        }
        for name, info in sorted(compose_state.services.items())
    }
    return document


class StateRecorder:
    def __init__(
        self,
        state_dir: str | Path = constants.DEFAULT_STATE_DIR,
        *,
        files: FileService | None = None,
        properties: PropertyService | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.files = files or FileService()
        self.properties = properties or PropertyService()
        self.clock = clock or Clock()
        self.state_dir = self.files.resolve(state_dir)

    def record(
        self,
        stack_name: str,
        identity: ProjectIdentity,
        lifecycle: LifecycleMode,
        group: str,
        case: str | None,
        compose_state: ComposeState | None,
        *,
        correlation_id: str | None = None,
    ) -> Path | None:
        if compose_state is None:
            logger.warning(
                "No compose state available for project '%s'; skipping state file", identity.token
            )
            return None

        document = build_state_document(
            stack_name,
            identity,
            lifecycle,
            group,
            case if lifecycle is LifecycleMode.METHOD else None,
            compose_state,
            self.clock.now().isoformat(),
        )
        name_case = case if lifecycle is LifecycleMode.METHOD else None
        state_file = self.state_dir / state_file_name(stack_name, group, name_case)
        self.files.write_atomic(state_file, json.dumps(document, indent=2) + "\n")

        self.properties.set(constants.PROP_STATE_FILE, str(state_file))
        self.properties.set(constants.PROP_PROJECT_NAME, identity.token)
        if correlation_id:
            self.files.write_atomic(
                self.pointer_path(correlation_id),
                json.dumps({"stateFile": str(state_file), "projectName": identity.token}) + "\n",
            )
        logger.info("State file generated: %s", state_file)
        return state_file

    def pointer_path(self, correlation_id: str) -> Path:
        return self.state_dir / constants.CORRELATION_DIR / f"{safe_filename_part(correlation_id)}.json"

    def discard(
        self,
        identity: ProjectIdentity,
        state_file: Path | None,
        *,
        correlation_id: str | None = None,
    ) -> None:
        """Withdraw what this cycle published; the state file itself is kept."""
        if correlation_id:
            self.files.delete(self.pointer_path(correlation_id))
        # Another in-flight cycle may have overwritten the properties since.
        if self.properties.get(constants.PROP_PROJECT_NAME) == identity.token:
            self.properties.clear(constants.PROP_PROJECT_NAME)
        if state_file is not None and self.properties.get(constants.PROP_STATE_FILE) == str(state_file):
            self.properties.clear(constants.PROP_STATE_FILE)


def locate_state_file(state_dir: str | Path, correlation_id: str) -> Path | None:
    pointer = Path(state_dir) / constants.CORRELATION_DIR / f"{safe_filename_part(correlation_id)}.json"
    try:
        payload = json.loads(pointer.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    state_file = payload.get("stateFile") if isinstance(payload, dict) else None
    return Path(state_file) if state_file else None


def load_state(
    path: str | Path | None = None,
    properties: PropertyService | None = None,
) -> dict[str, Any] | None:
    """Return the active stack's state document, or None when no stack is active."""
    if path is None:
        props = properties or PropertyService()
        path = props.get(constants.PROP_STATE_FILE)
        if not path:
            return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None


def host_port(state: dict[str, Any], service: str, container_port: int, protocol: str = "tcp") -> int | None:
    entry = (state.get("services") or {}).get(service) or {}
    for port in entry.get("publishedPorts") or []:
        if port.get("container") == container_port and port.get("protocol", "tcp") == protocol:
            return int(port["host"])
    return None
