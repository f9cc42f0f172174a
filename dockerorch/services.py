# Where: dockerorch/services.py
# What: Thin process, clock, filesystem and property services used by orchestration.
# Why: Orchestration logic receives these as collaborators so tests can replace them.
from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence

from dockerorch.exceptions import ProcessTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    command: tuple[str, ...]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessExecutor:
    """Run external commands non-interactively with combined stdout/stderr."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(env) if env is not None else None

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        command = tuple(str(part) for part in cmd)
        logger.debug("$ %s", " ".join(command))
        run_env = None
        if self._env is not None:
            run_env = os.environ.copy()
            run_env.update(self._env)
        try:
            # subprocess.run kills the child before re-raising TimeoutExpired.
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                env=run_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            partial = exc.output or ""
            if isinstance(partial, bytes):
                partial = partial.decode("utf-8", errors="replace")
            raise ProcessTimeoutError(command, timeout or 0.0, partial) from exc
        return ProcessResult(command=command, returncode=completed.returncode, output=completed.stdout or "")


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class FileService:
    def __init__(self, root: Path | None = None) -> None:
        self.root = root

    def resolve(self, path: str | Path) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = (self.root or Path.cwd()) / candidate
        return candidate.absolute()

    def exists(self, path: Path) -> bool:
        return path.exists()

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def write_atomic(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


class PropertyService:
    """Process-global key/value properties backed by the process environment.

    Child processes (test workers, tools started by tests) inherit these values,
    which is how out-of-process consumers discover the active stack.
    """

    def __init__(self, store: MutableMapping[str, str] | None = None) -> None:
        self._store = store if store is not None else os.environ

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self._store.get(key)
        if value is None or value == "":
            return default
        return value

    def set(self, key: str, value: str) -> None:
        self._store[key] = value

    def clear(self, key: str) -> None:
        self._store.pop(key, None)

    def snapshot(self, prefix: str = "") -> dict[str, str]:
        return {key: value for key, value in self._store.items() if key.startswith(prefix)}
