# Where: dockerorch/tests/conftest.py
# What: Fake process executor and clock shared by the unit tests.
# Why: Exercise orchestration without Docker or real sleeps.
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Callable

import pytest

from dockerorch.services import ProcessResult

FIXED_NOW = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)


class FakeExecutor:
    """Records commands; the handler returns (returncode, output) or raises."""

    def __init__(self, handler: Callable[[list[str]], tuple[int, str]] | None = None) -> None:
        self.handler = handler
        self.calls: list[list[str]] = []
        self.cwds: list[object] = []

    def run(self, cmd, *, cwd=None, timeout=None):
        command = [str(part) for part in cmd]
        self.calls.append(command)
        self.cwds.append(cwd)
        returncode, output = self.handler(command) if self.handler else (0, "")
        return ProcessResult(command=tuple(command), returncode=returncode, output=output)

    def calls_with(self, *fragment: str) -> list[list[str]]:
        size = len(fragment)
        return [
            call
            for call in self.calls
            if any(call[i : i + size] == list(fragment) for i in range(len(call) - size + 1))
        ]


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self._now = now
        self.elapsed = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self.elapsed

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.elapsed += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def compose_file(tmp_path):
    path = tmp_path / "compose.yml"
    path.write_text(
        "services:\n"
        "  web:\n"
        "    image: nginx:alpine\n"
        "    ports: ['8080']\n"
        "  db:\n"
        "    image: postgres:16\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def _isolated_compose_environment(monkeypatch):
    for key in list(os.environ):
        if key.startswith("DOCKER_COMPOSE_") or key in ("COMPOSE_STATE_FILE", "COMPOSE_PROJECT_NAME"):
            monkeypatch.delenv(key, raising=False)
