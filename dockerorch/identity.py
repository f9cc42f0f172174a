# Where: dockerorch/identity.py
# What: Unique, sanitized compose project names per orchestration cycle.
# Why: Concurrent stacks must never share container or network names.
from __future__ import annotations

import re
from datetime import datetime

from dockerorch.constants import FALLBACK_PROJECT_NAME
from dockerorch.models import ProjectIdentity

PROJECT_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
_INVALID_CHARS_RE = re.compile(r"[^a-z0-9_-]")
_DASH_RUN_RE = re.compile(r"-+")
_FILENAME_PART_RE = re.compile(r"[^A-Za-z0-9_.-]+")

TIMESTAMP_FORMAT = "%H%M%S%f"


def sanitize_project_name(value: str) -> str:
    cleaned = _INVALID_CHARS_RE.sub("-", (value or "").lower())
    cleaned = _DASH_RUN_RE.sub("-", cleaned).strip("-")
    if cleaned and not cleaned[0].isalnum():
        cleaned = f"test-{cleaned}"
    return cleaned or FALLBACK_PROJECT_NAME


def generate_identity(
    base: str,
    group: str,
    case: str | None = None,
    *,
    now: datetime,
) -> ProjectIdentity:
    parts = [base, group]
    if case:
        parts.append(case)
    parts.append(now.strftime(TIMESTAMP_FORMAT))
    token = sanitize_project_name("-".join(parts))
    return ProjectIdentity(base=base, group=group, case=case, generated_at=now, token=token)


def safe_filename_part(value: str) -> str:
    # Test ids such as "test_x[a/b]" must not escape the state directory.
    cleaned = _FILENAME_PART_RE.sub("_", value).strip("._")
    return cleaned or "unknown"


def existing_identity(token: str, *, now: datetime) -> ProjectIdentity:
    """Identity for a project started elsewhere, addressed by its project name."""
    return ProjectIdentity(base=token, group="", case=None, generated_at=now, token=token)
