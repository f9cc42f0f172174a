# Where: dockerorch/constants.py
# What: Shared names, property keys and command timeouts.
# Why: Keep CLI surface and published property names in one place.
from __future__ import annotations

DOCKER_BIN = "docker"
COMPOSE_PROJECT_LABEL = "com.docker.compose.project"

# Process-global properties published for consuming test code.
PROP_STATE_FILE = "COMPOSE_STATE_FILE"
PROP_PROJECT_NAME = "COMPOSE_PROJECT_NAME"

# Prefix of the override properties set by the surrounding build.
PROPERTY_PREFIX = "DOCKER_COMPOSE_"

DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_POLL_SECONDS = 2
DEFAULT_STATE_DIR = "build/compose-state"
CORRELATION_DIR = "by-correlation"
STATE_FILE_SUFFIX = "-state.json"

# Hard per-command timeouts (seconds). A command exceeding its timeout is killed.
TIMEOUT_COMPOSE_UP = 300.0
TIMEOUT_COMPOSE_DOWN = 120.0
TIMEOUT_COMPOSE_PS = 30.0
TIMEOUT_COMPOSE_LOGS = 60.0
TIMEOUT_CONTAINER_OP = 15.0
TIMEOUT_CONTAINER_PRUNE = 30.0

CLEANUP_PAUSE_SECONDS = 0.5

FALLBACK_PROJECT_NAME = "test-project"
