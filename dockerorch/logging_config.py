"""
Logging Configuration
JSON logging for compose orchestration runs.

Provides:
- CycleJsonFormatter: one JSON object per record, carrying project/stack extras
- setup_logging: YAML dictConfig loader with ${VAR} substitution
"""

import json
import logging
import logging.config
import os
import string
from datetime import datetime, timezone
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).with_name("logging.yml")

_STANDARD_ATTRS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


class CycleJsonFormatter(logging.Formatter):
    """
    JSON Formatter for orchestration logs.

    Fields:
      - _time: ISO8601 timestamp (millisecond precision)
      - level: Log level
      - logger: Logger name (e.g. dockerorch.compose)
      - message: Log message
      - project: Compose project name, when the record belongs to a cycle
      - stack: Stack name, when the record belongs to a cycle
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "_time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # project/stack and any other extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(config_path=None):
    """
    Load the YAML config, substitute environment variables, and initialize logging.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        logging.basicConfig(level=logging.INFO)
        return

    with open(path, "r", encoding="utf-8") as f:
        # Supports ${LOG_LEVEL} format.
        template = string.Template(f.read())

        mapping = os.environ.copy()
        if "LOG_LEVEL" not in mapping:
            mapping["LOG_LEVEL"] = "INFO"
        if "DOCKERORCH_LOG_LEVEL" not in mapping:
            mapping["DOCKERORCH_LOG_LEVEL"] = mapping["LOG_LEVEL"]
        # "json" selects CycleJsonFormatter.
        mapping.setdefault("DOCKERORCH_LOG_FORMAT", "plain")

        content = template.safe_substitute(mapping)
        config = yaml.safe_load(content)
        logging.config.dictConfig(config)
