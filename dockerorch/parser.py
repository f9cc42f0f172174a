# Where: dockerorch/parser.py
# What: Pure parsers turning docker compose CLI output into typed service records.
# Why: CLI output varies across releases; anomalies degrade to unknown/dropped, never raise.
from __future__ import annotations

import json
import re
from typing import Any, Iterable

from dockerorch.models import PortMapping, ServiceInfo, ServiceStatus

PORT_RE = re.compile(r"(?:[\d.]+:)?(\d+)->(\d+)(?:/(\w+))?")


def parse_service_status(text: str | None) -> ServiceStatus:
    if not text:
        return ServiceStatus.UNKNOWN
    lowered = text.lower()
    if "healthy" in lowered:
        return ServiceStatus.HEALTHY
    if "running" in lowered or "up" in lowered:
        return ServiceStatus.RUNNING
    if "exit" in lowered or "stop" in lowered:
        return ServiceStatus.STOPPED
    if "restart" in lowered:
        return ServiceStatus.RESTARTING
    return ServiceStatus.UNKNOWN


def parse_port_mapping(entry: str | None) -> PortMapping | None:
    if not entry:
        return None
    match = PORT_RE.search(entry.strip())
    if match is None:
        return None
    host_port, container_port, protocol = match.groups()
    return PortMapping(
        container_port=int(container_port),
        host_port=int(host_port),
        protocol=protocol or "tcp",
    )


def parse_port_mappings(text: str | None) -> list[PortMapping]:
    """Parse "0.0.0.0:9091->8080/tcp, :::9091->8080/tcp" style port lists."""
    if not text:
        return []
    mappings: list[PortMapping] = []
    for entry in text.split(","):
        mapping = parse_port_mapping(entry)
        if mapping is not None and mapping not in mappings:
            mappings.append(mapping)
    return mappings


def parse_publishers(publishers: Any) -> list[PortMapping]:
    """Parse the structured "Publishers" array emitted by Compose v2."""
    if not isinstance(publishers, list):
        return []
    mappings: list[PortMapping] = []
    for item in publishers:
        if not isinstance(item, dict):
            continue
        try:
            host_port = int(item.get("PublishedPort") or 0)
            container_port = int(item.get("TargetPort") or 0)
        except (TypeError, ValueError):
            continue
        if host_port <= 0 or container_port <= 0:
            continue
        mapping = PortMapping(
            container_port=container_port,
            host_port=host_port,
            protocol=str(item.get("Protocol") or "tcp"),
        )
        if mapping not in mappings:
            mappings.append(mapping)
    return mappings


def _service_name(record: dict[str, Any]) -> str | None:
    name = record.get("Service")
    if name:
        return str(name)
    container_name = record.get("Name")
    if container_name:
        parts = str(container_name).split("_")
        if len(parts) >= 2 and parts[1]:
            return parts[1]
    return None


def _status_text(record: dict[str, Any]) -> str:
    text = str(record.get("State") or record.get("Status") or "")
    health = str(record.get("Health") or "").strip().lower()
    if health == "healthy" and "healthy" not in text.lower():
        text = f"{text} (healthy)"
    return text


def parse_service_record(record: dict[str, Any]) -> tuple[str, ServiceInfo] | None:
    name = _service_name(record)
    if not name:
        return None
    ports = parse_publishers(record.get("Publishers"))
    if not ports:
        ports = parse_port_mappings(str(record.get("Ports") or ""))
    info = ServiceInfo(
        container_id=str(record.get("ID") or "unknown"),
        container_name=str(record.get("Name") or name),
        status=parse_service_status(_status_text(record)),
        published_ports=ports,
    )
    return name, info


def _iter_records(json_lines: str) -> Iterable[dict[str, Any]]:
    for line in json_lines.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        # Older Compose releases print a single JSON array instead of JSON lines.
        items = payload if isinstance(payload, list) else [payload]
        for item in items:
            if isinstance(item, dict):
                yield item


def parse_service_records(json_lines: str | None) -> dict[str, ServiceInfo]:
    services: dict[str, ServiceInfo] = {}
    if not json_lines or not json_lines.strip():
        return services
    for record in _iter_records(json_lines):
        parsed = parse_service_record(record)
        if parsed is None:
            continue
        name, info = parsed
        services[name] = info
    return services


def split_ids(output: str | None) -> list[str]:
    if not output:
        return []
    return [token.strip() for token in output.split() if token.strip()]
