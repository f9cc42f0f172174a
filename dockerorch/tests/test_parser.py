# Where: dockerorch/tests/test_parser.py
# What: Unit tests for docker compose output parsing.
# Why: Status and port parsing must tolerate every Compose release format.
from __future__ import annotations

import json

import pytest

from dockerorch import parser
from dockerorch.models import PortMapping, ServiceStatus


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Up 5 minutes (healthy)", ServiceStatus.HEALTHY),
        ("healthy", ServiceStatus.HEALTHY),
        ("running", ServiceStatus.RUNNING),
        ("Up 3 seconds (health: starting)", ServiceStatus.RUNNING),
        ("Exited (0) 2 seconds ago", ServiceStatus.STOPPED),
        ("stopped", ServiceStatus.STOPPED),
        ("Restarting (1) 4 seconds ago", ServiceStatus.RESTARTING),
        ("created", ServiceStatus.UNKNOWN),
        ("", ServiceStatus.UNKNOWN),
        (None, ServiceStatus.UNKNOWN),
    ],
)
def test_parse_service_status(text, expected):
    assert parser.parse_service_status(text) is expected


def test_parse_port_mapping_reads_host_container_and_protocol():
    assert parser.parse_port_mapping("0.0.0.0:9091->8080/tcp") == PortMapping(8080, 9091, "tcp")
    assert parser.parse_port_mapping("5353->53/udp") == PortMapping(53, 5353, "udp")
    assert parser.parse_port_mapping("9000->9000") == PortMapping(9000, 9000, "tcp")


@pytest.mark.parametrize("entry", ["", None, "8080/tcp", "not a port", "abc->def"])
def test_parse_port_mapping_rejects_malformed_entries(entry):
    assert parser.parse_port_mapping(entry) is None


def test_parse_port_mappings_dedupes_ipv4_and_ipv6_bindings():
    mappings = parser.parse_port_mappings("0.0.0.0:9091->8080/tcp, :::9091->8080/tcp, 5432/tcp")

    assert mappings == [PortMapping(8080, 9091, "tcp")]


def test_parse_service_records_reads_json_lines_and_skips_bad_lines():
    lines = "\n".join(
        [
            json.dumps(
                {
                    "ID": "abc123",
                    "Name": "proj-web-1",
                    "Service": "web",
                    "State": "running",
                    "Health": "healthy",
                    "Publishers": [
                        {"URL": "0.0.0.0", "TargetPort": 80, "PublishedPort": 32768, "Protocol": "tcp"},
                        {"URL": "::", "TargetPort": 80, "PublishedPort": 32768, "Protocol": "tcp"},
                        {"URL": "", "TargetPort": 443, "PublishedPort": 0, "Protocol": "tcp"},
                    ],
                }
            ),
            "{not json",
            json.dumps({"ID": "def456", "Name": "proj-db-1", "Service": "db", "State": "exited"}),
            "",
        ]
    )

    services = parser.parse_service_records(lines)

    assert sorted(services) == ["db", "web"]
    web = services["web"]
    assert web.container_id == "abc123"
    assert web.status is ServiceStatus.HEALTHY
    assert web.published_ports == [PortMapping(80, 32768, "tcp")]
    assert web.host_port(80) == 32768
    assert services["db"].status is ServiceStatus.STOPPED


def test_parse_service_records_keeps_unhealthy_container_running():
    record = {"ID": "a1", "Name": "p-web-1", "Service": "web", "State": "running", "Health": "unhealthy"}

    services = parser.parse_service_records(json.dumps(record))

    assert services["web"].status is ServiceStatus.RUNNING


def test_parse_service_records_accepts_json_array_and_legacy_fields():
    payload = json.dumps(
        [
            {
                "ID": "x1",
                "Name": "proj_api_1",
                "Status": "Up 2 minutes",
                "Ports": "0.0.0.0:18080->8080/tcp",
            },
            {"ID": "x2", "State": "running"},
        ]
    )

    services = parser.parse_service_records(payload)

    assert list(services) == ["api"]
    assert services["api"].status is ServiceStatus.RUNNING
    assert services["api"].host_port(8080) == 18080


def test_service_name_with_underscored_project_token():
    records = [
        {"ID": "u1", "Name": "webstack-orderit-test_create-070809-web-1", "Service": "web", "State": "running"},
        {"ID": "u2", "Name": "orders_it_api_1", "State": "running"},
    ]

    services = parser.parse_service_records(json.dumps(records))

    assert sorted(services) == ["it", "web"]
    assert services["web"].container_name == "webstack-orderit-test_create-070809-web-1"
    assert services["it"].container_name == "orders_it_api_1"


@pytest.mark.parametrize("output", [None, "", "   \n"])
def test_parse_service_records_empty_output(output):
    assert parser.parse_service_records(output) == {}


def test_split_ids():
    assert parser.split_ids("abc\n def \n\n") == ["abc", "def"]
    assert parser.split_ids("") == []
