"""Tests for raw record projection."""

import pytest

from harbourmaster.projector import (
    detect_update,
    digests_differ,
    normalize_state,
    project,
    project_detailed,
    project_port_map,
    project_ports,
    strip_name,
)
from tests.conftest import make_inspect, make_record


class TestNames:
    def test_leading_slash_is_stripped(self):
        assert strip_name("/web-1") == "web-1"

    def test_name_without_slash_is_unchanged(self):
        assert strip_name("web-1") == "web-1"


class TestState:
    @pytest.mark.parametrize("raw", ["running", "Running", "PAUSED", " dead "])
    def test_known_states_are_lowercased(self, raw):
        assert normalize_state(raw) == raw.strip().lower()

    @pytest.mark.parametrize("raw", ["created", "removing", "", None])
    def test_unknown_states_report_exited(self, raw):
        assert normalize_state(raw) == "exited"


class TestProject:
    def test_listing_record(self):
        record = make_record(
            container_id="a1",
            names=["/web-1"],
            ports=[{"PrivatePort": 80, "Type": "tcp"}],
        )

        container = project(record)

        assert container.id == "a1"
        assert container.names == ["web-1"]
        assert container.image == "nginx:latest"
        assert container.state == "running"
        assert container.status == "Up 5 minutes"
        assert len(container.ports) == 1
        assert container.ports[0].private == 80
        assert container.ports[0].public is None
        assert container.ports[0].type == "tcp"
        assert container.update_available is False

    def test_serialized_field_names(self):
        payload = project(make_record()).model_dump(by_alias=True)

        assert payload["updateAvailable"] is False
        assert "update_available" not in payload

    def test_unknown_state_projects_as_exited(self):
        assert project(make_record(state="created")).state == "exited"

    def test_detailed_record(self):
        inspect = make_inspect(
            container_id="a1",
            running=True,
            port_map={"80/tcp": [{"HostIp": "127.0.0.1", "HostPort": "8080"}]},
        )

        container = project_detailed(inspect)

        assert container.names == ["a1-name"]
        assert container.image == "nginx:latest"
        assert container.state == "running"
        assert container.ports[0].public == 8080
        assert container.ports[0].host == "127.0.0.1"


class TestPorts:
    def test_listing_ports(self):
        ports = project_ports(
            [
                {"IP": "0.0.0.0", "PrivatePort": 53, "PublicPort": 5353, "Type": "udp"},
                {"PrivatePort": 9000, "Type": "sctp"},
                {"Type": "tcp"},
            ]
        )

        assert [(p.private, p.public, p.type, p.host) for p in ports] == [
            (53, 5353, "udp", "0.0.0.0"),
            (9000, None, "tcp", None),
        ]

    def test_port_map_flattens_multiple_bindings(self):
        ports = project_port_map(
            {
                "80/tcp": [
                    {"HostIp": "0.0.0.0", "HostPort": "8080"},
                    {"HostIp": "::", "HostPort": "8080"},
                ],
                "443/tcp": None,
                "53/udp": [{"HostIp": "", "HostPort": "53"}],
            }
        )

        assert [(p.private, p.public, p.type, p.host) for p in ports] == [
            (80, 8080, "tcp", "0.0.0.0"),
            (80, 8080, "tcp", "::"),
            (443, None, "tcp", None),
            (53, 53, "udp", "0.0.0.0"),
        ]

    def test_empty_port_map(self):
        assert project_port_map(None) == []
        assert project_port_map({}) == []


class TestUpdateDetection:
    def test_identical_digests(self):
        assert digests_differ("sha256:abc", "sha256:abc") is False

    def test_different_digests(self):
        assert digests_differ("sha256:abc", "sha256:def") is True

    @pytest.mark.parametrize("local,remote", [(None, "sha256:abc"), ("sha256:abc", None), ("", "")])
    def test_unknown_digest_is_no_update(self, local, remote):
        assert digests_differ(local, remote) is False

    def test_detect_update_without_registry(self):
        assert detect_update({"ImageID": "sha256:abc"}) is False
