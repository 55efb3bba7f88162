"""Tests for the container control plane."""

import asyncio

import pytest

from harbourmaster.errors import InvalidIdentifier, PreconditionFailed
from harbourmaster.models import ActionOutcome
from harbourmaster.service import ContainerControlPlane
from tests.conftest import make_record


@pytest.fixture
def control_plane(connection):
    return ContainerControlPlane(connection, cache_ttl=60.0, stop_timeout=7)


class TestIdempotentLifecycle:
    @pytest.mark.asyncio
    async def test_start_running_container_is_unchanged(self, control_plane, connection):
        connection.add("web", running=True)

        outcome = await control_plane.start_container("web")

        assert outcome == ActionOutcome.UNCHANGED
        assert connection.mutating_calls == []

    @pytest.mark.asyncio
    async def test_start_stopped_container(self, control_plane, connection):
        connection.add("web", running=False)

        outcome = await control_plane.start_container("web")

        assert outcome == ActionOutcome.APPLIED
        assert connection.mutating_calls == [("start", "web")]

    @pytest.mark.asyncio
    async def test_stop_stopped_container_is_unchanged(self, control_plane, connection):
        connection.add("web", running=False)

        outcome = await control_plane.stop_container("web")

        assert outcome == ActionOutcome.UNCHANGED
        assert connection.mutating_calls == []

    @pytest.mark.asyncio
    async def test_stop_running_container(self, control_plane, connection):
        connection.add("web", running=True)

        assert await control_plane.stop_container("web") == ActionOutcome.APPLIED
        assert connection.mutating_calls == [("stop", "web")]

    @pytest.mark.asyncio
    async def test_restart_is_always_issued(self, control_plane, connection):
        connection.add("web", running=False)

        assert await control_plane.restart_container("web") == ActionOutcome.APPLIED
        assert connection.mutating_calls == [("restart", "web")]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_running_container_is_refused(self, control_plane, connection):
        connection.add("web", running=True)

        with pytest.raises(PreconditionFailed):
            await control_plane.delete_container("web")
        assert connection.mutating_calls == []
        assert "web" in connection.containers
        assert len(control_plane.locks) == 0

    @pytest.mark.asyncio
    async def test_delete_stopped_container(self, control_plane, connection):
        connection.add("web", running=False)

        assert await control_plane.delete_container("web") == ActionOutcome.APPLIED
        assert connection.mutating_calls == [("remove", "web")]
        assert "web" not in connection.containers


class TestNotFound:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["start", "stop", "restart", "delete"])
    async def test_missing_container_is_an_outcome(self, control_plane, action):
        operation = getattr(control_plane, f"{action}_container")

        assert await operation("ghost") == ActionOutcome.NOT_FOUND
        assert len(control_plane.locks) == 0

    @pytest.mark.asyncio
    async def test_inspect_missing_returns_none(self, control_plane):
        assert await control_plane.inspect("ghost") is None

    @pytest.mark.asyncio
    async def test_validate_exists(self, control_plane, connection):
        connection.add("web", running=True)

        assert await control_plane.validate_exists("web") is True
        assert await control_plane.validate_exists("ghost") is False

    @pytest.mark.asyncio
    async def test_inspect_projects_detail(self, control_plane, connection):
        connection.add("web", running=True)

        container = await control_plane.inspect("web")

        assert container.id == "web"
        assert container.state == "running"


class TestInvalidIdentifier:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["start", "stop", "restart", "delete"])
    async def test_rejected_before_runtime_call(self, control_plane, connection, action):
        operation = getattr(control_plane, f"{action}_container")

        with pytest.raises(InvalidIdentifier):
            await operation("../etc")
        assert connection.calls == []

    @pytest.mark.asyncio
    async def test_inspect_rejects_invalid_id(self, control_plane, connection):
        with pytest.raises(InvalidIdentifier):
            await control_plane.inspect("web;rm -rf")
        assert connection.calls == []


class TestSerialization:
    @pytest.mark.asyncio
    async def test_same_container_operations_do_not_interleave(self, control_plane, connection):
        connection.add("web", running=False)
        connection.gate = asyncio.Event()

        start = asyncio.create_task(control_plane.start_container("web"))
        await asyncio.sleep(0.01)
        stop = asyncio.create_task(control_plane.stop_container("web"))
        await asyncio.sleep(0.01)

        # The stop must not even inspect while the start is in flight
        assert connection.calls == [("inspect", "web"), ("start", "web")]

        connection.gate.set()
        results = await asyncio.gather(start, stop)

        assert results == [ActionOutcome.APPLIED, ActionOutcome.APPLIED]
        assert connection.calls == [
            ("inspect", "web"),
            ("start", "web"),
            ("start-done", "web"),
            ("inspect", "web"),
            ("stop", "web"),
            ("stop-done", "web"),
        ]

    @pytest.mark.asyncio
    async def test_cancelled_request_keeps_container_locked(self, control_plane, connection):
        connection.add("web", running=True)
        connection.gate = asyncio.Event()

        first = asyncio.create_task(control_plane.restart_container("web"))
        await asyncio.sleep(0.01)
        first.cancel()
        await asyncio.gather(first, return_exceptions=True)

        second = asyncio.create_task(control_plane.restart_container("web"))
        await asyncio.sleep(0.01)

        # The second restart waits for the first runtime call to settle
        assert connection.calls == [("restart", "web")]

        connection.gate.set()
        assert await second == ActionOutcome.APPLIED
        assert connection.calls == [
            ("restart", "web"),
            ("restart-done", "web"),
            ("restart", "web"),
            ("restart-done", "web"),
        ]
        assert len(control_plane.locks) == 0

    @pytest.mark.asyncio
    async def test_different_containers_proceed_concurrently(self, control_plane, connection):
        connection.add("web", running=False)
        connection.add("db", running=False)
        connection.gate = asyncio.Event()

        tasks = [
            asyncio.create_task(control_plane.start_container("web")),
            asyncio.create_task(control_plane.start_container("db")),
        ]
        await asyncio.sleep(0.01)

        assert ("start", "web") in connection.calls
        assert ("start", "db") in connection.calls

        connection.gate.set()
        await asyncio.gather(*tasks)


class TestListing:
    @pytest.mark.asyncio
    async def test_list_is_cached(self, control_plane, connection):
        connection.records = [make_record("web", names=["/web"])]

        first = await control_plane.list_containers()
        second = await control_plane.list_containers()

        assert second is first
        assert [container.names for container in first] == [["web"]]
        assert connection.calls.count(("list",)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("running", [True, False])
    async def test_mutation_invalidates_cache(self, control_plane, connection, running):
        connection.add("web", running=running)
        await control_plane.list_containers()

        await control_plane.start_container("web")

        assert not control_plane.cache.valid
        await control_plane.list_containers()
        assert connection.calls.count(("list",)) == 2

    @pytest.mark.asyncio
    async def test_container_event_invalidates_cache(self, control_plane, connection):
        await control_plane.start()
        await control_plane.list_containers()

        connection.streams[0].feed(b'{"Type": "container", "Action": "die", "Actor": {"ID": "web"}}\n')
        for _ in range(5):
            await asyncio.sleep(0)

        assert not control_plane.cache.valid
        await control_plane.close()
        assert connection.closed


class TestEvents:
    @pytest.mark.asyncio
    async def test_subscribe_events(self, control_plane, connection):
        await control_plane.start()
        received = []
        unsubscribe = control_plane.subscribe_events(received.append)

        connection.streams[0].feed(b'{"Type": "network", "Action": "connect"}\n')
        for _ in range(5):
            await asyncio.sleep(0)
        unsubscribe()

        assert [event.kind for event in received] == ["network"]
        assert control_plane.relay.subscriber_count == 0
        await control_plane.close()

    @pytest.mark.asyncio
    async def test_health_and_endpoint_delegate(self, control_plane, connection):
        connection.healthy = False

        assert await control_plane.health_check() is False
        assert control_plane.get_resolved_endpoint().socket_path == "/var/run/docker.sock"
