"""Shared fakes for harbourmaster tests."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from harbourmaster.errors import ContainerNotFound, RuntimeUnavailable
from harbourmaster.models import Endpoint, EndpointSource


def make_record(
    container_id: str = "a1",
    state: str = "running",
    ports: Optional[list[dict]] = None,
    names: Optional[list[str]] = None,
) -> dict:
    """Raw record as returned by the container listing endpoint."""
    return {
        "Id": container_id,
        "Names": names if names is not None else [f"/{container_id}-name"],
        "Image": "nginx:latest",
        "ImageID": "sha256:abc",
        "State": state,
        "Status": "Up 5 minutes" if state == "running" else "Exited (0) 1 minute ago",
        "Ports": ports or [],
    }


def make_inspect(container_id: str = "a1", running: bool = True, port_map: Optional[dict] = None) -> dict:
    """Raw record as returned by the inspect endpoint."""
    return {
        "Id": container_id,
        "Name": f"/{container_id}-name",
        "Image": "sha256:abc",
        "Config": {"Image": "nginx:latest"},
        "State": {"Status": "running" if running else "exited", "Running": running},
        "NetworkSettings": {"Ports": port_map or {}},
    }


class FakeEventStream:
    """Event stream fed from a queue; items may be bytes, None (end) or an exception."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def feed(self, item: Any) -> None:
        self.queue.put_nowait(item)

    async def read(self) -> Optional[bytes]:
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """In-memory stand-in for RuntimeConnection that records every call."""

    def __init__(self) -> None:
        self.records: list[dict] = []
        self.containers: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.streams: list[FakeEventStream] = []
        self.healthy = True
        self.endpoint = Endpoint(
            address="unix:///var/run/docker.sock",
            source=EndpointSource.WELL_KNOWN,
            socket_path="/var/run/docker.sock",
        )
        self.closed = False
        # Optional hook awaited inside mutating calls
        self.gate: Optional[asyncio.Event] = None

    def add(self, container_id: str, running: bool) -> None:
        self.containers[container_id] = make_inspect(container_id, running=running)

    @property
    def mutating_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("start", "stop", "restart", "remove")]

    async def connect(self) -> "FakeConnection":
        return self

    async def health_check(self) -> bool:
        return self.healthy

    def get_resolved_endpoint(self) -> Endpoint:
        return self.endpoint

    async def list_containers(self, all: bool = True) -> list[dict]:
        self.calls.append(("list",))
        return list(self.records)

    async def inspect_container(self, container_id: str) -> dict:
        self.calls.append(("inspect", container_id))
        if container_id not in self.containers:
            raise ContainerNotFound()
        return self.containers[container_id]

    async def _mutate(self, name: str, container_id: str) -> None:
        self.calls.append((name, container_id))
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append((f"{name}-done", container_id))
        if container_id not in self.containers:
            raise ContainerNotFound()

    async def start_container(self, container_id: str) -> None:
        await self._mutate("start", container_id)
        self.containers[container_id]["State"]["Running"] = True

    async def stop_container(self, container_id: str, timeout: int = 10) -> None:
        await self._mutate("stop", container_id)
        self.containers[container_id]["State"]["Running"] = False

    async def restart_container(self, container_id: str, timeout: int = 10) -> None:
        await self._mutate("restart", container_id)

    async def remove_container(self, container_id: str, volumes: bool = True) -> None:
        await self._mutate("remove", container_id)
        del self.containers[container_id]

    async def open_event_stream(self) -> FakeEventStream:
        if not self.healthy:
            raise RuntimeUnavailable()
        stream = FakeEventStream()
        self.streams.append(stream)
        return stream

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()
