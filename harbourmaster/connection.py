"""Async connection to the Docker daemon.

Wraps the synchronous docker SDK; every blocking call runs in a worker
thread through ``asyncio.to_thread``. This module is the only place that
sees docker/requests exceptions: they are translated into the
harbourmaster error taxonomy before leaving it.
"""

import asyncio
import logging
import os
from typing import Any, Callable, Iterator, Optional

import docker
from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import RequestException

from harbourmaster.endpoint import EndpointResolver
from harbourmaster.errors import (
    ContainerNotFound,
    HarbourmasterError,
    PreconditionFailed,
    RuntimePermissionDenied,
    RuntimeUnavailable,
)
from harbourmaster.models import Endpoint, EndpointSource

logger = logging.getLogger(__name__)

RUNTIME_ERRORS = (DockerException, RequestException, OSError)


def create_docker_client(endpoint: Endpoint, timeout: float) -> docker.DockerClient:
    """Create a docker SDK client for a resolved endpoint and verify it with a ping."""
    if endpoint.source == EndpointSource.EXPLICIT:
        # from_env also honours DOCKER_TLS_VERIFY / DOCKER_CERT_PATH
        environment = dict(os.environ)
        environment["DOCKER_HOST"] = endpoint.address
        client = docker.DockerClient.from_env(timeout=timeout, environment=environment)
    else:
        client = docker.DockerClient(base_url=endpoint.address, timeout=timeout)
    try:
        client.ping()
    except Exception:
        client.close()
        raise
    return client


def normalize_error(error: Exception) -> HarbourmasterError:
    """Map a docker/requests/OS error onto the harbourmaster taxonomy."""
    if isinstance(error, HarbourmasterError):
        return error
    if isinstance(error, NotFound):
        return ContainerNotFound()
    if isinstance(error, APIError):
        status_code = error.status_code
        if status_code == 409:
            return PreconditionFailed("Container state conflict")
        if status_code in (401, 403):
            return RuntimePermissionDenied()
        return RuntimeUnavailable("Docker request failed. Check logs for details.")
    if isinstance(error, PermissionError) or "permission denied" in str(error).lower():
        return RuntimePermissionDenied()
    return RuntimeUnavailable()


class EventStream:
    """Async reader over the SDK's blocking event stream."""

    def __init__(self, stream: Iterator[bytes]):
        self._stream = stream
        self.closed = False

    async def read(self) -> Optional[bytes]:
        """Read the next raw chunk.

        Returns:
            Raw bytes, or None once the daemon ends the stream.

        Raises:
            RuntimeUnavailable: If the underlying connection fails.
        """
        try:
            return await asyncio.to_thread(next, self._stream, None)
        except Exception as e:
            if self.closed:
                return None
            logger.error(f"Docker event stream failed: {e}")
            raise normalize_error(e) from e

    def close(self) -> None:
        """Close the stream, unblocking any pending read."""
        self.closed = True
        close = getattr(self._stream, "close", None)
        if close is not None:
            try:
                close()
            except Exception as e:
                logger.debug(f"Error closing Docker event stream: {e}")


class RuntimeConnection:
    """Single, lazily established connection to the Docker daemon.

    The first call to connect() resolves the endpoint and creates the SDK
    client; concurrent callers share that one attempt. A successful client
    is kept for the life of the process and never re-resolved.
    """

    def __init__(
        self,
        resolver: EndpointResolver,
        timeout: float = 30.0,
        client_factory: Callable[[Endpoint, float], Any] = create_docker_client,
    ):
        """Initialize connection.

        Args:
            resolver: Endpoint resolver used on the first connect().
            timeout: Timeout in seconds for every Docker API call.
            client_factory: Builds the SDK client for an endpoint.
        """
        self.resolver = resolver
        self.timeout = timeout
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._endpoint: Optional[Endpoint] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def get_resolved_endpoint(self) -> Optional[Endpoint]:
        """Return the endpoint found by the resolver, or None before resolution."""
        return self._endpoint

    async def connect(self) -> Any:
        """Return the Docker client, establishing it on first use.

        Raises:
            EndpointNotFound: If no Docker endpoint can be found.
            RuntimeUnavailable: If the endpoint exists but Docker does not answer.
        """
        if self._client is not None:
            return self._client
        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_task(self._perform_connection())
            self._pending.add_done_callback(self._clear_pending)
        return await asyncio.shield(self._pending)

    def _clear_pending(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None

    async def _perform_connection(self) -> Any:
        try:
            endpoint = await asyncio.to_thread(self.resolver.resolve)
        except RUNTIME_ERRORS as e:
            logger.error(f"Failed to resolve Docker endpoint: {e}")
            raise normalize_error(e) from e
        self._endpoint = endpoint
        try:
            client = await asyncio.to_thread(self._client_factory, endpoint, self.timeout)
        except RUNTIME_ERRORS as e:
            logger.error(f"Failed to connect to Docker at {endpoint.display}: {e}")
            raise normalize_error(e) from e
        logger.info(f"Connected to Docker at {endpoint.display} ({endpoint.source.value})")
        self._client = client
        return client

    async def health_check(self) -> bool:
        """Ping the existing client. Never resolves or connects."""
        if self._client is None:
            return False
        try:
            await asyncio.to_thread(self._client.ping)
            return True
        except RUNTIME_ERRORS as e:
            logger.warning(f"Docker health check failed: {e}")
            return False

    async def _run(self, action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call in a thread and normalize its errors."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except NotFound:
            logger.warning(f"Failed to {action}: not found")
            raise ContainerNotFound()
        except RUNTIME_ERRORS as e:
            logger.error(f"Failed to {action}: {e}")
            raise normalize_error(e) from e

    async def list_containers(self, all: bool = True) -> list[dict]:
        """List raw container records, including stopped ones when all=True."""
        client = await self.connect()
        return await self._run("list containers", client.api.containers, all=all)

    async def inspect_container(self, container_id: str) -> dict:
        """Return the raw inspect record of a container.

        Raises:
            ContainerNotFound: If Docker does not know the container.
        """
        client = await self.connect()
        return await self._run(
            f"inspect container '{container_id}'", client.api.inspect_container, container_id
        )

    async def start_container(self, container_id: str) -> None:
        client = await self.connect()
        await self._run(f"start container '{container_id}'", client.api.start, container_id)

    async def stop_container(self, container_id: str, timeout: int = 10) -> None:
        client = await self.connect()
        await self._run(
            f"stop container '{container_id}'", client.api.stop, container_id, timeout=timeout
        )

    async def restart_container(self, container_id: str, timeout: int = 10) -> None:
        client = await self.connect()
        await self._run(
            f"restart container '{container_id}'", client.api.restart, container_id, timeout=timeout
        )

    async def remove_container(self, container_id: str, volumes: bool = True) -> None:
        client = await self.connect()
        await self._run(
            f"remove container '{container_id}'", client.api.remove_container, container_id, v=volumes
        )

    async def open_event_stream(self) -> EventStream:
        """Open the daemon's event feed as raw, undecoded chunks."""
        client = await self.connect()
        stream = await self._run("open event stream", client.api.events, decode=False)
        return EventStream(stream)

    def close(self) -> None:
        """Close the Docker client connection."""
        if self._client is not None:
            self._client.close()
            self._client = None
