"""Container control plane: the operations exposed to the HTTP layer."""

import logging
from typing import Callable, Optional

from harbourmaster.cache import ListCache
from harbourmaster.connection import RuntimeConnection
from harbourmaster.errors import ContainerNotFound, PreconditionFailed
from harbourmaster.events import ErrorCallback, EventCallback, EventRelay
from harbourmaster.locks import ResourceLockTable
from harbourmaster.models import ActionOutcome, Container, Endpoint
from harbourmaster.projector import project, project_detailed
from harbourmaster.validation import ensure_valid_identifier

logger = logging.getLogger(__name__)


class ContainerControlPlane:
    """Mediates every container operation between the API and Docker.

    Owns the lock table, the list cache and the event relay. Build one per
    process and share it; nothing here is a module-level singleton.

    Lifecycle operations return an ActionOutcome: NOT_FOUND is reported as
    a result, never raised. Deleting a running container raises
    PreconditionFailed. Identifiers are validated before any lock is taken
    or Docker is contacted.
    """

    def __init__(
        self,
        connection: RuntimeConnection,
        locks: Optional[ResourceLockTable] = None,
        cache_ttl: float = 1.0,
        stop_timeout: int = 10,
        remove_volumes: bool = True,
    ):
        self.connection = connection
        self.locks = locks or ResourceLockTable()
        self.cache = ListCache(self._load_containers, ttl=cache_ttl)
        self.relay = EventRelay(connection, on_container_event=self.cache.invalidate)
        self.stop_timeout = stop_timeout
        self.remove_volumes = remove_volumes

    async def start(self) -> None:
        """Connect to Docker and open the event feed."""
        await self.connection.connect()
        await self.relay.start()

    async def close(self) -> None:
        await self.relay.close()
        self.connection.close()

    async def health_check(self) -> bool:
        return await self.connection.health_check()

    def get_resolved_endpoint(self) -> Optional[Endpoint]:
        return self.connection.get_resolved_endpoint()

    async def _load_containers(self) -> list[Container]:
        records = await self.connection.list_containers(all=True)
        return [project(record) for record in records]

    async def list_containers(self) -> list[Container]:
        """List all containers, served from the short-lived cache when fresh."""
        return await self.cache.get()

    async def inspect(self, container_id: str) -> Optional[Container]:
        """Get a fresh detailed view of one container, or None if it does not exist."""
        ensure_valid_identifier(container_id)
        try:
            info = await self.connection.inspect_container(container_id)
        except ContainerNotFound:
            return None
        return project_detailed(info)

    async def validate_exists(self, container_id: str) -> bool:
        """Check whether Docker knows a container."""
        ensure_valid_identifier(container_id)
        try:
            await self.connection.inspect_container(container_id)
        except ContainerNotFound:
            return False
        return True

    async def _is_running(self, container_id: str) -> bool:
        info = await self.connection.inspect_container(container_id)
        return bool((info.get("State") or {}).get("Running"))

    async def _locked(self, container_id: str, operation: Callable) -> ActionOutcome:
        ensure_valid_identifier(container_id)
        try:
            outcome = await self.locks.with_lock(container_id, operation)
        except ContainerNotFound:
            logger.info(f"Container '{container_id}' not found")
            return ActionOutcome.NOT_FOUND
        self.cache.invalidate()
        return outcome

    async def start_container(self, container_id: str) -> ActionOutcome:
        """Start a container; already running is a successful no-op."""

        async def operation() -> ActionOutcome:
            if await self._is_running(container_id):
                logger.debug(f"Container {container_id} already running")
                return ActionOutcome.UNCHANGED
            await self.connection.start_container(container_id)
            logger.info(f"Started container {container_id}")
            return ActionOutcome.APPLIED

        return await self._locked(container_id, operation)

    async def stop_container(self, container_id: str) -> ActionOutcome:
        """Stop a container gracefully; already stopped is a successful no-op."""

        async def operation() -> ActionOutcome:
            if not await self._is_running(container_id):
                logger.debug(f"Container {container_id} already stopped")
                return ActionOutcome.UNCHANGED
            await self.connection.stop_container(container_id, timeout=self.stop_timeout)
            logger.info(f"Stopped container {container_id}")
            return ActionOutcome.APPLIED

        return await self._locked(container_id, operation)

    async def restart_container(self, container_id: str) -> ActionOutcome:
        """Restart a container. Always issues the restart, whatever the state."""

        async def operation() -> ActionOutcome:
            await self.connection.restart_container(container_id, timeout=self.stop_timeout)
            logger.info(f"Restarted container {container_id}")
            return ActionOutcome.APPLIED

        return await self._locked(container_id, operation)

    async def delete_container(self, container_id: str) -> ActionOutcome:
        """Remove a stopped container.

        Raises:
            PreconditionFailed: If the container is running. It is not
                stopped implicitly.
        """

        async def operation() -> ActionOutcome:
            if await self._is_running(container_id):
                raise PreconditionFailed("Cannot delete running container")
            await self.connection.remove_container(container_id, volumes=self.remove_volumes)
            logger.info(f"Deleted container {container_id}")
            return ActionOutcome.APPLIED

        return await self._locked(container_id, operation)

    def subscribe_events(
        self, callback: EventCallback, on_error: Optional[ErrorCallback] = None
    ) -> Callable[[], None]:
        """Register an event listener; returns its unsubscribe function."""
        return self.relay.subscribe(callback, on_error)
