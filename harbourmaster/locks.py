"""Per-container serialization of lifecycle operations."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceLockTable:
    """Maps a container identifier to the future of its latest pending operation.

    Operations on the same identifier are chained: each caller registers
    its own future as the new tail and waits for the previous tail to
    settle before running. Callers are therefore served in the order they
    called with_lock() on the normal path. This is chaining, not a fair
    queue: no ordering is promised under unusual wake-up scheduling.

    Operations on different identifiers run independently.
    """

    def __init__(self):
        self._entries: dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, key: str) -> bool:
        return key in self._entries

    async def with_lock(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation once every earlier operation on key has settled.

        The entry for key is removed before the result or error is returned,
        unless a later caller has already chained onto it. The operation runs
        as its own task: if the caller is cancelled while it is running, the
        entry stays in place until the operation itself settles.

        Args:
            key: Container identifier.
            operation: Zero-argument coroutine function to run.

        Returns:
            Whatever operation returns.
        """
        loop = asyncio.get_running_loop()
        previous: Optional[asyncio.Future] = self._entries.get(key)
        settled = loop.create_future()
        self._entries[key] = settled

        if previous is not None:
            logger.debug(f"Waiting for pending operation on '{key}'")
            try:
                await asyncio.shield(previous)
            except asyncio.CancelledError:
                self._abandon(key, settled, previous)
                raise

        def release(task: asyncio.Task) -> None:
            if not task.cancelled() and task.exception() is not None:
                logger.debug(f"Operation on '{key}' failed: {task.exception()}")
            if self._entries.get(key) is settled:
                del self._entries[key]
            settled.set_result(None)

        task = loop.create_task(operation())
        task.add_done_callback(release)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                logger.warning(f"Caller cancelled, operation on '{key}' keeps the lock until it settles")
            raise

    def _abandon(self, key: str, settled: asyncio.Future, previous: asyncio.Future) -> None:
        """Drop a caller cancelled while waiting without breaking the chain."""
        if previous.done():
            if self._entries.get(key) is settled:
                del self._entries[key]
            settled.set_result(None)
            return
        # Hand the tail back to the operation still running
        if self._entries.get(key) is settled:
            self._entries[key] = previous
        previous.add_done_callback(lambda _: settled.set_result(None))
