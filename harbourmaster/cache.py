"""Short-lived cache for the container list."""

import logging
import time
from typing import Awaitable, Callable, Optional

from harbourmaster.models import Container

logger = logging.getLogger(__name__)


class ListCache:
    """Holds the last projected container list for a short time.

    get() serves the stored list only while it is marked valid and younger
    than ttl seconds. invalidate() clears the valid flag but keeps the data
    around for diagnostics.

    Two callers missing the cache at the same time may both run the loader.
    Listing is read-only and is not serialized like lifecycle operations.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[list[Container]]],
        ttl: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl = ttl
        self._clock = clock
        self._data: Optional[list[Container]] = None
        self._captured_at: float = 0.0
        self._valid = False
        self._generation = 0

    @property
    def valid(self) -> bool:
        return self._valid

    @property
    def snapshot(self) -> Optional[list[Container]]:
        """Last stored list, valid or not."""
        return self._data

    def _is_fresh(self) -> bool:
        return (
            self._valid
            and self._data is not None
            and self._clock() - self._captured_at < self.ttl
        )

    async def get(self) -> list[Container]:
        """Return the cached list if fresh, otherwise reload it."""
        if self._is_fresh():
            return self._data

        generation = self._generation
        data = await self._loader()
        self._data = data
        self._captured_at = self._clock()
        # An invalidation that arrived while loading wins over this result
        self._valid = generation == self._generation
        logger.debug(f"Container list refreshed ({len(data)} containers)")
        return data

    def invalidate(self) -> None:
        """Mark the cached list stale."""
        self._generation += 1
        self._valid = False
