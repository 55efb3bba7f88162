"""Fan-out of the Docker event feed to in-process subscribers.

One background task owns the single upstream event stream. Each parsed
event is handed synchronously to every registered callback, and
container-scoped events invalidate the container list cache.

Upstream failures are not retried here. They are reported once to every
subscriber's error callback; reconnecting is up to the consumer (the
SSE/WebSocket transports tell their clients when to come back).
"""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from pydantic import ValidationError

from harbourmaster.connection import EventStream, RuntimeConnection
from harbourmaster.errors import HarbourmasterError, MalformedEvent, RuntimeUnavailable
from harbourmaster.models import RuntimeEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[RuntimeEvent], None]
ErrorCallback = Callable[[HarbourmasterError], None]


def parse_event(payload: Union[bytes, str]) -> RuntimeEvent:
    """Parse one JSON event from the Docker event feed.

    Raises:
        MalformedEvent: If the payload is not a JSON object with a type.
    """
    try:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        data = json.loads(payload)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedEvent(f"Event is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedEvent("Event is not a JSON object")

    kind = data.get("Type") or data.get("type")
    if not isinstance(kind, str) or not kind:
        raise MalformedEvent("Event has no type")

    actor = data.get("Actor") or {}
    if not isinstance(actor, dict):
        raise MalformedEvent("Event actor is not an object")

    try:
        return RuntimeEvent(
            kind=kind,
            action=data.get("Action") or data.get("status") or "",
            actor_id=actor.get("ID") or data.get("id"),
            attributes=actor.get("Attributes") or {},
            time=data.get("timeNano") or data.get("time"),
            raw=data,
        )
    except ValidationError as e:
        raise MalformedEvent(f"Event has unexpected fields: {e.error_count()} errors") from e


@dataclass
class _Subscriber:
    callback: EventCallback
    on_error: Optional[ErrorCallback] = None


class EventRelay:
    """Single upstream Docker event stream, fanned out to many listeners."""

    def __init__(
        self,
        connection: RuntimeConnection,
        on_container_event: Optional[Callable[[], None]] = None,
    ):
        """Initialize relay.

        Args:
            connection: Runtime connection providing the event stream.
            on_container_event: Called for every container-scoped event,
                typically ListCache.invalidate.
        """
        self._connection = connection
        self._on_container_event = on_container_event
        self._subscribers: dict[int, _Subscriber] = {}
        self._ids = itertools.count(1)
        self._task: Optional[asyncio.Task] = None
        self._stream: Optional[EventStream] = None
        self._ready = asyncio.Event()
        self._error: Optional[HarbourmasterError] = None
        self._closing = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_error(self) -> Optional[HarbourmasterError]:
        return self._error

    def subscribe(
        self, callback: EventCallback, on_error: Optional[ErrorCallback] = None
    ) -> Callable[[], None]:
        """Register a listener and return its unsubscribe function.

        Opens the upstream stream if it is not already running. Safe to call
        from inside a callback.
        """
        token = next(self._ids)
        self._subscribers[token] = _Subscriber(callback, on_error)
        logger.debug(f"Event subscriber {token} added ({self.subscriber_count} active)")

        try:
            self._ensure_running()
        except RuntimeError:
            # No running event loop; start() will open the stream later
            pass

        def unsubscribe() -> None:
            if self._subscribers.pop(token, None) is not None:
                logger.debug(f"Event subscriber {token} removed ({self.subscriber_count} active)")

        return unsubscribe

    async def start(self) -> None:
        """Open the upstream stream and wait until it is established.

        Raises:
            HarbourmasterError: If the stream could not be opened.
        """
        self._ensure_running()
        await self._ready.wait()
        if not self.running and self._error is not None:
            raise self._error

    def _ensure_running(self) -> asyncio.Task:
        if not self.running:
            loop = asyncio.get_running_loop()
            self._closing = False
            self._error = None
            self._ready = asyncio.Event()
            self._task = loop.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        try:
            stream = await self._connection.open_event_stream()
        except HarbourmasterError as e:
            self._fail(e)
            return
        except Exception:
            logger.exception("Unexpected error opening Docker event stream")
            self._fail(RuntimeUnavailable())
            return

        self._stream = stream
        self._ready.set()
        logger.info("Docker event stream opened")

        try:
            await self._pump(stream)
        except HarbourmasterError as e:
            if not self._closing:
                self._fail(e)
        finally:
            stream.close()
            self._stream = None

    async def _pump(self, stream: EventStream) -> None:
        buffer = b""
        while True:
            chunk = await stream.read()
            if chunk is None:
                if self._closing:
                    return
                raise RuntimeUnavailable("Docker event stream ended")
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                self._handle_line(line)

    def _handle_line(self, line: bytes) -> None:
        line = line.strip()
        if not line:
            return
        try:
            event = parse_event(line)
        except MalformedEvent as e:
            logger.warning(f"Skipping malformed Docker event: {e.message}")
            return
        self.dispatch(event)

    def dispatch(self, event: RuntimeEvent) -> None:
        """Deliver one event to the cache hook and every current subscriber."""
        if event.is_container_event and self._on_container_event is not None:
            self._on_container_event()

        # Snapshot so callbacks may subscribe or unsubscribe while we iterate
        for token, subscriber in list(self._subscribers.items()):
            if token not in self._subscribers:
                continue
            try:
                subscriber.callback(event)
            except Exception:
                logger.exception(f"Event subscriber {token} failed")

    def _fail(self, error: HarbourmasterError) -> None:
        logger.error(f"Docker event stream failed: {error.message}")
        self._error = error
        self._ready.set()
        # Events may have been missed
        if self._on_container_event is not None:
            self._on_container_event()

        for token, subscriber in list(self._subscribers.items()):
            if subscriber.on_error is None:
                continue
            try:
                subscriber.on_error(error)
            except Exception:
                logger.exception(f"Event subscriber {token} error handler failed")

    async def close(self) -> None:
        """Stop the upstream stream without reporting an error to listeners."""
        self._closing = True
        if self._stream is not None:
            self._stream.close()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("Docker event stream closed")
