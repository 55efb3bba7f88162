"""Push endpoints for the Docker event feed (Server-Sent Events and WebSocket).

Both transports subscribe to the control plane's event relay, forward
every event, send an idle heartbeat, and on an upstream failure send one
error message and end the stream. Clients reconnect after retry_delay;
their new subscription reopens the upstream feed.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from harbourmaster.auth import ACCESS_TOKEN_PARAM, extract_credential, require_principal
from harbourmaster.errors import ErrorCode, HarbourmasterError
from harbourmaster.models import EventSettings, RuntimeEvent
from harbourmaster.state import (
    get_config,
    get_config_or_none,
    get_control_plane,
    get_control_plane_or_none,
    get_verifier_or_none,
)
from harbourmaster.utils import get_request_id, now_ms

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

# WebSocket close code for policy violations (failed authentication)
WS_POLICY_VIOLATION = 1008


class EventSubscription:
    """Buffers relay callbacks into a queue a transport loop can await."""

    def __init__(self, control_plane: Any, queue_size: int):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self._unsubscribe = control_plane.subscribe_events(self._on_event, self._on_error)

    def _on_event(self, event: RuntimeEvent) -> None:
        try:
            self.queue.put_nowait(("event", event))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Event subscriber is too slow, dropped {self.dropped} events")

    def _on_error(self, error: HarbourmasterError) -> None:
        # The error must reach the client even if the buffer is full
        while self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(("error", error))

    async def next(self, timeout: float) -> Optional[tuple[str, Any]]:
        """Wait for the next item, or return None after timeout seconds."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self._unsubscribe()


def event_message(event: RuntimeEvent) -> dict:
    return {"type": "docker-event", "event": event.raw, "timestamp": now_ms()}


def error_message(error: HarbourmasterError, settings: EventSettings) -> dict:
    return {
        "type": "error",
        "code": error.code.value,
        "error": error.message,
        "retry_after": settings.retry_delay,
        "timestamp": now_ms(),
    }


def format_sse(data: dict, event: Optional[str] = None) -> str:
    """Format one Server-Sent Events frame."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data)}")
    return "\n".join(lines) + "\n\n"


@router.get("/api/events", dependencies=[Depends(require_principal)])
async def stream_events(
    request: Request,
    control_plane=Depends(get_control_plane),
    config=Depends(get_config),
) -> StreamingResponse:
    """Stream Docker events as Server-Sent Events.

    Example:
        retry: 5000

        data: {"type": "docker-event", "event": {"Type": "container", ...}, "timestamp": ...}

        : heartbeat
    """
    settings = config.events
    subscription = EventSubscription(control_plane, settings.queue_size)
    request_id = get_request_id(request)
    logger.info(f"Event stream opened ({request_id})")

    async def event_generator():
        try:
            yield f"retry: {int(settings.retry_delay * 1000)}\n\n"
            while True:
                item = await subscription.next(settings.heartbeat_interval)
                if item is None:
                    yield ": heartbeat\n\n"
                    continue
                kind, payload = item
                if kind == "error":
                    yield format_sse(error_message(payload, settings), event="error")
                    break
                yield format_sse(event_message(payload))
        finally:
            subscription.close()
            logger.info(f"Event stream closed ({request_id})")

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",  # Disable nginx buffering
    }
    if request_id:
        headers["X-Request-ID"] = request_id
    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=headers)


async def _send_websocket_json(websocket: WebSocket, data: dict) -> bool:
    """Send a JSON message via WebSocket.

    Returns:
        True if message was sent successfully, False otherwise.
    """
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, ConnectionClosedOK, ConnectionClosedError, RuntimeError) as e:
        logger.debug(f"Failed to send message, WebSocket likely closed: {e}")
        return False


async def _send_websocket_error(websocket: WebSocket, message: str, code: ErrorCode) -> bool:
    return await _send_websocket_json(
        websocket, {"type": "error", "code": code.value, "error": message, "timestamp": now_ms()}
    )


async def _close_websocket_ignoring_error(websocket: WebSocket, code: int = 1000) -> None:
    """Close WebSocket connection, ignoring any errors.

    The connection may already be closed or in an invalid state.
    """
    try:
        await websocket.close(code=code)
    except (RuntimeError, ConnectionClosedOK, ConnectionClosedError):
        pass


@router.websocket("/ws/events")
async def websocket_events(websocket: WebSocket):
    """WebSocket endpoint streaming Docker events in real-time."""
    await websocket.accept()

    control_plane = get_control_plane_or_none()
    config = get_config_or_none()
    verifier = get_verifier_or_none()
    if control_plane is None or config is None or verifier is None:
        await _send_websocket_error(
            websocket, "Docker control plane not available", ErrorCode.DOCKER_UNAVAILABLE
        )
        await _close_websocket_ignoring_error(websocket)
        return

    credential = extract_credential(
        websocket.headers.get("authorization"), websocket.query_params.get(ACCESS_TOKEN_PARAM)
    )
    if not credential or verifier.verify(credential) is None:
        await _send_websocket_error(websocket, "Authentication required", ErrorCode.AUTHENTICATION_REQUIRED)
        await _close_websocket_ignoring_error(websocket, code=WS_POLICY_VIOLATION)
        return

    settings = config.events
    subscription = EventSubscription(control_plane, settings.queue_size)
    logger.info("WebSocket event stream established")

    try:
        while True:
            item = await subscription.next(settings.heartbeat_interval)
            if item is None:
                message = {"type": "heartbeat", "timestamp": now_ms()}
            else:
                kind, payload = item
                if kind == "error":
                    await _send_websocket_json(websocket, error_message(payload, settings))
                    break
                message = event_message(payload)

            if not await _send_websocket_json(websocket, message):
                logger.info("WebSocket event stream disconnected")
                break
    except WebSocketDisconnect:
        logger.info("WebSocket event stream disconnected")
    finally:
        subscription.close()
        await _close_websocket_ignoring_error(websocket)
