"""Small helpers shared by the HTTP routers."""

import time
from typing import Optional

from fastapi.requests import HTTPConnection


def now_ms() -> int:
    """Current time in milliseconds since epoch."""
    return int(time.time() * 1000)


def get_request_id(connection: HTTPConnection) -> Optional[str]:
    """Return the request ID assigned by the request-id middleware."""
    return getattr(connection.state, "request_id", None)
