"""Health endpoint router."""

from fastapi import APIRouter, Depends

from harbourmaster import __version__
from harbourmaster.models import DockerHealth, EndpointSource, HealthResponse
from harbourmaster.state import get_control_plane
from harbourmaster.utils import now_ms

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(control_plane=Depends(get_control_plane)) -> HealthResponse:
    """Report whether Docker answers a ping and where it was found.

    Never reconnects: a daemon that went away reports "degraded" until the
    process is restarted.
    """
    connected = await control_plane.health_check()
    endpoint = control_plane.get_resolved_endpoint()

    return HealthResponse(
        status="healthy" if connected else "degraded",
        timestamp=now_ms(),
        docker=DockerHealth(
            connected=connected,
            socket=endpoint.display if endpoint else "unknown",
            source=endpoint.source if endpoint else EndpointSource.NONE,
        ),
        version=__version__,
    )
