"""Root endpoint router: a map of the harbourmaster API for clients."""

from fastapi import APIRouter

from harbourmaster import __version__
from harbourmaster.auth import ACCESS_TOKEN_PARAM
from harbourmaster.state import get_control_plane_or_none

router = APIRouter(tags=["root"])

ENDPOINTS = {
    "health": "/api/health",
    "containers": "/api/containers",
    "container": "/api/containers/{id}",
    "actions": [
        "POST /api/containers/{id}/start",
        "POST /api/containers/{id}/stop",
        "POST /api/containers/{id}/restart",
        "DELETE /api/containers/{id}",
    ],
    "events_sse": "/api/events",
    "events_websocket": "/ws/events",
}


@router.get("/", summary="API map")
async def root():
    """Describe where the container and event endpoints live and how to authenticate.

    Also reports the Docker endpoint this process resolved, or null before
    startup has connected.
    """
    control_plane = get_control_plane_or_none()
    endpoint = control_plane.get_resolved_endpoint() if control_plane else None

    return {
        "name": "harbourmaster",
        "version": __version__,
        "docker_endpoint": endpoint.display if endpoint else None,
        "auth": {
            "header": "Authorization: Bearer <token>",
            "query_parameter": ACCESS_TOKEN_PARAM,
        },
        "endpoints": ENDPOINTS,
        "docs": "/docs",
    }
