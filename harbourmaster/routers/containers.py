"""Container endpoints router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from harbourmaster.auth import require_principal
from harbourmaster.errors import ErrorCode
from harbourmaster.models import (
    ActionOutcome,
    ContainerActionResponse,
    ContainerDetailResponse,
    ContainerListResponse,
)
from harbourmaster.state import get_control_plane
from harbourmaster.utils import get_request_id, now_ms
from harbourmaster.validation import ensure_valid_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["containers"], dependencies=[Depends(require_principal)])

ACTION_MESSAGES = {
    "start": ("Container started successfully", "Container is already running"),
    "stop": ("Container stopped successfully", "Container is already stopped"),
    "restart": ("Container restarted successfully", "Container restarted successfully"),
    "delete": ("Container deleted successfully", "Container deleted successfully"),
}


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "Container not found", "code": ErrorCode.CONTAINER_NOT_FOUND.value},
    )


@router.get("/containers", response_model=ContainerListResponse)
async def list_containers(
    request: Request,
    control_plane=Depends(get_control_plane),
) -> ContainerListResponse:
    """Get list of all Docker containers, running and stopped."""
    containers = await control_plane.list_containers()
    return ContainerListResponse(
        data=containers, request_id=get_request_id(request), timestamp=now_ms()
    )


@router.get("/containers/{container_id}", response_model=ContainerDetailResponse)
async def get_container(
    container_id: str,
    request: Request,
    control_plane=Depends(get_control_plane),
) -> ContainerDetailResponse:
    """Get a fresh detailed view of a Docker container."""
    container = await control_plane.inspect(container_id)
    if container is None:
        raise _not_found()
    return ContainerDetailResponse(
        data=container, request_id=get_request_id(request), timestamp=now_ms()
    )


async def _control(request: Request, container_id: str, action: str, control_plane) -> ContainerActionResponse:
    """Run a lifecycle action after validating the identifier and probing existence."""
    ensure_valid_identifier(container_id)
    if not await control_plane.validate_exists(container_id):
        raise _not_found()

    outcome = await getattr(control_plane, f"{action}_container")(container_id)
    if outcome is ActionOutcome.NOT_FOUND:
        raise _not_found()

    applied, unchanged = ACTION_MESSAGES[action]
    return ContainerActionResponse(
        id=container_id,
        action=action,
        result=outcome.value,
        message=applied if outcome is ActionOutcome.APPLIED else unchanged,
        request_id=get_request_id(request),
        timestamp=now_ms(),
    )


@router.post("/containers/{container_id}/start", response_model=ContainerActionResponse)
async def start_container(
    container_id: str,
    request: Request,
    control_plane=Depends(get_control_plane),
) -> ContainerActionResponse:
    """Start a Docker container. Starting a running container is a no-op."""
    return await _control(request, container_id, "start", control_plane)


@router.post("/containers/{container_id}/stop", response_model=ContainerActionResponse)
async def stop_container(
    container_id: str,
    request: Request,
    control_plane=Depends(get_control_plane),
) -> ContainerActionResponse:
    """Stop a Docker container. Stopping a stopped container is a no-op."""
    return await _control(request, container_id, "stop", control_plane)


@router.post("/containers/{container_id}/restart", response_model=ContainerActionResponse)
async def restart_container(
    container_id: str,
    request: Request,
    control_plane=Depends(get_control_plane),
) -> ContainerActionResponse:
    """Restart a Docker container."""
    return await _control(request, container_id, "restart", control_plane)


@router.delete("/containers/{container_id}", response_model=ContainerActionResponse)
async def delete_container(
    container_id: str,
    request: Request,
    control_plane=Depends(get_control_plane),
) -> ContainerActionResponse:
    """Delete a stopped Docker container. Running containers are refused with 409."""
    return await _control(request, container_id, "delete", control_plane)
