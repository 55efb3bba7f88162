"""Lifespan management for FastAPI app."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from harbourmaster.auth import StaticTokenVerifier
from harbourmaster.config import load_config
from harbourmaster.connection import RuntimeConnection
from harbourmaster.endpoint import EndpointResolver
from harbourmaster.errors import HarbourmasterError
from harbourmaster.models import SystemConfig
from harbourmaster.service import ContainerControlPlane
from harbourmaster.state import (
    get_config_or_none,
    get_control_plane_or_none,
    set_config,
    set_control_plane,
    set_verifier,
)

logger = logging.getLogger(__name__)


def build_control_plane(config: SystemConfig) -> ContainerControlPlane:
    """Wire resolver, connection and control plane from configuration."""
    runtime = config.runtime
    resolver = EndpointResolver(
        override=runtime.docker_host,
        socket_paths=runtime.socket_paths,
        context_timeout=runtime.context_timeout,
    )
    connection = RuntimeConnection(resolver, timeout=runtime.request_timeout)
    return ContainerControlPlane(
        connection,
        cache_ttl=runtime.cache_ttl,
        stop_timeout=runtime.stop_timeout,
        remove_volumes=runtime.remove_volumes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Loads configuration, connects to Docker and opens the event feed on
    startup. A missing or unreachable Docker daemon aborts startup.
    Cleans up on shutdown.
    """
    # Startup
    logger.info("Starting harbourmaster...")
    config = get_config_or_none()
    if config is None:
        config = load_config()
        set_config(config)

    set_verifier(StaticTokenVerifier(config.auth.tokens))

    control_plane = build_control_plane(config)
    try:
        await control_plane.start()
    except HarbourmasterError as e:
        logger.error(f"Failed to initialize harbourmaster: {e.message}")
        await control_plane.close()
        raise
    set_control_plane(control_plane)

    endpoint = control_plane.get_resolved_endpoint()
    logger.info(
        f"Harbourmaster initialized, Docker at {endpoint.display if endpoint else 'unknown'}"
    )

    yield

    # Shutdown
    logger.info("Shutting down harbourmaster...")
    control_plane = get_control_plane_or_none()
    if control_plane:
        await control_plane.close()
    set_control_plane(None)
    logger.info("Harbourmaster shut down")
