"""Process state and FastAPI dependencies for harbourmaster.

The lifespan handler builds exactly one control plane per process and
registers it here; routes reach it through the dependency getters.
"""

from typing import TYPE_CHECKING, Optional

from fastapi import HTTPException, status

from harbourmaster.models import SystemConfig

if TYPE_CHECKING:
    from harbourmaster.auth import TokenVerifier
    from harbourmaster.service import ContainerControlPlane

# Global state (private)
_config: Optional[SystemConfig] = None
_control_plane: Optional["ContainerControlPlane"] = None
_verifier: Optional["TokenVerifier"] = None


# State setters (for lifespan.py)
def set_config(config: Optional[SystemConfig]):
    """Set the global configuration."""
    global _config
    _config = config


def set_control_plane(control_plane: Optional["ContainerControlPlane"]):
    """Set the global container control plane."""
    global _control_plane
    _control_plane = control_plane


def set_verifier(verifier: Optional["TokenVerifier"]):
    """Set the global token verifier."""
    global _verifier
    _verifier = verifier


# FastAPI Dependencies (for endpoints)
def get_config() -> SystemConfig:
    """Get loaded configuration.

    Raises:
        HTTPException: If configuration is not loaded.
    """
    if _config is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Configuration not loaded",
        )
    return _config


def get_control_plane() -> "ContainerControlPlane":
    """Get the container control plane.

    Raises:
        HTTPException: If the control plane is not initialized.
    """
    if _control_plane is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Docker control plane not available",
        )
    return _control_plane


def get_verifier() -> "TokenVerifier":
    """Get the token verifier.

    Raises:
        HTTPException: If authentication is not initialized.
    """
    if _verifier is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not initialized",
        )
    return _verifier


# WebSocket helpers (return None instead of raising HTTPException)
def get_config_or_none() -> Optional[SystemConfig]:
    return _config


def get_control_plane_or_none() -> Optional["ContainerControlPlane"]:
    return _control_plane


def get_verifier_or_none() -> Optional["TokenVerifier"]:
    return _verifier
