"""Projection of raw Docker records into Container models.

All functions here are pure: they take the dictionaries returned by the
Docker API and never perform I/O.
"""

import hmac
import logging
from typing import Any, Optional

from harbourmaster.models import CONTAINER_STATES, Container, PortBinding

logger = logging.getLogger(__name__)

DEFAULT_HOST_IP = "0.0.0.0"


def strip_name(name: str) -> str:
    """Remove the leading slash Docker puts in front of container names."""
    return name.lstrip("/")


def normalize_state(value: Optional[str]) -> str:
    """Lower-case a Docker state, falling back to 'exited' for unknown values."""
    state = (value or "").strip().lower()
    if state not in CONTAINER_STATES:
        if state:
            logger.debug(f"Unknown container state '{value}', reporting as exited")
        return "exited"
    return state


def _port_type(value: Optional[str]) -> str:
    return "udp" if (value or "").lower() == "udp" else "tcp"


def _to_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def project_ports(raw_ports: Optional[list[dict]]) -> list[PortBinding]:
    """Convert the flat port list of a container listing record."""
    ports = []
    for raw in raw_ports or []:
        private = _to_int(raw.get("PrivatePort"))
        if private is None:
            continue
        ports.append(
            PortBinding(
                private=private,
                public=_to_int(raw.get("PublicPort")),
                type=_port_type(raw.get("Type")),
                host=raw.get("IP") or None,
            )
        )
    return ports


def project_port_map(port_map: Optional[dict[str, Optional[list[dict]]]]) -> list[PortBinding]:
    """Flatten NetworkSettings.Ports from an inspect record.

    Docker keys the map by "<port>/<proto>" and gives each key zero, one or
    several host bindings, or null for an exposed but unpublished port.
    Unpublished ports are kept with a null public port.
    """
    ports = []
    for container_port, bindings in (port_map or {}).items():
        number, _, proto = container_port.partition("/")
        private = _to_int(number)
        if private is None:
            continue
        port_type = _port_type(proto)

        if not bindings:
            ports.append(PortBinding(private=private, public=None, type=port_type, host=None))
            continue

        for binding in bindings:
            ports.append(
                PortBinding(
                    private=private,
                    public=_to_int(binding.get("HostPort")),
                    type=port_type,
                    host=binding.get("HostIp") or DEFAULT_HOST_IP,
                )
            )
    return ports


def digests_differ(local_digest: Optional[str], remote_digest: Optional[str]) -> bool:
    """Compare two image digests in constant time.

    Returns False when either digest is unknown.
    """
    if not local_digest or not remote_digest:
        return False
    return not hmac.compare_digest(local_digest.encode(), remote_digest.encode())


def detect_update(raw_record: dict) -> bool:
    """Decide whether a newer image exists for a container.

    Registry lookups are not implemented, so no remote digest is ever
    known and this always reports False.
    """
    local_digest = raw_record.get("ImageID")
    remote_digest = None
    return digests_differ(local_digest, remote_digest)


def project(raw_record: dict) -> Container:
    """Project one record from the container listing endpoint."""
    return Container(
        id=raw_record["Id"],
        names=[strip_name(name) for name in raw_record.get("Names") or []],
        image=raw_record.get("Image") or "",
        state=normalize_state(raw_record.get("State")),
        status=raw_record.get("Status") or "",
        ports=project_ports(raw_record.get("Ports")),
        update_available=detect_update(raw_record),
    )


def project_detailed(raw_inspect: dict) -> Container:
    """Project a container inspect record."""
    state = raw_inspect.get("State") or {}
    config = raw_inspect.get("Config") or {}
    network = raw_inspect.get("NetworkSettings") or {}
    name = raw_inspect.get("Name")

    return Container(
        id=raw_inspect["Id"],
        names=[strip_name(name)] if name else [],
        image=config.get("Image") or raw_inspect.get("Image") or "",
        state=normalize_state(state.get("Status")),
        status=state.get("Status") or "",
        ports=project_port_map(network.get("Ports")),
        update_available=detect_update({"ImageID": raw_inspect.get("Image")}),
    )
