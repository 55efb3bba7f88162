"""Pydantic models for harbourmaster API, runtime data and configuration."""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

ContainerState = Literal["running", "exited", "paused", "restarting", "dead"]
CONTAINER_STATES: frozenset[str] = frozenset(
    ("running", "exited", "paused", "restarting", "dead")
)


# Runtime data models


class PortBinding(BaseModel):
    """A container port and, when published, its host-side binding."""

    private: int = Field(..., description="Container-side port", examples=[80])
    public: Optional[int] = Field(None, description="Host-side port, null when unpublished", examples=[8080])
    type: Literal["tcp", "udp"] = Field("tcp", description="Transport protocol")
    host: Optional[str] = Field(None, description="Bound host address", examples=["0.0.0.0"])


class Container(BaseModel):
    """Client-facing projection of a Docker container.

    The state is a snapshot taken when the runtime was last queried and
    is advisory only.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Container ID", examples=["abc123def456"])
    names: list[str] = Field(default_factory=list, description="Container names without leading slash")
    image: str = Field("", description="Image reference", examples=["nginx:latest"])
    state: ContainerState = Field(..., description="Lifecycle state", examples=["running"])
    status: str = Field("", description="Status text reported by Docker", examples=["Up 5 minutes"])
    ports: list[PortBinding] = Field(default_factory=list, description="Port bindings")
    update_available: Optional[bool] = Field(
        None,
        serialization_alias="updateAvailable",
        description="Whether a newer image is available",
    )


class EndpointSource(str, Enum):
    """How the Docker endpoint was discovered."""

    EXPLICIT = "explicit"
    WELL_KNOWN = "well_known"
    CONTEXT = "context"
    NONE = "none"


class Endpoint(BaseModel):
    """Resolved location of the Docker daemon's control interface."""

    address: str = Field(..., description="Docker base URL", examples=["unix:///var/run/docker.sock"])
    source: EndpointSource = Field(..., description="How the endpoint was discovered")
    socket_path: Optional[str] = Field(None, description="Filesystem socket path, if any")
    host: Optional[str] = Field(None, description="Network host, if any")
    port: Optional[int] = Field(None, description="Network port, if any")

    @property
    def display(self) -> str:
        """Short human-readable form used by health reports and the CLI."""
        if self.socket_path:
            return self.socket_path
        if self.host:
            return f"{self.host}:{self.port}" if self.port else self.host
        return self.address


class RuntimeEvent(BaseModel):
    """A parsed event from the Docker event feed."""

    kind: str = Field(..., description="Event type (container, image, network, ...)")
    action: str = Field("", description="Event action (start, die, destroy, ...)")
    actor_id: Optional[str] = Field(None, description="ID of the object the event is about")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Actor attributes")
    time: Optional[int] = Field(None, description="Event time in nanoseconds since epoch")
    raw: dict[str, Any] = Field(default_factory=dict, description="Original event payload")

    @property
    def is_container_event(self) -> bool:
        return self.kind == "container"


class ActionOutcome(str, Enum):
    """Result of a lifecycle operation."""

    APPLIED = "ok"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"


# Configuration models


class ServerSettings(BaseModel):
    """HTTP server binding."""

    host: str = Field("127.0.0.1", description="Interface to bind")
    port: int = Field(9190, description="Port to bind", ge=1, le=65535)
    allow_network: bool = Field(False, description="Allow binding to all interfaces")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:9190", "http://127.0.0.1:9190"],
        description="Origins allowed by CORS",
    )

    @property
    def is_network_bind(self) -> bool:
        return self.host in ("0.0.0.0", "::")

    @model_validator(mode="after")
    def _check_network_bind(self) -> "ServerSettings":
        if self.is_network_bind and not self.allow_network:
            raise ValueError(
                "Refusing to bind to all interfaces without allow_network. "
                "Set HARBOURMASTER_ALLOW_NETWORK=true to expose Docker control to the network."
            )
        return self


class RuntimeSettings(BaseModel):
    """Docker endpoint and call settings."""

    docker_host: Optional[str] = Field(None, description="Explicit Docker address, overrides DOCKER_HOST")
    socket_paths: Optional[list[str]] = Field(None, description="Replace the built-in socket search list")
    request_timeout: float = Field(30.0, description="Timeout for Docker API calls in seconds", gt=0)
    context_timeout: float = Field(5.0, description="Timeout for `docker context inspect` in seconds", gt=0)
    stop_timeout: int = Field(10, description="Graceful stop period in seconds", ge=0)
    cache_ttl: float = Field(1.0, description="Container list cache lifetime in seconds", ge=0)
    remove_volumes: bool = Field(True, description="Remove anonymous volumes on delete")


class EventSettings(BaseModel):
    """Push-event transport settings."""

    heartbeat_interval: float = Field(30.0, description="Idle heartbeat period in seconds", gt=0)
    retry_delay: float = Field(5.0, description="Client reconnect delay in seconds", gt=0)
    queue_size: int = Field(256, description="Per-subscriber event buffer", ge=1)


class AuthSettings(BaseModel):
    tokens: list[str] = Field(default_factory=list, description="Accepted API bearer tokens")


class SystemConfig(BaseModel):
    """Root configuration model."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    events: EventSettings = Field(default_factory=EventSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)


# API Request/Response Models


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Machine-readable error code", examples=["CONTAINER_NOT_FOUND"])
    request_id: Optional[str] = Field(None, description="Request ID for log correlation")
    timestamp: int = Field(..., description="Milliseconds since epoch")


class ContainerListResponse(BaseModel):
    """Response for GET /api/containers."""

    success: bool = True
    data: list[Container] = Field(..., description="List of containers")
    request_id: Optional[str] = None
    timestamp: int = Field(..., description="Milliseconds since epoch")


class ContainerDetailResponse(BaseModel):
    """Response for GET /api/containers/{id}."""

    success: bool = True
    data: Container
    request_id: Optional[str] = None
    timestamp: int = Field(..., description="Milliseconds since epoch")


class ContainerActionResponse(BaseModel):
    """Response for container lifecycle actions."""

    success: bool = True
    id: str = Field(..., description="Container ID or name")
    action: Literal["start", "stop", "restart", "delete"] = Field(..., description="Action that was performed")
    result: Literal["ok", "unchanged"] = Field("ok", description="Whether the runtime was changed")
    message: str = Field(..., description="Human-readable result", examples=["Container started successfully"])
    request_id: Optional[str] = None
    timestamp: int = Field(..., description="Milliseconds since epoch")


class DockerHealth(BaseModel):
    connected: bool = Field(..., description="Whether Docker answered a ping")
    socket: str = Field(..., description="Resolved endpoint or 'unknown'")
    source: EndpointSource = Field(EndpointSource.NONE, description="How the endpoint was discovered")


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: Literal["healthy", "degraded"]
    timestamp: int = Field(..., description="Milliseconds since epoch")
    docker: DockerHealth
    version: str
