"""Docker endpoint discovery.

The resolver tries, in order:

1. An explicit address (``runtime.docker_host`` or ``DOCKER_HOST``), used verbatim.
2. Well-known local socket paths, first one that exists wins.
3. ``docker context inspect``, parsing the active context's endpoint URL.

Nothing is connected to here; the resolver only reads the filesystem and
runs one subprocess.
"""

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence
from urllib.parse import urlparse

from harbourmaster.errors import EndpointNotFound
from harbourmaster.models import Endpoint, EndpointSource

logger = logging.getLogger(__name__)

DEFAULT_TCP_PORT = 2375
CONTEXT_COMMAND = ["docker", "context", "inspect"]


def default_socket_paths(env: Optional[Mapping[str, str]] = None) -> list[str]:
    """Return the well-known Docker socket locations, most common first."""
    env = os.environ if env is None else env
    home = env.get("HOME") or str(Path.home())

    runtime_dir = env.get("XDG_RUNTIME_DIR")
    if not runtime_dir and hasattr(os, "getuid"):
        runtime_dir = f"/run/user/{os.getuid()}"

    paths = ["/var/run/docker.sock"]  # Linux standard
    if runtime_dir:
        paths.append(f"{runtime_dir}/docker.sock")  # Linux rootless
    paths.extend(
        [
            f"{home}/.docker/run/docker.sock",  # Docker Desktop macOS
            f"{home}/.colima/default/docker.sock",  # Colima default
            f"{home}/.colima/docker.sock",  # Colima custom
            f"{home}/.rd/docker.sock",  # Rancher Desktop
            f"{home}/.orbstack/run/docker.sock",  # OrbStack
        ]
    )
    return paths


def endpoint_from_url(url: str, source: EndpointSource) -> Endpoint:
    """Build an Endpoint from a Docker URL such as unix:///path or tcp://host:port.

    The address is kept verbatim; socket path or host/port are filled in
    when the scheme makes them known.
    """
    if url.startswith("unix://"):
        return Endpoint(address=url, source=source, socket_path=url[len("unix://"):])
    if url.startswith("/"):
        return Endpoint(address=f"unix://{url}", source=source, socket_path=url)

    parsed = urlparse(url if "://" in url else f"tcp://{url}")
    if parsed.scheme in ("tcp", "http", "https") and parsed.hostname:
        return Endpoint(
            address=url,
            source=source,
            host=parsed.hostname,
            port=parsed.port or DEFAULT_TCP_PORT,
        )
    # npipe://, ssh:// and friends are handed to the docker SDK untouched
    return Endpoint(address=url, source=source)


class EndpointResolver:
    """Discovers the Docker endpoint through an ordered strategy chain."""

    def __init__(
        self,
        override: Optional[str] = None,
        socket_paths: Optional[Sequence[str]] = None,
        env: Optional[Mapping[str, str]] = None,
        context_timeout: float = 5.0,
    ):
        """Initialize resolver.

        Args:
            override: Explicit Docker address. Falls back to DOCKER_HOST.
            socket_paths: Socket candidates. Defaults to default_socket_paths().
            env: Environment to read. Defaults to os.environ.
            context_timeout: Timeout in seconds for `docker context inspect`.
        """
        self.env = os.environ if env is None else env
        self.override = override or self.env.get("DOCKER_HOST") or None
        self.socket_paths = (
            list(socket_paths) if socket_paths is not None else default_socket_paths(self.env)
        )
        self.context_timeout = context_timeout

    def resolve(self) -> Endpoint:
        """Resolve the Docker endpoint.

        Returns:
            The first endpoint found by the strategy chain.

        Raises:
            EndpointNotFound: If no strategy produced an endpoint.
        """
        if self.override:
            logger.info(f"Using DOCKER_HOST: {self.override}")
            return endpoint_from_url(self.override, EndpointSource.EXPLICIT)

        for socket_path in self.socket_paths:
            if os.path.exists(socket_path):
                logger.info(f"Docker socket detected at: {socket_path}")
                return Endpoint(
                    address=f"unix://{socket_path}",
                    source=EndpointSource.WELL_KNOWN,
                    socket_path=socket_path,
                )

        url = self._context_endpoint()
        if url:
            logger.info(f"Docker endpoint from context: {url}")
            return endpoint_from_url(url, EndpointSource.CONTEXT)

        logger.error("No Docker endpoint found")
        raise EndpointNotFound()

    def _context_endpoint(self) -> Optional[str]:
        """Ask the docker CLI for the active context's endpoint URL."""
        try:
            output = subprocess.check_output(
                CONTEXT_COMMAND,
                stderr=subprocess.DEVNULL,
                text=True,
                timeout=self.context_timeout,
            )
        except FileNotFoundError:
            logger.debug("docker CLI not installed, skipping context lookup")
            return None
        except subprocess.CalledProcessError as e:
            logger.debug(f"docker context inspect failed: {e}")
            return None
        except subprocess.TimeoutExpired:
            logger.debug("Timeout running docker context inspect")
            return None
        except OSError as e:
            # Not executable, noexec mount, wrong binary format
            logger.debug(f"Could not run docker CLI: {e}")
            return None

        try:
            contexts = json.loads(output)
            host = contexts[0]["Endpoints"]["docker"]["Host"]
        except (ValueError, LookupError, TypeError) as e:
            logger.debug(f"Could not parse docker context: {e}")
            return None

        return host if isinstance(host, str) and host else None
