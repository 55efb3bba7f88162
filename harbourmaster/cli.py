"""CLI for harbourmaster: serve the API, show the Docker endpoint, query a running daemon."""

import argparse
import logging
import sys

import httpx

from harbourmaster.config import load_config
from harbourmaster.endpoint import EndpointResolver
from harbourmaster.errors import EndpointNotFound

DEFAULT_URL = "http://127.0.0.1:9190"


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the API server with uvicorn."""
    import uvicorn

    from harbourmaster.api import create_app

    logging.getLogger().setLevel(args.log_level.upper())
    try:
        config = load_config(args.config)
        if args.host:
            config.server.host = args.host
        if args.port:
            config.server.port = args.port
        # Re-validate after command-line overrides
        config = type(config).model_validate(config.model_dump())
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=args.log_level.lower(),
    )
    return 0


def cmd_endpoint(args: argparse.Namespace) -> int:
    """Resolve the Docker endpoint and print where it was found."""
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    runtime = config.runtime
    resolver = EndpointResolver(
        override=runtime.docker_host,
        socket_paths=runtime.socket_paths,
        context_timeout=runtime.context_timeout,
    )
    try:
        endpoint = resolver.resolve()
    except EndpointNotFound as e:
        print(e.message, file=sys.stderr)
        return 1

    print(f"{endpoint.address} ({endpoint.source.value})")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Query /api/health of a running daemon."""
    url = args.url.rstrip("/") + "/api/health"
    try:
        response = httpx.get(url, timeout=args.timeout)
        response.raise_for_status()
        health = response.json()
    except httpx.HTTPError as e:
        print(f"Harbourmaster not reachable at {args.url}: {e}", file=sys.stderr)
        return 1

    docker = health.get("docker", {})
    print(f"status:  {health.get('status')}")
    print(f"docker:  {'connected' if docker.get('connected') else 'disconnected'}")
    print(f"socket:  {docker.get('socket')} ({docker.get('source')})")
    print(f"version: {health.get('version')}")
    return 0 if health.get("status") == "healthy" else 1


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="harbourmaster",
        description="Harbourmaster: local control plane between a web UI and the Docker socket.",
    )
    sub = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = sub.add_parser("serve", help="Run the harbourmaster API server")
    serve_parser.add_argument("-c", "--config", metavar="PATH", help="Config file path")
    serve_parser.add_argument("--host", help="Interface to bind (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port to bind (default from config)")
    serve_parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging level",
    )
    serve_parser.set_defaults(func=cmd_serve)

    endpoint_parser = sub.add_parser("endpoint", help="Show the Docker endpoint that would be used")
    endpoint_parser.add_argument("-c", "--config", metavar="PATH", help="Config file path")
    endpoint_parser.set_defaults(func=cmd_endpoint)

    status_parser = sub.add_parser("status", help="Show health of a running harbourmaster")
    status_parser.add_argument("--url", default=DEFAULT_URL, help=f"Daemon URL (default: {DEFAULT_URL})")
    status_parser.add_argument("--timeout", type=float, default=5.0, help="Request timeout in seconds")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
