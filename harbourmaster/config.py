"""Configuration loader for harbourmaster.

Reads an optional YAML configuration file, applies environment overrides
and validates the result using Pydantic models.
"""

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import ValidationError

from harbourmaster.models import SystemConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yml"


def _apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    server = dict(data.get("server") or {})
    if env.get("HARBOURMASTER_HOST"):
        server["host"] = env["HARBOURMASTER_HOST"]
    if env.get("HARBOURMASTER_PORT"):
        server["port"] = env["HARBOURMASTER_PORT"]
    if "HARBOURMASTER_ALLOW_NETWORK" in env:
        server["allow_network"] = env["HARBOURMASTER_ALLOW_NETWORK"].lower() == "true"
    data["server"] = server

    token = env.get("HARBOURMASTER_API_TOKEN")
    if token:
        auth = dict(data.get("auth") or {})
        auth["tokens"] = list(auth.get("tokens") or []) + [token]
        data["auth"] = auth
    return data


def load_config(
    config_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None
) -> SystemConfig:
    """Load and validate configuration.

    Args:
        config_path: Path to config file. If None, reads from HARBOURMASTER_CONFIG_FILE
            environment variable or defaults to 'config.yml' in current directory.
        env: Environment used for overrides. Defaults to os.environ.

    Returns:
        Validated SystemConfig object.

    Raises:
        FileNotFoundError: If an explicitly named config file does not exist.
        ValidationError: If config does not match expected schema.
        yaml.YAMLError: If config file is not valid YAML.
    """
    env = os.environ if env is None else env
    explicit = config_path is not None or bool(env.get("HARBOURMASTER_CONFIG_FILE"))
    if config_path is None:
        config_path = env.get("HARBOURMASTER_CONFIG_FILE") or DEFAULT_CONFIG_FILE

    config_file = Path(config_path)
    data: dict[str, Any] = {}

    if config_file.exists():
        logger.info(f"Loading configuration from {config_path}")
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML: {e}")
            raise
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
    elif explicit:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    else:
        logger.info("No configuration file found, using defaults")

    try:
        config = SystemConfig(**_apply_env_overrides(data, env))
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    if config.server.is_network_bind:
        logger.warning("=" * 60)
        logger.warning("SECURITY WARNING: Binding to all network interfaces")
        logger.warning("Docker operations are exposed to the network")
        logger.warning("Ensure authentication, TLS and firewall rules are in place")
        logger.warning("=" * 60)

    return config
