"""Container identifier validation."""

import re

from harbourmaster.errors import InvalidIdentifier

# Full or short hex ids, case-insensitive
CONTAINER_ID_HEX = re.compile(r"^[a-fA-F0-9]{12,64}$")
CONTAINER_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]{0,127}$")


def is_valid_container_identifier(value: str) -> bool:
    """Check whether a value is a container id or a container name."""
    if not isinstance(value, str):
        return False
    return bool(CONTAINER_ID_HEX.fullmatch(value) or CONTAINER_NAME.fullmatch(value))


def ensure_valid_identifier(value: str) -> str:
    """Return the identifier unchanged or raise InvalidIdentifier."""
    if not is_valid_container_identifier(value):
        raise InvalidIdentifier()
    return value
