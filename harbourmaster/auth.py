"""Bearer-token verification for the HTTP layer.

The control plane performs no authentication itself; routes depend on
require_principal, which delegates to the configured TokenVerifier.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from fastapi import HTTPException, Request, status

from harbourmaster.errors import ErrorCode
from harbourmaster.state import get_verifier

logger = logging.getLogger(__name__)

ACCESS_TOKEN_PARAM = "access_token"


@dataclass(frozen=True)
class Principal:
    subject: str


class TokenVerifier(Protocol):
    def verify(self, credential: str) -> Optional[Principal]:
        ...


class StaticTokenVerifier:
    """Accepts a fixed set of API tokens."""

    def __init__(self, tokens: Iterable[str]):
        self._tokens = [token for token in tokens if token]
        if not self._tokens:
            generated = secrets.token_urlsafe(32)
            self._tokens.append(generated)
            logger.warning(f"No API token configured. Generated token for this run: {generated}")

    def verify(self, credential: str) -> Optional[Principal]:
        """Return a principal when the credential matches a configured token."""
        if not credential:
            return None
        for index, token in enumerate(self._tokens):
            if hmac.compare_digest(credential.encode(), token.encode()):
                return Principal(subject=f"token-{index}")
        return None


def extract_credential(authorization: Optional[str], query_token: Optional[str]) -> Optional[str]:
    """Pick the bearer token from the Authorization header or the query string.

    EventSource and browser WebSocket clients cannot set headers, so the
    query parameter is accepted as well.
    """
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return query_token or None


def authenticate(verifier: TokenVerifier, credential: Optional[str]) -> Principal:
    """Verify a credential, raising 401 HTTPException on failure."""
    if not credential:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication required", "code": ErrorCode.AUTHENTICATION_REQUIRED.value},
        )
    principal = verifier.verify(credential)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid or expired token", "code": ErrorCode.INVALID_TOKEN.value},
        )
    return principal


def require_principal(request: Request) -> Principal:
    """FastAPI dependency guarding container and event routes."""
    credential = extract_credential(
        request.headers.get("authorization"), request.query_params.get(ACCESS_TOKEN_PARAM)
    )
    return authenticate(get_verifier(), credential)
