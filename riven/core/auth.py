"""
Auth utilities for the Riven API.

Two concerns live here:
- AuthGateway / SessionAuth: the "is this session logged in?" signal the
  streak engine consults before every mutation.
- get_current_user_id: FastAPI dependency resolving the caller from an HS256
  bearer JWT, falling back to the X-User-Id header (tests, internal callers).
"""
import logging
from typing import Callable, List, Optional, Protocol

import jwt
from fastapi import Header, Request

from riven.core.config import settings
from riven.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

AuthListener = Callable[[bool], None]


class AuthGateway(Protocol):
    def is_authenticated(self) -> bool:
        ...


class SessionAuth:
    """Mutable login flag that notifies listeners on transitions."""

    def __init__(self, authenticated: bool = False):
        self._authenticated = authenticated
        self._listeners: List[AuthListener] = []

    def is_authenticated(self) -> bool:
        return self._authenticated

    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def log_in(self) -> None:
        self._set(True)

    def log_out(self) -> None:
        self._set(False)

    def _set(self, value: bool) -> None:
        if value == self._authenticated:
            return
        self._authenticated = value
        for listener in list(self._listeners):
            listener(value)


def verify_token(token: str, secret: Optional[str] = None) -> Optional[str]:
    """
    Verify an HS256 JWT and extract the user id from its 'sub' claim.

    Returns None when no secret is configured (token auth disabled).

    Raises:
        UnauthorizedError: Invalid, expired or subject-less token
    """
    key = secret or settings.JWT_SECRET
    if not key:
        logger.debug("No JWT_SECRET configured, skipping JWT validation")
        return None

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Token has no subject")
    return str(user_id)


def get_bearer_token(request: Request) -> Optional[str]:
    """Raw bearer token from the Authorization header, forwarded to remote streak stores."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer ") and auth_header[7:].strip():
        return auth_header[7:].strip()
    return None


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Fallback user ID for tests and internal callers"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header
    3. Raise 401 Unauthorized
    """
    token = get_bearer_token(request)
    if token:
        user_id = verify_token(token)
        if user_id:
            return user_id

    if x_user_id and x_user_id.strip():
        return x_user_id.strip()

    raise UnauthorizedError("Missing Authorization (Bearer JWT) or X-User-Id header")
