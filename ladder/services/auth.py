from __future__ import annotations
import datetime
import logging

from .exceptions import ServiceError
from . import state
from .. import storage

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise ServiceError("Invalid token", 401)
    return authorization[7:].strip()


def require_auth(authorization: str | None) -> str:
    """Return the user id behind an ``Authorization: Bearer`` header.

    Expired tokens are deleted on sight.
    """
    token = _bearer_token(authorization)
    info = storage.get_token(token)
    if not info:
        raise ServiceError("Invalid token", 401)
    user_id, issued = info
    if datetime.datetime.utcnow() - issued > state.TOKEN_TTL:
        storage.delete_token(token)
        logger.info("Expired token for %s removed", user_id)
        raise ServiceError("Token expired", 401)
    return user_id


def optional_auth(authorization: str | None) -> str | None:
    """Like :func:`require_auth` but anonymous callers get ``None``."""
    if not authorization:
        return None
    return require_auth(authorization)


def require_self(caller_id: str, user_id: str) -> None:
    """Players may only read their own memberships and matches."""
    if caller_id != user_id:
        raise ServiceError("Token does not belong to this user", 403)
