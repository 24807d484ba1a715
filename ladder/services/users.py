from __future__ import annotations
import re
import secrets
import datetime
import uuid

from passlib.context import CryptContext

from .exceptions import ServiceError
from ..storage import (
    insert_token,
    delete_token,
    insert_refresh_token,
    get_refresh_token,
    delete_refresh_token,
    create_user as create_user_record,
    update_user_record,
    get_user as get_user_record,
    find_user_by_email,
    list_user_memberships,
    transaction,
)
from . import state
from .helpers import get_user_or_404
from ..models import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def check_password(user: User, password: str) -> bool:
    if not user.password_hash:
        return False
    try:
        return pwd_context.verify(password, user.password_hash)
    except ValueError:
        return False


def create_user(data, *, is_admin: bool = False) -> str:
    """Register a new user and return the user id."""
    if not data.name or not data.name.strip():
        raise ServiceError("Name is required", 400)
    if not _EMAIL_RE.match(data.email or ""):
        raise ServiceError("Invalid email", 400)
    if not data.password:
        raise ServiceError("Password is required", 400)
    uid = data.user_id or uuid.uuid4().hex[:12]
    if get_user_record(uid):
        raise ServiceError("User exists", 400)
    if find_user_by_email(data.email):
        raise ServiceError("Email already registered", 400)
    user = User(
        user_id=uid,
        name=data.name.strip(),
        email=data.email.strip(),
        phone=data.phone,
        password_hash=hash_password(data.password),
        is_admin=is_admin,
    )
    with transaction() as conn:
        create_user_record(user, conn=conn)
    return uid


def set_admin(user_id: str, is_admin: bool = True) -> None:
    user = get_user_or_404(user_id)
    user.is_admin = is_admin
    with transaction() as conn:
        update_user_record(user, conn=conn)


def login(identifier: str, password: str):
    """Return ``(success, access_token, refresh_token, user_id)``."""
    user = get_user_record(identifier)
    if not user and "@" in identifier:
        user = find_user_by_email(identifier)
    if not user or not check_password(user, password):
        return False, None, None, None

    access_token = secrets.token_hex(16)
    refresh_token = secrets.token_hex(16)
    insert_token(access_token, user.user_id)
    insert_refresh_token(
        user.user_id, refresh_token, datetime.datetime.utcnow() + state.REFRESH_TOKEN_TTL
    )
    return True, access_token, refresh_token, user.user_id


def logout(token: str) -> None:
    delete_token(token)


def refresh_access_token(refresh_token: str) -> tuple[str, str]:
    """Exchange a refresh token for a new access token."""
    info = get_refresh_token(refresh_token)
    if not info:
        raise ServiceError("Invalid refresh token", 401)
    user_id, expires = info
    if datetime.datetime.utcnow() > expires:
        delete_refresh_token(user_id)
        raise ServiceError("Refresh token expired", 401)
    token = secrets.token_hex(16)
    insert_token(token, user_id)
    return token, user_id


def user_info(user_id: str) -> dict:
    """Public profile of a user; contact details are left out."""
    user = get_user_or_404(user_id)
    return {
        "user_id": user.user_id,
        "name": user.name,
        "is_admin": user.is_admin,
        "ladders": [
            m.ladder_id for m in list_user_memberships(user_id) if m.is_active
        ],
    }
