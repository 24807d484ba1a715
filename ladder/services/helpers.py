from .exceptions import ServiceError
from ..storage import get_user, get_ladder, get_match
from ..models import User, Ladder, Match


def get_user_or_404(user_id: str) -> User:
    user = get_user(user_id)
    if not user:
        raise ServiceError("User not found", 404)
    return user


def get_ladder_or_404(ladder_id: str) -> Ladder:
    ladder = get_ladder(ladder_id)
    if not ladder:
        raise ServiceError("Ladder not found", 404)
    return ladder


def get_match_or_404(match_id: int, conn=None) -> Match:
    match = get_match(match_id, conn=conn)
    if not match:
        raise ServiceError("Match not found", 404)
    return match


def require_admin(user_id: str) -> User:
    """Return the user if they are a league admin."""
    user = get_user(user_id)
    if not user or not user.is_admin:
        raise ServiceError("Admin only", 403)
    return user
