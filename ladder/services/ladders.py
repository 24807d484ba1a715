from __future__ import annotations
import datetime
import logging
import re

from .exceptions import ServiceError
from .helpers import get_ladder_or_404, get_user_or_404, require_admin
from .. import mailer
from .. import ranking
from ..models import Ladder, LadderMembership, LADDER_TYPES
from ..storage import (
    create_ladder as create_ladder_record,
    create_membership,
    update_membership_record,
    set_membership_ranks,
    lock_ladder,
    get_membership,
    max_active_rank,
    load_active_memberships,
    list_active_memberships,
    list_ladders,
    list_user_memberships,
    get_users,
    get_ladder,
    transaction,
)

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _slugify(name: str) -> str:
    return _SLUG_RE.sub("-", name.lower()).strip("-")


def create_ladder(admin_id: str, name: str, type: str = "competitive", fee: float = 0.0,
                  ladder_id: str | None = None) -> str:
    """Create a ladder and return its id."""
    require_admin(admin_id)
    if not name or not name.strip():
        raise ServiceError("Name is required", 400)
    if type not in LADDER_TYPES:
        raise ServiceError(f"Unknown ladder type '{type}'", 400)
    if fee < 0:
        raise ServiceError("Fee cannot be negative", 400)
    lid = ladder_id or _slugify(name)
    if not lid:
        raise ServiceError("Invalid ladder id", 400)
    if get_ladder(lid):
        raise ServiceError("Ladder exists", 400)
    with transaction() as conn:
        create_ladder_record(Ladder(ladder_id=lid, name=name.strip(), type=type, fee=fee), conn=conn)
    logger.info("Ladder %s created by %s", lid, admin_id)
    return lid


def list_all_ladders() -> list[dict]:
    result = []
    for ladder in list_ladders():
        result.append(
            {
                "ladder_id": ladder.ladder_id,
                "name": ladder.name,
                "type": ladder.type,
                "fee": ladder.fee,
                "members": len(list_active_memberships(ladder.ladder_id)),
            }
        )
    return result


def join_ladder(ladder_id: str, user_id: str) -> LadderMembership:
    """Enroll ``user_id`` at the bottom of the ladder.

    A previously deactivated membership is reactivated instead of creating a
    second row.
    """
    ladder = get_ladder_or_404(ladder_id)
    user = get_user_or_404(user_id)
    with transaction() as conn:
        lock_ladder(ladder_id, conn)
        membership = get_membership(ladder_id, user_id, conn=conn)
        if membership and membership.is_active:
            raise ServiceError("Already a member of this ladder", 409)
        rank = max_active_rank(ladder_id, conn=conn) + 1
        if membership:
            membership.is_active = True
            membership.current_rank = rank
            update_membership_record(membership, conn=conn)
        else:
            membership = LadderMembership(
                ladder_id=ladder_id, user_id=user_id, current_rank=rank
            )
            create_membership(membership, conn=conn)
    logger.info("User %s joined ladder %s at rank %s", user_id, ladder_id, rank)
    try:
        mailer.notify_member_joined(user, ladder)
    except Exception:
        logger.exception("Join notification failed for %s", user_id)
    return membership


def deactivate_membership(ladder_id: str, user_id: str, admin_id: str) -> None:
    """Mark a membership inactive (non-renewal). The row is kept."""
    require_admin(admin_id)
    get_ladder_or_404(ladder_id)
    with transaction() as conn:
        lock_ladder(ladder_id, conn)
        membership = get_membership(ladder_id, user_id, conn=conn)
        if not membership or not membership.is_active:
            raise ServiceError("Active membership not found", 404)
        membership.is_active = False
        update_membership_record(membership, conn=conn)
    logger.info("Membership of %s in %s deactivated by %s", user_id, ladder_id, admin_id)


def _membership_entry(m: LadderMembership, names: dict) -> dict:
    return {
        "membership_id": m.id,
        "user_id": m.user_id,
        "name": names.get(m.user_id),
        "rank": m.current_rank,
        "score": m.score,
        "winning_streak": m.winning_streak,
        "trend": m.trend,
        "join_date": m.join_date.isoformat(),
    }


def standings(ladder_id: str) -> dict:
    """Active members ordered by rank together with the order version."""
    get_ladder_or_404(ladder_id)
    memberships = ranking.sort_by_rank(list_active_memberships(ladder_id))
    users = get_users([m.user_id for m in memberships])
    names = {uid: u.name for uid, u in users.items()}
    return {
        "ladder_id": ladder_id,
        "version": ranking.order_version(memberships),
        "members": [_membership_entry(m, names) for m in memberships],
    }


def preview_reorder(ladder_id: str, order: list[int], moved_id: int, target_index: int,
                    admin_id: str) -> list[int]:
    """Return the candidate order after a drag; nothing is stored."""
    require_admin(admin_id)
    get_ladder_or_404(ladder_id)
    try:
        return ranking.reorder(order, moved_id, target_index)
    except ValueError as e:
        raise ServiceError(str(e), 400)


def commit_ranks(ladder_id: str, final_order: list[int], admin_id: str,
                 version: str | None = None) -> str:
    """Persist ``final_order`` as ranks 1..N and return the new version.

    When ``version`` is given the commit is refused if another session has
    changed the standings since that version was read.
    """
    require_admin(admin_id)
    get_ladder_or_404(ladder_id)
    with transaction() as conn:
        lock_ladder(ladder_id, conn)
        active = load_active_memberships(ladder_id, conn=conn)
        if version is not None and version != ranking.order_version(active):
            raise ServiceError("Standings changed since they were loaded", 409)
        try:
            ranking.validate_permutation(final_order, [m.id for m in active])
        except ValueError as e:
            raise ServiceError(str(e), 400)
        ranks = ranking.ranks_from_order(final_order)
        set_membership_ranks(ladder_id, ranks, conn=conn)
        for m in active:
            m.current_rank = ranks[m.id]
    logger.info("Ranks of %s committed by %s (%d members)", ladder_id, admin_id, len(final_order))
    return ranking.order_version(active)


def user_memberships(user_id: str) -> list[dict]:
    get_user_or_404(user_id)
    result = []
    for m in list_user_memberships(user_id):
        entry = _membership_entry(m, {})
        entry.pop("name")
        entry["ladder_id"] = m.ladder_id
        entry["is_active"] = m.is_active
        result.append(entry)
    return result
