from __future__ import annotations
import logging

from .exceptions import ServiceError
from .helpers import get_ladder_or_404, get_match_or_404, get_user_or_404, require_admin
from .. import league
from .. import mailer
from ..league import MatchStateError
from ..models import Match, ResultStatus, STATUS_SCHEDULED, other_team
from ..storage import (
    create_match as create_match_record,
    claim_team_result,
    complete_match,
    delete_match_record,
    get_match,
    get_memberships_for,
    get_users,
    list_matches,
    update_membership_record,
    transaction,
)

logger = logging.getLogger(__name__)


def _apply(fn, *args, **kwargs):
    """Call a :mod:`ladder.league` rule, translating its errors."""
    try:
        return fn(*args, **kwargs)
    except MatchStateError as e:
        raise ServiceError(str(e), 409)
    except PermissionError as e:
        raise ServiceError(str(e), 403)
    except ValueError as e:
        raise ServiceError(str(e), 400)


def create_match(ladder_id: str, week: int, player_ids: list[str], admin_id: str) -> Match:
    """Schedule a doubles match and notify the four players.

    ``player_ids`` lists team A (first two) then team B.
    """
    require_admin(admin_id)
    ladder = get_ladder_or_404(ladder_id)
    if week < 1:
        raise ServiceError("Week must be positive", 400)
    _apply(league.validate_players, player_ids)
    with transaction() as conn:
        memberships = get_memberships_for(ladder_id, player_ids, conn=conn)
        inactive = [
            uid for uid in player_ids
            if uid not in memberships or not memberships[uid].is_active
        ]
        if inactive:
            raise ServiceError(
                f"Not active members of {ladder_id}: {', '.join(inactive)}", 400
            )
        match = Match(
            ladder_id=ladder_id,
            week=week,
            player1_id=player_ids[0],
            player2_id=player_ids[1],
            player3_id=player_ids[2],
            player4_id=player_ids[3],
        )
        create_match_record(match, conn=conn)
    logger.info("Match %s created in %s week %s by %s", match.id, ladder_id, week, admin_id)
    try:
        mailer.notify_match_created(match, ladder, get_users(match.players))
    except Exception:
        logger.exception("Creation notification failed for match %s", match.id)
    return match


def _finalize(match: Match, conn) -> bool:
    """Complete ``match`` and apply standings inside the caller's transaction.

    Returns ``False`` without touching standings if the match was already
    completed by someone else.
    """
    league.mark_completed(match)
    if not complete_match(match, conn=conn):
        logger.info("Match %s already finalized", match.id)
        return False
    memberships = get_memberships_for(match.ladder_id, match.players, conn=conn)
    changed = _apply(league.apply_standings, match, memberships)
    for m in changed:
        update_membership_record(m, conn=conn)
    logger.info(
        "Match %s finalized: %s won %s", match.id, match.team_a.winner, match.team_a.score
    )
    return True


def _after_claim(match_id: int, conn) -> Match:
    """Re-read the match and finalize it if both submissions agree."""
    match = get_match(match_id, conn=conn)
    status = league.result_status(match)
    if status.state == ResultStatus.AGREED:
        _finalize(match, conn)
    elif status.state == ResultStatus.DISPUTE:
        logger.warning(
            "Match %s disputed: A=%s/%s B=%s/%s",
            match.id,
            match.team_a.score,
            match.team_a.winner,
            match.team_b.score,
            match.team_b.winner,
        )
    return match


def submit_team_result(match_id: int, team: str | None, score: str, winner: str,
                       submitter_id: str) -> Match:
    """Record a team's result; finalizes when it matches the other team's."""
    with transaction() as conn:
        match = get_match_or_404(match_id, conn=conn)
        if team is None:
            team = match.team_of(submitter_id)
            if team is None:
                raise ServiceError("User not in match", 403)
        result = _apply(league.submit_team_result, match, team, score, winner, submitter_id)
        if not claim_team_result(match_id, team, result, conn=conn):
            raise ServiceError("Team already submitted a result", 409)
        match = _after_claim(match_id, conn)
    return match


def confirm_other_team_result(match_id: int, team: str | None, confirmer_id: str) -> Match:
    """Accept the other team's submitted result and finalize the match."""
    with transaction() as conn:
        match = get_match_or_404(match_id, conn=conn)
        if team is None:
            team = match.team_of(confirmer_id)
            if team is None:
                raise ServiceError("User not in match", 403)
        result = _apply(league.confirm_other_team_result, match, team, confirmer_id)
        if not claim_team_result(match_id, team, result, conn=conn):
            raise ServiceError("Team already submitted a result", 409)
        match = _after_claim(match_id, conn)
    return match


def finalize_match(match_id: int) -> bool:
    """Finalize an agreed match. Returns ``False`` if it was already completed."""
    with transaction() as conn:
        match = get_match_or_404(match_id, conn=conn)
        if match.completed:
            return False
        if league.result_status(match).state != ResultStatus.AGREED:
            raise ServiceError("Match result is not settled", 409)
        return _finalize(match, conn)


def admin_force_complete(match_id: int, admin_id: str) -> Match:
    """Resolve a disputed or stuck match using the authoritative submission."""
    require_admin(admin_id)
    with transaction() as conn:
        match = get_match_or_404(match_id, conn=conn)
        if match.completed:
            raise ServiceError("Match already completed", 409)
        source_team, _ = _apply(league.authoritative_result, match)
        _apply(league.force_complete, match)
        if not complete_match(match, conn=conn):
            raise ServiceError("Match already completed", 409)
        memberships = get_memberships_for(match.ladder_id, match.players, conn=conn)
        changed = _apply(league.apply_standings, match, memberships)
        for m in changed:
            update_membership_record(m, conn=conn)
    logger.info(
        "Match %s force-completed by %s using team %s result", match_id, admin_id, source_team
    )
    return match


def cancel_match(match_id: int, admin_id: str) -> None:
    """Delete a match that has not been completed and notify its players."""
    require_admin(admin_id)
    with transaction() as conn:
        match = get_match_or_404(match_id, conn=conn)
        if match.completed:
            raise ServiceError("Match already completed", 409)
        if not delete_match_record(match_id, conn=conn):
            raise ServiceError("Match already completed", 409)
    logger.info("Match %s cancelled by %s", match_id, admin_id)
    try:
        mailer.notify_match_cancelled(match, get_users(match.players))
    except Exception:
        logger.exception("Cancellation notification failed for match %s", match_id)


# --- views -----------------------------------------------------------------

def _result_dict(result) -> dict | None:
    if result is None:
        return None
    return {
        "score": result.score,
        "winner": result.winner,
        "submitted_by": result.submitted_by,
        "submitted_at": result.submitted_at.isoformat() if result.submitted_at else None,
    }


def match_to_dict(match: Match, names: dict[str, str] | None = None,
                  viewer_id: str | None = None) -> dict:
    names = names or {}
    status = league.result_status(match)
    entry = {
        "id": match.id,
        "ladder_id": match.ladder_id,
        "week": match.week,
        "team_a": [match.player1_id, match.player2_id],
        "team_b": [match.player3_id, match.player4_id],
        "names": {uid: names.get(uid, uid) for uid in match.players},
        "status": match.status,
        "result_status": status.state,
        "pending_team": status.team,
        "created_at": match.created_at.isoformat(),
        "completed_at": match.completed_at.isoformat() if match.completed_at else None,
        "team_a_result": _result_dict(match.team_a),
        "team_b_result": _result_dict(match.team_b),
    }
    if viewer_id is not None:
        team = match.team_of(viewer_id)
        open_ = not match.completed and team is not None and match.result(team) is None
        entry["my_team"] = team
        entry["can_submit"] = open_
        entry["can_confirm"] = open_ and match.result(other_team(team)) is not None
    return entry


def _names_for(matches: list[Match]) -> dict[str, str]:
    ids = sorted({uid for m in matches for uid in m.players})
    return {uid: u.name for uid, u in get_users(ids).items()}


def match_detail(match_id: int, viewer_id: str | None = None) -> dict:
    match = get_match_or_404(match_id)
    return match_to_dict(match, _names_for([match]), viewer_id)


def ladder_matches(ladder_id: str, week: int | None = None, status: str | None = None) -> list[dict]:
    get_ladder_or_404(ladder_id)
    matches = list_matches(ladder_id, week=week, status=status)
    names = _names_for(matches)
    return [match_to_dict(m, names) for m in matches]


def player_matches(user_id: str) -> list[dict]:
    get_user_or_404(user_id)
    matches = list_matches(user_id=user_id)
    names = _names_for(matches)
    return [match_to_dict(m, names, viewer_id=user_id) for m in matches]


def attention_matches(admin_id: str, ladder_id: str | None = None) -> list[dict]:
    """Scheduled matches that are disputed or waiting on one team."""
    require_admin(admin_id)
    matches = [
        m for m in list_matches(ladder_id, status=STATUS_SCHEDULED)
        if league.result_status(m).state in (ResultStatus.DISPUTE, ResultStatus.TEAM_PENDING)
    ]
    names = _names_for(matches)
    return [match_to_dict(m, names) for m in matches]
