"""In-memory match result rules.

These functions operate on :mod:`ladder.models` objects only. Persistence and
authorization against stored rows live in :mod:`ladder.services.matches`.
"""
from __future__ import annotations

import datetime
import re

from .models import (
    Match,
    LadderMembership,
    ResultStatus,
    TeamResult,
    TEAMS,
    TEAM_A,
    TEAM_B,
    STATUS_COMPLETED,
    WIN_SCORE_INCREMENT,
    LOSS_SCORE_DECREMENT,
    TREND_UP,
    TREND_DOWN,
    other_team,
)


class MatchStateError(ValueError):
    """The match is not in a state that allows the requested transition."""


_GAME_RE = re.compile(r"^(\d{1,2})\s*-\s*(\d{1,2})$")


def normalize_score(score: str) -> str:
    """Return ``score`` in canonical ``"11-7, 9-11"`` form.

    Raises ``ValueError`` for anything that is not a comma separated list of
    untied ``points-points`` games.
    """
    if not isinstance(score, str) or not score.strip():
        raise ValueError("Score is required")
    games = []
    for part in score.split(","):
        m = _GAME_RE.match(part.strip())
        if not m:
            raise ValueError(f"Invalid score '{score}'")
        a, b = int(m.group(1)), int(m.group(2))
        if a == b:
            raise ValueError(f"Invalid score '{score}': games cannot be tied")
        games.append(f"{a}-{b}")
    return ", ".join(games)


def validate_team(team: str) -> str:
    if team not in TEAMS:
        raise ValueError(f"Unknown team '{team}'")
    return team


def validate_players(player_ids: list[str]) -> None:
    """Ensure a match has exactly four distinct participants."""
    if len(player_ids) != 4 or not all(player_ids):
        raise ValueError("A match needs exactly four players")
    if len(set(player_ids)) != 4:
        raise ValueError("Players must be distinct")


def result_status(match: Match) -> ResultStatus:
    """Derive the submission state of ``match`` from its stored results."""
    a, b = match.team_a, match.team_b
    if a is None and b is None:
        return ResultStatus(ResultStatus.NONE)
    if a is None or b is None:
        return ResultStatus(ResultStatus.TEAM_PENDING, TEAM_A if a else TEAM_B)
    if a.score == b.score and a.winner == b.winner:
        return ResultStatus(ResultStatus.AGREED)
    return ResultStatus(ResultStatus.DISPUTE)


def submit_team_result(
    match: Match,
    team: str,
    score: str,
    winner: str,
    submitter_id: str,
    now: datetime.datetime | None = None,
) -> TeamResult:
    """Record ``team``'s result on ``match``."""
    validate_team(team)
    validate_team(winner)
    score = normalize_score(score)
    if match.completed:
        raise MatchStateError("Match already completed")
    if match.team_of(submitter_id) != team:
        raise PermissionError("User not on team")
    if match.result(team) is not None:
        raise MatchStateError("Team already submitted a result")
    result = TeamResult(
        score=score,
        winner=winner,
        submitted_by=submitter_id,
        submitted_at=now or datetime.datetime.utcnow(),
    )
    match.set_result(team, result)
    return result


def confirm_other_team_result(
    match: Match,
    team: str,
    confirmer_id: str,
    now: datetime.datetime | None = None,
) -> TeamResult:
    """Copy the other team's result onto ``team`` as an acceptance."""
    validate_team(team)
    if match.completed:
        raise MatchStateError("Match already completed")
    if match.team_of(confirmer_id) != team:
        raise PermissionError("User not on team")
    if match.result(team) is not None:
        raise MatchStateError("Team already submitted a result")
    source = match.result(other_team(team))
    if source is None:
        raise MatchStateError("Other team has not submitted a result")
    result = TeamResult(
        score=source.score,
        winner=source.winner,
        submitted_by=confirmer_id,
        submitted_at=now or datetime.datetime.utcnow(),
    )
    match.set_result(team, result)
    return result


def authoritative_result(match: Match) -> tuple[str, TeamResult]:
    """Return the submission an admin force-complete resolves to.

    Team A's submission wins when present, otherwise team B's.
    """
    if match.team_a is not None:
        return TEAM_A, match.team_a
    if match.team_b is not None:
        return TEAM_B, match.team_b
    raise MatchStateError("No result has been submitted")


def force_complete(match: Match, now: datetime.datetime | None = None) -> TeamResult:
    """Overwrite both teams' results with the authoritative one.

    Score and winner are copied to both sides; submitter and timestamp are
    only filled in where a team had none.
    """
    if match.completed:
        raise MatchStateError("Match already completed")
    _, source = authoritative_result(match)
    for team in TEAMS:
        current = match.result(team)
        match.set_result(
            team,
            TeamResult(
                score=source.score,
                winner=source.winner,
                submitted_by=current.submitted_by if current else source.submitted_by,
                submitted_at=current.submitted_at if current else source.submitted_at,
            ),
        )
    mark_completed(match, now)
    return source


def mark_completed(match: Match, now: datetime.datetime | None = None) -> None:
    match.status = STATUS_COMPLETED
    match.completed_at = now or datetime.datetime.utcnow()


def winning_team(match: Match) -> str:
    status = result_status(match)
    if status.state != ResultStatus.AGREED:
        raise MatchStateError("Match result is not settled")
    return match.team_a.winner


def apply_win(membership: LadderMembership) -> None:
    membership.winning_streak += 1
    membership.trend = TREND_UP
    membership.score += WIN_SCORE_INCREMENT


def apply_loss(membership: LadderMembership) -> None:
    membership.winning_streak = 0
    membership.trend = TREND_DOWN
    membership.score = max(0, membership.score - LOSS_SCORE_DECREMENT)


def apply_standings(
    match: Match, memberships: dict[str, LadderMembership]
) -> list[LadderMembership]:
    """Update the four participants' memberships for a settled match.

    ``memberships`` maps user ids to their membership in the match's ladder.
    Returns the changed memberships in seat order.
    """
    winner = winning_team(match)
    missing = [uid for uid in match.players if uid not in memberships]
    if missing:
        raise MatchStateError(f"No ladder membership for {', '.join(missing)}")
    changed = []
    for uid in match.team_players(winner):
        apply_win(memberships[uid])
        changed.append(memberships[uid])
    for uid in match.team_players(other_team(winner)):
        apply_loss(memberships[uid])
        changed.append(memberships[uid])
    return changed
