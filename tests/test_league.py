import datetime
import pytest

from ladder import league
from ladder.league import MatchStateError
from ladder.models import (
    Match,
    LadderMembership,
    ResultStatus,
    TeamResult,
    TEAM_A,
    TEAM_B,
    STATUS_COMPLETED,
    BASELINE_SCORE,
)

T0 = datetime.datetime(2024, 5, 1, 18, 0)
T1 = datetime.datetime(2024, 5, 1, 19, 30)


def make_match():
    return Match(ladder_id="l", week=1, player1_id="p1", player2_id="p2",
                 player3_id="p3", player4_id="p4", id=1)


def make_memberships(score=BASELINE_SCORE):
    return {
        uid: LadderMembership(ladder_id="l", user_id=uid, id=i + 1, current_rank=i + 1, score=score)
        for i, uid in enumerate(["p1", "p2", "p3", "p4"])
    }


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("11-7", "11-7"),
        (" 11 - 7 ", "11-7"),
        ("11-7,9-11", "11-7, 9-11"),
        ("11-7, 9-11,  11-5", "11-7, 9-11, 11-5"),
    ],
)
def test_normalize_score(raw, expected):
    assert league.normalize_score(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "11", "11-11", "abc", "11-7,", "111-7", "11:7"])
def test_normalize_score_rejects_malformed(raw):
    with pytest.raises(ValueError):
        league.normalize_score(raw)


def test_validate_players():
    league.validate_players(["a", "b", "c", "d"])
    with pytest.raises(ValueError):
        league.validate_players(["a", "b", "c"])
    with pytest.raises(ValueError):
        league.validate_players(["a", "b", "c", "a"])


def test_result_status_transitions():
    match = make_match()
    assert league.result_status(match).state == ResultStatus.NONE

    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    status = league.result_status(match)
    assert status.state == ResultStatus.TEAM_PENDING
    assert status.team == TEAM_A

    league.submit_team_result(match, TEAM_B, "11-7", TEAM_A, "p3", now=T1)
    assert league.result_status(match).state == ResultStatus.AGREED


def test_only_team_b_pending():
    match = make_match()
    league.submit_team_result(match, TEAM_B, "7-11", TEAM_B, "p4", now=T0)
    assert league.result_status(match) == ResultStatus(ResultStatus.TEAM_PENDING, TEAM_B)


@pytest.mark.parametrize(
    "b_score,b_winner",
    [("9-11", TEAM_B), ("11-7", TEAM_B), ("11-8", TEAM_A)],
)
def test_result_status_dispute(b_score, b_winner):
    match = make_match()
    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    league.submit_team_result(match, TEAM_B, b_score, b_winner, "p3", now=T1)
    assert league.result_status(match).state == ResultStatus.DISPUTE


def test_submissions_compare_normalized_scores():
    match = make_match()
    league.submit_team_result(match, TEAM_A, "11-7,9-11, 11-4", TEAM_A, "p1", now=T0)
    league.submit_team_result(match, TEAM_B, "11-7, 9-11,11-4", TEAM_A, "p4", now=T1)
    assert league.result_status(match).state == ResultStatus.AGREED


def test_submit_rejects_wrong_team_and_duplicates():
    match = make_match()
    with pytest.raises(PermissionError):
        league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p3")
    with pytest.raises(PermissionError):
        league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "stranger")

    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    with pytest.raises(MatchStateError):
        league.submit_team_result(match, TEAM_A, "11-9", TEAM_A, "p2")
    # the first submission is untouched
    assert match.team_a.score == "11-7"
    assert match.team_a.submitted_by == "p1"


def test_submit_rejects_bad_winner_and_completed_match():
    match = make_match()
    with pytest.raises(ValueError):
        league.submit_team_result(match, TEAM_A, "11-7", "C", "p1")
    league.mark_completed(match, T0)
    with pytest.raises(MatchStateError):
        league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1")


def test_confirm_copies_other_team_result():
    match = make_match()
    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p2", now=T0)
    result = league.confirm_other_team_result(match, TEAM_B, "p4", now=T1)

    assert result == TeamResult(score="11-7", winner=TEAM_A, submitted_by="p4", submitted_at=T1)
    assert match.team_b == result
    assert league.result_status(match).state == ResultStatus.AGREED


def test_confirm_requires_other_submission():
    match = make_match()
    with pytest.raises(MatchStateError):
        league.confirm_other_team_result(match, TEAM_B, "p3")
    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    with pytest.raises(PermissionError):
        league.confirm_other_team_result(match, TEAM_B, "p1")
    with pytest.raises(MatchStateError):
        league.confirm_other_team_result(match, TEAM_A, "p2")


def test_authoritative_result_prefers_team_a():
    match = make_match()
    with pytest.raises(MatchStateError):
        league.authoritative_result(match)

    league.submit_team_result(match, TEAM_B, "9-11", TEAM_B, "p3", now=T0)
    assert league.authoritative_result(match)[0] == TEAM_B

    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T1)
    team, result = league.authoritative_result(match)
    assert team == TEAM_A
    assert result.score == "11-7"


def test_force_complete_dispute_uses_team_a():
    match = make_match()
    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    league.submit_team_result(match, TEAM_B, "9-11", TEAM_B, "p3", now=T1)

    league.force_complete(match, now=T1)

    assert match.status == STATUS_COMPLETED
    assert match.completed_at == T1
    for team in (TEAM_A, TEAM_B):
        assert match.result(team).score == "11-7"
        assert match.result(team).winner == TEAM_A
    # team B keeps its own submitter and time
    assert match.team_b.submitted_by == "p3"
    assert match.team_b.submitted_at == T1
    assert league.winning_team(match) == TEAM_A


def test_force_complete_fills_missing_team_from_source():
    match = make_match()
    league.submit_team_result(match, TEAM_B, "5-11", TEAM_B, "p4", now=T0)

    league.force_complete(match, now=T1)

    assert match.team_a == TeamResult(score="5-11", winner=TEAM_B, submitted_by="p4", submitted_at=T0)
    assert league.winning_team(match) == TEAM_B


def test_force_complete_without_submissions_fails():
    match = make_match()
    with pytest.raises(MatchStateError):
        league.force_complete(match)
    assert not match.completed


def test_apply_standings_winners_and_losers():
    match = make_match()
    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    league.confirm_other_team_result(match, TEAM_B, "p3", now=T1)
    memberships = make_memberships()
    memberships["p3"].winning_streak = 4

    changed = league.apply_standings(match, memberships)

    assert [m.user_id for m in changed] == ["p1", "p2", "p3", "p4"]
    for uid in ("p1", "p2"):
        assert memberships[uid].score == BASELINE_SCORE + 10
        assert memberships[uid].winning_streak == 1
        assert memberships[uid].trend == "up"
    for uid in ("p3", "p4"):
        assert memberships[uid].score == BASELINE_SCORE - 5
        assert memberships[uid].winning_streak == 0
        assert memberships[uid].trend == "down"
    # ranks are never changed by results
    assert [m.current_rank for m in changed] == [1, 2, 3, 4]


def test_apply_standings_floors_score_at_zero():
    match = make_match()
    league.submit_team_result(match, TEAM_A, "3-11", TEAM_B, "p1", now=T0)
    league.confirm_other_team_result(match, TEAM_B, "p4", now=T1)
    memberships = make_memberships(score=3)

    league.apply_standings(match, memberships)

    assert memberships["p1"].score == 0
    assert memberships["p2"].score == 0
    assert memberships["p3"].score == 13


def test_apply_standings_requires_settled_result_and_memberships():
    match = make_match()
    league.submit_team_result(match, TEAM_A, "11-7", TEAM_A, "p1", now=T0)
    with pytest.raises(MatchStateError):
        league.apply_standings(match, make_memberships())

    league.confirm_other_team_result(match, TEAM_B, "p3", now=T1)
    memberships = make_memberships()
    del memberships["p4"]
    with pytest.raises(MatchStateError):
        league.apply_standings(match, memberships)
    # nothing was applied before the missing membership was detected
    assert memberships["p1"].score == BASELINE_SCORE
