from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

# Team identifiers. Team A is players 1-2, team B is players 3-4.
TEAM_A = "A"
TEAM_B = "B"
TEAMS = (TEAM_A, TEAM_B)

STATUS_SCHEDULED = "scheduled"
STATUS_COMPLETED = "completed"

LADDER_TYPES = ("competitive", "casual", "women")

# Standings deltas applied once per completed match
BASELINE_SCORE = 100
WIN_SCORE_INCREMENT = 10
LOSS_SCORE_DECREMENT = 5

TREND_UP = "up"
TREND_DOWN = "down"
TREND_NONE = "none"


def other_team(team: str) -> str:
    return TEAM_B if team == TEAM_A else TEAM_A


@dataclass
class User:
    """Account data for authentication and contact details."""

    user_id: str
    name: str
    password_hash: str
    email: str = ""
    phone: Optional[str] = None
    is_admin: bool = False


@dataclass
class Ladder:
    ladder_id: str
    name: str
    type: str = "competitive"
    fee: float = 0.0
    created_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)


@dataclass
class LadderMembership:
    """A player's enrollment in one ladder."""

    ladder_id: str
    user_id: str
    id: int | None = None
    current_rank: int | None = None
    score: int = BASELINE_SCORE
    winning_streak: int = 0
    trend: str = TREND_NONE
    is_active: bool = True
    join_date: datetime.date = field(default_factory=datetime.date.today)


@dataclass
class TeamResult:
    """One team's submitted result. All fields are set together."""

    score: str
    winner: str
    submitted_by: str
    submitted_at: datetime.datetime


@dataclass
class Match:
    ladder_id: str
    week: int
    player1_id: str
    player2_id: str
    player3_id: str
    player4_id: str
    id: int | None = None
    status: str = STATUS_SCHEDULED
    created_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)
    completed_at: datetime.datetime | None = None
    team_a: TeamResult | None = None
    team_b: TeamResult | None = None

    @property
    def players(self) -> list[str]:
        return [self.player1_id, self.player2_id, self.player3_id, self.player4_id]

    def team_players(self, team: str) -> list[str]:
        if team == TEAM_A:
            return [self.player1_id, self.player2_id]
        return [self.player3_id, self.player4_id]

    def team_of(self, user_id: str) -> str | None:
        """Return the team ``user_id`` plays on or ``None``."""
        if user_id in (self.player1_id, self.player2_id):
            return TEAM_A
        if user_id in (self.player3_id, self.player4_id):
            return TEAM_B
        return None

    def result(self, team: str) -> TeamResult | None:
        return self.team_a if team == TEAM_A else self.team_b

    def set_result(self, team: str, result: TeamResult | None) -> None:
        if team == TEAM_A:
            self.team_a = result
        else:
            self.team_b = result

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED


@dataclass
class ResultStatus:
    """Submission state derived from a match's two team results."""

    state: str
    team: str | None = None

    NONE = "none"
    TEAM_PENDING = "team_pending"
    AGREED = "agreed"
    DISPUTE = "dispute"
