from fastapi import APIRouter, Header
from pydantic import BaseModel, StrictInt
from ..services import matches as match_service
from ..services.auth import require_auth, optional_auth

router = APIRouter()


class MatchCreate(BaseModel):
    week: StrictInt
    team_a: list[str]
    team_b: list[str]


class ResultSubmit(BaseModel):
    score: str
    winner: str
    team: str | None = None


class ConfirmRequest(BaseModel):
    team: str | None = None


@router.post("/ladders/{ladder_id}/matches")
def create_match(ladder_id: str, data: MatchCreate, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    match = match_service.create_match(ladder_id, data.week, [*data.team_a, *data.team_b], uid)
    return {"status": "ok", "match_id": match.id}


@router.get("/ladders/{ladder_id}/matches")
def list_ladder_matches(ladder_id: str, week: int | None = None, status: str | None = None):
    return match_service.ladder_matches(ladder_id, week=week, status=status)


@router.get("/matches/{match_id}")
def get_match(match_id: int, authorization: str | None = Header(None)):
    viewer = optional_auth(authorization)
    return match_service.match_detail(match_id, viewer)


@router.post("/matches/{match_id}/submit")
def submit_result(match_id: int, data: ResultSubmit, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    match = match_service.submit_team_result(match_id, data.team, data.score, data.winner, uid)
    return match_service.match_to_dict(match, viewer_id=uid)


@router.post("/matches/{match_id}/confirm")
def confirm_result(match_id: int, data: ConfirmRequest | None = None,
                   authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    team = data.team if data else None
    match = match_service.confirm_other_team_result(match_id, team, uid)
    return match_service.match_to_dict(match, viewer_id=uid)


@router.post("/matches/{match_id}/force_complete")
def force_complete(match_id: int, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    match = match_service.admin_force_complete(match_id, uid)
    return match_service.match_to_dict(match)


@router.delete("/matches/{match_id}")
def cancel_match(match_id: int, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    match_service.cancel_match(match_id, uid)
    return {"status": "cancelled"}


@router.get("/admin/matches/attention")
def attention_matches(ladder_id: str | None = None, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.attention_matches(uid, ladder_id)
