from fastapi import APIRouter, Header
from pydantic import BaseModel, StrictInt
from ..services import ladders as ladder_service
from ..services.auth import require_auth

router = APIRouter()


class LadderCreate(BaseModel):
    ladder_id: str | None = None
    name: str
    type: str = "competitive"
    fee: float = 0.0


class ReorderRequest(BaseModel):
    order: list[StrictInt]
    moved_id: StrictInt
    target_index: StrictInt


class RankCommit(BaseModel):
    order: list[StrictInt]
    version: str | None = None


@router.get("/ladders")
def list_ladders():
    return ladder_service.list_all_ladders()


@router.post("/ladders")
def create_ladder(data: LadderCreate, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    lid = ladder_service.create_ladder(
        uid, data.name, type=data.type, fee=data.fee, ladder_id=data.ladder_id
    )
    return {"status": "ok", "ladder_id": lid}


@router.get("/ladders/{ladder_id}/standings")
def get_standings(ladder_id: str):
    return ladder_service.standings(ladder_id)


@router.post("/ladders/{ladder_id}/join")
def join_ladder(ladder_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    membership = ladder_service.join_ladder(ladder_id, uid)
    return {
        "status": "ok",
        "membership_id": membership.id,
        "rank": membership.current_rank,
    }


@router.post("/ladders/{ladder_id}/members/{user_id}/deactivate")
def deactivate_member(ladder_id: str, user_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    ladder_service.deactivate_membership(ladder_id, user_id, uid)
    return {"status": "ok"}


@router.post("/ladders/{ladder_id}/reorder")
def preview_reorder(ladder_id: str, data: ReorderRequest, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    order = ladder_service.preview_reorder(
        ladder_id, data.order, data.moved_id, data.target_index, uid
    )
    return {"order": order}


@router.put("/ladders/{ladder_id}/ranks")
def commit_ranks(ladder_id: str, data: RankCommit, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    version = ladder_service.commit_ranks(ladder_id, data.order, uid, version=data.version)
    return {"status": "ok", "version": version}
