from fastapi import APIRouter, Header
from pydantic import BaseModel, model_validator
from ..services import users as user_service
from ..services import ladders as ladder_service
from ..services import matches as match_service
from ..services import state
from ..services.auth import require_auth, require_self

router = APIRouter()


class UserCreate(BaseModel):
    user_id: str | None = None
    name: str
    email: str
    password: str
    phone: str | None = None


class LoginRequest(BaseModel):
    # either the user id or the registered email
    user_id: str | None = None
    email: str | None = None
    password: str

    @model_validator(mode="after")
    def _identifier_given(self):
        if not (self.user_id or self.email):
            raise ValueError("user_id or email is required")
        return self


class RefreshRequest(BaseModel):
    refresh_token: str


def _token_payload(access: str, user_id: str) -> dict:
    return {
        "access_token": access,
        "token": access,
        "token_type": "bearer",
        "expires_in": int(state.TOKEN_TTL.total_seconds()),
        "user_id": user_id,
    }


@router.post("/users")
def register_user_api(data: UserCreate):
    uid = user_service.create_user(data)
    return {"status": "ok", "user_id": uid}


@router.post("/login")
def login_api(data: LoginRequest):
    ok, access, refresh, user_id = user_service.login(data.user_id or data.email, data.password)
    if not ok:
        return {"success": False}
    return {"success": True, "refresh_token": refresh, **_token_payload(access, user_id)}


@router.post("/logout")
def logout_api(authorization: str | None = Header(None)):
    require_auth(authorization)
    user_service.logout(authorization[7:].strip())
    return {"status": "ok"}


@router.post("/refresh_token")
def refresh_access_token_api(data: RefreshRequest):
    token, uid = user_service.refresh_access_token(data.refresh_token)
    return _token_payload(token, uid)


@router.get("/users/{user_id}")
def get_user_info(user_id: str):
    return user_service.user_info(user_id)


@router.get("/users/{user_id}/memberships")
def get_user_memberships(user_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    require_self(uid, user_id)
    return ladder_service.user_memberships(user_id)


@router.get("/users/{user_id}/matches")
def get_user_matches(user_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    require_self(uid, user_id)
    return match_service.player_matches(user_id)
