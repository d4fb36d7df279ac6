from typing import Optional

from fastapi import APIRouter, Depends, status

from shiptrack.api.deps import get_current_user, get_identity, get_token
from shiptrack.api.v1.schemas import LoginPayload, SessionRead, SignupPayload, UserRead
from shiptrack.schemas import User
from shiptrack.services.identity import AuthSession, IdentityResolver

router = APIRouter()  # main.py mounts at /auth


def _session_out(auth: AuthSession) -> SessionRead:
    return SessionRead(
        user=UserRead(**auth.user.model_dump()),
        access_token=auth.access_token,
        expires_at=auth.expires_at,
    )


@router.post("/signup", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupPayload, identity: IdentityResolver = Depends(get_identity)) -> SessionRead:
    auth = identity.signup(str(payload.email), payload.password, payload.full_name, payload.phone or "")
    return _session_out(auth)


@router.post("/login", response_model=SessionRead)
def login(payload: LoginPayload, identity: IdentityResolver = Depends(get_identity)) -> SessionRead:
    return _session_out(identity.login(str(payload.email), payload.password))


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(token: Optional[str] = Depends(get_token), identity: IdentityResolver = Depends(get_identity)) -> dict:
    identity.logout(token)
    return {"status": "ok"}


@router.get("/me", response_model=UserRead)
def me(user: User = Depends(get_current_user)) -> UserRead:
    return UserRead(**user.model_dump())
