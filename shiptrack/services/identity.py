import logging
from datetime import datetime
from typing import Optional

import jwt
from pydantic import BaseModel

from shiptrack.core.errors import DuplicateUserError, InvalidCredentialsError, ValidationError
from shiptrack.schemas import Session, User
from shiptrack.security.utils import (
    create_session_token,
    decode_token,
    generate_id,
    hash_password,
    now_utc,
    verify_password,
)
from shiptrack.store.record_store import RecordStore

logger = logging.getLogger(__name__)


class AuthSession(BaseModel):
    user: User
    access_token: str
    expires_at: datetime


class IdentityResolver:
    """
    Signup, login and session lookup against the record store.

    A session is a stored Session record named by the `jti` of a signed
    token; callers hold the token and pass it back explicitly.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def signup(self, email: str, password: str, full_name: str, phone: str = '') -> AuthSession:
        email = (email or '').strip()
        if not email or not password or not (full_name or '').strip():
            raise ValidationError("Email, password and full name are required")
        if self._by_email(email):
            raise DuplicateUserError("User with this email already exists")

        user = User(
            id=generate_id(),
            email=email,
            full_name=full_name.strip(),
            phone=phone or '',
            password_hash=hash_password(password),
            created_at=now_utc(),
        )
        self.store.save(user)
        logger.info("Registered user %s", user.id)
        return self._open_session(user)

    def login(self, email: str, password: str) -> AuthSession:
        user = self._by_email((email or '').strip())
        if not user or not verify_password(password or '', user.password_hash):
            raise InvalidCredentialsError("Invalid email or password")
        return self._open_session(user)

    def logout(self, token: Optional[str]) -> None:
        session = self._session_for(token)
        if session is None or session.revoked:
            return
        session.revoked = True
        self.store.save(session)
        logger.info("Closed session %s for user %s", session.id, session.user_id)

    def current_session(self, token: Optional[str]) -> Optional[User]:
        session = self._session_for(token)
        if session is None or session.revoked or session.expires_at < now_utc():
            return None
        return self.store.get(User, session.user_id)

    def _by_email(self, email: str) -> Optional[User]:
        return self.store.find(User, lambda u: u.email == email)

    def _open_session(self, user: User) -> AuthSession:
        token, jti, exp = create_session_token(user.id, user.role)
        self.store.save(Session(id=jti, user_id=user.id, created_at=now_utc(), expires_at=exp))
        return AuthSession(user=user, access_token=token, expires_at=exp)

    def _session_for(self, token: Optional[str]) -> Optional[Session]:
        if not token:
            return None
        try:
            claims = decode_token(token)
        except jwt.PyJWTError:
            return None
        if claims.get('type') != 'session' or not claims.get('jti'):
            return None
        session = self.store.get(Session, claims['jti'])
        if session is None or session.user_id != claims.get('sub'):
            return None
        return session
