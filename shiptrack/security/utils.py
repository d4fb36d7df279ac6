from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
import jwt, uuid, secrets
from typing import Tuple
from shiptrack.core.config import settings

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool:
    try:
        return pwd_ctx.verify(p, h)
    except ValueError:
        # malformed stored hash
        return False

def now_utc() -> datetime: return datetime.now(timezone.utc)

def generate_id() -> str: return uuid.uuid4().hex

def generate_tracking_number() -> str: return 'ST' + secrets.token_hex(8).upper()

def create_session_token(user_id: str, role: str) -> Tuple[str, str, datetime]:
    exp = now_utc() + timedelta(seconds=settings.SESSION_EXPIRES_SECONDS)
    jti = generate_id()
    payload = {'sub': user_id, 'role': role, 'jti': jti, 'exp': exp, 'type': 'session'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), jti, exp

def decode_token(token: str):
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
