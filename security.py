import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    REFRESH_TOKEN_EXPIRE_DAYS,
    SECRET_KEY,
)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TTL = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
REFRESH_TOKEN_TTL = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user_id: str, roles: List[str], expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or ACCESS_TOKEN_TTL)
    claims = {"sub": user_id, "roles": list(roles), "type": "access", "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(user_id: str, expires_delta: Optional[timedelta] = None) -> Tuple[str, str, datetime]:
    """Return (token, jti, expires_at); the jti names the server-side session."""
    jti = secrets.token_urlsafe(16)
    expire = datetime.now(timezone.utc) + (expires_delta or REFRESH_TOKEN_TTL)
    claims = {"sub": user_id, "type": "refresh", "jti": jti, "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM), jti, expire


def decode_token(token: str, expected_type: str) -> dict:
    """Decode and verify a token; raises JWTError when invalid, expired or of the wrong type."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise JWTError(f"Expected a {expected_type} token")
    return payload
