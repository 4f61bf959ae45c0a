from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from pairchat.config import get_settings

settings = get_settings()

TOKEN_COOKIE_NAME = "chat_session"


def create_access_token(user_id: UUID, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return jwt.encode({"sub": str(user_id), "exp": expire}, settings.secret_key, algorithm=settings.algorithm)


def decode_user_id(token: str) -> Optional[UUID]:
    """Return the user id named by a session token, or None when it is invalid."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return UUID(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        return None
