from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from pairchat.database import get_db
from pairchat.models.user import User
from pairchat.security import TOKEN_COOKIE_NAME, decode_user_id
from pairchat.services.media import MediaStorage
from pairchat.services.message_store import MessageStore
from pairchat.ws import EventBus, PresenceRegistry

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current user from the session cookie or a Bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = decode_user_id(token)
    if user_id is None:
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None or user.deleted:
        raise credentials_exception

    return user


def get_media_storage() -> MediaStorage:
    return MediaStorage()


def get_message_store(
    db: AsyncSession = Depends(get_db),
    media: MediaStorage = Depends(get_media_storage),
) -> MessageStore:
    return MessageStore(db, media)


def get_registry(request: Request) -> PresenceRegistry:
    return request.app.state.registry


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.events
