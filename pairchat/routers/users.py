from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
import logging

from pairchat.database import get_db
from pairchat.dependencies import get_current_user, get_event_bus, get_media_storage
from pairchat.errors import ValidationError
from pairchat.models.user import User
from pairchat.schemas.user import DeleteAccountRequest, ProfileUpdateRequest, ProfileUpdatedEvent
from pairchat.security import TOKEN_COOKIE_NAME
from pairchat.services.media import MediaStorage
from pairchat.ws import EventBus

logger = logging.getLogger(__name__)

router = APIRouter()


def _profile(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "fullName": user.full_name,
        "profilePic": user.profile_pic or "",
        "description": user.description or "",
        "createdAt": user.created_at.isoformat(),
    }


@router.get("/me")
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user info"""
    return _profile(current_user)


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaStorage = Depends(get_media_storage),
    events: EventBus = Depends(get_event_bus),
):
    """Update avatar, name or description and tell every connected client."""
    changed = False

    if body.profile_pic:
        current_user.profile_pic = await media.store(body.profile_pic)
        changed = True

    if body.full_name is not None:
        full_name = body.full_name.strip()
        if not full_name:
            raise ValidationError("Full name cannot be empty")
        current_user.full_name = full_name
        changed = True

    if body.description is not None:
        current_user.description = body.description
        changed = True

    if not changed:
        raise ValidationError("No valid fields to update")

    await db.commit()
    await db.refresh(current_user)

    await events.profile_updated(ProfileUpdatedEvent(
        user_id=current_user.id,
        profile_pic=current_user.profile_pic or "",
        full_name=current_user.full_name,
        description=current_user.description or "",
    ))

    return _profile(current_user)


@router.delete("/me")
async def delete_account(
    body: DeleteAccountRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete the account; authored messages stay visible to counterparts."""
    expected = f"{current_user.full_name} Delete"
    if body.confirmation_text != expected:
        raise ValidationError(f'Please type "{expected}" to confirm account deletion')

    current_user.deleted = True
    current_user.deleted_at = datetime.utcnow()
    # Keep the name for message history, clear everything else
    current_user.email = f"deleted_{current_user.id}@deleted.com"
    current_user.profile_pic = ""
    current_user.description = ""
    await db.commit()

    logger.info(f"Account {current_user.id} soft-deleted")
    response.delete_cookie(key=TOKEN_COOKIE_NAME)
    return {"success": True, "message": "Account deleted successfully"}
