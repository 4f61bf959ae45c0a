from datetime import datetime
from typing import Optional
from uuid import UUID

from pairchat.schemas.base import CamelModel


class UserSummaryDto(CamelModel):
    id: UUID
    full_name: str
    profile_pic: str = ""
    description: str = ""
    created_at: datetime


class UserSearchResultDto(UserSummaryDto):
    unread_count: int = 0


class ProfileUpdateRequest(CamelModel):
    profile_pic: Optional[str] = None
    full_name: Optional[str] = None
    description: Optional[str] = None


class ProfileUpdatedEvent(CamelModel):
    user_id: UUID
    profile_pic: str
    full_name: str
    description: str


class DeleteAccountRequest(CamelModel):
    confirmation_text: str
