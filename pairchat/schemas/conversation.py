from datetime import datetime
from typing import List, Optional

from pydantic import computed_field

from pairchat.schemas.base import CamelModel
from pairchat.schemas.message import LastMessageDto
from pairchat.schemas.user import UserSummaryDto


class ConversationSummaryDto(CamelModel):
    user: UserSummaryDto
    last_message: Optional[LastMessageDto] = None
    last_message_time: datetime
    unread_message_ids: List[int] = []
    # Received messages known to be read; read never reverts to unread
    read_message_ids: List[int] = []

    @computed_field
    @property
    def unread_count(self) -> int:
        return len(self.unread_message_ids)
