from pairchat.schemas.user import (
    UserSummaryDto, UserSearchResultDto, ProfileUpdateRequest, ProfileUpdatedEvent, DeleteAccountRequest,
)
from pairchat.schemas.message import (
    SendMessageRequest, EditMessageRequest, MessageDto, LastMessageDto, ReadReceiptDto,
    MarkReadResponse, UnreadCountResponse,
)
from pairchat.schemas.conversation import ConversationSummaryDto

__all__ = [
    "UserSummaryDto", "UserSearchResultDto", "ProfileUpdateRequest", "ProfileUpdatedEvent", "DeleteAccountRequest",
    "SendMessageRequest", "EditMessageRequest", "MessageDto", "LastMessageDto", "ReadReceiptDto",
    "MarkReadResponse", "UnreadCountResponse",
    "ConversationSummaryDto",
]
