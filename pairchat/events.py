"""Realtime event names and the envelope they travel in."""
from typing import Any

NEW_MESSAGE = "message:new"
MESSAGES_READ = "message:read"
MESSAGE_PINNED = "message:pinned"
MESSAGE_UNPINNED = "message:unpinned"
MESSAGE_EDITED = "message:edited"
MESSAGE_DELETED = "message:deleted"
PROFILE_UPDATED = "profile:updated"
PRESENCE_ONLINE = "presence:online"


def envelope(event: str, data: Any) -> dict:
    return {"event": event, "data": data}
