from typing import Dict, List, Optional, Any
from uuid import UUID
from fastapi import WebSocket
import redis.asyncio as aioredis
import asyncio
import json
import logging

from pairchat.events import (
    MESSAGE_DELETED, MESSAGE_EDITED, MESSAGE_PINNED, MESSAGE_UNPINNED, MESSAGES_READ,
    NEW_MESSAGE, PRESENCE_ONLINE, PROFILE_UPDATED, envelope,
)
from pairchat.schemas.message import MessageDto, ReadReceiptDto
from pairchat.schemas.user import ProfileUpdatedEvent

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "chat:events"


class PresenceRegistry:
    """Maps a user id to its single live connection.

    A second connection from the same user replaces the first. Every
    connect and disconnect broadcasts the online-id snapshot to all
    connections while still holding the lock, so no one observes a partial
    online set.
    """

    def __init__(self):
        # user_id (UUID string) -> WebSocket
        self._connections: Dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id, websocket: WebSocket) -> Optional[WebSocket]:
        """Register ``websocket`` for ``user_id``; returns the connection it replaced, if any."""
        key = str(user_id)
        async with self._lock:
            replaced = self._connections.get(key)
            self._connections[key] = websocket
            if replaced is not None:
                logger.info(f"User {key} reconnected; replacing previous connection")
            await self._broadcast_presence()
        return replaced

    async def disconnect(self, user_id, websocket: WebSocket) -> bool:
        key = str(user_id)
        async with self._lock:
            # A replaced connection closing must not evict its successor
            if self._connections.get(key) is not websocket:
                return False
            del self._connections[key]
            await self._broadcast_presence()
        return True

    def lookup(self, user_id) -> Optional[WebSocket]:
        return self._connections.get(str(user_id))

    def online_user_ids(self) -> List[str]:
        return sorted(self._connections)

    async def deliver(self, user_id, message: dict) -> bool:
        """Send to the user's connection; False when the user is offline."""
        websocket = self.lookup(user_id)
        if websocket is None:
            return False
        return await self._send(websocket, message)

    async def broadcast(self, message: dict) -> None:
        for websocket in list(self._connections.values()):
            await self._send(websocket, message)

    async def _broadcast_presence(self) -> None:
        await self.broadcast(envelope(PRESENCE_ONLINE, self.online_user_ids()))

    async def _send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Dropping event for closed connection: {e}")
            return False


class EventBus:
    """Fire-and-forget delivery of chat events.

    Point-to-point events go to the counterpart's live connection only and
    are dropped when it is offline. With a Redis URL configured, events are
    published on a shared channel and each process forwards them to its own
    connections.
    """

    def __init__(self, registry: PresenceRegistry):
        self.registry = registry
        self.redis: Optional[Any] = None
        self._listener: Optional[asyncio.Task] = None

    async def send_to_user(self, user_id, event: str, data: Any) -> None:
        message = envelope(event, data)
        if self.redis is not None:
            if await self._publish({"target_user_id": str(user_id), "payload": message}):
                return
        delivered = await self.registry.deliver(user_id, message)
        if not delivered:
            logger.debug(f"User {user_id} offline; dropped {event}")

    async def broadcast(self, event: str, data: Any) -> None:
        message = envelope(event, data)
        if self.redis is not None:
            if await self._publish({"target_user_id": None, "payload": message}):
                return
        await self.registry.broadcast(message)

    async def message_created(self, message: MessageDto) -> None:
        await self.send_to_user(message.receiver_id, NEW_MESSAGE, _dump(message))

    async def messages_read(self, sender_id: UUID, receiver_id: UUID, message_ids: List[int]) -> None:
        if not message_ids:
            return
        receipt = ReadReceiptDto(receiver_id=receiver_id, message_ids=message_ids)
        await self.send_to_user(sender_id, MESSAGES_READ, _dump(receipt))

    async def message_pinned(self, message: MessageDto, actor_id: UUID) -> None:
        await self.send_to_user(message.counterpart_of(actor_id), MESSAGE_PINNED, _dump(message))

    async def message_unpinned(self, message: MessageDto, actor_id: UUID) -> None:
        await self.send_to_user(message.counterpart_of(actor_id), MESSAGE_UNPINNED, _dump(message))

    async def message_edited(self, message: MessageDto) -> None:
        await self.send_to_user(message.receiver_id, MESSAGE_EDITED, _dump(message))

    async def message_deleted(self, message: MessageDto) -> None:
        await self.send_to_user(message.receiver_id, MESSAGE_DELETED, _dump(message))

    async def profile_updated(self, profile: ProfileUpdatedEvent) -> None:
        await self.broadcast(PROFILE_UPDATED, _dump(profile))

    async def _publish(self, item: dict) -> bool:
        try:
            await self.redis.publish(EVENTS_CHANNEL, json.dumps(item))
            return True
        except Exception:
            logger.exception("Failed to publish to redis; delivering locally")
            return False

    def start_relay(self, redis_url: str) -> None:
        """Connect to Redis and forward channel events to local connections."""
        if self.redis is not None or not redis_url:
            if not redis_url:
                logger.info("REDIS_URL not configured, delivering events in-process")
            return
        try:
            self.redis = aioredis.from_url(redis_url)
            self._listener = asyncio.get_running_loop().create_task(self._relay_listener())
            logger.info(f"Redis relay initialized: {redis_url}")
        except Exception as e:
            logger.exception(f"Failed to initialize Redis client: {e}")
            self.redis = None

    async def stop_relay(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    async def _relay_listener(self) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(EVENTS_CHANNEL)
        async for item in pubsub.listen():
            if item is None or item["type"] != "message":
                continue
            try:
                data = json.loads(item["data"])
                target = data.get("target_user_id")
                payload = data.get("payload")
                if not payload:
                    continue
                if target:
                    await self.registry.deliver(target, payload)
                else:
                    await self.registry.broadcast(payload)
            except Exception:
                logger.exception("Error processing pubsub message")


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)
