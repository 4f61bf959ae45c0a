import httpx
from typing import Any, Dict, List, Optional
from uuid import UUID

from pairchat.errors import ChatError, error_from_status
from pairchat.schemas.conversation import ConversationSummaryDto
from pairchat.schemas.message import MessageDto
from pairchat.schemas.user import UserSearchResultDto


class ChatApiClient:
    """Client for the chat HTTP API (JSON over HTTP, Bearer session token)"""

    def __init__(self, base_url: str, token: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client or httpx.AsyncClient(timeout=30)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                f"{self.base_url}/api{path}",
                json=json,
                params=params,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.HTTPError as e:
            raise ChatError(f"Could not reach the chat server: {e}")

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = None
            if not isinstance(detail, str):
                detail = f"Request failed ({response.status_code})"
            raise error_from_status(response.status_code, detail)

        return response.json()

    async def get_conversations(self) -> List[ConversationSummaryDto]:
        data = await self._request("GET", "/messages/users")
        return [ConversationSummaryDto.model_validate(item) for item in data]

    async def search_users(self, query: str) -> List[UserSearchResultDto]:
        data = await self._request("GET", "/messages/search", params={"query": query})
        return [UserSearchResultDto.model_validate(item) for item in data]

    async def get_unread_count(self) -> int:
        data = await self._request("GET", "/messages/unread")
        return data["totalUnreadCount"]

    async def get_messages(self, user_id: UUID) -> List[MessageDto]:
        data = await self._request("GET", f"/messages/{user_id}")
        return [MessageDto.model_validate(item) for item in data]

    async def get_pinned_messages(self, user_id: UUID) -> List[MessageDto]:
        data = await self._request("GET", f"/messages/pinned/{user_id}")
        return [MessageDto.model_validate(item) for item in data]

    async def send_message(
        self,
        user_id: UUID,
        text: Optional[str] = None,
        image: Optional[str] = None,
        reply_to: Optional[int] = None,
    ) -> MessageDto:
        body = {"text": text, "image": image, "replyTo": reply_to}
        data = await self._request("POST", f"/messages/send/{user_id}", json=body)
        return MessageDto.model_validate(data)

    async def mark_read(self, sender_id: UUID) -> int:
        data = await self._request("PUT", f"/messages/read/{sender_id}")
        return data["updatedCount"]

    async def pin_message(self, message_id: int) -> MessageDto:
        return MessageDto.model_validate(await self._request("PUT", f"/messages/pin/{message_id}"))

    async def unpin_message(self, message_id: int) -> MessageDto:
        return MessageDto.model_validate(await self._request("PUT", f"/messages/unpin/{message_id}"))

    async def edit_message(self, message_id: int, text: str) -> MessageDto:
        data = await self._request("PUT", f"/messages/edit/{message_id}", json={"text": text})
        return MessageDto.model_validate(data)

    async def delete_message(self, message_id: int) -> MessageDto:
        return MessageDto.model_validate(await self._request("DELETE", f"/messages/delete/{message_id}"))

    async def update_profile(self, **fields: Optional[str]) -> Dict[str, Any]:
        body = {
            "profilePic": fields.get("profile_pic"),
            "fullName": fields.get("full_name"),
            "description": fields.get("description"),
        }
        return await self._request("PUT", "/users/profile", json=body)
