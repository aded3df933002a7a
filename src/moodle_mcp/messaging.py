"""
Moodle Messaging

Conversations and messages through Moodle's messaging web services. Only
usable when the capability probe found the messaging functions; otherwise
callers should send the user to the "messages" fallback URL.
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from moodle_mcp.models import epoch_to_datetime, to_int
from moodle_mcp.sync.capabilities import MESSAGE_CONVERSATIONS, MESSAGE_SEND, require

if TYPE_CHECKING:
    from moodle_mcp.sync.service import SyncService

# Configure logging
logger = logging.getLogger(__name__)

GROUP_CONVERSATION_TYPE = 2


class ChatConversation(BaseModel):
    id: int
    title: str
    is_group: bool = False
    last_message: str | None = None
    last_message_time: datetime | None = None
    unread_count: int = 0


class ChatMessage(BaseModel):
    id: int | None = None
    text: str
    sender_id: int | None = None
    sender_name: str | None = None
    sent_at: datetime | None = None
    attachments: list[str] = Field(default_factory=list)


def _conversation_from_raw(data: dict[str, Any]) -> ChatConversation | None:
    conversation_id = to_int(data.get("id"))
    if conversation_id is None:
        return None

    title = data.get("name")
    if not title:
        # Private conversations have no name; use the other member's
        members = data.get("members") or []
        names = [m.get("fullname") for m in members if isinstance(m, dict) and m.get("fullname")]
        title = ", ".join(names) or f"Conversation {conversation_id}"

    last_message = None
    last_time = epoch_to_datetime(data.get("timecreated"))
    messages = data.get("messages") or []
    if messages and isinstance(messages[0], dict):
        last_message = messages[0].get("text")
        last_time = epoch_to_datetime(messages[0].get("timecreated")) or last_time

    return ChatConversation(
        id=conversation_id,
        title=title,
        is_group=to_int(data.get("type")) == GROUP_CONVERSATION_TYPE,
        last_message=last_message or data.get("lastmessage"),
        last_message_time=last_time,
        unread_count=to_int(data.get("unreadcount")) or 0,
    )


def _message_from_raw(data: dict[str, Any]) -> ChatMessage | None:
    text = data.get("text")
    if not isinstance(text, str):
        return None
    return ChatMessage(
        id=to_int(data.get("id")),
        text=text,
        sender_id=to_int(data.get("useridfrom") or data.get("userfromid")),
        sender_name=data.get("userfromfullname"),
        sent_at=epoch_to_datetime(data.get("timecreated")),
    )


class MessagingService:
    """Moodle messaging for the configured site."""

    def __init__(self, sync_service: "SyncService"):
        self.sync_service = sync_service
        self._user_id: int | None = None

    async def _call(self, function: str, params: dict[str, Any]) -> Any:
        config = self.sync_service.require_config()
        return await asyncio.to_thread(
            self.sync_service.api_adapter.call, config, function, params
        )

    async def current_user_id(self) -> int | None:
        """Look up (once) the Moodle user id the token belongs to."""
        if self._user_id is None:
            info = await self._call("core_webservice_get_site_info", {})
            if isinstance(info, dict):
                self._user_id = to_int(info.get("userid"))
        return self._user_id

    async def list_conversations(self) -> list[ChatConversation]:
        """List the user's conversations, newest first as Moodle returns them."""
        require(self.sync_service.capabilities, MESSAGE_CONVERSATIONS)
        params = {}
        user_id = await self.current_user_id()
        if user_id is not None:
            params["userid"] = user_id

        payload = await self._call(MESSAGE_CONVERSATIONS, params)
        if isinstance(payload, dict):
            payload = payload.get("conversations")
        if not isinstance(payload, list):
            return []

        conversations = [
            _conversation_from_raw(item) for item in payload if isinstance(item, dict)
        ]
        return [c for c in conversations if c is not None]

    async def get_messages(self, conversation_id: int, limit: int = 100) -> list[ChatMessage]:
        """Fetch the latest messages of a conversation."""
        require(self.sync_service.capabilities, MESSAGE_CONVERSATIONS)
        params = {"convid": conversation_id, "limitfrom": 0, "limitnum": limit}
        user_id = await self.current_user_id()
        if user_id is not None:
            params["currentuserid"] = user_id

        payload = await self._call("core_message_get_conversation_messages", params)
        if not isinstance(payload, dict) or not isinstance(payload.get("messages"), list):
            return []
        messages = [_message_from_raw(m) for m in payload["messages"] if isinstance(m, dict)]
        return [m for m in messages if m is not None]

    async def send_message(self, conversation_id: int, text: str) -> ChatMessage:
        """Send a plain-text message to a conversation."""
        require(self.sync_service.capabilities, MESSAGE_SEND)
        payload = await self._call(
            MESSAGE_SEND,
            {"conversationid": conversation_id, "messages": [{"text": text}]},
        )

        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            sent = _message_from_raw(payload[0])
            if sent is not None:
                return sent
        logger.debug(f"Send to conversation {conversation_id} returned no message echo")
        return ChatMessage(text=text, sender_name="You", sent_at=datetime.now())
