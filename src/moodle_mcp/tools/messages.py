"""
Moodle MCP Message Tools

This module contains tools for Moodle conversations.
"""

import logging
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from moodle_mcp.exceptions import CapabilityUnavailableError

# Configure logging
logger = logging.getLogger(__name__)


def register_message_tools(mcp: FastMCP) -> None:
    """Register message tools with the MCP server."""

    @mcp.tool()
    async def list_conversations(ctx: Context) -> dict[str, Any]:
        """
        List the user's Moodle conversations.

        Args:
            ctx: Request context containing resources

        Returns:
            Conversations with their last message and unread count
        """
        messaging_service = ctx.request_context.lifespan_context["messaging_service"]
        sync_service = ctx.request_context.lifespan_context["sync_service"]
        try:
            conversations = await messaging_service.list_conversations()
            return {"conversations": [c.model_dump(mode="json") for c in conversations]}
        except CapabilityUnavailableError as e:
            return {"error": str(e), "fallback_url": sync_service.fallback_url("messages")}
        except Exception as e:
            logger.error(f"Error listing conversations: {e}")
            return {"error": str(e)}

    @mcp.tool()
    async def get_conversation_messages(
        ctx: Context, conversation_id: int, limit: int = 100
    ) -> dict[str, Any]:
        """
        Get the latest messages of a Moodle conversation.

        Args:
            ctx: Request context containing resources
            conversation_id: Moodle conversation ID
            limit: Maximum number of messages to return

        Returns:
            Messages of the conversation, or an error
        """
        messaging_service = ctx.request_context.lifespan_context["messaging_service"]
        sync_service = ctx.request_context.lifespan_context["sync_service"]
        try:
            messages = await messaging_service.get_messages(conversation_id, limit)
            return {"messages": [m.model_dump(mode="json") for m in messages]}
        except CapabilityUnavailableError as e:
            return {"error": str(e), "fallback_url": sync_service.fallback_url("messages")}
        except Exception as e:
            logger.error(f"Error getting messages of conversation {conversation_id}: {e}")
            return {"error": str(e)}

    @mcp.tool()
    async def send_message(ctx: Context, conversation_id: int, text: str) -> dict[str, Any]:
        """
        Send a message to a Moodle conversation.

        Args:
            ctx: Request context containing resources
            conversation_id: Moodle conversation ID
            text: Message text

        Returns:
            The sent message, or an error
        """
        messaging_service = ctx.request_context.lifespan_context["messaging_service"]
        sync_service = ctx.request_context.lifespan_context["sync_service"]
        if not text.strip():
            return {"error": "Message text cannot be empty"}
        try:
            message = await messaging_service.send_message(conversation_id, text)
            return {"sent": True, "message": message.model_dump(mode="json")}
        except CapabilityUnavailableError as e:
            return {"error": str(e), "fallback_url": sync_service.fallback_url("messages")}
        except Exception as e:
            logger.error(f"Error sending message to conversation {conversation_id}: {e}")
            return {"error": str(e)}
