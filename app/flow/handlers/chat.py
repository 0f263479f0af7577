"""
app/flow/handlers/chat.py

Handles: live chat between two matched users

- Binds both chats once a meeting request is accepted
- Relays text, photos and locations to the partner with sender attribution
- Keeps a log of relayed messages
- Ends the chat for both sides at once
"""

from typing import Dict, Any, Optional

from app.flow.context import FlowContext
from app.models.session import ChatBinding
from app.core.logging import get_logger, LogContext
from utils.constants import (
    BUTTON_END_CHAT,
    CALLBACK_END_CHAT,
    CHAT_ENDED_PARTNER,
    CHAT_ENDED_SELF,
    CHAT_RELAY_FAILED,
    CHAT_STARTED,
    NOT_CHATTING,
)
from utils.message_utils import display_name
from utils.telegram_utils import create_control, maps_link

logger = get_logger(__name__)


class ChatSessionManager:
    """Starts, relays and ends chat sessions."""

    def __init__(self, ctx: FlowContext):
        self.ctx = ctx

    async def _name_of(self, chat_id: int, fallback: str = "Your partner") -> str:
        user = await self.ctx.users.get_user_by_telegram_id(chat_id)
        return display_name(user, fallback)

    async def start(
        self,
        chat_id: int,
        partner_id: int,
        meeting_request_id: Optional[str] = None,
        announce: bool = True
    ) -> ChatBinding:
        """
        Binds two chats and, unless told otherwise, tells both sides.

        Raises:
            ChatAlreadyActiveError: If either chat is already bound
            ValueError: If both ids are the same chat
        """
        binding = await self.ctx.store.start_chat(chat_id, partner_id, meeting_request_id)
        if announce:
            await self.announce(binding)
        return binding

    async def announce(self, binding: ChatBinding):
        controls = [create_control(CALLBACK_END_CHAT, BUTTON_END_CHAT)]
        for participant in binding.participants:
            partner_name = await self._name_of(binding.partner_of(participant))
            await self.ctx.reply(participant, CHAT_STARTED.format(name=partner_name), controls)

    async def _log_message(
        self,
        binding: ChatBinding,
        sender_id: int,
        text: Optional[str] = None,
        photo_file_id: Optional[str] = None
    ):
        try:
            await self.ctx.chats.save_message(
                meeting_request_id=binding.meeting_request_id,
                sender_id=sender_id,
                receiver_id=binding.partner_of(sender_id),
                text=text,
                photo_file_id=photo_file_id
            )
        except Exception as e:
            logger.error(f"❌ Failed to store chat message: {e}", exc_info=True)

    async def _relay(self, chat_id: int, send) -> Dict[str, Any]:
        binding = await self.ctx.store.get_chat_binding(chat_id)
        if binding is None:
            await self.ctx.reply(chat_id, NOT_CHATTING)
            return {"status": "ignored", "reason": "not_chatting"}

        partner_id = binding.partner_of(chat_id)
        with LogContext(chat_id=chat_id, partner_id=partner_id, request_id=binding.meeting_request_id):
            result = await send(partner_id)
            if not result.get("success"):
                logger.warning(f"⚠️ Relay failed: {result.get('error')}")
                await self.ctx.reply(chat_id, CHAT_RELAY_FAILED)
                return {"status": "error", "reason": "delivery_failed", "binding": binding}
            return {"status": "success", "binding": binding}

    async def relay_text(self, chat_id: int, text: str, sender_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Forwards text to the partner as "<sender>: <text>".
        """
        name = sender_name or "Partner"
        response = await self._relay(
            chat_id,
            lambda partner_id: self.ctx.messenger.send_text(partner_id, f"💬 {name}: {text}")
        )
        if response["status"] == "success":
            await self._log_message(response["binding"], chat_id, text=text)
        response.pop("binding", None)
        return response

    async def relay_photo(
        self,
        chat_id: int,
        photo_file_id: str,
        sender_name: Optional[str] = None,
        caption: Optional[str] = None
    ) -> Dict[str, Any]:
        name = sender_name or "Partner"
        full_caption = f"📸 {name}: {caption}" if caption else f"📸 {name}"
        response = await self._relay(
            chat_id,
            lambda partner_id: self.ctx.messenger.send_photo(partner_id, photo_file_id, full_caption)
        )
        if response["status"] == "success":
            await self._log_message(response["binding"], chat_id, text=caption, photo_file_id=photo_file_id)
        response.pop("binding", None)
        return response

    async def relay_location(
        self,
        chat_id: int,
        latitude: float,
        longitude: float,
        sender_name: Optional[str] = None
    ) -> Dict[str, Any]:
        name = sender_name or "Partner"
        link = maps_link(latitude, longitude)
        response = await self._relay(
            chat_id,
            lambda partner_id: self.ctx.messenger.send_text(partner_id, f"📍 {name} shared a location: {link}")
        )
        if response["status"] == "success":
            await self._log_message(response["binding"], chat_id, text=link)
        response.pop("binding", None)
        return response

    async def end_chat(self, chat_id: int, notify: bool = True) -> bool:
        """
        Ends the chat for both participants.

        Returns:
            True if a chat was ended, False if there was none (nothing is sent)
        """
        binding = await self.ctx.store.end_chat(chat_id)
        if binding is None:
            return False

        if notify:
            partner_id = binding.partner_of(chat_id)
            ender_name = await self._name_of(chat_id)
            await self.ctx.reply(chat_id, CHAT_ENDED_SELF)
            await self.ctx.reply(partner_id, CHAT_ENDED_PARTNER.format(name=ender_name))
        return True
