"""
app/services/telegram_service.py

Purpose: Telegram Bot API message sending

- Sends text, text with inline controls, and photos
- Answers callback queries
- Never raises: every call returns a {"success": ...} dict so callers can
  branch on delivery failure
"""

import httpx
from typing import Dict, Any, Optional, List
from app.core.config import settings
from app.core.logging import get_logger
from utils.telegram_utils import build_inline_keyboard

logger = get_logger(__name__)


class TelegramService:
    """Service for sending messages via the Telegram Bot API"""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.bot_token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
        self.base_url = f"{base_url or settings.TELEGRAM_API_BASE_URL}/bot{self.bot_token}"
        self.timeout = timeout or settings.TELEGRAM_TIMEOUT
        self._client = client

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Invokes a Bot API method.

        Returns:
            {
                "success": True/False,
                "message_id": 123,
                "error": "Optional error message"
            }
        """
        url = f"{self.base_url}/{method}"
        chat_id = payload.get("chat_id")

        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, json=payload, timeout=self.timeout)

            body = response.json() if response.content else {}

            if response.status_code == 200 and body.get("ok"):
                result = body.get("result")
                message_id = result.get("message_id") if isinstance(result, dict) else None
                logger.debug(f"✅ {method} delivered to {chat_id}")
                return {"success": True, "message_id": message_id}

            description = body.get("description", response.text)
            logger.error(f"❌ Telegram API error on {method}: {response.status_code} - {description}")
            return {
                "success": False,
                "error": f"Telegram API error: {response.status_code}",
                "description": description
            }

        except httpx.TimeoutException:
            logger.error(f"Telegram API timeout on {method}")
            return {
                "success": False,
                "error": "Telegram API timeout"
            }
        except Exception as e:
            logger.error(f"Error calling Telegram {method}: {e}", exc_info=True)
            return {
                "success": False,
                "error": str(e)
            }

    async def send_text(self, chat_id: int, text: str) -> Dict[str, Any]:
        logger.info(f"📤 Sending text to {chat_id}")
        return await self._call("sendMessage", {"chat_id": chat_id, "text": text})

    async def send_text_with_controls(
        self,
        chat_id: int,
        text: str,
        controls: List[Dict[str, str]]
    ) -> Dict[str, Any]:
        """
        Sends a message with inline controls.

        Args:
            chat_id: Recipient chat
            text: Message text
            controls: Control descriptors with 'id' and 'title' keys
        """
        logger.info(f"📤 Sending text with {len(controls)} controls to {chat_id}")
        return await self._call("sendMessage", {
            "chat_id": chat_id,
            "text": text,
            "reply_markup": build_inline_keyboard(controls)
        })

    async def send_photo(
        self,
        chat_id: int,
        photo_file_id: str,
        caption: Optional[str] = None
    ) -> Dict[str, Any]:
        logger.info(f"📤 Sending photo to {chat_id}")
        payload = {"chat_id": chat_id, "photo": photo_file_id}
        if caption:
            payload["caption"] = caption
        return await self._call("sendPhoto", payload)

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> Dict[str, Any]:
        payload = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload)

    def is_configured(self) -> bool:
        """Check if Telegram is properly configured"""
        return bool(self.bot_token and self.bot_token != "your_bot_token")


# Singleton instance
telegram_service = TelegramService()
