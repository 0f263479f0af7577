"""
app/services/notification_service.py

Purpose: Two-tier delivery of actionable notifications

- Tier 1: rich message with inline controls
- Tier 2: plain text carrying literal command forms
- Result type the caller branches on instead of catching exceptions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from app.core.logging import get_logger

logger = get_logger(__name__)


class DeliveryTier(str, Enum):
    RICH = "RICH"
    FALLBACK = "FALLBACK"
    FAILED = "FAILED"


@dataclass
class DeliveryResult:
    tier: DeliveryTier
    errors: List[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.tier != DeliveryTier.FAILED


async def deliver_with_fallback(
    messenger: Any,
    chat_id: int,
    text: str,
    controls: List[Dict[str, str]],
    fallback_text: str
) -> DeliveryResult:
    """
    Sends `text` with controls; if that fails, sends `fallback_text` as
    plain text.

    Args:
        messenger: Object exposing send_text / send_text_with_controls
        chat_id: Recipient
        text: Rich message body
        controls: Control descriptors for the rich tier
        fallback_text: Self-contained plain message for the second tier

    Returns:
        DeliveryResult with the tier that succeeded
    """
    errors: List[str] = []

    rich = await messenger.send_text_with_controls(chat_id, text, controls)
    if rich.get("success"):
        return DeliveryResult(tier=DeliveryTier.RICH)

    errors.append(str(rich.get("error")))
    logger.warning(
        f"⚠️ Rich notification to {chat_id} failed, falling back to plain text: {rich.get('error')}",
        extra={"chat_id": chat_id}
    )

    plain = await messenger.send_text(chat_id, fallback_text)
    if plain.get("success"):
        return DeliveryResult(tier=DeliveryTier.FALLBACK, errors=errors)

    errors.append(str(plain.get("error")))
    logger.error(
        f"❌ Notification to {chat_id} could not be delivered",
        extra={"chat_id": chat_id}
    )
    return DeliveryResult(tier=DeliveryTier.FAILED, errors=errors)


async def send_attachment(
    messenger: Any,
    chat_id: int,
    photo_file_id: Optional[str],
    caption: Optional[str] = None
) -> bool:
    """
    Best-effort photo attachment that follows a notification.
    """
    if not photo_file_id:
        return False
    result = await messenger.send_photo(chat_id, photo_file_id, caption)
    if not result.get("success"):
        logger.warning(
            f"⚠️ Attachment to {chat_id} failed: {result.get('error')}",
            extra={"chat_id": chat_id}
        )
        return False
    return True
