"""
app/flow/context.py

Purpose: Collaborators shared by the flow handlers

- Session store, messenger, profile/meeting/search/chat-log services
- Flow tunables taken from settings
- Small send helper that logs delivery failures
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.services.session_service import SessionStore

logger = get_logger(__name__)


@dataclass
class FlowContext:
    """
    Everything a handler needs. Collaborators are duck-typed so tests can
    pass in-memory fakes.
    """
    store: SessionStore
    messenger: Any
    users: Any
    meetings: Any
    search: Any
    chats: Any
    meeting_window_minutes: int = field(default_factory=lambda: settings.MEETING_DEFAULT_WINDOW_MINUTES)
    min_user_age: int = field(default_factory=lambda: settings.MIN_USER_AGE)
    max_user_age: int = field(default_factory=lambda: settings.MAX_USER_AGE)
    clock: Callable[[], datetime] = datetime.utcnow

    async def reply(
        self,
        chat_id: int,
        text: str,
        controls: Optional[List[Dict[str, str]]] = None
    ) -> Dict[str, Any]:
        """
        Sends a message, with controls when given. Failures are logged and
        returned, not raised.
        """
        if controls:
            result = await self.messenger.send_text_with_controls(chat_id, text, controls)
        else:
            result = await self.messenger.send_text(chat_id, text)

        if not result.get("success"):
            logger.warning(
                f"⚠️ Delivery to {chat_id} failed: {result.get('error')}",
                extra={"chat_id": chat_id}
            )
        return result
