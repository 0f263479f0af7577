"""
app/flow/dispatcher.py

Purpose: Central event dispatcher

- One entry point per event kind (text, photo, location, live location update, callback)
- Routes to the flow handler that matches the chat's current stage
- Callbacks are routed by token, whatever the stage
- Events of the same chat are handled one at a time, in arrival order
- Unexpected handler errors are logged and answered with a generic message
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional

from app.core.logging import get_logger, LogContext
from app.flow.context import FlowContext
from app.flow.handlers.chat import ChatSessionManager
from app.flow.handlers.meeting import MeetingRequestWorkflow
from app.flow.handlers.profile import ProfileHandler
from app.flow.handlers.search import SearchHandler
from app.flow.states import DialogStage, get_stage_metadata, is_profile_stage
from app.schemas.telegram import EventKind, IncomingEvent
from utils.constants import (
    CALLBACK_ACCEPT,
    CALLBACK_DECLINE,
    CALLBACK_DURATION,
    CALLBACK_EDIT_PREFIX,
    CALLBACK_END_CHAT,
    CALLBACK_MEET,
    CALLBACK_NEXT_CANDIDATE,
    CALLBACK_PREV_CANDIDATE,
    CALLBACK_RADIUS,
    CALLBACK_SKIP_MEETING_PHOTO,
    CANCELLED_MESSAGE,
    COMMAND_CANCEL,
    COMMAND_EDIT_PROFILE,
    COMMAND_END_CHAT,
    COMMAND_HELP,
    COMMAND_PROFILE,
    COMMAND_SEARCH,
    COMMAND_SKIP,
    COMMAND_START,
    GENERIC_ERROR_MESSAGE,
    HELP_MESSAGE,
    MEETING_BUSY,
    NOT_CHATTING,
    NOTHING_TO_CANCEL_MESSAGE,
    PHOTO_OUTSIDE_FLOW_HINT,
    UNKNOWN_ACTION_HINT,
    UNKNOWN_INPUT_HINT,
    WELCOME_MESSAGE,
)
from utils.telegram_utils import parse_chat_id_argument, split_callback_token

logger = get_logger(__name__)


class KeyedSerializer:
    """
    One asyncio.Lock per key. asyncio locks wake waiters in FIFO order, so
    work for a key runs in arrival order while different keys run in
    parallel. Locks are dropped once nobody holds or waits for them.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, key: int):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class DialogDispatcher:
    """
    Routes incoming events to the profile, search, meeting and chat
    handlers.
    """

    def __init__(self, ctx: FlowContext):
        self.ctx = ctx
        self.serializer = KeyedSerializer()
        self.profile = ProfileHandler(ctx)
        self.search = SearchHandler(ctx)
        self.chat_sessions = ChatSessionManager(ctx)
        self.meetings = MeetingRequestWorkflow(ctx, self.chat_sessions)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def dispatch_event(self, event: IncomingEvent) -> Dict[str, Any]:
        """
        Dispatches a parsed transport event to the matching entry point.
        """
        if event.kind == EventKind.TEXT:
            return await self.handle_text(event.chat_id, event.text or "", event.sender_name, event.username)
        if event.kind == EventKind.PHOTO:
            return await self.handle_photo(event.chat_id, event.photo_file_id, event.sender_name, event.text)
        if event.kind == EventKind.LOCATION:
            return await self.handle_location(
                event.chat_id,
                event.latitude,
                event.longitude,
                event.live_period,
                event.sender_name
            )
        if event.kind == EventKind.LOCATION_UPDATE:
            return await self.handle_location_update(event.chat_id, event.latitude, event.longitude)
        if event.kind == EventKind.CALLBACK:
            return await self.handle_callback(
                event.chat_id,
                event.callback_data or "",
                event.callback_query_id,
                event.sender_name
            )

        logger.warning(f"⚠️ Unsupported event kind: {event.kind}")
        return {"status": "ignored", "reason": "unsupported"}

    async def handle_text(
        self,
        chat_id: int,
        text: str,
        sender_name: Optional[str] = None,
        username: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._serialized(chat_id, "text", self._route_text, chat_id, text, sender_name, username)

    async def handle_photo(
        self,
        chat_id: int,
        photo_file_id: str,
        sender_name: Optional[str] = None,
        caption: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._serialized(chat_id, "photo", self._route_photo, chat_id, photo_file_id, sender_name, caption)

    async def handle_location(
        self,
        chat_id: int,
        latitude: float,
        longitude: float,
        live_period: Optional[int] = None,
        sender_name: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._serialized(
            chat_id, "location", self._route_location,
            chat_id, latitude, longitude, live_period, sender_name
        )

    async def handle_location_update(self, chat_id: int, latitude: float, longitude: float) -> Dict[str, Any]:
        """A live location moved; nothing is sent back to anyone."""
        return await self._serialized(
            chat_id, "location_update", self.search.refresh_location,
            chat_id, latitude, longitude
        )

    async def handle_callback(
        self,
        chat_id: int,
        data: str,
        callback_query_id: Optional[str] = None,
        sender_name: Optional[str] = None
    ) -> Dict[str, Any]:
        if callback_query_id:
            await self.ctx.messenger.answer_callback(callback_query_id)
        return await self._serialized(chat_id, "callback", self._route_callback, chat_id, data)

    async def _serialized(self, chat_id: int, kind: str, route, *args) -> Dict[str, Any]:
        async with self.serializer.hold(chat_id):
            with LogContext(chat_id=chat_id, event=kind):
                try:
                    stage = await self.ctx.store.get_stage(chat_id)
                    with LogContext(stage=stage.value):
                        logger.info(f"📨 Dispatching {kind} event")
                        response = await route(*args)
                        logger.debug(f"✅ Handler returned: {str(response)[:100]}")
                        return response
                except Exception as e:
                    logger.error(f"❌ Dispatcher error: {e}", exc_info=True)
                    await self.ctx.reply(chat_id, GENERIC_ERROR_MESSAGE)
                    return {"status": "error", "error": str(e)}

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    async def _route_text(
        self,
        chat_id: int,
        text: str,
        sender_name: Optional[str],
        username: Optional[str]
    ) -> Dict[str, Any]:
        stage = await self.ctx.store.get_stage(chat_id)
        text = (text or "").strip()
        command = text.split()[0].split("@")[0].lower() if text.startswith("/") else None

        if stage == DialogStage.CHATTING:
            if command == COMMAND_END_CHAT:
                return await self._end_chat(chat_id)
            return await self.chat_sessions.relay_text(chat_id, text, sender_name)

        if command:
            return await self._route_command(chat_id, command, stage, sender_name, username)

        if not get_stage_metadata(stage).accepts_text:
            # Photo stages answer text with their own hint
            if stage == DialogStage.AWAITING_PHOTO:
                return await self.profile.handle_photo_stage_text(chat_id, text)
            if stage == DialogStage.AWAITING_MEETING_PHOTO:
                return await self.meetings.handle_photo_stage_text(chat_id, text)
        elif is_profile_stage(stage):
            return await self.profile.handle_field_text(chat_id, stage, text)
        elif stage == DialogStage.AWAITING_MEETING_MESSAGE:
            return await self.meetings.handle_message(chat_id, text)

        await self.ctx.reply(chat_id, UNKNOWN_INPUT_HINT)
        return {"status": "ignored", "reason": "no_rule"}

    async def _route_command(
        self,
        chat_id: int,
        command: str,
        stage: DialogStage,
        sender_name: Optional[str],
        username: Optional[str]
    ) -> Dict[str, Any]:
        logger.info(f"🚦 Command {command}")

        if command == COMMAND_START:
            await self.ctx.store.reset(chat_id, reason="start")
            await self.ctx.users.get_or_create_user(chat_id, username, sender_name)
            await self.ctx.reply(chat_id, WELCOME_MESSAGE)
            completion = await self.ctx.users.get_profile_completion_percentage(chat_id)
            if completion >= 100:
                await self.ctx.reply(chat_id, HELP_MESSAGE)
                return {"status": "success", "next_stage": DialogStage.NONE.value}
            return await self.profile.start_onboarding(chat_id)

        if command == COMMAND_HELP:
            await self.ctx.reply(chat_id, HELP_MESSAGE)
            return {"status": "success"}

        if command == COMMAND_PROFILE:
            return await self.profile.show_profile(chat_id)

        if command == COMMAND_EDIT_PROFILE:
            await self.ctx.users.get_or_create_user(chat_id, username, sender_name)
            return await self.profile.start_onboarding(chat_id)

        if command == COMMAND_SEARCH:
            return await self.search.start_search(chat_id)

        if command == COMMAND_CANCEL:
            return await self._cancel(chat_id, stage)

        if command == COMMAND_SKIP:
            if stage == DialogStage.AWAITING_PHOTO:
                return await self.profile.handle_photo_stage_text(chat_id, command)
            if stage == DialogStage.AWAITING_MEETING_PHOTO:
                return await self.meetings.handle_photo_stage_text(chat_id, command)
            await self.ctx.reply(chat_id, UNKNOWN_INPUT_HINT)
            return {"status": "ignored", "reason": "nothing_to_skip"}

        if command == COMMAND_END_CHAT:
            await self.ctx.reply(chat_id, NOT_CHATTING)
            return {"status": "ignored", "reason": "not_chatting"}

        # Plain-text fallback forms of the accept/decline controls
        action, argument = split_callback_token(command)
        requester_id = parse_chat_id_argument(argument)
        if requester_id is not None and action == CALLBACK_ACCEPT:
            return await self.meetings.accept(chat_id, requester_id)
        if requester_id is not None and action == CALLBACK_DECLINE:
            return await self.meetings.decline(chat_id, requester_id)

        await self.ctx.reply(chat_id, UNKNOWN_INPUT_HINT)
        return {"status": "ignored", "reason": "unknown_command"}

    async def _cancel(self, chat_id: int, stage: DialogStage) -> Dict[str, Any]:
        pending = await self.ctx.store.get_pending_request(chat_id)
        if stage == DialogStage.NONE and pending is None:
            await self.ctx.reply(chat_id, NOTHING_TO_CANCEL_MESSAGE)
            return {"status": "ignored", "reason": "nothing_to_cancel"}

        await self.ctx.store.clear_pending_request(chat_id)
        await self.ctx.store.set_stage(chat_id, DialogStage.NONE)
        await self.ctx.reply(chat_id, CANCELLED_MESSAGE)
        return {"status": "success", "next_stage": DialogStage.NONE.value}

    async def _end_chat(self, chat_id: int) -> Dict[str, Any]:
        ended = await self.chat_sessions.end_chat(chat_id)
        if not ended:
            await self.ctx.reply(chat_id, NOT_CHATTING)
            return {"status": "ignored", "reason": "not_chatting"}
        return {"status": "success", "next_stage": DialogStage.NONE.value}

    # ------------------------------------------------------------------
    # Photo & location
    # ------------------------------------------------------------------

    async def _route_photo(
        self,
        chat_id: int,
        photo_file_id: str,
        sender_name: Optional[str],
        caption: Optional[str]
    ) -> Dict[str, Any]:
        stage = await self.ctx.store.get_stage(chat_id)

        if not get_stage_metadata(stage).accepts_photo:
            await self.ctx.reply(chat_id, PHOTO_OUTSIDE_FLOW_HINT)
            return {"status": "ignored", "reason": "photo_not_expected"}

        if stage == DialogStage.CHATTING:
            return await self.chat_sessions.relay_photo(chat_id, photo_file_id, sender_name, caption)
        if stage == DialogStage.AWAITING_PHOTO:
            return await self.profile.handle_profile_photo(chat_id, photo_file_id)
        if stage == DialogStage.AWAITING_MEETING_PHOTO:
            result = await self.meetings.handle_photo(chat_id, photo_file_id)
            return {
                "status": "success" if result.ok else "error",
                "reason": result.reason,
                "request_id": result.request_id,
            }

        logger.warning(f"⚠️ No photo route for stage {stage.value}")
        await self.ctx.reply(chat_id, PHOTO_OUTSIDE_FLOW_HINT)
        return {"status": "ignored", "reason": "photo_not_expected"}

    async def _route_location(
        self,
        chat_id: int,
        latitude: float,
        longitude: float,
        live_period: Optional[int],
        sender_name: Optional[str]
    ) -> Dict[str, Any]:
        if await self.ctx.store.get_stage(chat_id) == DialogStage.CHATTING:
            return await self.chat_sessions.relay_location(chat_id, latitude, longitude, sender_name)
        return await self.search.handle_location(chat_id, latitude, longitude, live_period)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def _route_callback(self, chat_id: int, data: str) -> Dict[str, Any]:
        action, argument = split_callback_token(data)
        number = parse_chat_id_argument(argument)
        logger.info(f"🔘 Callback {action}")

        if number is not None:
            if action == CALLBACK_ACCEPT:
                return await self.meetings.accept(chat_id, number)
            if action == CALLBACK_DECLINE:
                return await self.meetings.decline(chat_id, number)
            if action == CALLBACK_MEET:
                return await self.meetings.begin(chat_id, number)
            if action == CALLBACK_DURATION:
                return await self._unless_chatting(chat_id, self.search.set_duration, chat_id, number)
            if action == CALLBACK_RADIUS:
                return await self._unless_chatting(chat_id, self.search.set_radius, chat_id, number)

        if action == CALLBACK_NEXT_CANDIDATE:
            return await self._unless_chatting(chat_id, self.search.next_candidate, chat_id)
        if action == CALLBACK_PREV_CANDIDATE:
            return await self._unless_chatting(chat_id, self.search.prev_candidate, chat_id)
        if action == CALLBACK_SKIP_MEETING_PHOTO:
            result = await self.meetings.skip_photo(chat_id)
            return {
                "status": "success" if result.ok else "error",
                "reason": result.reason,
                "request_id": result.request_id,
            }
        if action == CALLBACK_END_CHAT:
            return await self._end_chat(chat_id)
        if action.startswith(CALLBACK_EDIT_PREFIX):
            field = action[len(CALLBACK_EDIT_PREFIX):]
            return await self._unless_chatting(chat_id, self.profile.start_field_edit, chat_id, field)

        logger.warning(f"⚠️ Unknown callback token: {data}")
        await self.ctx.reply(chat_id, UNKNOWN_ACTION_HINT)
        return {"status": "ignored", "reason": "unknown_callback"}

    async def _unless_chatting(self, chat_id: int, handler, *args) -> Dict[str, Any]:
        """Search and profile controls are refused while a chat is open."""
        if await self.ctx.store.get_stage(chat_id) == DialogStage.CHATTING:
            await self.ctx.reply(chat_id, MEETING_BUSY)
            return {"status": "ignored", "reason": "chatting"}
        return await handler(*args)
