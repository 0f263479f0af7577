"""
app/flow/handlers/meeting.py

Handles: meeting requests between two users

Flow:
1. Requester picks a candidate → asked for a message
2. Requester writes the message → asked for an optional photo
3. Photo or skip → request is stored and the target is notified
4. Target accepts (chat starts for both) or declines
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Any, Optional

from app.core.exceptions import ChatAlreadyActiveError, MeetingDomainError, MissingPrerequisiteError
from app.core.logging import get_logger, LogContext
from app.flow.context import FlowContext
from app.flow.handlers.chat import ChatSessionManager
from app.flow.states import DialogStage, MeetingStatus
from app.models.session import PendingMeetingRequest
from app.services.notification_service import (
    DeliveryResult,
    deliver_with_fallback,
    send_attachment,
)
from utils.constants import (
    ASK_MEETING_MESSAGE,
    ASK_MEETING_PHOTO,
    BUTTON_ACCEPT,
    BUTTON_DECLINE,
    BUTTON_SKIP_PHOTO,
    CALLBACK_ACCEPT,
    CALLBACK_DECLINE,
    CALLBACK_SKIP_MEETING_PHOTO,
    MEETING_ACCEPTED_REQUESTER,
    MEETING_ACCEPTED_TARGET,
    MEETING_BUSY,
    MEETING_DECLINED_REQUESTER,
    MEETING_DECLINED_TARGET,
    MEETING_FALLBACK_INSTRUCTIONS,
    MEETING_MESSAGE_INVALID,
    MEETING_PARTNER_BUSY,
    MEETING_PHOTO_EXPECTED,
    MEETING_REQUEST_FAILED,
    MEETING_REQUEST_NOT_FOUND,
    MEETING_REQUEST_PHOTO_CAPTION,
    MEETING_REQUEST_SENT,
    MEETING_REQUEST_SENT_WITH_PHOTO,
    MEETING_REQUEST_UNDELIVERED,
    MEETING_SELF_TARGET,
    MEETING_TARGET_INVALID,
    UNKNOWN_ACTION_HINT,
)
from utils.message_utils import display_name, format_meeting_request
from utils.telegram_utils import create_control
from utils.validation_utils import MAX_MEETING_MESSAGE_LENGTH, clean_text

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    ok: bool
    reason: Optional[str] = None
    request_id: Optional[str] = None
    delivery: Optional[DeliveryResult] = None


def require_complete(pending: Optional[PendingMeetingRequest]) -> PendingMeetingRequest:
    """
    Returns the pending request when it can be dispatched.

    Raises:
        MissingPrerequisiteError: If the target or the message is missing
    """
    if pending is not None and pending.is_complete:
        return pending

    missing = pending.missing_fields() if pending is not None else ["target_id", "message"]
    raise MissingPrerequisiteError(
        f"Meeting request dispatched without {', '.join(missing)}",
        details={"missing": missing}
    )


class MeetingRequestWorkflow:
    """
    Composes, sends and answers meeting requests.

    The request being composed lives in the session store as one
    PendingMeetingRequest; it is cleared only after the durable record
    exists.
    """

    def __init__(self, ctx: FlowContext, chat_sessions: ChatSessionManager):
        self.ctx = ctx
        self.chat_sessions = chat_sessions

    async def _leave_to_none(self, chat_id: int):
        if await self.ctx.store.get_stage(chat_id) != DialogStage.CHATTING:
            await self.ctx.store.set_stage(chat_id, DialogStage.NONE)

    # ------------------------------------------------------------------
    # Composing
    # ------------------------------------------------------------------

    async def begin(self, requester_id: int, target_id: int) -> Dict[str, Any]:
        """
        Starts a request to `target_id` and asks for the message.
        """
        with LogContext(chat_id=requester_id, partner_id=target_id, event="meeting_begin"):
            if requester_id == target_id:
                await self.ctx.reply(requester_id, MEETING_SELF_TARGET)
                return {"status": "ignored", "reason": "self_target"}

            if await self.ctx.store.get_stage(requester_id) == DialogStage.CHATTING:
                await self.ctx.reply(requester_id, MEETING_BUSY)
                return {"status": "ignored", "reason": "chatting"}

            target = await self.ctx.users.get_user_by_telegram_id(target_id)
            if not target:
                logger.info("Meeting target not found")
                await self.ctx.reply(requester_id, MEETING_TARGET_INVALID)
                return {"status": "ignored", "reason": "unknown_target"}

            await self.ctx.store.clear_pending_request(requester_id)
            await self.ctx.store.set_pending_target(requester_id, target_id)
            await self.ctx.store.set_stage(requester_id, DialogStage.AWAITING_MEETING_MESSAGE)

            await self.ctx.reply(requester_id, ASK_MEETING_MESSAGE.format(name=display_name(target)))
            return {"status": "success", "next_stage": DialogStage.AWAITING_MEETING_MESSAGE.value}

    async def handle_message(self, requester_id: int, text: str) -> Dict[str, Any]:
        """
        Stores the request message and moves on to the optional photo.
        """
        message = clean_text(text, MAX_MEETING_MESSAGE_LENGTH)
        if message is None:
            await self.ctx.reply(requester_id, MEETING_MESSAGE_INVALID)
            return {"status": "error", "retry": True, "next_stage": DialogStage.AWAITING_MEETING_MESSAGE.value}

        await self.ctx.store.set_pending_message(requester_id, message)
        await self.ctx.store.set_stage(
            requester_id,
            DialogStage.AWAITING_MEETING_PHOTO,
            validate_transition=True
        )

        controls = [create_control(CALLBACK_SKIP_MEETING_PHOTO, BUTTON_SKIP_PHOTO)]
        await self.ctx.reply(requester_id, ASK_MEETING_PHOTO, controls)
        return {"status": "success", "next_stage": DialogStage.AWAITING_MEETING_PHOTO.value}

    async def handle_photo_stage_text(self, requester_id: int, text: str) -> Dict[str, Any]:
        """Text while the photo is expected: /skip dispatches, anything else gets a hint."""
        if text.strip().lower() == "/skip":
            result = await self.skip_photo(requester_id)
            return {
                "status": "success" if result.ok else "error",
                "reason": result.reason,
                "request_id": result.request_id,
            }

        controls = [create_control(CALLBACK_SKIP_MEETING_PHOTO, BUTTON_SKIP_PHOTO)]
        await self.ctx.reply(requester_id, MEETING_PHOTO_EXPECTED, controls)
        return {"status": "ignored", "next_stage": DialogStage.AWAITING_MEETING_PHOTO.value}

    async def handle_photo(self, requester_id: int, photo_file_id: str) -> DispatchResult:
        await self.ctx.store.set_pending_photo(requester_id, photo_file_id)
        return await self.dispatch(requester_id)

    async def skip_photo(self, requester_id: int) -> DispatchResult:
        if await self.ctx.store.get_stage(requester_id) != DialogStage.AWAITING_MEETING_PHOTO:
            await self.ctx.reply(requester_id, UNKNOWN_ACTION_HINT)
            return DispatchResult(ok=False, reason="not_expected")
        return await self.dispatch(requester_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, requester_id: int) -> DispatchResult:
        """
        Stores the pending request and notifies the target.

        A request without target or message is rejected: nothing is stored,
        the requester gets a generic failure and the pending state is kept
        as it was.
        """
        with LogContext(chat_id=requester_id, event="meeting_dispatch"):
            try:
                pending = require_complete(await self.ctx.store.get_pending_request(requester_id))
            except MissingPrerequisiteError as e:
                logger.error(f"❌ {e.message}", extra={"missing": e.details["missing"]})
                await self._leave_to_none(requester_id)
                await self.ctx.reply(requester_id, MEETING_REQUEST_FAILED)
                return DispatchResult(ok=False, reason="missing_prerequisite")

            now = self.ctx.clock()
            try:
                request_id = await self.ctx.meetings.create_meeting_request(
                    sender_id=requester_id,
                    receiver_id=pending.target_id,
                    message=pending.message,
                    proposed_from=now,
                    proposed_until=now + timedelta(minutes=self.ctx.meeting_window_minutes),
                    photo_file_id=pending.photo_file_id
                )
            except MeetingDomainError as e:
                logger.error(f"❌ Meeting request could not be created: {e.message}")
                await self.ctx.reply(requester_id, MEETING_REQUEST_FAILED)
                return DispatchResult(ok=False, reason="domain_error")

            await self.ctx.store.clear_pending_request(requester_id)
            await self._leave_to_none(requester_id)

            with LogContext(request_id=request_id, partner_id=pending.target_id):
                delivery = await self.notify_target(
                    requester_id,
                    pending.target_id,
                    pending.message,
                    pending.photo_file_id
                )

                if not delivery.delivered:
                    confirmation = MEETING_REQUEST_UNDELIVERED
                elif pending.photo_file_id:
                    confirmation = MEETING_REQUEST_SENT_WITH_PHOTO
                else:
                    confirmation = MEETING_REQUEST_SENT
                await self.ctx.reply(requester_id, confirmation)

                logger.info(f"📨 Meeting request dispatched ({delivery.tier.value})")
                return DispatchResult(ok=True, request_id=request_id, delivery=delivery)

    async def notify_target(
        self,
        requester_id: int,
        target_id: int,
        message: str,
        photo_file_id: Optional[str] = None
    ) -> DeliveryResult:
        """
        Sends the request to the target with accept/decline controls,
        falling back to plain text with /accept_<id> and /decline_<id>.
        Photos follow as separate attachments.
        """
        requester = await self.ctx.users.get_user_by_telegram_id(requester_id)
        text = format_meeting_request(requester, message)
        controls = [
            create_control(f"{CALLBACK_ACCEPT}_{requester_id}", BUTTON_ACCEPT),
            create_control(f"{CALLBACK_DECLINE}_{requester_id}", BUTTON_DECLINE),
        ]
        fallback = text + MEETING_FALLBACK_INSTRUCTIONS.format(sender_id=requester_id)

        delivery = await deliver_with_fallback(self.ctx.messenger, target_id, text, controls, fallback)
        if not delivery.delivered:
            return delivery

        if requester and requester.get("photo_file_id"):
            await send_attachment(
                self.ctx.messenger,
                target_id,
                requester["photo_file_id"],
                display_name(requester)
            )
        await send_attachment(self.ctx.messenger, target_id, photo_file_id, MEETING_REQUEST_PHOTO_CAPTION)
        return delivery

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def accept(self, target_id: int, requester_id: int) -> Dict[str, Any]:
        """
        Target accepts the request from `requester_id`: both chats enter
        CHATTING and the record becomes ACCEPTED.
        """
        with LogContext(chat_id=target_id, partner_id=requester_id, event="meeting_accept"):
            record = await self.ctx.meetings.get_pending_request(requester_id, target_id, now=self.ctx.clock())
            if not record:
                await self.ctx.reply(target_id, MEETING_REQUEST_NOT_FOUND)
                return {"status": "ignored", "reason": "not_found"}

            requester_name = await self._name_of(requester_id)

            try:
                binding = await self.chat_sessions.start(
                    requester_id,
                    target_id,
                    record["id"],
                    announce=False
                )
            except ChatAlreadyActiveError as e:
                busy = (e.details or {}).get("busy", [])
                logger.info(f"Accept refused, already chatting: {busy}")
                if target_id in busy:
                    await self.ctx.reply(target_id, MEETING_BUSY)
                else:
                    await self.ctx.reply(target_id, MEETING_PARTNER_BUSY.format(name=requester_name))
                return {"status": "ignored", "reason": "chat_active"}

            try:
                updated = await self.ctx.meetings.update_status(record["id"], MeetingStatus.ACCEPTED)
            except MeetingDomainError as e:
                logger.error(f"❌ Could not mark meeting request accepted: {e.message}")
                updated = False

            if not updated:
                await self.chat_sessions.end_chat(target_id, notify=False)
                await self.ctx.reply(target_id, MEETING_REQUEST_FAILED)
                return {"status": "error", "reason": "status_update_failed"}

            target_name = await self._name_of(target_id)
            await self.ctx.reply(requester_id, MEETING_ACCEPTED_REQUESTER.format(name=target_name))
            await self.ctx.reply(target_id, MEETING_ACCEPTED_TARGET.format(name=requester_name))
            await self.chat_sessions.announce(binding)

            logger.info("🤝 Meeting request accepted", extra={"request_id": record["id"]})
            return {"status": "success", "request_id": record["id"]}

    async def decline(self, target_id: int, requester_id: int) -> Dict[str, Any]:
        with LogContext(chat_id=target_id, partner_id=requester_id, event="meeting_decline"):
            record = await self.ctx.meetings.get_pending_request(requester_id, target_id, now=self.ctx.clock())
            if not record:
                await self.ctx.reply(target_id, MEETING_REQUEST_NOT_FOUND)
                return {"status": "ignored", "reason": "not_found"}

            try:
                updated = await self.ctx.meetings.update_status(record["id"], MeetingStatus.DECLINED)
            except MeetingDomainError as e:
                logger.error(f"❌ Could not mark meeting request declined: {e.message}")
                updated = False

            if not updated:
                await self.ctx.reply(target_id, MEETING_REQUEST_FAILED)
                return {"status": "error", "reason": "status_update_failed"}

            target_name = await self._name_of(target_id)
            await self.ctx.reply(target_id, MEETING_DECLINED_TARGET)
            await self.ctx.reply(requester_id, MEETING_DECLINED_REQUESTER.format(name=target_name))

            logger.info("Meeting request declined", extra={"request_id": record["id"]})
            return {"status": "success", "request_id": record["id"]}

    async def _name_of(self, chat_id: int) -> str:
        user = await self.ctx.users.get_user_by_telegram_id(chat_id)
        return display_name(user)
