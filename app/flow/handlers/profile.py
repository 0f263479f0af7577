"""
app/flow/handlers/profile.py

Handles: profile onboarding and single-field edits

- Prompts for each profile field in onboarding order
- Validates answers; invalid input keeps the stage and returns a hint
- Stores the profile photo and reports completion
"""

from typing import Dict, Any, Optional

from app.flow.context import FlowContext
from app.flow.states import (
    ONBOARDING_SEQUENCE,
    DialogStage,
    ProfileFlow,
    get_progress_message,
    get_stage_metadata,
    next_onboarding_stage,
    stage_for_profile_field,
)
from app.core.logging import get_logger, LogContext
from utils.constants import (
    CALLBACK_EDIT_PREFIX,
    PROFILE_COMPLETED,
    PROFILE_FIELD_ERRORS,
    PROFILE_FIELD_PROMPTS,
    PROFILE_FIELD_SAVED,
    PROFILE_NOT_FOUND,
    PROFILE_PHOTO_EXPECTED,
    PROFILE_PHOTO_SAVED,
)
from utils.message_utils import format_profile
from utils.telegram_utils import create_control
from utils.validation_utils import (
    MAX_DESCRIPTION_LENGTH,
    clean_text,
    parse_age,
    parse_gender,
    parse_gender_preference,
    parse_interests,
    parse_max_age,
)

logger = get_logger(__name__)


class ProfileHandler:
    """Profile-field stages of the dialog."""

    def __init__(self, ctx: FlowContext):
        self.ctx = ctx

    async def _prompt(self, chat_id: int, stage: DialogStage, sequential: bool):
        prompt = PROFILE_FIELD_PROMPTS[stage.value]
        if sequential:
            progress = get_progress_message(stage)
            if progress:
                prompt = f"{progress}\n\n{prompt}"
        await self.ctx.reply(chat_id, prompt)

    async def start_onboarding(self, chat_id: int) -> Dict[str, Any]:
        """
        Starts the full onboarding sequence from the first field.
        """
        first = DialogStage.AWAITING_DESCRIPTION
        await self.ctx.store.set_profile_flow(chat_id, ProfileFlow.SEQUENTIAL)
        await self.ctx.store.set_stage(chat_id, first)
        await self._prompt(chat_id, first, sequential=True)
        return {"status": "success", "next_stage": first.value}

    async def start_field_edit(self, chat_id: int, field: str) -> Dict[str, Any]:
        """
        Asks for a single profile field; the chat returns to NONE afterwards.
        """
        stage = stage_for_profile_field(field)
        if stage is None:
            logger.warning(f"Unknown profile field requested: {field}", extra={"chat_id": chat_id})
            return {"status": "ignored", "reason": "unknown_field"}

        await self.ctx.store.set_profile_flow(chat_id, ProfileFlow.SINGLE)
        await self.ctx.store.set_stage(chat_id, stage)
        await self._prompt(chat_id, stage, sequential=False)
        return {"status": "success", "next_stage": stage.value}

    async def _parse(self, chat_id: int, stage: DialogStage, text: str) -> Optional[Any]:
        min_age, max_age = self.ctx.min_user_age, self.ctx.max_user_age

        if stage == DialogStage.AWAITING_DESCRIPTION:
            return clean_text(text, MAX_DESCRIPTION_LENGTH)
        if stage == DialogStage.AWAITING_INTERESTS:
            return parse_interests(text)
        if stage in (DialogStage.AWAITING_AGE, DialogStage.AWAITING_MIN_AGE):
            return parse_age(text, min_age, max_age)
        if stage == DialogStage.AWAITING_MAX_AGE:
            user = await self.ctx.users.get_user_by_telegram_id(chat_id)
            lower = user.get("min_age_preference") if user else None
            return parse_max_age(text, lower, min_age, max_age)
        if stage == DialogStage.AWAITING_GENDER:
            return parse_gender(text)
        if stage == DialogStage.AWAITING_GENDER_PREFERENCE:
            return parse_gender_preference(text)
        return None

    async def handle_field_text(self, chat_id: int, stage: DialogStage, text: str) -> Dict[str, Any]:
        """
        Handles a text answer for a profile-field stage.

        Args:
            chat_id: Chat ID
            stage: The stage the answer belongs to
            text: User's answer

        Returns:
            Response dict with the next stage
        """
        with LogContext(chat_id=chat_id, stage=stage.value):
            if stage == DialogStage.AWAITING_PHOTO:
                return await self.handle_photo_stage_text(chat_id, text)

            value = await self._parse(chat_id, stage, text)
            if value is None:
                logger.info("Invalid profile answer")
                error = PROFILE_FIELD_ERRORS[stage.value].format(
                    min_age=self.ctx.min_user_age,
                    max_age=self.ctx.max_user_age
                )
                await self.ctx.reply(chat_id, error)
                return {"status": "error", "retry": True, "next_stage": stage.value}

            field = get_stage_metadata(stage).profile_field
            await self.ctx.users.update_profile_field(chat_id, field, value)

            flow = await self.ctx.store.get_profile_flow(chat_id)
            if flow == ProfileFlow.SINGLE:
                await self.ctx.store.set_stage(chat_id, DialogStage.NONE, validate_transition=True)
                await self.ctx.reply(chat_id, PROFILE_FIELD_SAVED)
                return {"status": "success", "next_stage": DialogStage.NONE.value}

            next_stage = next_onboarding_stage(stage)
            await self.ctx.store.set_stage(chat_id, next_stage, validate_transition=True)
            if next_stage == DialogStage.NONE:
                await self._finish(chat_id)
            else:
                await self._prompt(chat_id, next_stage, sequential=True)

            logger.info(f"Profile field saved: {field}")
            return {"status": "success", "next_stage": next_stage.value}

    async def handle_photo_stage_text(self, chat_id: int, text: str) -> Dict[str, Any]:
        """
        Text while a profile photo is expected: /skip ends the flow,
        anything else gets a hint.
        """
        if text.strip().lower() == "/skip":
            await self.ctx.store.set_stage(chat_id, DialogStage.NONE, validate_transition=True)
            await self._finish(chat_id)
            return {"status": "success", "next_stage": DialogStage.NONE.value}

        await self.ctx.reply(chat_id, PROFILE_PHOTO_EXPECTED)
        return {"status": "ignored", "next_stage": DialogStage.AWAITING_PHOTO.value}

    async def handle_profile_photo(self, chat_id: int, photo_file_id: str) -> Dict[str, Any]:
        """
        Stores the profile photo and returns the chat to NONE.
        """
        with LogContext(chat_id=chat_id, stage=DialogStage.AWAITING_PHOTO.value):
            logger.info("Updating profile photo")
            await self.ctx.users.update_user_photo(chat_id, photo_file_id)
            completion = await self.ctx.users.get_profile_completion_percentage(chat_id)

            await self.ctx.store.set_stage(chat_id, DialogStage.NONE, validate_transition=True)
            await self.ctx.reply(chat_id, PROFILE_PHOTO_SAVED.format(completion=completion))
            return {"status": "success", "next_stage": DialogStage.NONE.value, "completion": completion}

    async def _finish(self, chat_id: int):
        completion = await self.ctx.users.get_profile_completion_percentage(chat_id)
        await self.ctx.reply(chat_id, PROFILE_COMPLETED.format(completion=completion))

    async def show_profile(self, chat_id: int) -> Dict[str, Any]:
        user = await self.ctx.users.get_user_by_telegram_id(chat_id)
        if not user:
            await self.ctx.reply(chat_id, PROFILE_NOT_FOUND)
            return {"status": "ignored", "reason": "no_profile"}

        completion = await self.ctx.users.get_profile_completion_percentage(chat_id)
        text = format_profile(user, completion)
        if user.get("photo_file_id"):
            await self.ctx.messenger.send_photo(chat_id, user["photo_file_id"], None)

        controls = [
            create_control(
                f"{CALLBACK_EDIT_PREFIX}{get_stage_metadata(stage).profile_field}",
                f"✏️ {get_stage_metadata(stage).display_name}"
            )
            for stage in ONBOARDING_SEQUENCE
        ]
        await self.ctx.reply(chat_id, text, controls)
        return {"status": "success", "completion": completion}
