"""
app/flow/states.py

Purpose: Defines all dialog stages

- Enum for each stage a chat can be in
  (NONE, AWAITING_AGE, AWAITING_MEETING_MESSAGE, CHATTING, etc.)
- Single source of truth for the onboarding sequence
- Stage transition validation
- Metadata for each stage (profile field, prompt, onboarding membership)
- Durable meeting request statuses
"""

from enum import Enum
from typing import Dict, List, Optional
from dataclasses import dataclass


class DialogStage(str, Enum):
    """
    What the bot expects as the next input from a chat.
    Exactly one stage per chat at any time.
    """

    NONE = "NONE"

    # Profile onboarding / editing
    AWAITING_DESCRIPTION = "AWAITING_DESCRIPTION"
    AWAITING_INTERESTS = "AWAITING_INTERESTS"
    AWAITING_PHOTO = "AWAITING_PHOTO"
    AWAITING_AGE = "AWAITING_AGE"
    AWAITING_GENDER = "AWAITING_GENDER"
    AWAITING_MIN_AGE = "AWAITING_MIN_AGE"
    AWAITING_MAX_AGE = "AWAITING_MAX_AGE"
    AWAITING_GENDER_PREFERENCE = "AWAITING_GENDER_PREFERENCE"

    # Meeting request composition
    AWAITING_MEETING_MESSAGE = "AWAITING_MEETING_MESSAGE"
    AWAITING_MEETING_PHOTO = "AWAITING_MEETING_PHOTO"

    # Live relay with another chat
    CHATTING = "CHATTING"


class MeetingStatus(str, Enum):
    """
    Lifecycle of a durable meeting request once dispatched.
    """

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class ProfileFlow(str, Enum):
    """
    How profile-field stages continue after a valid answer.
    """

    SEQUENTIAL = "SEQUENTIAL"   # walk the whole onboarding sequence
    SINGLE = "SINGLE"           # edit one field, then back to NONE


@dataclass
class StageMetadata:
    """
    Metadata associated with each dialog stage.
    """
    name: DialogStage
    display_name: str
    profile_field: Optional[str] = None  # Field on the user profile this stage fills
    step_number: Optional[int] = None  # Position in the onboarding sequence
    total_steps: int = 8
    accepts_text: bool = True
    accepts_photo: bool = False
    description: str = ""


STAGE_METADATA: Dict[DialogStage, StageMetadata] = {
    DialogStage.NONE: StageMetadata(
        name=DialogStage.NONE,
        display_name="Idle",
        accepts_text=False,
        description="No pending question; commands and callbacks only"
    ),
    DialogStage.AWAITING_DESCRIPTION: StageMetadata(
        name=DialogStage.AWAITING_DESCRIPTION,
        display_name="About you",
        profile_field="description",
        step_number=1,
        description="Free-text self description"
    ),
    DialogStage.AWAITING_INTERESTS: StageMetadata(
        name=DialogStage.AWAITING_INTERESTS,
        display_name="Interests",
        profile_field="interests",
        step_number=2,
        description="Comma separated interests"
    ),
    DialogStage.AWAITING_AGE: StageMetadata(
        name=DialogStage.AWAITING_AGE,
        display_name="Age",
        profile_field="age",
        step_number=3,
        description="User's own age"
    ),
    DialogStage.AWAITING_GENDER: StageMetadata(
        name=DialogStage.AWAITING_GENDER,
        display_name="Gender",
        profile_field="gender",
        step_number=4,
        description="User's own gender"
    ),
    DialogStage.AWAITING_MIN_AGE: StageMetadata(
        name=DialogStage.AWAITING_MIN_AGE,
        display_name="Minimum partner age",
        profile_field="min_age_preference",
        step_number=5,
        description="Lower bound of the preferred age range"
    ),
    DialogStage.AWAITING_MAX_AGE: StageMetadata(
        name=DialogStage.AWAITING_MAX_AGE,
        display_name="Maximum partner age",
        profile_field="max_age_preference",
        step_number=6,
        description="Upper bound of the preferred age range"
    ),
    DialogStage.AWAITING_GENDER_PREFERENCE: StageMetadata(
        name=DialogStage.AWAITING_GENDER_PREFERENCE,
        display_name="Who you are looking for",
        profile_field="gender_preference",
        step_number=7,
        description="Preferred gender of candidates"
    ),
    DialogStage.AWAITING_PHOTO: StageMetadata(
        name=DialogStage.AWAITING_PHOTO,
        display_name="Profile photo",
        profile_field="photo_file_id",
        step_number=8,
        accepts_text=False,
        accepts_photo=True,
        description="Profile photo, last onboarding step"
    ),
    DialogStage.AWAITING_MEETING_MESSAGE: StageMetadata(
        name=DialogStage.AWAITING_MEETING_MESSAGE,
        display_name="Meeting message",
        description="Text sent along with a meeting request"
    ),
    DialogStage.AWAITING_MEETING_PHOTO: StageMetadata(
        name=DialogStage.AWAITING_MEETING_PHOTO,
        display_name="Meeting photo",
        accepts_text=False,
        accepts_photo=True,
        description="Optional photo attached to a meeting request, or skip"
    ),
    DialogStage.CHATTING: StageMetadata(
        name=DialogStage.CHATTING,
        display_name="Chatting",
        accepts_photo=True,
        description="Messages are relayed to the chat partner"
    ),
}


# Fixed onboarding order; the photo comes last and returns the chat to NONE
ONBOARDING_SEQUENCE: List[DialogStage] = [
    DialogStage.AWAITING_DESCRIPTION,
    DialogStage.AWAITING_INTERESTS,
    DialogStage.AWAITING_AGE,
    DialogStage.AWAITING_GENDER,
    DialogStage.AWAITING_MIN_AGE,
    DialogStage.AWAITING_MAX_AGE,
    DialogStage.AWAITING_GENDER_PREFERENCE,
    DialogStage.AWAITING_PHOTO,
]

PROFILE_STAGES = frozenset(ONBOARDING_SEQUENCE)


# Valid transitions for steps taken inside a flow. Entry points (commands,
# candidate selection) jump without validation.
STAGE_TRANSITIONS: Dict[DialogStage, List[DialogStage]] = {
    DialogStage.NONE: [
        DialogStage.NONE,
        DialogStage.AWAITING_DESCRIPTION,
        DialogStage.AWAITING_MEETING_MESSAGE,
    ],
    DialogStage.AWAITING_DESCRIPTION: [
        DialogStage.AWAITING_INTERESTS,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_INTERESTS: [
        DialogStage.AWAITING_AGE,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_AGE: [
        DialogStage.AWAITING_GENDER,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_GENDER: [
        DialogStage.AWAITING_MIN_AGE,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_MIN_AGE: [
        DialogStage.AWAITING_MAX_AGE,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_MAX_AGE: [
        DialogStage.AWAITING_GENDER_PREFERENCE,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_GENDER_PREFERENCE: [
        DialogStage.AWAITING_PHOTO,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_PHOTO: [
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_MEETING_MESSAGE: [
        DialogStage.AWAITING_MEETING_PHOTO,
        DialogStage.NONE,
    ],
    DialogStage.AWAITING_MEETING_PHOTO: [
        DialogStage.NONE,
    ],
    DialogStage.CHATTING: [
        DialogStage.NONE,
    ],
}


def is_valid_transition(from_stage: DialogStage, to_stage: DialogStage) -> bool:
    """
    Checks if a stage transition is valid.

    Args:
        from_stage: Current stage
        to_stage: Target stage

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = STAGE_TRANSITIONS.get(from_stage, [])
    return to_stage in allowed_transitions


def get_stage_metadata(stage: DialogStage) -> StageMetadata:
    """
    Retrieves metadata for a given stage.
    """
    return STAGE_METADATA.get(stage, StageMetadata(
        name=stage,
        display_name=stage.value,
        description="Unknown stage"
    ))


def is_profile_stage(stage: DialogStage) -> bool:
    return stage in PROFILE_STAGES


def next_onboarding_stage(stage: DialogStage) -> DialogStage:
    """
    Returns the stage that follows `stage` in the onboarding sequence,
    or NONE once the sequence is complete.

    Raises:
        ValueError: If `stage` is not part of the onboarding sequence
    """
    index = ONBOARDING_SEQUENCE.index(stage)
    if index + 1 < len(ONBOARDING_SEQUENCE):
        return ONBOARDING_SEQUENCE[index + 1]
    return DialogStage.NONE


def stage_for_profile_field(field: str) -> Optional[DialogStage]:
    """Maps a profile field name (as used in edit_<field> callbacks) to its stage."""
    for stage in ONBOARDING_SEQUENCE:
        if STAGE_METADATA[stage].profile_field == field:
            return stage
    return None


def get_progress_message(stage: DialogStage) -> str:
    """
    Generates a progress message for the current onboarding stage.

    Returns:
        Progress message (e.g., "Step 3 of 8") or an empty string
    """
    metadata = get_stage_metadata(stage)
    if metadata.step_number and metadata.step_number > 0:
        return f"📍 Step {metadata.step_number} of {metadata.total_steps}"
    return ""
