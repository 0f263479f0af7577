"""
app/models/session.py

Purpose: Per-chat dialog state records

- PendingMeetingRequest: target, message and photo held as one record
- LocationPreference: live-location duration and search radius
- ChatBinding: one relation record shared by both chat participants
- ChatSession: everything the store keeps for a single chat id
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.flow.states import DialogStage, ProfileFlow


@dataclass(frozen=True)
class PendingMeetingRequest:
    """
    Meeting request being composed by a requester.
    Replaced as a whole on every change and dropped as a whole on clear.
    """
    target_id: Optional[int] = None
    message: Optional[str] = None
    photo_file_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """Target and message are required; the photo is optional."""
        return self.target_id is not None and bool(self.message)

    def missing_fields(self) -> List[str]:
        missing = []
        if self.target_id is None:
            missing.append("target_id")
        if not self.message:
            missing.append("message")
        return missing

    def with_changes(self, **changes) -> "PendingMeetingRequest":
        return replace(self, **changes)


@dataclass
class LocationPreference:
    duration_hours: Optional[int] = None
    radius_km: Optional[int] = None

    @property
    def has_settings(self) -> bool:
        return self.duration_hours is not None and self.radius_km is not None


@dataclass(frozen=True)
class ChatBinding:
    """
    Live relay between two chats. The same instance is indexed under both
    chat ids, so there is never a one-sided binding.
    """
    chat_a: int
    chat_b: int
    meeting_request_id: Optional[str]
    started_at: datetime = field(default_factory=datetime.utcnow)

    def partner_of(self, chat_id: int) -> int:
        if chat_id == self.chat_a:
            return self.chat_b
        if chat_id == self.chat_b:
            return self.chat_a
        raise KeyError(chat_id)

    @property
    def participants(self) -> Tuple[int, int]:
        return (self.chat_a, self.chat_b)


@dataclass
class ChatSession:
    """
    All per-chat state except the chat binding, which lives in the
    store's relation index.
    """
    chat_id: int
    stage: DialogStage = DialogStage.NONE
    profile_flow: ProfileFlow = ProfileFlow.SEQUENTIAL
    pending_request: Optional[PendingMeetingRequest] = None
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    cursor: Optional[int] = None
    location: LocationPreference = field(default_factory=LocationPreference)
    last_location: Optional[Tuple[float, float]] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def touch(self):
        self.updated_at = datetime.utcnow()
