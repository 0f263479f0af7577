"""
app/services/session_service.py

Purpose: Session and stage management

- Keeps the current dialog stage of every chat
- Caches nearby-search results with a navigation cursor
- Holds the meeting request being composed (all-or-nothing)
- Stores live-location preferences
- Owns the two-party chat binding
- Serializes access per chat id; two-chat operations lock both ids in
  ascending order
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from app.core.exceptions import ChatAlreadyActiveError, InvalidStageTransitionError
from app.core.logging import get_logger, LogContext
from app.flow.states import DialogStage, ProfileFlow, is_valid_transition
from app.models.session import ChatBinding, ChatSession, PendingMeetingRequest

logger = get_logger(__name__)


class SessionStore:
    """
    In-memory keyed store of per-chat dialog state.

    Every public method is a short critical section on the chat's lock and
    never awaits anything else while holding it.
    """

    def __init__(self):
        self._entries: Dict[int, ChatSession] = {}
        self._bindings: Dict[int, ChatBinding] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _claim(self, chat_id: int) -> asyncio.Lock:
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._holders[chat_id] = self._holders.get(chat_id, 0) + 1
        return lock

    def _unclaim(self, chat_id: int):
        self._holders[chat_id] -= 1
        if self._holders[chat_id] == 0:
            del self._holders[chat_id]
            self._locks.pop(chat_id, None)

    @asynccontextmanager
    async def _locked(self, *chat_ids: int):
        """
        Holds the locks of all given chats. A lock is dropped once nobody
        holds or waits for it.
        """
        ordered = sorted(set(chat_ids))
        locks = [self._claim(chat_id) for chat_id in ordered]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for chat_id in ordered:
                self._unclaim(chat_id)

    def _entry(self, chat_id: int) -> ChatSession:
        session = self._entries.get(chat_id)
        if session is None:
            session = ChatSession(chat_id=chat_id)
            self._entries[chat_id] = session
        return session

    # ------------------------------------------------------------------
    # Dialog stage
    # ------------------------------------------------------------------

    async def get_stage(self, chat_id: int) -> DialogStage:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.stage if session else DialogStage.NONE

    async def is_in_stage(self, chat_id: int, stage: DialogStage) -> bool:
        return await self.get_stage(chat_id) == stage

    async def set_stage(
        self,
        chat_id: int,
        stage: DialogStage,
        validate_transition: bool = False
    ) -> DialogStage:
        """
        Updates the chat's dialog stage.

        Args:
            chat_id: Chat ID
            stage: Target stage
            validate_transition: Whether to enforce STAGE_TRANSITIONS

        Returns:
            The previous stage

        Raises:
            InvalidStageTransitionError: If the chat would enter or leave
                CHATTING (use start_chat / end_chat), or the transition is
                not allowed while validating
        """
        async with self._locked(chat_id):
            session = self._entry(chat_id)
            current = session.stage

            if stage == DialogStage.CHATTING or current == DialogStage.CHATTING:
                raise InvalidStageTransitionError(
                    f"Stage {current.value} -> {stage.value} must go through start_chat/end_chat",
                    details={"chat_id": chat_id}
                )

            if validate_transition and current != stage and not is_valid_transition(current, stage):
                logger.warning(
                    f"Invalid stage transition attempted: {current.value} -> {stage.value}",
                    extra={"chat_id": chat_id}
                )
                raise InvalidStageTransitionError(
                    f"Invalid stage transition: {current.value} -> {stage.value}",
                    details={"chat_id": chat_id}
                )

            session.stage = stage
            session.touch()

        if current != stage:
            logger.debug(
                f"Stage updated: {current.value} -> {stage.value}",
                extra={"chat_id": chat_id}
            )
        return current

    async def get_profile_flow(self, chat_id: int) -> ProfileFlow:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.profile_flow if session else ProfileFlow.SEQUENTIAL

    async def set_profile_flow(self, chat_id: int, flow: ProfileFlow):
        async with self._locked(chat_id):
            self._entry(chat_id).profile_flow = flow

    # ------------------------------------------------------------------
    # Nearby candidates
    # ------------------------------------------------------------------

    async def cache_candidates(self, chat_id: int, candidates: List[Dict[str, Any]]):
        """Replaces the cached search results and rewinds the cursor to 0."""
        async with self._locked(chat_id):
            session = self._entry(chat_id)
            session.candidates = list(candidates)
            session.cursor = 0
            session.touch()
        logger.debug(f"Cached {len(candidates)} candidates", extra={"chat_id": chat_id})

    async def get_candidates(self, chat_id: int) -> List[Dict[str, Any]]:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return list(session.candidates) if session else []

    async def get_cursor(self, chat_id: int) -> Optional[int]:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.cursor if session else None

    async def set_cursor(self, chat_id: int, index: int):
        async with self._locked(chat_id):
            self._entry(chat_id).cursor = index

    # ------------------------------------------------------------------
    # Pending meeting request
    # ------------------------------------------------------------------

    async def _update_pending(self, chat_id: int, **changes):
        async with self._locked(chat_id):
            session = self._entry(chat_id)
            pending = session.pending_request or PendingMeetingRequest()
            session.pending_request = pending.with_changes(**changes)
            session.touch()

    async def set_pending_target(self, chat_id: int, target_id: int):
        await self._update_pending(chat_id, target_id=target_id)

    async def set_pending_message(self, chat_id: int, message: str):
        await self._update_pending(chat_id, message=message)

    async def set_pending_photo(self, chat_id: int, photo_file_id: str):
        await self._update_pending(chat_id, photo_file_id=photo_file_id)

    async def get_pending_request(self, chat_id: int) -> Optional[PendingMeetingRequest]:
        """Returns an immutable snapshot of the pending request, if any."""
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.pending_request if session else None

    async def get_pending_target(self, chat_id: int) -> Optional[int]:
        pending = await self.get_pending_request(chat_id)
        return pending.target_id if pending else None

    async def get_pending_message(self, chat_id: int) -> Optional[str]:
        pending = await self.get_pending_request(chat_id)
        return pending.message if pending else None

    async def get_pending_photo(self, chat_id: int) -> Optional[str]:
        pending = await self.get_pending_request(chat_id)
        return pending.photo_file_id if pending else None

    async def clear_pending_request(self, chat_id: int):
        """Drops message, photo and target together."""
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            if session is not None:
                session.pending_request = None
                session.touch()
        logger.debug("Pending meeting request cleared", extra={"chat_id": chat_id})

    # ------------------------------------------------------------------
    # Location preferences
    # ------------------------------------------------------------------

    async def set_location_duration(self, chat_id: int, hours: int):
        async with self._locked(chat_id):
            self._entry(chat_id).location.duration_hours = hours

    async def get_location_duration(self, chat_id: int) -> Optional[int]:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.location.duration_hours if session else None

    async def set_search_radius(self, chat_id: int, radius_km: int):
        async with self._locked(chat_id):
            self._entry(chat_id).location.radius_km = radius_km

    async def get_search_radius(self, chat_id: int) -> Optional[int]:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.location.radius_km if session else None

    async def has_location_settings(self, chat_id: int) -> bool:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return bool(session and session.location.has_settings)

    async def set_last_location(self, chat_id: int, latitude: float, longitude: float):
        async with self._locked(chat_id):
            self._entry(chat_id).last_location = (latitude, longitude)

    async def get_last_location(self, chat_id: int) -> Optional[Tuple[float, float]]:
        async with self._locked(chat_id):
            session = self._entries.get(chat_id)
            return session.last_location if session else None

    # ------------------------------------------------------------------
    # Chat binding
    # ------------------------------------------------------------------

    async def start_chat(
        self,
        chat_id: int,
        target_id: int,
        meeting_request_id: Optional[str] = None
    ) -> ChatBinding:
        """
        Binds two chats together and moves both into CHATTING.

        Raises:
            ValueError: If a chat is bound to itself
            ChatAlreadyActiveError: If either side is already chatting
        """
        if chat_id == target_id:
            raise ValueError("A chat cannot be bound to itself")

        with LogContext(chat_id=chat_id, partner_id=target_id, request_id=meeting_request_id):
            async with self._locked(chat_id, target_id):
                busy = [cid for cid in (chat_id, target_id) if cid in self._bindings]
                if busy:
                    raise ChatAlreadyActiveError(
                        "One of the participants is already chatting",
                        details={"busy": busy}
                    )

                binding = ChatBinding(
                    chat_a=chat_id,
                    chat_b=target_id,
                    meeting_request_id=meeting_request_id
                )
                for participant in binding.participants:
                    session = self._entry(participant)
                    session.stage = DialogStage.CHATTING
                    session.pending_request = None
                    session.touch()
                    self._bindings[participant] = binding

            logger.info("💬 Chat session started")
            return binding

    async def end_chat(self, chat_id: int) -> Optional[ChatBinding]:
        """
        Tears down the binding for both participants.

        Returns:
            The removed binding, or None if the chat was not bound
        """
        while True:
            binding = self._bindings.get(chat_id)
            if binding is None:
                return None

            async with self._locked(*binding.participants):
                # Another task may have ended or replaced it while we waited
                if self._bindings.get(chat_id) is not binding:
                    continue

                for participant in binding.participants:
                    self._bindings.pop(participant, None)
                    session = self._entry(participant)
                    session.stage = DialogStage.NONE
                    session.touch()

            logger.info(
                "🔚 Chat session ended",
                extra={
                    "chat_id": chat_id,
                    "partner_id": binding.partner_of(chat_id),
                    "request_id": binding.meeting_request_id
                }
            )
            return binding

    async def get_chat_binding(self, chat_id: int) -> Optional[ChatBinding]:
        async with self._locked(chat_id):
            return self._bindings.get(chat_id)

    async def get_chat_partner(self, chat_id: int) -> Optional[int]:
        binding = await self.get_chat_binding(chat_id)
        return binding.partner_of(chat_id) if binding else None

    async def get_chat_meeting_request_id(self, chat_id: int) -> Optional[str]:
        binding = await self.get_chat_binding(chat_id)
        return binding.meeting_request_id if binding else None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reset(self, chat_id: int, reason: str = "manual"):
        """
        Resets a chat to a fresh session. An active chat binding survives;
        it only ends through end_chat.
        """
        async with self._locked(chat_id):
            if chat_id in self._bindings:
                session = self._entry(chat_id)
                session.pending_request = None
                session.candidates = []
                session.cursor = None
            else:
                self._entries[chat_id] = ChatSession(chat_id=chat_id)

        logger.info("Session reset", extra={"chat_id": chat_id, "reason": reason})

    def stats(self) -> Dict[str, int]:
        """Counts for health reporting."""
        return {
            "sessions": len(self._entries),
            "active_chats": len(self._bindings) // 2,
            "pending_requests": sum(
                1 for session in self._entries.values() if session.pending_request is not None
            ),
        }
