"""
app/flow/handlers/search.py

Handles: live location and nearby candidates

Flow:
1. /search → how long the location stays visible
2. Duration → search radius
3. Location → stored on the profile, nearby users are searched
4. Candidates are shown one at a time with Meet / Back / Next controls
"""

from typing import Dict, Any, Optional

from app.flow.context import FlowContext
from app.core.logging import get_logger, LogContext
from utils.constants import (
    ASK_LOCATION,
    ASK_LOCATION_DURATION,
    ASK_SEARCH_RADIUS,
    BUTTON_MEET,
    BUTTON_NEXT,
    BUTTON_PREVIOUS,
    CALLBACK_DURATION,
    CALLBACK_MEET,
    CALLBACK_NEXT_CANDIDATE,
    CALLBACK_PREV_CANDIDATE,
    CALLBACK_RADIUS,
    LOCATION_DURATION_OPTIONS,
    NO_CANDIDATES_FOUND,
    NO_MORE_CANDIDATES,
    NO_PREVIOUS_CANDIDATE,
    SEARCH_EXPIRED,
    SEARCH_RADIUS_OPTIONS,
    UNKNOWN_ACTION_HINT,
)
from utils.message_utils import format_candidate
from utils.telegram_utils import create_control

logger = get_logger(__name__)

MAX_DURATION_HOURS = 24
MAX_RADIUS_KM = 50


class SearchHandler:
    """Location preferences, search and candidate navigation."""

    def __init__(self, ctx: FlowContext):
        self.ctx = ctx

    async def start_search(self, chat_id: int) -> Dict[str, Any]:
        controls = [
            create_control(f"{CALLBACK_DURATION}_{hours}", f"{hours}h")
            for hours in LOCATION_DURATION_OPTIONS
        ]
        await self.ctx.reply(chat_id, ASK_LOCATION_DURATION, controls)
        return {"status": "success", "awaiting": "duration"}

    async def set_duration(self, chat_id: int, hours: int) -> Dict[str, Any]:
        if not 0 < hours <= MAX_DURATION_HOURS:
            await self.ctx.reply(chat_id, UNKNOWN_ACTION_HINT)
            return {"status": "ignored", "reason": "invalid_duration"}

        await self.ctx.store.set_location_duration(chat_id, hours)
        controls = [
            create_control(f"{CALLBACK_RADIUS}_{km}", f"{km} km")
            for km in SEARCH_RADIUS_OPTIONS
        ]
        await self.ctx.reply(chat_id, ASK_SEARCH_RADIUS, controls)
        return {"status": "success", "awaiting": "radius"}

    async def set_radius(self, chat_id: int, radius_km: int) -> Dict[str, Any]:
        if not 0 < radius_km <= MAX_RADIUS_KM:
            await self.ctx.reply(chat_id, UNKNOWN_ACTION_HINT)
            return {"status": "ignored", "reason": "invalid_radius"}

        await self.ctx.store.set_search_radius(chat_id, radius_km)

        if await self.ctx.store.get_last_location(chat_id) is not None:
            return await self.run_search(chat_id)

        await self.ctx.reply(chat_id, ASK_LOCATION)
        return {"status": "success", "awaiting": "location"}

    async def handle_location(
        self,
        chat_id: int,
        latitude: float,
        longitude: float,
        live_period: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Remembers the location; searches right away when duration and
        radius are known, otherwise asks for them first.
        """
        logger.info(
            f"📍 Location received (live_period={live_period})",
            extra={"chat_id": chat_id}
        )
        await self.ctx.store.set_last_location(chat_id, latitude, longitude)

        if await self.ctx.store.has_location_settings(chat_id):
            return await self.run_search(chat_id)
        return await self.start_search(chat_id)

    async def refresh_location(self, chat_id: int, latitude: float, longitude: float) -> Dict[str, Any]:
        """
        Follows a live location: keeps the stored coordinates current
        without searching again or messaging the chat.
        """
        await self.ctx.store.set_last_location(chat_id, latitude, longitude)

        duration = await self.ctx.store.get_location_duration(chat_id)
        radius = await self.ctx.store.get_search_radius(chat_id)
        if duration is None or radius is None:
            return {"status": "ignored", "reason": "no_location_settings"}

        await self.ctx.users.update_user_location(chat_id, latitude, longitude, duration, radius)
        logger.debug("📍 Live location refreshed", extra={"chat_id": chat_id})
        return {"status": "success", "refreshed": True}

    async def run_search(self, chat_id: int) -> Dict[str, Any]:
        """
        Publishes the location, searches and shows the first candidate.
        """
        with LogContext(chat_id=chat_id, event="search"):
            location = await self.ctx.store.get_last_location(chat_id)
            duration = await self.ctx.store.get_location_duration(chat_id)
            radius = await self.ctx.store.get_search_radius(chat_id)
            if location is None or duration is None or radius is None:
                return await self.start_search(chat_id)

            latitude, longitude = location
            await self.ctx.users.update_user_location(chat_id, latitude, longitude, duration, radius)
            candidates = await self.ctx.search.find_nearby_users(chat_id, latitude, longitude, radius)
            await self.ctx.store.cache_candidates(chat_id, candidates)

            if not candidates:
                await self.ctx.reply(chat_id, NO_CANDIDATES_FOUND)
                return {"status": "success", "candidates": 0}

            await self.show_candidate(chat_id, 0)
            return {"status": "success", "candidates": len(candidates)}

    async def show_candidate(self, chat_id: int, index: int) -> bool:
        candidates = await self.ctx.store.get_candidates(chat_id)
        if not 0 <= index < len(candidates):
            return False

        candidate = candidates[index]
        if candidate.get("photo_file_id"):
            await self.ctx.messenger.send_photo(chat_id, candidate["photo_file_id"], None)

        controls = [create_control(f"{CALLBACK_MEET}_{candidate['telegram_id']}", BUTTON_MEET)]
        if index > 0:
            controls.append(create_control(CALLBACK_PREV_CANDIDATE, BUTTON_PREVIOUS))
        if index < len(candidates) - 1:
            controls.append(create_control(CALLBACK_NEXT_CANDIDATE, BUTTON_NEXT))

        await self.ctx.reply(chat_id, format_candidate(candidate, index, len(candidates)), controls)
        return True

    async def _move(self, chat_id: int, step: int) -> Dict[str, Any]:
        candidates = await self.ctx.store.get_candidates(chat_id)
        cursor = await self.ctx.store.get_cursor(chat_id)
        if not candidates or cursor is None:
            await self.ctx.reply(chat_id, SEARCH_EXPIRED)
            return {"status": "ignored", "reason": "no_results"}

        index = cursor + step
        if index >= len(candidates):
            await self.ctx.reply(chat_id, NO_MORE_CANDIDATES)
            return {"status": "ignored", "reason": "end_of_list"}
        if index < 0:
            await self.ctx.reply(chat_id, NO_PREVIOUS_CANDIDATE)
            return {"status": "ignored", "reason": "start_of_list"}

        await self.ctx.store.set_cursor(chat_id, index)
        await self.show_candidate(chat_id, index)
        return {"status": "success", "cursor": index}

    async def next_candidate(self, chat_id: int) -> Dict[str, Any]:
        return await self._move(chat_id, 1)

    async def prev_candidate(self, chat_id: int) -> Dict[str, Any]:
        return await self._move(chat_id, -1)
