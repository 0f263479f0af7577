"""
app/services/search_service.py

Purpose: Nearby candidate search

- Finds users with an active live location inside the radius
- Applies the searcher's age range and gender preference
- Returns candidates ordered by distance
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.db.mongo import get_users_collection

logger = get_logger(__name__)


CANDIDATE_FIELDS = {
    "_id": 0,
    "telegram_id": 1,
    "username": 1,
    "first_name": 1,
    "age": 1,
    "gender": 1,
    "description": 1,
    "interests": 1,
    "photo_file_id": 1,
    "distance_m": 1,
}


def build_preference_filter(searcher: Optional[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    """
    Query filter for candidates matching the searcher's preferences.
    Preferences that are not set do not restrict the result.
    """
    query: Dict[str, Any] = {"location_expires_at": {"$gt": now}}
    if not searcher:
        return query

    query["telegram_id"] = {"$ne": searcher.get("telegram_id")}

    age_range = {}
    if searcher.get("min_age_preference") is not None:
        age_range["$gte"] = searcher["min_age_preference"]
    if searcher.get("max_age_preference") is not None:
        age_range["$lte"] = searcher["max_age_preference"]
    if age_range:
        query["age"] = age_range

    preference = searcher.get("gender_preference")
    if preference and preference != "any":
        query["gender"] = preference

    return query


class SearchService:
    """Candidate-search collaborator backed by a $geoNear aggregation."""

    def __init__(self, collection=None, max_results: Optional[int] = None):
        self._collection = collection
        self.max_results = max_results or settings.MAX_SEARCH_RESULTS

    @property
    def users(self):
        return self._collection if self._collection is not None else get_users_collection()

    async def find_nearby_users(
        self,
        chat_id: int,
        latitude: float,
        longitude: float,
        radius_km: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Candidates around a point, nearest first.

        Args:
            chat_id: Searching user's chat id (excluded from results)
            latitude, longitude: Search centre
            radius_km: Search radius; DEFAULT_SEARCH_RADIUS_KM when omitted

        Returns:
            Candidate dicts with a "distance_m" field
        """
        radius_km = radius_km or settings.DEFAULT_SEARCH_RADIUS_KM
        searcher = await self.users.find_one({"telegram_id": chat_id})
        query = build_preference_filter(searcher, datetime.utcnow())
        query["telegram_id"] = {"$ne": chat_id}

        pipeline = [
            {
                "$geoNear": {
                    "near": {"type": "Point", "coordinates": [longitude, latitude]},
                    "distanceField": "distance_m",
                    "maxDistance": radius_km * 1000,
                    "query": query,
                    "spherical": True,
                }
            },
            {"$limit": self.max_results},
            {"$project": CANDIDATE_FIELDS},
        ]

        candidates = await self.users.aggregate(pipeline).to_list(length=self.max_results)
        logger.info(
            f"🔎 Found {len(candidates)} candidates within {radius_km}km",
            extra={"chat_id": chat_id}
        )
        return candidates


# Singleton instance
search_service = SearchService()
