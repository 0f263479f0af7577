"""
utils/message_utils.py

Purpose: Plain-text renderings of domain data

- Display names for users and chat partners
- Candidate cards, profile summaries and meeting request notices
"""

from typing import Any, Dict, Optional


GENDER_LABELS = {"male": "👨 Male", "female": "👩 Female", "any": "🤷 Any"}


def display_name(user: Optional[Dict[str, Any]], fallback: str = "Someone") -> str:
    if not user:
        return fallback
    if user.get("first_name"):
        return user["first_name"]
    if user.get("username"):
        return f"@{user['username']}"
    return fallback


def _format_interests(interests: Any) -> Optional[str]:
    if not interests:
        return None
    if isinstance(interests, (list, tuple)):
        return ", ".join(str(item) for item in interests)
    return str(interests)


def _profile_lines(user: Dict[str, Any]) -> list:
    lines = []
    if user.get("age"):
        lines.append(f"🎂 Age: {user['age']}")
    if user.get("gender"):
        lines.append(f"🚻 Gender: {GENDER_LABELS.get(user['gender'], user['gender'])}")
    interests = _format_interests(user.get("interests"))
    if interests:
        lines.append(f"🎯 Interests: {interests}")
    if user.get("description"):
        lines.append(f"📝 About: {user['description']}")
    return lines


def format_candidate(candidate: Dict[str, Any], position: int, total: int) -> str:
    """
    Candidate card shown while browsing nearby users.

    Args:
        candidate: Candidate dict from the search service
        position: 0-based index in the cached list
        total: Number of cached candidates
    """
    lines = [f"👤 {display_name(candidate)} ({position + 1}/{total})"]
    distance = candidate.get("distance_m")
    if distance is not None:
        if distance < 1000:
            lines.append(f"📍 {int(distance)} m away")
        else:
            lines.append(f"📍 {distance / 1000:.1f} km away")
    lines.extend(_profile_lines(candidate))
    return "\n".join(lines)


def format_profile(user: Dict[str, Any], completion: int) -> str:
    lines = [f"👤 {display_name(user, 'Your profile')}"]
    lines.extend(_profile_lines(user))

    low, high = user.get("min_age_preference"), user.get("max_age_preference")
    if low is not None or high is not None:
        lines.append(f"🔍 Looking for age: {low if low is not None else '?'}-{high if high is not None else '?'}")
    if user.get("gender_preference"):
        lines.append(f"💞 Looking for: {GENDER_LABELS.get(user['gender_preference'], user['gender_preference'])}")

    lines.append(f"\n🏆 Profile {completion}% complete")
    return "\n".join(lines)


def format_meeting_request(sender: Optional[Dict[str, Any]], message: str) -> str:
    """
    Notice shown to the target of a meeting request.
    """
    lines = [f"💌 {display_name(sender)} wants to meet you!"]
    if sender:
        lines.extend(_profile_lines(sender))
    lines.append("")
    lines.append(f"✉️ Message: {message}")
    return "\n".join(lines)
