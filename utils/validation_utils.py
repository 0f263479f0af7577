"""
utils/validation_utils.py

Purpose: Input validation

- Age and age-range parsing
- Gender and gender preference normalization
- Free-text sanitization for descriptions, interests and meeting messages
"""

import re
from typing import Optional, List


MAX_DESCRIPTION_LENGTH = 500
MAX_INTERESTS_LENGTH = 300
MAX_MEETING_MESSAGE_LENGTH = 1000

GENDER_ALIASES = {
    "male": "male",
    "m": "male",
    "man": "male",
    "👨": "male",
    "female": "female",
    "f": "female",
    "woman": "female",
    "👩": "female",
}

ANY_GENDER_ALIASES = {"any", "both", "all", "doesn't matter", "doesnt matter", "🤷"}


def clean_text(text: Optional[str], max_length: int) -> Optional[str]:
    """
    Strips control characters and surrounding whitespace.

    Args:
        text: Raw user input
        max_length: Longest accepted value

    Returns:
        Cleaned text, or None if empty or too long
    """
    if text is None:
        return None

    cleaned = re.sub(r"[\x00-\x08\x0b-\x1f\x7f]", "", text).strip()
    if not cleaned or len(cleaned) > max_length:
        return None
    return cleaned


def parse_age(text: Optional[str], min_age: int = 18, max_age: int = 100) -> Optional[int]:
    """
    Parses an age in years.

    Returns:
        Integer age within [min_age, max_age], None otherwise
    """
    if not text:
        return None

    match = re.fullmatch(r"\s*(\d{1,3})\s*", text)
    if not match:
        return None

    age = int(match.group(1))
    if age < min_age or age > max_age:
        return None
    return age


def parse_max_age(
    text: Optional[str],
    min_preference: Optional[int],
    min_age: int = 18,
    max_age: int = 100
) -> Optional[int]:
    """
    Parses the upper bound of an age range; it may not be below the lower bound.
    """
    age = parse_age(text, min_age, max_age)
    if age is None:
        return None
    if min_preference is not None and age < min_preference:
        return None
    return age


def parse_gender(text: Optional[str]) -> Optional[str]:
    """
    Normalizes a gender answer to "male" or "female".
    """
    if not text:
        return None
    return GENDER_ALIASES.get(text.strip().lower())


def parse_gender_preference(text: Optional[str]) -> Optional[str]:
    """
    Normalizes a preference answer to "male", "female" or "any".
    """
    if not text:
        return None
    value = text.strip().lower()
    if value in ANY_GENDER_ALIASES:
        return "any"
    return GENDER_ALIASES.get(value)


def parse_interests(text: Optional[str]) -> Optional[List[str]]:
    """
    Splits a comma separated list of interests.

    Returns:
        Non-empty list of unique interests (original order), None if nothing usable
    """
    cleaned = clean_text(text, MAX_INTERESTS_LENGTH)
    if cleaned is None:
        return None

    interests = []
    for item in re.split(r"[,;\n]", cleaned):
        item = item.strip()
        if item and item.lower() not in (existing.lower() for existing in interests):
            interests.append(item)
    return interests or None
