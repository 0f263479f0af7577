"""
app/schemas/telegram.py

Purpose: Telegram update payload schema and parser

- Normalizes messages and callback queries into IncomingEvent
- Picks the largest size of an incoming photo
- Edited live locations become silent location updates; other edits are ignored
- Ignores update types the bot does not handle
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any


class EventKind(str, Enum):
    TEXT = "text"
    PHOTO = "photo"
    LOCATION = "location"
    CALLBACK = "callback"
    LOCATION_UPDATE = "location_update"


class IncomingEvent(BaseModel):
    """
    Normalized event for internal processing
    """
    chat_id: int = Field(..., description="Telegram chat id")
    kind: EventKind
    text: Optional[str] = Field(None, description="Message text, or photo caption")
    photo_file_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    live_period: Optional[int] = Field(None, description="Seconds a live location stays updated")
    callback_data: Optional[str] = None
    callback_query_id: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None

    @property
    def sender_name(self) -> Optional[str]:
        if self.first_name:
            return self.first_name
        if self.username:
            return f"@{self.username}"
        return None

    class Config:
        json_schema_extra = {
            "example": {
                "chat_id": 100,
                "kind": "text",
                "text": "/start",
                "first_name": "Anna"
            }
        }


def _sender_fields(sender: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "username": sender.get("username"),
        "first_name": sender.get("first_name"),
    }


def parse_telegram_update(payload: Dict[str, Any]) -> Optional[IncomingEvent]:
    """
    Parses a Telegram update.

    Telegram format (JSON):
    {
        "update_id": 1,
        "message": {
            "chat": {"id": 100},
            "from": {"id": 100, "first_name": "Anna"},
            "text": "Hi"
        }
    }

    Returns:
        IncomingEvent, or None for update types the bot ignores
    """
    callback = payload.get("callback_query")
    if callback:
        message = callback.get("message") or {}
        sender = callback.get("from") or {}
        chat_id = (message.get("chat") or {}).get("id") or sender.get("id")
        if chat_id is None:
            return None
        return IncomingEvent(
            chat_id=chat_id,
            kind=EventKind.CALLBACK,
            callback_data=callback.get("data"),
            callback_query_id=callback.get("id"),
            **_sender_fields(sender)
        )

    edited = payload.get("edited_message")
    if edited and not payload.get("message"):
        return _parse_edited_message(edited)

    message = payload.get("message")
    if not message:
        return None

    chat_id = (message.get("chat") or {}).get("id")
    if chat_id is None:
        return None
    sender = _sender_fields(message.get("from") or {})

    if message.get("photo"):
        # Telegram sends every size of the photo; keep the biggest
        largest = max(message["photo"], key=lambda size: size.get("file_size") or 0)
        return IncomingEvent(
            chat_id=chat_id,
            kind=EventKind.PHOTO,
            photo_file_id=largest.get("file_id"),
            text=message.get("caption"),
            **sender
        )

    location = message.get("location")
    if location:
        return IncomingEvent(
            chat_id=chat_id,
            kind=EventKind.LOCATION,
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            live_period=location.get("live_period"),
            **sender
        )

    if message.get("text") is not None:
        return IncomingEvent(
            chat_id=chat_id,
            kind=EventKind.TEXT,
            text=message["text"],
            **sender
        )

    return None


def _parse_edited_message(message: Dict[str, Any]) -> Optional[IncomingEvent]:
    """
    Telegram re-sends a live location as an edited message on every
    position change. Those become LOCATION_UPDATE events; edited text,
    captions and photos are not new answers and are dropped.
    """
    chat_id = (message.get("chat") or {}).get("id")
    location = message.get("location")
    if chat_id is None or not location:
        return None

    return IncomingEvent(
        chat_id=chat_id,
        kind=EventKind.LOCATION_UPDATE,
        latitude=location.get("latitude"),
        longitude=location.get("longitude"),
        live_period=location.get("live_period"),
        **_sender_fields(message.get("from") or {})
    )
