"""
utils/telegram_utils.py

Purpose: Telegram payload builders

- Constructs control (button) descriptors handed to the messenger
- Converts controls into inline keyboard markup
- Parses callback tokens like accept_<id>
"""

from typing import List, Dict, Optional, Any, Tuple


# Telegram limits callback_data to 64 bytes
MAX_CALLBACK_DATA_LENGTH = 64


def create_control(control_id: str, title: str) -> Dict[str, str]:
    """
    Creates a control descriptor.

    Args:
        control_id: Callback token sent back when the control is pressed
        title: Button label

    Returns:
        {"id": ..., "title": ...}
    """
    if len(control_id.encode("utf-8")) > MAX_CALLBACK_DATA_LENGTH:
        raise ValueError(f"Callback token too long: {control_id}")
    return {"id": control_id, "title": title}


def build_inline_keyboard(
    controls: List[Dict[str, str]],
    row_width: int = 2
) -> Dict[str, Any]:
    """
    Lays controls out as an inline keyboard.

    Args:
        controls: Control descriptors with 'id' and 'title' keys
        row_width: Buttons per row

    Returns:
        reply_markup payload

    Example:
        controls = [
            {"id": "accept_42", "title": "✅ Accept"},
            {"id": "decline_42", "title": "❌ Decline"}
        ]
    """
    rows = []
    for start in range(0, len(controls), max(row_width, 1)):
        rows.append([
            {"text": control["title"], "callback_data": control["id"]}
            for control in controls[start:start + row_width]
        ])
    return {"inline_keyboard": rows}


def split_callback_token(data: str) -> Tuple[str, Optional[str]]:
    """
    Splits a callback token into its action and argument.

    "accept_123" -> ("accept", "123")
    "next_candidate" -> ("next_candidate", None) for tokens without an argument
    """
    data = (data or "").strip()
    if data.startswith("/"):
        data = data[1:]
    action, sep, argument = data.rpartition("_")
    if sep and action and argument.lstrip("-").isdigit():
        return action, argument
    return data, None


def parse_chat_id_argument(argument: Optional[str]) -> Optional[int]:
    if argument is None:
        return None
    try:
        return int(argument)
    except ValueError:
        return None


def maps_link(latitude: float, longitude: float) -> str:
    return f"https://maps.google.com/?q={latitude:.6f},{longitude:.6f}"
