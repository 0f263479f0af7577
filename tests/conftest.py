"""
Shared fixtures: in-memory collaborators for the dialog flow.
"""

from datetime import datetime, timedelta

import pytest

from app.core.exceptions import MeetingDomainError
from app.flow.context import FlowContext
from app.flow.dispatcher import DialogDispatcher
from app.flow.states import MeetingStatus
from app.services.session_service import SessionStore
from app.services.user_service import calculate_profile_completion


FIXED_NOW = datetime(2026, 1, 15, 18, 0, 0)


class FakeMessenger:
    """Records every outgoing call; chats can be marked as failing per method."""

    def __init__(self):
        self.sent = []
        self.answered = []
        self.fail_controls_for = set()
        self.fail_text_for = set()
        self.fail_photo_for = set()

    def _record(self, method, chat_id, failing, **payload):
        entry = {"method": method, "chat_id": chat_id, "success": chat_id not in failing, **payload}
        self.sent.append(entry)
        if not entry["success"]:
            return {"success": False, "error": "Telegram API error: 403"}
        return {"success": True, "message_id": len(self.sent)}

    async def send_text(self, chat_id, text):
        return self._record("text", chat_id, self.fail_text_for, text=text)

    async def send_text_with_controls(self, chat_id, text, controls):
        return self._record("controls", chat_id, self.fail_controls_for, text=text, controls=controls)

    async def send_photo(self, chat_id, photo_file_id, caption=None):
        return self._record("photo", chat_id, self.fail_photo_for, photo=photo_file_id, caption=caption)

    async def answer_callback(self, callback_query_id, text=None):
        self.answered.append(callback_query_id)
        return {"success": True}

    def delivered_to(self, chat_id):
        return [m for m in self.sent if m["chat_id"] == chat_id and m["success"]]

    def texts_to(self, chat_id):
        return [m["text"] for m in self.delivered_to(chat_id) if "text" in m]

    def last_text_to(self, chat_id):
        texts = self.texts_to(chat_id)
        return texts[-1] if texts else None


class FakeUsers:
    def __init__(self):
        self.users = {}
        self.locations = {}

    def add(self, telegram_id, **fields):
        self.users[telegram_id] = {"telegram_id": telegram_id, **fields}

    async def get_user_by_telegram_id(self, telegram_id):
        user = self.users.get(telegram_id)
        return dict(user) if user else None

    async def get_or_create_user(self, telegram_id, username=None, first_name=None):
        if telegram_id not in self.users:
            self.add(telegram_id, username=username, first_name=first_name)
        return dict(self.users[telegram_id])

    async def update_profile_field(self, telegram_id, field, value):
        self.users.setdefault(telegram_id, {"telegram_id": telegram_id})[field] = value
        return True

    async def update_user_photo(self, telegram_id, photo_file_id):
        return await self.update_profile_field(telegram_id, "photo_file_id", photo_file_id)

    async def get_profile_completion_percentage(self, telegram_id):
        return calculate_profile_completion(self.users.get(telegram_id))

    async def update_user_location(self, telegram_id, latitude, longitude, duration_hours, radius_km):
        self.locations[telegram_id] = (latitude, longitude, duration_hours, radius_km)
        return True


class FakeMeetings:
    def __init__(self):
        self.records = []
        self.fail_create = False
        self.fail_update = False

    async def create_meeting_request(
        self, sender_id, receiver_id, message, proposed_from, proposed_until, photo_file_id=None
    ):
        if self.fail_create:
            raise MeetingDomainError("Could not store meeting request")
        record = {
            "id": str(len(self.records) + 1),
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "message": message,
            "photo_file_id": photo_file_id,
            "proposed_from": proposed_from,
            "proposed_until": proposed_until,
            "status": MeetingStatus.PENDING.value,
        }
        self.records.append(record)
        return record["id"]

    async def get_pending_request(self, sender_id, receiver_id, now=None):
        for record in reversed(self.records):
            if (record["sender_id"], record["receiver_id"]) == (sender_id, receiver_id) \
                    and record["status"] == MeetingStatus.PENDING.value \
                    and (now is None or record["proposed_until"] > now):
                return dict(record)
        return None

    async def update_status(self, request_id, status):
        if self.fail_update:
            raise MeetingDomainError("Could not update meeting request")
        for record in self.records:
            if record["id"] == request_id and record["status"] == MeetingStatus.PENDING.value:
                record["status"] = status.value
                return True
        return False

    async def expire_overdue_requests(self, now=None):
        return 0


class FakeSearch:
    def __init__(self):
        self.results = []
        self.calls = []

    async def find_nearby_users(self, chat_id, latitude, longitude, radius_km=None):
        self.calls.append((chat_id, latitude, longitude, radius_km))
        return [dict(candidate) for candidate in self.results]


class FakeChats:
    def __init__(self):
        self.saved = []
        self.fail = False

    async def save_message(self, meeting_request_id, sender_id, receiver_id, text=None, photo_file_id=None):
        if self.fail:
            raise RuntimeError("chat log unavailable")
        self.saved.append({
            "meeting_request_id": meeting_request_id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "text": text,
            "photo_file_id": photo_file_id,
        })
        return str(len(self.saved))


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def users():
    fake = FakeUsers()
    fake.add(100, first_name="Anna", age=27, gender="female", description="Coffee lover")
    fake.add(200, first_name="Boris", age=29, gender="male", photo_file_id="boris-photo")
    fake.add(300, first_name="Clara", age=31, gender="female")
    return fake


@pytest.fixture
def meetings():
    return FakeMeetings()


@pytest.fixture
def search():
    return FakeSearch()


@pytest.fixture
def chats():
    return FakeChats()


@pytest.fixture
def ctx(store, messenger, users, meetings, search, chats):
    return FlowContext(
        store=store,
        messenger=messenger,
        users=users,
        meetings=meetings,
        search=search,
        chats=chats,
        meeting_window_minutes=60,
        min_user_age=18,
        max_user_age=100,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def dispatcher(ctx):
    return DialogDispatcher(ctx)


@pytest.fixture
def window():
    return FIXED_NOW, FIXED_NOW + timedelta(minutes=60)
