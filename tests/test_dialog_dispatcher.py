"""
Dialog routing scenarios driven through DialogDispatcher entry points.
"""

import asyncio
from dataclasses import replace

import pytest

from app.flow.states import STAGE_METADATA, DialogStage, MeetingStatus
from app.schemas.telegram import EventKind, IncomingEvent
from utils.constants import (
    GENERIC_ERROR_MESSAGE,
    MEETING_BUSY,
    MEETING_REQUEST_FAILED,
    NOT_CHATTING,
    PHOTO_OUTSIDE_FLOW_HINT,
    UNKNOWN_ACTION_HINT,
    UNKNOWN_INPUT_HINT,
)


def control_ids(message):
    return [control["id"] for control in message.get("controls", [])]


# ============================================================================
# MEETING SCENARIOS
# ============================================================================

@pytest.mark.asyncio
async def test_text_in_meeting_message_stage_becomes_pending_message(dispatcher, store, messenger):
    await store.set_pending_target(100, 200)
    await store.set_stage(100, DialogStage.AWAITING_MEETING_MESSAGE)

    await dispatcher.handle_text(100, "Hi")

    assert await store.get_pending_message(100) == "Hi"
    assert await store.get_stage(100) == DialogStage.AWAITING_MEETING_PHOTO
    assert "skip_meeting_photo" in control_ids(messenger.sent[-1])


@pytest.mark.asyncio
async def test_dispatch_without_photo_notifies_target(dispatcher, store, messenger, meetings, window):
    await store.set_pending_target(100, 200)
    await store.set_pending_message(100, "Coffee?")
    await store.set_stage(100, DialogStage.AWAITING_MEETING_PHOTO)

    await dispatcher.handle_callback(100, "skip_meeting_photo", "cbq-1")

    assert len(meetings.records) == 1
    record = meetings.records[0]
    assert (record["sender_id"], record["receiver_id"], record["message"]) == (100, 200, "Coffee?")
    assert record["photo_file_id"] is None
    assert (record["proposed_from"], record["proposed_until"]) == window

    assert await store.get_pending_request(100) is None
    assert await store.get_stage(100) == DialogStage.NONE

    notice = next(m for m in messenger.delivered_to(200) if m["method"] == "controls")
    assert "Coffee?" in notice["text"]
    assert control_ids(notice) == ["accept_100", "decline_100"]
    assert messenger.answered == ["cbq-1"]


@pytest.mark.asyncio
async def test_accept_puts_both_chats_in_chatting(dispatcher, store, meetings, window):
    await meetings.create_meeting_request(100, 200, "Coffee?", *window)

    await dispatcher.handle_callback(200, "accept_100")

    assert await store.get_stage(100) == DialogStage.CHATTING
    assert await store.get_stage(200) == DialogStage.CHATTING
    assert await store.get_chat_partner(100) == 200
    assert await store.get_chat_partner(200) == 100
    assert meetings.records[0]["status"] == MeetingStatus.ACCEPTED.value


@pytest.mark.asyncio
async def test_dispatch_without_target_is_rejected(dispatcher, store, messenger, meetings):
    await store.set_pending_message(100, "Coffee?")
    await store.set_stage(100, DialogStage.AWAITING_MEETING_PHOTO)

    await dispatcher.handle_callback(100, "skip_meeting_photo")

    assert meetings.records == []
    assert messenger.last_text_to(100) == MEETING_REQUEST_FAILED
    pending = await store.get_pending_request(100)
    assert pending is not None
    assert pending.message == "Coffee?"
    assert pending.target_id is None


@pytest.mark.asyncio
async def test_photo_in_none_stage_only_hints(dispatcher, store, messenger):
    await dispatcher.handle_photo(100, "some-photo")

    assert await store.get_stage(100) == DialogStage.NONE
    assert await store.get_pending_request(100) is None
    assert store.stats()["sessions"] == 0
    assert [m["text"] for m in messenger.sent] == [PHOTO_OUTSIDE_FLOW_HINT]


@pytest.mark.asyncio
async def test_fallback_command_accepts_request(dispatcher, store, meetings, window):
    await meetings.create_meeting_request(100, 200, "Coffee?", *window)

    await dispatcher.handle_text(200, "/accept_100")

    assert await store.get_chat_partner(200) == 100


@pytest.mark.asyncio
async def test_fallback_command_declines_request(dispatcher, store, meetings, window):
    await meetings.create_meeting_request(100, 200, "Coffee?", *window)

    await dispatcher.handle_text(200, "/decline_100")

    assert meetings.records[0]["status"] == MeetingStatus.DECLINED.value
    assert await store.get_chat_partner(200) is None


@pytest.mark.asyncio
async def test_meet_callback_starts_request(dispatcher, store, messenger):
    await dispatcher.handle_callback(100, "meet_200")

    assert await store.get_stage(100) == DialogStage.AWAITING_MEETING_MESSAGE
    assert await store.get_pending_target(100) == 200
    assert "Boris" in messenger.last_text_to(100)


@pytest.mark.asyncio
async def test_photo_in_meeting_photo_stage_dispatches_with_photo(dispatcher, store, meetings):
    await store.set_pending_target(100, 200)
    await store.set_pending_message(100, "Coffee?")
    await store.set_stage(100, DialogStage.AWAITING_MEETING_PHOTO)

    await dispatcher.handle_photo(100, "meeting-photo")

    assert meetings.records[0]["photo_file_id"] == "meeting-photo"


# ============================================================================
# CHATTING
# ============================================================================

@pytest.mark.asyncio
async def test_events_while_chatting_are_relayed(dispatcher, store, messenger):
    await store.start_chat(100, 200, "1")

    await dispatcher.handle_text(100, "/profile", sender_name="Anna")
    await dispatcher.handle_photo(100, "chat-photo", sender_name="Anna")
    await dispatcher.handle_location(100, 52.5, 13.4, sender_name="Anna")

    relayed = messenger.delivered_to(200)
    assert relayed[0]["text"] == "💬 Anna: /profile"
    assert relayed[1]["photo"] == "chat-photo"
    assert "maps.google.com" in relayed[2]["text"]
    assert await store.get_stage(100) == DialogStage.CHATTING


@pytest.mark.asyncio
async def test_end_chat_command_ends_for_both(dispatcher, store):
    await store.start_chat(100, 200)

    await dispatcher.handle_text(200, "/end_chat")

    assert await store.get_stage(100) == DialogStage.NONE
    assert await store.get_stage(200) == DialogStage.NONE


@pytest.mark.asyncio
async def test_end_chat_when_not_chatting(dispatcher, messenger):
    await dispatcher.handle_callback(100, "end_chat")
    assert messenger.last_text_to(100) == NOT_CHATTING


# ============================================================================
# PROFILE
# ============================================================================

@pytest.mark.asyncio
async def test_onboarding_advances_through_fields(dispatcher, store, users):
    await dispatcher.handle_text(500, "/start", sender_name="Dana")
    assert await store.get_stage(500) == DialogStage.AWAITING_DESCRIPTION

    answers = ["I like long walks", "hiking, jazz", "30", "female", "25", "35", "any"]
    for answer in answers:
        await dispatcher.handle_text(500, answer)

    assert await store.get_stage(500) == DialogStage.AWAITING_PHOTO
    profile = users.users[500]
    assert profile["interests"] == ["hiking", "jazz"]
    assert profile["age"] == 30
    assert profile["max_age_preference"] == 35
    assert profile["gender_preference"] == "any"

    await dispatcher.handle_photo(500, "dana-photo")

    assert await store.get_stage(500) == DialogStage.NONE
    assert users.users[500]["photo_file_id"] == "dana-photo"


@pytest.mark.asyncio
async def test_invalid_profile_answer_keeps_stage(dispatcher, store, messenger):
    await store.set_stage(100, DialogStage.AWAITING_AGE)

    await dispatcher.handle_text(100, "twelve")

    assert await store.get_stage(100) == DialogStage.AWAITING_AGE
    assert "between 18 and 100" in messenger.last_text_to(100)


@pytest.mark.asyncio
async def test_skip_profile_photo_finishes_onboarding(dispatcher, store):
    await store.set_stage(100, DialogStage.AWAITING_PHOTO)
    await dispatcher.handle_text(100, "/skip")
    assert await store.get_stage(100) == DialogStage.NONE


@pytest.mark.asyncio
async def test_edit_callback_edits_a_single_field(dispatcher, store, users):
    await dispatcher.handle_callback(100, "edit_age")
    assert await store.get_stage(100) == DialogStage.AWAITING_AGE

    await dispatcher.handle_text(100, "28")

    assert users.users[100]["age"] == 28
    assert await store.get_stage(100) == DialogStage.NONE


# ============================================================================
# SEARCH
# ============================================================================

@pytest.mark.asyncio
async def test_location_flow_searches_and_navigates(dispatcher, store, messenger, users, search):
    search.results = [
        {"telegram_id": 200, "first_name": "Boris", "distance_m": 300},
        {"telegram_id": 300, "first_name": "Clara", "distance_m": 1500},
    ]

    await dispatcher.handle_location(100, 52.5, 13.4)
    await dispatcher.handle_callback(100, "duration_3")
    await dispatcher.handle_callback(100, "radius_5")

    assert users.locations[100] == (52.5, 13.4, 3, 5)
    assert search.calls == [(100, 52.5, 13.4, 5)]
    assert await store.get_cursor(100) == 0
    assert "meet_200" in control_ids(messenger.sent[-1])

    await dispatcher.handle_callback(100, "next_candidate")
    assert await store.get_cursor(100) == 1
    assert "meet_300" in control_ids(messenger.sent[-1])

    await dispatcher.handle_callback(100, "next_candidate")
    assert await store.get_cursor(100) == 1

    await dispatcher.handle_callback(100, "prev_candidate")
    assert await store.get_cursor(100) == 0


@pytest.mark.asyncio
async def test_location_with_settings_searches_immediately(dispatcher, store, search):
    await store.set_location_duration(100, 1)
    await store.set_search_radius(100, 3)

    await dispatcher.handle_location(100, 1.0, 2.0)

    assert search.calls == [(100, 1.0, 2.0, 3)]


@pytest.mark.asyncio
async def test_live_location_update_refreshes_silently(dispatcher, store, messenger, users, search):
    search.results = [
        {"telegram_id": 200, "first_name": "Boris"},
        {"telegram_id": 300, "first_name": "Clara"},
    ]
    await store.set_location_duration(100, 3)
    await store.set_search_radius(100, 5)
    await dispatcher.handle_location(100, 52.5, 13.4, live_period=3600)
    await dispatcher.handle_callback(100, "next_candidate")
    sent_before = len(messenger.sent)

    response = await dispatcher.handle_location_update(100, 52.6, 13.5)

    assert response == {"status": "success", "refreshed": True}
    assert users.locations[100] == (52.6, 13.5, 3, 5)
    assert await store.get_last_location(100) == (52.6, 13.5)
    assert await store.get_cursor(100) == 1
    assert len(search.calls) == 1
    assert len(messenger.sent) == sent_before


@pytest.mark.asyncio
async def test_live_location_update_while_chatting_is_not_relayed(dispatcher, store, messenger):
    await store.start_chat(100, 200, "1")

    await dispatcher.handle_location_update(100, 52.6, 13.5)

    assert messenger.sent == []
    assert await store.get_stage(100) == DialogStage.CHATTING


@pytest.mark.asyncio
async def test_search_controls_are_refused_while_chatting(dispatcher, store, messenger, search):
    await store.cache_candidates(100, [{"telegram_id": 300}, {"telegram_id": 400}])
    await store.set_last_location(100, 52.5, 13.4)
    await store.start_chat(100, 200, "1")

    for data in ("duration_3", "radius_5", "next_candidate", "prev_candidate"):
        response = await dispatcher.handle_callback(100, data)
        assert response == {"status": "ignored", "reason": "chatting"}
        assert messenger.last_text_to(100) == MEETING_BUSY

    assert search.calls == []
    assert await store.get_cursor(100) == 0
    assert await store.get_location_duration(100) is None
    assert messenger.delivered_to(200) == []


# ============================================================================
# FAILURE POLICY
# ============================================================================

@pytest.mark.asyncio
async def test_free_text_in_none_hints(dispatcher, store, messenger):
    await dispatcher.handle_text(100, "hello there")
    assert await store.get_stage(100) == DialogStage.NONE
    assert messenger.last_text_to(100) == UNKNOWN_INPUT_HINT


@pytest.mark.asyncio
async def test_unknown_callback_hints(dispatcher, store, messenger):
    await store.set_stage(100, DialogStage.AWAITING_AGE)
    await dispatcher.handle_callback(100, "launch_rocket")
    assert await store.get_stage(100) == DialogStage.AWAITING_AGE
    assert messenger.last_text_to(100) == UNKNOWN_ACTION_HINT


@pytest.mark.asyncio
async def test_handler_crash_is_reported_not_raised(dispatcher, messenger, search):
    async def broken(*args, **kwargs):
        raise RuntimeError("search backend down")

    search.find_nearby_users = broken
    await dispatcher.ctx.store.set_location_duration(100, 1)
    await dispatcher.ctx.store.set_search_radius(100, 3)

    response = await dispatcher.handle_location(100, 1.0, 2.0)

    assert response["status"] == "error"
    assert messenger.last_text_to(100) == GENERIC_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_dispatch_event_routes_by_kind(dispatcher, store):
    await store.set_pending_target(100, 200)
    await store.set_stage(100, DialogStage.AWAITING_MEETING_MESSAGE)

    event = IncomingEvent(chat_id=100, kind=EventKind.TEXT, text="See you at 6?", first_name="Anna")
    await dispatcher.dispatch_event(event)

    assert await store.get_pending_message(100) == "See you at 6?"


# ============================================================================
# ORDERING
# ============================================================================

@pytest.mark.asyncio
async def test_events_of_one_chat_are_applied_in_order(dispatcher, store, users):
    await store.set_stage(700, DialogStage.AWAITING_DESCRIPTION)

    await asyncio.gather(
        dispatcher.handle_text(700, "About me"),
        dispatcher.handle_text(700, "chess, tea"),
        dispatcher.handle_text(700, "33"),
    )

    assert users.users[700]["description"] == "About me"
    assert users.users[700]["interests"] == ["chess", "tea"]
    assert users.users[700]["age"] == 33
    assert await store.get_stage(700) == DialogStage.AWAITING_GENDER
    assert len(dispatcher.serializer) == 0


# ============================================================================
# STAGE METADATA
# ============================================================================

@pytest.mark.asyncio
async def test_photo_routing_follows_stage_metadata(dispatcher, store, messenger, monkeypatch):
    chatting = STAGE_METADATA[DialogStage.CHATTING]
    monkeypatch.setitem(STAGE_METADATA, DialogStage.CHATTING, replace(chatting, accepts_photo=False))
    await store.start_chat(100, 200, "1")

    response = await dispatcher.handle_photo(100, "chat-photo", sender_name="Anna")

    assert response["reason"] == "photo_not_expected"
    assert messenger.last_text_to(100) == PHOTO_OUTSIDE_FLOW_HINT
    assert messenger.delivered_to(200) == []


@pytest.mark.asyncio
async def test_text_routing_follows_stage_metadata(dispatcher, store, messenger, monkeypatch):
    composing = STAGE_METADATA[DialogStage.AWAITING_MEETING_MESSAGE]
    monkeypatch.setitem(STAGE_METADATA, DialogStage.AWAITING_MEETING_MESSAGE, replace(composing, accepts_text=False))
    await store.set_pending_target(100, 200)
    await store.set_stage(100, DialogStage.AWAITING_MEETING_MESSAGE)

    response = await dispatcher.handle_text(100, "Coffee?")

    assert response["reason"] == "no_rule"
    assert await store.get_pending_message(100) is None
    assert messenger.last_text_to(100) == UNKNOWN_INPUT_HINT
