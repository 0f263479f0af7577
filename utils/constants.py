"""
utils/constants.py

Purpose: Centralized static content

- All user-facing messages
- Control labels and callback tokens
- Reusable constants

(Prevents hardcoding across the codebase)
"""

# ============================================================
# WELCOME & GENERAL
# ============================================================

WELCOME_MESSAGE = """👋 Welcome to NearMeet!

I help you meet people who are close by right now.

1️⃣ Fill in your profile
2️⃣ Share your live location
3️⃣ Browse people nearby and send a meeting request

Let's start with your profile 😊"""

HELP_MESSAGE = """ℹ️ Commands

/profile - show your profile
/edit_profile - fill in your profile again
/search - find people nearby
/cancel - cancel the current step
/end_chat - leave the current chat
/help - this message"""

GENERIC_ERROR_MESSAGE = "❌ Something went wrong. Please try again."
UNKNOWN_INPUT_HINT = "🤔 I didn't get that. Use /help to see what I can do."
UNKNOWN_ACTION_HINT = "⚠️ This button is no longer valid."
CANCELLED_MESSAGE = "👌 Cancelled."
NOTHING_TO_CANCEL_MESSAGE = "There is nothing to cancel."

# ============================================================
# PROFILE
# ============================================================

PROFILE_FIELD_PROMPTS = {
    "AWAITING_DESCRIPTION": "✍️ Tell a few words about yourself.",
    "AWAITING_INTERESTS": "🎯 What are your interests? Separate them with commas.",
    "AWAITING_AGE": "🎂 How old are you?",
    "AWAITING_GENDER": "🚻 What is your gender? (male / female)",
    "AWAITING_MIN_AGE": "🔽 Minimum age of people you'd like to meet?",
    "AWAITING_MAX_AGE": "🔼 Maximum age of people you'd like to meet?",
    "AWAITING_GENDER_PREFERENCE": "💞 Who would you like to meet? (male / female / any)",
    "AWAITING_PHOTO": "📸 Send a photo for your profile, or /skip.",
}

PROFILE_FIELD_ERRORS = {
    "AWAITING_DESCRIPTION": "⚠️ Please send a non-empty description (up to 500 characters).",
    "AWAITING_INTERESTS": "⚠️ Please list at least one interest.",
    "AWAITING_AGE": "⚠️ Please send your age as a number between {min_age} and {max_age}.",
    "AWAITING_GENDER": "⚠️ Please answer male or female.",
    "AWAITING_MIN_AGE": "⚠️ Please send a number between {min_age} and {max_age}.",
    "AWAITING_MAX_AGE": "⚠️ Please send a number between {min_age} and {max_age}, not below your minimum.",
    "AWAITING_GENDER_PREFERENCE": "⚠️ Please answer male, female or any.",
}

PROFILE_FIELD_SAVED = "✅ Saved!"
PROFILE_PHOTO_EXPECTED = "📸 I'm waiting for a photo. Send one or use /skip."
PROFILE_PHOTO_SAVED = """✅ Your profile photo is updated!

🏆 Your profile is {completion}% complete.

Use /profile to view it and /edit_profile to change it."""
PROFILE_COMPLETED = """🎉 Profile saved!

🏆 Your profile is {completion}% complete.

Use /search to find people nearby."""
PROFILE_NOT_FOUND = "You don't have a profile yet. Use /edit_profile to create one."
PHOTO_OUTSIDE_FLOW_HINT = "📸 Want to update your profile photo? Use /edit_profile"

# ============================================================
# LOCATION & SEARCH
# ============================================================

ASK_LOCATION_DURATION = "⏱ For how long should your location stay visible?"
ASK_SEARCH_RADIUS = "📏 How far should I search?"
ASK_LOCATION = "📍 Now share your location (the 📎 → Location button)."
LOCATION_DURATION_OPTIONS = (1, 3, 6)
SEARCH_RADIUS_OPTIONS = (1, 3, 5, 10)
NO_CANDIDATES_FOUND = "😔 Nobody is around right now. Try again later or widen the radius with /search."
NO_MORE_CANDIDATES = "That's everyone nearby for now. Use /search to refresh."
NO_PREVIOUS_CANDIDATE = "This is the first person in the list."
SEARCH_EXPIRED = "The search results are gone. Use /search to look again."

# ============================================================
# MEETING REQUESTS
# ============================================================

ASK_MEETING_MESSAGE = "✉️ Write a message for {name}. It will be sent with your meeting request."
ASK_MEETING_PHOTO = "📸 Want to attach a photo to your request? Send it now or skip."
MEETING_MESSAGE_INVALID = "⚠️ Please write a message (up to 1000 characters)."
MEETING_PHOTO_EXPECTED = "📸 Send a photo or press Skip."
MEETING_TARGET_INVALID = "⚠️ This person is no longer available."
MEETING_SELF_TARGET = "🙃 You can't send a meeting request to yourself."
MEETING_REQUEST_SENT = "✅ Meeting request sent!"
MEETING_REQUEST_SENT_WITH_PHOTO = "✅ Meeting request with photo sent!"
MEETING_REQUEST_UNDELIVERED = "✅ Meeting request saved, but I couldn't notify the other person yet."
MEETING_REQUEST_FAILED = "❌ Something went wrong. Please try again."
MEETING_REQUEST_PHOTO_CAPTION = "📸 Photo attached to the meeting request"
MEETING_FALLBACK_INSTRUCTIONS = """

To answer, use the commands:
/accept_{sender_id} - accept
/decline_{sender_id} - decline"""
MEETING_REQUEST_NOT_FOUND = "⚠️ This meeting request is no longer available."
MEETING_ACCEPTED_REQUESTER = "🎉 {name} accepted your meeting request! You can chat now."
MEETING_ACCEPTED_TARGET = "🎉 You accepted the meeting request from {name}. You can chat now."
MEETING_DECLINED_REQUESTER = "😔 {name} declined your meeting request."
MEETING_DECLINED_TARGET = "👌 Meeting request declined."
MEETING_BUSY = "⚠️ Finish your current chat first (/end_chat)."
MEETING_PARTNER_BUSY = "⚠️ {name} is in another chat right now. Try again later."

# ============================================================
# CHAT
# ============================================================

CHAT_STARTED = "💬 You are now chatting with {name}. Everything you send is forwarded. Use /end_chat to leave."
CHAT_ENDED_SELF = "🔚 Chat ended."
CHAT_ENDED_PARTNER = "🔚 {name} ended the chat."
NOT_CHATTING = "You are not in a chat."
CHAT_RELAY_FAILED = "⚠️ Your message could not be delivered."

# ============================================================
# CONTROL LABELS
# ============================================================

BUTTON_ACCEPT = "✅ Accept"
BUTTON_DECLINE = "❌ Decline"
BUTTON_MEET = "☕ Meet"
BUTTON_NEXT = "➡️ Next"
BUTTON_PREVIOUS = "⬅️ Back"
BUTTON_SKIP_PHOTO = "⏭ Skip"
BUTTON_END_CHAT = "🔚 End chat"

# ============================================================
# CALLBACK TOKENS
# ============================================================

CALLBACK_ACCEPT = "accept"
CALLBACK_DECLINE = "decline"
CALLBACK_MEET = "meet"
CALLBACK_DURATION = "duration"
CALLBACK_RADIUS = "radius"
CALLBACK_NEXT_CANDIDATE = "next_candidate"
CALLBACK_PREV_CANDIDATE = "prev_candidate"
CALLBACK_SKIP_MEETING_PHOTO = "skip_meeting_photo"
CALLBACK_END_CHAT = "end_chat"
CALLBACK_EDIT_PREFIX = "edit_"

# ============================================================
# COMMANDS
# ============================================================

COMMAND_START = "/start"
COMMAND_HELP = "/help"
COMMAND_PROFILE = "/profile"
COMMAND_EDIT_PROFILE = "/edit_profile"
COMMAND_SEARCH = "/search"
COMMAND_CANCEL = "/cancel"
COMMAND_SKIP = "/skip"
COMMAND_END_CHAT = "/end_chat"
