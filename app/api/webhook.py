"""
app/api/webhook.py

Purpose: Telegram webhook endpoint

- Receives updates pushed by the Telegram Bot API
- Verifies the webhook secret token header
- Parses updates into IncomingEvent and hands them to the dispatcher
- Acknowledges every parsed update so Telegram does not redeliver it
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from typing import Optional

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger
from app.flow.dispatcher import DialogDispatcher
from app.schemas.response import WebhookAck
from app.schemas.telegram import parse_telegram_update

logger = get_logger(__name__)
router = APIRouter()


def get_dispatcher(request: Request) -> DialogDispatcher:
    """Dispatcher built during application startup."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Dispatcher not ready")
    return dispatcher


def verify_secret_token(
    x_telegram_bot_api_secret_token: Optional[str] = Header(None)
):
    expected = settings.TELEGRAM_WEBHOOK_SECRET
    if expected and x_telegram_bot_api_secret_token != expected:
        raise AuthenticationError("Invalid webhook secret token")


@router.post("/webhook/telegram", response_model=WebhookAck, dependencies=[Depends(verify_secret_token)])
async def telegram_webhook(
    request: Request,
    dispatcher: DialogDispatcher = Depends(get_dispatcher)
):
    """
    Telegram webhook endpoint.

    Unsupported update types (channel posts, stickers, ...) are
    acknowledged and ignored.
    """
    try:
        payload = await request.json()
    except ValueError as e:
        logger.error(f"Failed to parse JSON payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event = parse_telegram_update(payload)
    if event is None:
        logger.info(f"📭 Ignoring unsupported update {payload.get('update_id')}")
        return WebhookAck(handled=False, detail="unsupported update")

    logger.info(
        f"📱 Telegram {event.kind.value} update received",
        extra={"chat_id": event.chat_id}
    )

    response = await dispatcher.dispatch_event(event)
    return WebhookAck(detail=response.get("status"))


@router.get("/webhook")
async def webhook_verification():
    """
    Simple check that the webhook route is mounted.
    """
    return {"status": "ok", "message": "Webhook endpoint is active"}
