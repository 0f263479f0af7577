import pytest

from app.services.notification_service import DeliveryTier, deliver_with_fallback, send_attachment


CONTROLS = [{"id": "accept_1", "title": "Accept"}]


@pytest.mark.asyncio
async def test_rich_delivery(messenger):
    result = await deliver_with_fallback(messenger, 5, "Hello", CONTROLS, "Hello /accept_1")
    assert result.tier == DeliveryTier.RICH
    assert result.delivered
    assert [m["method"] for m in messenger.sent] == ["controls"]


@pytest.mark.asyncio
async def test_fallback_delivery(messenger):
    messenger.fail_controls_for.add(5)

    result = await deliver_with_fallback(messenger, 5, "Hello", CONTROLS, "Hello /accept_1")

    assert result.tier == DeliveryTier.FALLBACK
    assert result.delivered
    assert len(result.errors) == 1
    assert messenger.sent[-1]["text"] == "Hello /accept_1"


@pytest.mark.asyncio
async def test_failed_delivery(messenger):
    messenger.fail_controls_for.add(5)
    messenger.fail_text_for.add(5)

    result = await deliver_with_fallback(messenger, 5, "Hello", CONTROLS, "Hello /accept_1")

    assert result.tier == DeliveryTier.FAILED
    assert not result.delivered
    assert len(result.errors) == 2


@pytest.mark.asyncio
async def test_send_attachment(messenger):
    assert await send_attachment(messenger, 5, None) is False
    assert messenger.sent == []

    assert await send_attachment(messenger, 5, "photo-1", "caption") is True

    messenger.fail_photo_for.add(6)
    assert await send_attachment(messenger, 6, "photo-1") is False
