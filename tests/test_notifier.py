from __future__ import annotations

import json

import httpx
import pytest

from swap_bot.config import Settings
from swap_bot.notifications.telegram import LogNotifier, NotificationError, TelegramNotifier, build_notifier


def test_telegram_posts_labelled_message() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    notifier = TelegramNotifier(
        "123:abc",
        "42",
        label="SOL/USDC",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    notifier.notify("BUY 0.1 SOL")

    assert len(seen) == 1
    assert seen[0].url.path == "/bot123:abc/sendMessage"
    body = json.loads(seen[0].content)
    assert body["chat_id"] == "42"
    assert body["text"] == "[SOL/USDC] BUY 0.1 SOL"


def test_telegram_http_error_raises_notification_error() -> None:
    notifier = TelegramNotifier(
        "123:abc",
        "42",
        http_client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(401))),
    )
    with pytest.raises(NotificationError):
        notifier.notify("hello")


def test_disabled_telegram_is_silent() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    notifier = TelegramNotifier("", "42", http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert not notifier.enabled
    notifier.notify("hello")


def test_build_notifier_picks_sink() -> None:
    assert isinstance(build_notifier(Settings(telegram_bot_token="", telegram_chat_id="")), LogNotifier)
    telegram = build_notifier(Settings(telegram_bot_token="123:abc", telegram_chat_id="42"))
    assert isinstance(telegram, TelegramNotifier)
    assert telegram.enabled
