"""Telegram and log notification sinks."""

from __future__ import annotations

import httpx

from swap_bot.config import Settings
from swap_bot.utils.logging import get_logger

_TELEGRAM_API = "https://api.telegram.org"


class NotificationError(Exception):
    """Raised when a message cannot be delivered."""


class TelegramNotifier:
    """Send messages through the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        label: str = "",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._bot_token = bot_token.strip()
        self._chat_id = chat_id.strip()
        self._label = label.strip()
        self._timeout = timeout
        self._http = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def notify(self, message: str) -> None:
        if not self.enabled:
            return
        text = f"[{self._label}] {message}" if self._label else message
        url = f"{_TELEGRAM_API}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        try:
            if self._http is not None:
                response = self._http.post(url, json=payload)
                response.raise_for_status()
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(url, json=payload)
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(str(exc)) from exc


class LogNotifier:
    """Writes notifications to the structured log."""

    def __init__(self) -> None:
        self._logger = get_logger("swap_bot.notifications")

    def notify(self, message: str) -> None:
        self._logger.info("notification", message=message)


def build_notifier(settings: Settings) -> TelegramNotifier | LogNotifier:
    """Telegram when credentials are configured, otherwise the log."""
    if settings.telegram_bot_token and settings.telegram_chat_id:
        return TelegramNotifier(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            label=settings.pair_id,
            timeout=settings.http_timeout,
        )
    return LogNotifier()
