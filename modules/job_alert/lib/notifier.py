from __future__ import annotations

from typing import Any

import requests

from .http_client import HttpClient

TELEGRAM_API = "https://api.telegram.org"
# Telegram rejects sendMessage text longer than this
MAX_MESSAGE_CHARS = 4096


class DeliveryError(RuntimeError):
    """Raised when a notification cannot be delivered."""


class TelegramNotifier:
    """
    Delivers text messages through the Telegram Bot API.

    The bot token is only ever placed in the request URL; it is scrubbed from any
    error text raised from here.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        http: HttpClient | None = None,
        parse_mode: str | None = "Markdown",
        disable_web_page_preview: bool = True,
        api_base: str = TELEGRAM_API,
    ) -> None:
        if not bot_token:
            raise DeliveryError("Missing Telegram bot token.")
        self._token = bot_token
        self._http = http or HttpClient()
        self.parse_mode = parse_mode
        self.disable_web_page_preview = disable_web_page_preview
        self.api_base = api_base.rstrip("/")

    def send(self, destination: str, text: str) -> None:
        """
        Send `text` to chat `destination`. Long text goes out as consecutive
        messages split on line boundaries.
        """
        if not str(destination or "").strip():
            raise DeliveryError("No destination chat id.")
        if not text or not text.strip():
            raise DeliveryError("Refusing to send an empty message.")

        for chunk in split_message(text):
            payload: dict[str, Any] = {
                "chat_id": destination,
                "text": chunk,
                "disable_web_page_preview": self.disable_web_page_preview,
            }
            if self.parse_mode:
                payload["parse_mode"] = self.parse_mode
            self._call("sendMessage", payload)

    def get_me(self) -> dict[str, Any]:
        """Return the bot's own profile (cheap credential check)."""
        try:
            data = self._http.get_json(self._method_url("getMe"))
        except (requests.RequestException, ValueError) as e:
            raise DeliveryError(self._scrub(f"Telegram getMe failed: {e}")) from e
        if not isinstance(data, dict) or not data.get("ok"):
            raise DeliveryError(f"Telegram getMe rejected: {data!r}")
        return data.get("result") or {}

    # ---- internals ----
    def _method_url(self, method: str) -> str:
        return f"{self.api_base}/bot{self._token}/{method}"

    def _call(self, method: str, payload: dict[str, Any]) -> Any:
        try:
            status, body = self._http.post_json(self._method_url(method), payload)
        except requests.RequestException as e:
            raise DeliveryError(self._scrub(f"Telegram {method} transport error: {e}")) from e

        if status >= 400 or not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise DeliveryError(f"Telegram {method} failed (HTTP {status}): {description or body!r}")
        return body.get("result")

    def _scrub(self, message: str) -> str:
        return message.replace(self._token, "***REDACTED***")


def split_message(text: str, limit: int = MAX_MESSAGE_CHARS) -> list[str]:
    """
    Split `text` into chunks of at most `limit` chars, breaking between lines.
    A single line longer than `limit` is hard-split.
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append("\n".join(current))
                current, size = [], 0
            chunks.append(line[:limit])
            line = line[limit:]
        # +1 for the joining newline
        extra = len(line) + (1 if current else 0)
        if size + extra > limit:
            chunks.append("\n".join(current))
            current, size = [line], len(line)
        else:
            current.append(line)
            size += extra
    if current and any(part.strip() for part in current):
        chunks.append("\n".join(current))
    return [c for c in chunks if c.strip()]
