# tests/job_alert_live/test_telegram_live.py
from __future__ import annotations

import os

import pytest

from modules.job_alert.lib.notifier import TelegramNotifier


def _creds() -> tuple[str, str]:
    token = os.getenv("TELEGRAM_BOT_TOKEN_LIVE", "")
    chat_id = os.getenv("TELEGRAM_CHAT_ID_LIVE", "")
    if not token or not chat_id:
        pytest.skip("set TELEGRAM_BOT_TOKEN_LIVE and TELEGRAM_CHAT_ID_LIVE to run")
    return token, chat_id


@pytest.mark.live
def test_telegram_live_get_me():
    token, _ = _creds()
    me = TelegramNotifier(token).get_me()
    assert me.get("is_bot") is True


@pytest.mark.live
def test_telegram_live_send_markdown():
    token, chat_id = _creds()
    TelegramNotifier(token).send(chat_id, "✅ *Naukri Job Alert* - live test message\n1) [Example](https://example.com)")
