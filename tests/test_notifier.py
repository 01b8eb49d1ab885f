# tests/test_notifier.py
import pytest
import requests

from modules.job_alert.lib.notifier import DeliveryError, TelegramNotifier, split_message

TOKEN = "123456:SECRET-TOKEN"


class FakeHttp:
    """Stands in for HttpClient; replies with queued (status, body) tuples."""

    def __init__(self, replies=None, exc=None):
        self.replies = list(replies or [])
        self.exc = exc
        self.posts = []

    def post_json(self, url, payload, *, timeout=None):
        self.posts.append((url, payload))
        if self.exc:
            raise self.exc
        return self.replies.pop(0) if self.replies else (200, {"ok": True, "result": {}})

    def get_json(self, url, *, params=None, timeout=None):
        if self.exc:
            raise self.exc
        return {"ok": True, "result": {"username": "job_alert_bot"}}


def test_send_posts_markdown_message_to_chat():
    http = FakeHttp()
    TelegramNotifier(TOKEN, http=http).send("-100", "*hello*")

    assert len(http.posts) == 1
    url, payload = http.posts[0]
    assert url == f"https://api.telegram.org/bot{TOKEN}/sendMessage"
    assert payload == {
        "chat_id": "-100",
        "text": "*hello*",
        "disable_web_page_preview": True,
        "parse_mode": "Markdown",
    }


def test_send_api_rejection_raises_delivery_error():
    http = FakeHttp(replies=[(400, {"ok": False, "description": "Bad Request: chat not found"})])
    with pytest.raises(DeliveryError, match="chat not found"):
        TelegramNotifier(TOKEN, http=http).send("-100", "hi")


def test_send_ok_false_with_200_still_fails():
    http = FakeHttp(replies=[(200, {"ok": False})])
    with pytest.raises(DeliveryError):
        TelegramNotifier(TOKEN, http=http).send("-100", "hi")


def test_transport_error_is_scrubbed_of_token():
    http = FakeHttp(exc=requests.ConnectionError(f"cannot reach /bot{TOKEN}/sendMessage"))
    with pytest.raises(DeliveryError) as ei:
        TelegramNotifier(TOKEN, http=http).send("-100", "hi")
    assert TOKEN not in str(ei.value)
    assert "***REDACTED***" in str(ei.value)


@pytest.mark.parametrize("dest,text", [("", "hi"), ("-100", ""), ("-100", "   \n")])
def test_send_rejects_missing_destination_or_empty_text(dest, text):
    http = FakeHttp()
    with pytest.raises(DeliveryError):
        TelegramNotifier(TOKEN, http=http).send(dest, text)
    assert http.posts == []


def test_missing_token_is_rejected():
    with pytest.raises(DeliveryError):
        TelegramNotifier("", http=FakeHttp())


def test_long_message_is_sent_in_line_aligned_chunks():
    http = FakeHttp()
    text = "\n".join(f"{i}) [Job {i}](https://j/{i})" for i in range(400))
    TelegramNotifier(TOKEN, http=http).send("-100", text)

    chunks = [payload["text"] for _, payload in http.posts]
    assert len(chunks) > 1
    assert all(len(c) <= 4096 for c in chunks)
    assert "\n".join(chunks) == text


def test_get_me_returns_bot_profile():
    assert TelegramNotifier(TOKEN, http=FakeHttp()).get_me() == {"username": "job_alert_bot"}


# ----------------------------------------------------------------------
# split_message
# ----------------------------------------------------------------------
def test_split_message_short_text_unchanged():
    assert split_message("a\nb", limit=10) == ["a\nb"]


def test_split_message_breaks_between_lines():
    assert split_message("aaaa\nbbbb\ncccc", limit=9) == ["aaaa\nbbbb", "cccc"]


def test_split_message_hard_splits_oversize_line():
    assert split_message("x" * 12, limit=5) == ["xxxxx", "xxxxx", "xx"]
