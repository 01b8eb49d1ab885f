# tests/test_job_alert_main.py
import pytest

from modules import job_alert
from modules.job_alert.lib import db, engine
from modules.job_alert.lib.config import ConfigError
from modules.job_alert.lib.db import StoreInitError
from modules.job_alert.lib.notifier import DeliveryError

DELHI = "https://search.example/delhi"
PUNE = "https://search.example/pune"


def _kwargs(tmp_path, **extra):
    kw = {
        "search_url": f"{DELHI}|Delhi, {PUNE}|Pune",
        "sqlite_path": str(tmp_path / "main.db"),
        "source_kind": "stub",
        "source_params": {
            "items": {DELHI: [{"title": "React Dev", "url": "https://j/1"}]},
            "fail": [PUNE],
        },
        "min_delay_ms": 0,
        "max_delay_ms": 0,
    }
    kw.update(extra)
    return kw


class _RecordingNotifier:
    sent = []

    def __init__(self, bot_token, **_kw):
        self.bot_token = bot_token

    def send(self, destination, text):
        type(self).sent.append((destination, text))


class _FailingNotifier(_RecordingNotifier):
    def send(self, destination, text):
        raise DeliveryError("telegram down")


@pytest.fixture
def recording_notifier(monkeypatch):
    _RecordingNotifier.sent = []
    monkeypatch.setattr(engine, "TelegramNotifier", _RecordingNotifier)
    return _RecordingNotifier


def test_dry_run_returns_meta_without_sending(tmp_path, recording_notifier):
    meta = job_alert.run(**_kwargs(tmp_path))  # dry run via env (conftest)

    assert meta["dry_run"] is True
    assert meta["delivered"] is False
    assert meta["new_total"] == 1
    assert meta["by_place"] == {"Delhi": 1}
    assert meta["errored_places"] == ["Pune"]
    assert meta["subject"] == "Job Alert - 1 new job(s)"
    assert "*Pune* - ERROR NAUKRI ⚠️" in meta["message"]
    assert recording_notifier.sent == []
    assert db.count_rows(str(tmp_path / "main.db")) == 0


def test_live_mode_sends_and_persists(tmp_path, recording_notifier):
    meta = job_alert.run(**_kwargs(tmp_path, dry_run=False))

    assert meta["delivered"] is True
    assert meta["persisted"] == 1
    assert recording_notifier.sent[0][0] == "-100200300"
    assert db.count_rows(str(tmp_path / "main.db")) == 1

    again = job_alert.run(**_kwargs(tmp_path, dry_run=False))
    assert again["new_total"] == 0
    assert again["subject"] == "Job Alert - no new jobs"
    assert len(recording_notifier.sent) == 2


def test_delivery_failure_completes_run_without_persisting(tmp_path, monkeypatch):
    monkeypatch.setattr(engine, "TelegramNotifier", _FailingNotifier)

    meta = job_alert.run(**_kwargs(tmp_path, dry_run=False))

    assert meta["delivered"] is False
    assert meta["persisted"] == 0
    assert "telegram down" in meta["message"]
    assert meta["new_total"] == 1
    assert meta["by_place"] == {"Delhi": 1}
    assert meta["errored_places"] == ["Pune"]
    assert meta["dry_run"] is False
    assert db.count_rows(str(tmp_path / "main.db")) == 0


def test_config_error_raises_before_any_io(tmp_path, monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    with pytest.raises(ConfigError):
        job_alert.run(**_kwargs(tmp_path))
    assert not (tmp_path / "main.db").exists()


def test_store_init_error_is_fatal(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(StoreInitError):
        job_alert.run(**_kwargs(tmp_path, sqlite_path=str(blocker / "main.db")))
