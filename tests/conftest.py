# tests/conftest.py
import json
import os
import random
import tempfile
import types

import pytest
from freezegun import freeze_time

from modules.job_alert.lib import config as ja_config
from modules.job_alert.lib.notifier import DeliveryError


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    # Marker registration (so pytest --markers shows it)
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="ja-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")

    # Fake credentials; unit tests never reach Telegram
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123456:TEST-TOKEN")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-100200300")
    monkeypatch.delenv("SEARCH_URL", raising=False)
    monkeypatch.delenv("JOB_ALERT_SQLITE_PATH", raising=False)

    yield


@pytest.fixture(autouse=True)
def dry_run_env(monkeypatch):
    monkeypatch.setenv("SCHEDULED_MODULES_DRY_RUN", "1")
    monkeypatch.setenv("CONFIG_PATH", "/app/local/config.json")
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def write_min_config(tmp_path, monkeypatch):
    cfg = {
        "timezone": "Asia/Kolkata",
        "jobs": [
            {
                "id": "job-alert-never",
                "module": "modules.job_alert",
                "trigger": {"date": "2099-01-01T00:00:00Z"},
                "kwargs": {
                    "bot_token_env": "TELEGRAM_BOT_TOKEN",
                    "chat_id_env": "TELEGRAM_CHAT_ID",
                    "source_kind": "stub",
                    "sqlite_path": str(tmp_path / "cfg.db"),
                },
                "summary": "pytest config",
            }
        ],
    }

    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


# ---------------------------------------------------------------------
# job_alert fixtures
# ---------------------------------------------------------------------
SEARCH = "https://search.example/delhi|Delhi, https://search.example/pune|Pune, https://search.example/hyd|Hyderabad"


@pytest.fixture
def fresh_settings(tmp_path):
    """
    Return a **brand-new** Settings instance for *each* test.
    - three targets (Delhi, Pune, Hyderabad) on the stub source
    - DB file: a fresh per-test SQLite file
    - sending enabled (dry_run off)
    """
    return ja_config.Settings.from_env_and_kwargs({
        "search_url": SEARCH,
        "sqlite_path": str(tmp_path / "job_alert.db"),
        "source_kind": "stub",
        "dry_run": False,
    })


@pytest.fixture
def fake_notifier():
    """Records every send; set `.fail = True` to simulate a delivery failure."""

    class FakeNotifier:
        def __init__(self):
            self.sent = []
            self.fail = False

        def send(self, destination, text):
            if self.fail:
                raise DeliveryError("simulated delivery failure")
            self.sent.append((destination, text))

    return FakeNotifier()


@pytest.fixture
def recording_sleep():
    """Awaitable stand-in for asyncio.sleep that only records requested seconds."""
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)

    return types.SimpleNamespace(sleep=_sleep, calls=calls)


@pytest.fixture
def seeded_rng():
    return random.Random(1234)
