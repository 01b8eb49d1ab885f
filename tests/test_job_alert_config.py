# tests/test_job_alert_config.py
import pytest

from modules.job_alert.lib import config as ja_config
from modules.job_alert.lib.config import ConfigError, SearchTarget, Settings, parse_targets


# ----------------------------------------------------------------------
# Target list grammar
# ----------------------------------------------------------------------
def test_parse_targets_url_and_place_pairs_in_order():
    targets = parse_targets("u1|Delhi, u2|Pune")
    assert targets == [SearchTarget("u1", "Delhi"), SearchTarget("u2", "Pune")]


def test_parse_targets_without_place_gives_none():
    assert parse_targets(" https://a.example/x ") == [SearchTarget("https://a.example/x", None)]


def test_parse_targets_splits_on_first_pipe_only():
    assert parse_targets("u|Place|Extra") == [SearchTarget("u", "Place|Extra")]


def test_parse_targets_empty_place_is_kept_as_empty_string():
    assert parse_targets("u|") == [SearchTarget("u", "")]


def test_parse_targets_does_not_filter_empty_entries():
    # a trailing comma produces an entry with an empty url; it fails at fetch time
    assert parse_targets("u1|A,") == [SearchTarget("u1", "A"), SearchTarget("", None)]


def test_default_search_url_is_a_single_target():
    targets = parse_targets(ja_config.DEFAULT_SEARCH_URL)
    assert len(targets) == 1
    assert targets[0].place is None
    assert targets[0].url.startswith("https://www.naukri.com/")


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------
def test_settings_env_fallbacks(tmp_path, monkeypatch):
    monkeypatch.setenv("SEARCH_URL", "https://s.example/a|A")
    monkeypatch.setenv("JOB_ALERT_SQLITE_PATH", str(tmp_path / "env.db"))

    s = Settings.from_env_and_kwargs({})
    assert s.bot_token == "123456:TEST-TOKEN"
    assert s.chat_id == "-100200300"
    assert s.search_urls == "https://s.example/a|A"
    assert s.sqlite_path == str(tmp_path / "env.db")
    assert s.source_kind == "naukri"
    assert (s.min_delay_ms, s.max_delay_ms) == (5000, 15000)
    assert s.timezone == "Asia/Kolkata"


def test_settings_resolved_env_kwargs_win_over_environment():
    s = Settings.from_env_and_kwargs({"bot_token_env": "999:OTHER", "chat_id_env": "42", "search_url_env": "u|P"})
    assert s.bot_token == "999:OTHER"
    assert s.chat_id == "42"
    assert s.targets() == [SearchTarget("u", "P")]


def test_settings_dry_run_from_env_unless_kwarg_given():
    assert Settings.from_env_and_kwargs({}).dry_run is True  # conftest sets the env flag
    assert Settings.from_env_and_kwargs({"dry_run": False}).dry_run is False


def test_settings_repr_hides_token():
    s = Settings.from_env_and_kwargs({})
    assert "TEST-TOKEN" not in repr(s)


@pytest.mark.parametrize("missing", ["TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID"])
def test_missing_credentials_raise_config_error(monkeypatch, missing):
    monkeypatch.delenv(missing, raising=False)
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({})


def test_empty_resolved_env_kwarg_counts_as_missing(monkeypatch):
    # the runner resolves an unset env var to ""
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({"bot_token_env": ""})


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_delay_ms": 20000, "max_delay_ms": 1000},
        {"min_delay_ms": -1},
        {"max_delay_ms": "soon"},
        {"timezone": "Mars/Olympus_Mons"},
        {"source_params": "[1, 2]"},
        {"source_params": "{not json"},
    ],
)
def test_invalid_settings_raise_config_error(kwargs):
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs(kwargs)


def test_source_params_accepts_json_string():
    s = Settings.from_env_and_kwargs({"source_params": '{"headless": false}'})
    assert s.source_params == {"headless": False}
