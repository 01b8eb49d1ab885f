import re

import pytest


def _stub_kwargs(tmp_path):
    return {
        "bot_token_env": "TELEGRAM_BOT_TOKEN",
        "chat_id_env": "TELEGRAM_CHAT_ID",
        "search_url": "https://search.example/a|A",
        "sqlite_path": str(tmp_path / "runner.db"),
        "source_kind": "stub",
        "source_params": '{"items": {"https://search.example/a": [{"title": "Dev", "url": "https://j/1"}]}}',
    }


def test_runner_calls_module_and_returns_meta(tmp_path):
    from service import runner

    meta, run_id = runner.run_module_once(module="modules.job_alert", kwargs=_stub_kwargs(tmp_path))
    assert isinstance(run_id, str) and re.match(r"^[a-f0-9-]+$", run_id)
    assert meta["new_total"] == 1
    assert meta["dry_run"] is True
    assert "[Dev](https://j/1)" in meta["message"]


def test_runner_resolves_env_kwargs(monkeypatch):
    from service import runner

    monkeypatch.setenv("SOME_TOKEN_VAR", "abc")
    out = runner._normalize_kwargs_types({
        "bot_token_env": "SOME_TOKEN_VAR",
        "chat_id_env": "UNSET_VAR_FOR_TEST",
        "limit": "5",
        "flag": "true",
        "params": '{"a": 1}',
        "name": "Delhi",
    })
    assert out == {
        "bot_token_env": "abc",
        "chat_id_env": "",
        "limit": 5,
        "flag": True,
        "params": {"a": 1},
        "name": "Delhi",
    }


def test_runner_redacts_env_kwargs_in_activity_log(tmp_path, monkeypatch):
    from service import logging_utils, runner

    runner.run_module_once(module="modules.job_alert", kwargs=_stub_kwargs(tmp_path))
    with open(logging_utils.get_activity_log_path(), encoding="utf-8") as f:
        text = f.read()
    assert "TEST-TOKEN" not in text
    assert '"module":"modules.job_alert"' in text


def test_runner_reraises_module_failure(tmp_path, monkeypatch):
    from modules.job_alert.lib.config import ConfigError
    from service import runner

    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    with pytest.raises(ConfigError):
        runner.run_module_once(module="modules.job_alert", kwargs=_stub_kwargs(tmp_path))


def test_runner_rejects_module_without_run():
    from service import runner

    with pytest.raises(AttributeError):
        runner.run_module_once(module="modules.job_alert.lib.models")


def test_timed_out_run_has_finished_before_runner_returns(tmp_path, monkeypatch):
    from service import runner

    (tmp_path / "slow_alert_module.py").write_text(
        "import time\n"
        "STATE = {'started': 0, 'finished': 0}\n"
        "def run(**kwargs):\n"
        "    STATE['started'] += 1\n"
        "    time.sleep(0.6)\n"
        "    STATE['finished'] += 1\n"
        "    return {'message': 'slow'}\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    import slow_alert_module

    with pytest.raises(TimeoutError):
        runner.run_module_once(module="slow_alert_module", timeout_sec=0.1)
    assert slow_alert_module.STATE == {"started": 1, "finished": 1}
