def _stub_args(tmp_path):
    return [
        "search_url=https://search.example/a|A",
        f"sqlite_path={tmp_path / 'cli.db'}",
        "source_kind=stub",
        'source_params={"items": {"https://search.example/a": [{"title": "Dev", "url": "https://j/1"}]}}',
    ]


def test_cli_run_dry_run_prints_message(tmp_path, capsys, monkeypatch):
    from service import cli

    monkeypatch.delenv("SCHEDULED_MODULES_DRY_RUN", raising=False)
    rc = cli.main(["run", "modules.job_alert", "--kwargs", *_stub_args(tmp_path), "--dry-run", "--print-message"])
    assert rc == 0

    out, _ = capsys.readouterr()
    assert "DONE" in out
    assert "----- MESSAGE -----" in out
    assert "1 new job(s) found!" in out
    assert "[Dev](https://j/1)" in out


def test_cli_dry_run_flag_does_not_leak_into_environment(tmp_path, monkeypatch):
    import os

    from service import cli

    monkeypatch.delenv("SCHEDULED_MODULES_DRY_RUN", raising=False)
    assert cli.main(["run", "modules.job_alert", "--kwargs", *_stub_args(tmp_path), "--dry-run"]) == 0
    assert "SCHEDULED_MODULES_DRY_RUN" not in os.environ


def test_cli_run_config_error_exits_1(tmp_path, capsys, monkeypatch):
    from service import cli

    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    rc = cli.main(["run", "modules.job_alert", "--kwargs", *_stub_args(tmp_path)])
    assert rc == 1
    _, err = capsys.readouterr()
    assert "FAILURE" in err


def test_cli_validate_and_list_jobs(write_min_config, capsys):
    from service import cli

    assert cli.main(["validate-config"]) == 0
    assert cli.main(["list-jobs"]) == 0
    out, _ = capsys.readouterr()
    assert "OK: configuration is valid." in out
    assert "job-alert-never" in out
    assert "pytest config" in out


def test_cli_validate_config_rejects_bad_file(tmp_path, capsys):
    from service import cli

    bad = tmp_path / "bad.json"
    bad.write_text('{"jobs": [{"module": "modules.job_alert"}]}', encoding="utf-8")
    assert cli.main(["--config", str(bad), "validate-config"]) == 1
    _, err = capsys.readouterr()
    assert "exactly one trigger" in err


def test_parse_kv_pairs_json_and_raw():
    from service.cli import _parse_kv_pairs

    assert _parse_kv_pairs(["a=1", "b=true", "c=Delhi", 'd={"x": 2}']) == {
        "a": 1,
        "b": True,
        "c": "Delhi",
        "d": {"x": 2},
    }


def test_cli_check_telegram(monkeypatch, capsys):
    from modules.job_alert.lib.notifier import DeliveryError, TelegramNotifier
    from service import cli

    monkeypatch.setattr(TelegramNotifier, "get_me", lambda self: {"id": 7, "username": "job_alert_bot"})
    assert cli.main(["check-telegram"]) == 0
    out, _ = capsys.readouterr()
    assert "@job_alert_bot" in out

    def _reject(self):
        raise DeliveryError("Unauthorized")

    monkeypatch.setattr(TelegramNotifier, "get_me", _reject)
    assert cli.main(["check-telegram"]) == 1

    monkeypatch.delenv("TELEGRAM_BOT_TOKEN")
    assert cli.main(["check-telegram"]) == 1
