from __future__ import annotations

import asyncio
from typing import Any

from .lib.config import Settings
from .lib.engine import UndeliveredRunError
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity
from .lib.logging_bridge import error as log_error
from .lib.models import RunSummary


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'job_alert' module.

    Accepts kwargs (from scheduler/runner), including:
      bot_token_env: str     # resolved Telegram bot token
      chat_id_env: str       # resolved Telegram chat id
      search_url_env: str    # resolved "url|Place, url|Place" list
      sqlite_path: str = "/app/local/state/job_alert.db"
      source_kind: str = "naukri"
      source_params: dict = {}
      dry_run: bool = False

    Returns a meta dict (message, subject, counts, delivered, persisted).

    Raises:
      ConfigError / StoreInitError - fatal; nothing fetched or sent.
    A failed delivery is logged here and does not raise; nothing is persisted,
    so the same postings are reported again next run.
    """
    # Built once; never re-read mid-run
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "job_alert.main",
        "op": "start",
        "source_kind": settings.source_kind,
        "targets": len(settings.targets()),
        "sqlite_path": settings.sqlite_path,
        "dry_run": settings.dry_run,
    })

    try:
        summary = asyncio.run(_run_engine(settings))
    except UndeliveredRunError as e:
        log_error({
            "component": "job_alert.main",
            "op": "deliver",
            "error": str(e),
        })
        return {
            **_meta(e.summary, dry_run=settings.dry_run),
            "message": f"Delivery failed: {e}",
            "subject": "Job Alert - delivery failed",
        }

    return _meta(summary, dry_run=settings.dry_run)


def _meta(summary: RunSummary, *, dry_run: bool) -> dict[str, Any]:
    if summary.new_total:
        subject = f"Job Alert - {summary.new_total} new job(s)"
    else:
        subject = "Job Alert - no new jobs"
    return {
        "message": summary.message,
        "subject": subject,
        "new_total": summary.new_total,
        "by_place": summary.by_place(),
        "errored_places": summary.errored_places(),
        "delivered": summary.delivered,
        "persisted": summary.persisted,
        "dry_run": dry_run,
    }
