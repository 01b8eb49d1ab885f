"""
Engine for one job-alert run: fetch every target, keep only unseen postings,
send one consolidated message, then record what was sent.

Features:
  - Strictly sequential targets with a random pause between them (rate limiting)
  - Per-target fault isolation: a failed fetch becomes an error marker in the report
  - In-run dedupe: a url found under two targets is reported once, under the first
  - Persist-after-send: if delivery fails nothing is marked seen, so the next run
    re-reports it (duplicates are preferred over silently lost postings)
  - Dependency injection for testability (source, store, notifier, sleep, rng, now)
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from . import logging_bridge, render
from .config import ConfigError, Settings
from .db import SeenJobStore
from .models import JobPosting, RunSummary, SourceResult
from .notifier import DeliveryError, TelegramNotifier

if TYPE_CHECKING:
    from .sources.base import JobSource

DEFAULT_PLACE = "Naukri"
UNKNOWN_PLACE = "Unknown"


class UndeliveredRunError(DeliveryError):
    """The report was not delivered; `summary` is the run that produced it (nothing persisted)."""

    def __init__(self, summary: RunSummary, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.summary = summary


# =============================================================================
# DEFAULT COLLABORATORS (PRODUCTION)
# =============================================================================
def _default_source(settings: Settings) -> JobSource:
    """Resolve and instantiate the configured source from the registry."""
    from .sources import get as get_source_class

    try:
        source_cls = get_source_class(settings.source_kind)
    except KeyError as e:
        raise ConfigError(f"Unknown source_kind {settings.source_kind!r}.") from e
    try:
        return source_cls(**settings.source_params)
    except TypeError as e:
        raise ConfigError(f"Bad source_params for {settings.source_kind!r}: {e}") from e


def pacing_delay_ms(
    rng: random.Random | None = None,
    low: int = 5000,
    high: int = 15000,
) -> int:
    """Uniform integer delay in the closed interval [low, high] milliseconds."""
    return (rng or random).randint(low, high)


def filter_new(jobs: list[JobPosting], seen_urls: set[str]) -> list[JobPosting]:
    """
    Postings whose url is not in `seen_urls`, in fetch order. Adds each kept url
    to `seen_urls` so repeats (in this list or in later targets) are dropped.
    """
    fresh: list[JobPosting] = []
    for job in jobs:
        if job.url in seen_urls:
            continue
        seen_urls.add(job.url)
        fresh.append(job)
    return fresh


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
async def run_once(
    settings: Settings,
    *,
    source: JobSource | None = None,
    store: SeenJobStore | None = None,
    notifier: TelegramNotifier | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> RunSummary:
    """
    Run one complete cycle: seen set -> fetch targets -> report -> send -> persist.

    Raises:
        StoreInitError: the store could not be initialized (nothing fetched or sent).
        ConfigError: no source could be built for settings.source_kind.
        UndeliveredRunError: the message was not delivered (nothing persisted).
            A DeliveryError carrying the run summary.
    """
    start_ns = time.perf_counter_ns()
    # Config errors surface before the store touches disk
    source = source or _default_source(settings)
    targets = settings.targets()

    # -------------------------------------------------------------------------
    # SEEN SET
    # -------------------------------------------------------------------------
    store = store or SeenJobStore(settings.sqlite_path)
    store.init()
    seen_urls: set[str] = {r.url for r in store.get_seen_jobs()}

    logging_bridge.activity({
        "component": "job_alert.engine",
        "op": "start",
        "targets": len(targets),
        "seen": len(seen_urls),
        "source_kind": source.kind,
        "dry_run": settings.dry_run,
    })

    # -------------------------------------------------------------------------
    # FETCH TARGETS SEQUENTIALLY
    # -------------------------------------------------------------------------
    results: list[SourceResult] = []
    all_new: list[JobPosting] = []
    durations_us: list[int] = []

    for idx, target in enumerate(targets):
        t0 = time.perf_counter_ns()
        try:
            fetched = await source.fetch(target.url)
        except Exception as e:
            logging_bridge.error({
                "component": "job_alert.engine",
                "op": "fetch_failed",
                "index": idx,
                "url": target.url,
                "place": target.place,
                "error": repr(e),
            })
            results.append(SourceResult.failed(target.place or UNKNOWN_PLACE, repr(e)))
        else:
            new_jobs = [j.with_place(target.place) for j in filter_new(fetched, seen_urls)]
            all_new.extend(new_jobs)
            results.append(SourceResult.ok(target.place or DEFAULT_PLACE, new_jobs))
            logging_bridge.activity({
                "component": "job_alert.engine",
                "op": "fetched",
                "index": idx,
                "place": target.place,
                "found": len(fetched),
                "new": len(new_jobs),
            })
        durations_us.append(int((time.perf_counter_ns() - t0) // 1000))

        if idx < len(targets) - 1:
            delay_ms = pacing_delay_ms(rng, settings.min_delay_ms, settings.max_delay_ms)
            logging_bridge.activity({
                "component": "job_alert.engine",
                "op": "pacing",
                "index": idx,
                "delay_ms": delay_ms,
            })
            await sleep(delay_ms / 1000)

    # -------------------------------------------------------------------------
    # REPORT
    # -------------------------------------------------------------------------
    message = render.build_report(
        results,
        len(all_new),
        now or datetime.now(timezone.utc),
        timezone=settings.timezone,
    )
    summary = RunSummary(results=results, new_jobs=all_new, message=message)

    logging_bridge.activity({
        "component": "job_alert.engine",
        "op": "summary",
        "new_total": summary.new_total,
        "by_place": summary.by_place(),
        "errored_places": summary.errored_places(),
        "durations_us": durations_us,
        "total_us": int((time.perf_counter_ns() - start_ns) // 1000),
    })

    if settings.dry_run:
        logging_bridge.activity({
            "component": "job_alert.engine",
            "op": "dry_run",
            "chat_id": settings.chat_id,
            "message": message,
        })
        return summary

    # -------------------------------------------------------------------------
    # SEND (always), THEN PERSIST (only after a successful send)
    # -------------------------------------------------------------------------
    notifier = notifier or TelegramNotifier(settings.bot_token)
    try:
        notifier.send(settings.chat_id, message)
    except DeliveryError as e:
        raise UndeliveredRunError(summary, e) from e
    summary.delivered = True
    logging_bridge.activity({
        "component": "job_alert.engine",
        "op": "sent",
        "chat_id": settings.chat_id,
        "chars": len(message),
    })

    if all_new:
        summary.persisted = store.add_seen_jobs(all_new)
        logging_bridge.activity({
            "component": "job_alert.engine",
            "op": "persisted",
            "count": summary.persisted,
        })

    return summary
