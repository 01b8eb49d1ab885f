# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: Any  # "apscheduler.triggers.base.BaseTrigger"
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # wait=False -> stop immediately; jobs in-flight are allowed to finish.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the scheduler is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build an APScheduler instance, add jobs, and start.

    Every job defaults to max_instances=1 + coalesce=True: a job-alert run reads
    the seen store at start and writes it at the end, so two overlapping runs of
    the same job would double-notify.
    """
    cfg = config_schema.load_config(config_path)
    scheduler = build_scheduler(cfg)
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def build_scheduler(cfg: dict[str, Any]) -> BackgroundScheduler:
    """Create a (not yet started) scheduler with every valid job from `cfg` added."""
    tz = _resolve_timezone(cfg)

    job_defaults = {
        "coalesce": True,  # run only the latest if many were missed
        "max_instances": 1,
    }
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 4))},
        jobstores={"default": MemoryJobStore()},
    )

    jobs_cfg = cfg.get("jobs", [])
    if not isinstance(jobs_cfg, list):
        raise ValueError("config.jobs must be a list")

    for raw in jobs_cfg:
        try:
            spec = _make_job_spec(raw, default_job_defaults=job_defaults, tz=tz)
        except (KeyError, TypeError, ValueError):
            LOG.exception("Skipping job due to config error: %r", raw)
            continue
        _add_job(scheduler, spec)

    return scheduler


# ---- Helpers ----------------------------------------------------------------


def _preview_trigger(trigger, tz, count: int = 6, start=None):
    """
    Return next `count` fire times for visibility in logs.
    Seeds previous_fire_time = now = `start` (or "now" in tz), then advances
    `now` by 1µs after each hit so the next lookup moves forward.
    """
    now = start or datetime.now(tz=tz)
    prev = now
    times = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def _resolve_timezone(cfg: dict[str, Any]):
    """
    APScheduler 3.x expects a pytz timezone. Accept config['timezone'], env TZ,
    or default to UTC.
    """
    tz_name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid or missing tz '%s')", tz_name)
        return pytz.UTC


def _make_job_spec(raw: dict[str, Any], default_job_defaults: dict[str, Any], tz) -> JobSpec:
    """
    Convert a raw config job dict into a normalized JobSpec + APScheduler trigger.
    The trigger may be nested under "trigger" or given at the job's top level.
    """
    jid = str(raw.get("id") or raw.get("name") or _require(raw, "module"))
    module = _require(raw, "module")

    trigger_def = raw.get("trigger")
    if trigger_def is None:
        trigger_def = {k: raw[k] for k in ("interval", "cron", "date", "daily_time") if k in raw}

    return JobSpec(
        id=jid,
        trigger=_build_trigger(trigger_def, tz),
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=_int_or(raw.get("max_instances"), default_job_defaults.get("max_instances", 1)),
        coalesce=bool(raw.get("coalesce", default_job_defaults.get("coalesce", True))),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


_TRIGGER_KINDS = ("interval", "cron", "date", "daily_time")
_INTERVAL_UNITS = ("weeks", "days", "hours", "minutes", "seconds")
_CRON_FIELDS = ("second", "minute", "hour", "day", "day_of_week", "month")


def _build_trigger(trig_def: dict[str, Any], tz: Any) -> Any:
    """
    Build an APScheduler trigger from a dict holding exactly one of:

      interval    {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}
      cron        {second?, minute?, hour?, day?, day_of_week?, month?, jitter?, start_date?,
                   end_date?, timezone?}  or a 5-field crontab string ("*/15 * * * *")
      date        {run_at: ISO|epoch|datetime, timezone?}  or the bare run_at value
      daily_time  {time: "HH:MM[:SS]" | [...], day_of_week?, timezone?}

    A block's own 'timezone' wins over the scheduler tz (`tz`).
    Raises ValueError on any malformed definition.
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    kinds = [k for k in _TRIGGER_KINDS if trig_def.get(k) is not None]
    if len(kinds) != 1:
        raise ValueError(f"exactly one of {_TRIGGER_KINDS} must be provided (got {kinds or 'none'})")

    builder = {
        "interval": _interval_trigger,
        "cron": _cron_trigger,
        "date": _date_trigger,
        "daily_time": _daily_time_trigger,
    }[kinds[0]]
    return builder(trig_def[kinds[0]], _as_tz(tz))


def _as_tz(value: Any) -> _dt_tzinfo | None:
    if not value:
        return None
    if isinstance(value, _dt_tzinfo):
        return value
    return ZoneInfo(str(value))


def _check_fields(kind: str, spec: dict[str, Any], allowed: Iterable[str]) -> None:
    unknown = set(spec) - set(allowed)
    if unknown:
        raise ValueError(f"{kind} has unknown field(s): {sorted(unknown)}")


def _non_negative(kind: str, spec: dict[str, Any], name: str) -> int:
    raw = spec.get(name, 0)
    try:
        value = int(raw)
    except (TypeError, ValueError) as err:
        raise ValueError(f"{kind}.{name} must be an integer (got {raw!r})") from err
    if value < 0:
        raise ValueError(f"{kind}.{name} must be >= 0 (got {value})")
    return value


def _interval_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> IntervalTrigger:
    if not isinstance(spec, dict):
        raise ValueError("interval must be an object with time fields")
    _check_fields("interval", spec, (*_INTERVAL_UNITS, "jitter", "timezone", "start_date", "end_date"))

    units = {u: _non_negative("interval", spec, u) for u in _INTERVAL_UNITS}
    if not any(units.values()):
        raise ValueError("interval must be greater than 0 (give at least one nonzero unit)")

    opts: dict[str, Any] = {u: n for u, n in units.items() if n}
    jitter = _non_negative("interval", spec, "jitter")
    if jitter:
        opts["jitter"] = jitter
    opts.update({k: spec[k] for k in ("start_date", "end_date") if k in spec})
    return IntervalTrigger(timezone=_as_tz(spec.get("timezone")) or default_tz, **opts)


def _cron_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> CronTrigger:
    if isinstance(spec, str):
        if len(spec.split()) != 5:
            raise ValueError(f"cron string must have 5 fields (minute hour day month day_of_week): {spec!r}")
        return CronTrigger.from_crontab(spec, timezone=default_tz)
    if not isinstance(spec, dict):
        raise ValueError("cron must be a crontab string or an object")
    _check_fields("cron", spec, (*_CRON_FIELDS, "timezone", "start_date", "end_date", "jitter"))

    fields = {f: spec.get(f) for f in _CRON_FIELDS}
    # Unset clock fields pin to 0 so {"hour": 3} means 03:00:00, not every minute of hour 3
    for f in ("second", "minute", "hour"):
        if fields[f] is None:
            fields[f] = 0
    return CronTrigger(
        **fields,
        start_date=spec.get("start_date"),
        end_date=spec.get("end_date"),
        jitter=spec.get("jitter"),
        timezone=_as_tz(spec.get("timezone")) or default_tz,
    )


def _date_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> DateTrigger:
    if isinstance(spec, dict):
        run_at = spec.get("run_at")
        tzinfo = _as_tz(spec.get("timezone")) or default_tz
    else:
        run_at, tzinfo = spec, default_tz
    if run_at is None:
        raise ValueError("date trigger requires 'run_at' (or a non-empty scalar value)")

    if isinstance(run_at, (int, float)):
        when = datetime.fromtimestamp(run_at, tz=tzinfo or timezone.utc)
    elif isinstance(run_at, datetime):
        when = run_at
    else:
        try:
            when = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
    if when.tzinfo is None:
        when = when.replace(tzinfo=tzinfo)
    return DateTrigger(run_date=when, timezone=when.tzinfo or tzinfo)


def _clock_time(raw: Any) -> tuple[int, int, int]:
    parts = str(raw).split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {raw!r}")
    try:
        hh, mm, ss = (int(p) for p in (*parts, "0")[:3])
    except ValueError as err:
        raise ValueError(f"daily_time.time must contain integers: {raw!r}") from err
    time(hh, mm, ss)  # range check
    return hh, mm, ss


def _daily_time_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> Any:
    """One CronTrigger per distinct clock time; several are OR-ed (never a cross product)."""
    if not isinstance(spec, dict):
        raise ValueError("daily_time must be an object")
    _check_fields("daily_time", spec, ("time", "day_of_week", "timezone"))

    times = spec.get("time")
    if times is None:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]
    if not isinstance(times, (list, tuple)) or not times:
        raise ValueError("daily_time.time must be a string or a non-empty list of strings")

    tzinfo = _as_tz(spec.get("timezone")) or default_tz
    triggers = [
        CronTrigger(hour=h, minute=m, second=s, day_of_week=spec.get("day_of_week"), timezone=tzinfo)
        for h, m, s in sorted({_clock_time(t) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register the APScheduler job with a wrapper that logs start/finish, writes an
    activity record, and executes the module via ``runner.run_module_once()``.
    """

    def _job_wrapper():
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            meta, _run_id = runner.run_module_once(
                spec.module,
                kwargs=dict(spec.kwargs or {}),
                timeout_sec=spec.timeout_sec,
                trigger_type="scheduled",
                job_context=_build_job_context(spec),
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return

        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", spec.id, duration)
        _write_activity(spec, status="ok", duration_s=duration, result=meta)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        name=spec.summary or spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )

    if os.getenv("SCHEDULER_PREVIEW") == "1":
        preview = _preview_trigger(spec.trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("PREVIEW[%s]: %s", spec.id, ", ".join(t.isoformat() for t in preview) or "(none)")

    LOG.debug(
        "Registered job[%s] (module=%s, summary=%r, trigger=%s, max_instances=%s, coalesce=%s, misfire_grace_time=%s)",
        spec.id,
        spec.module,
        spec.summary,
        spec.trigger,
        spec.max_instances,
        spec.coalesce,
        spec.misfire_grace_time,
    )


def _write_activity(spec: JobSpec, status: str, duration_s: float, result: Any = None) -> None:
    """Best-effort activity logging; non-fatal on errors."""
    try:
        write_activity_log({
            "ts": datetime.now().astimezone().isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": spec.id,
                "module": spec.module,
                "status": status,
                "duration_ms": int(duration_s * 1000),
                "summary": spec.summary,
                "new_total": (result or {}).get("new_total") if isinstance(result, dict) else None,
            },
        })
    except OSError:
        LOG.debug("write_activity_log failed for job[%s]", spec.id, exc_info=True)


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    """Return int(v) or default if v is None/invalid (lenient for config)."""
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _build_job_context(spec: JobSpec) -> dict:
    return {
        "job_id": spec.id,
        "module": spec.module,
        "now_iso": datetime.now(timezone.utc).isoformat(),
    }
