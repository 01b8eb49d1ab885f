# service/config_schema.py
"""
Service configuration: a JSON (or YAML) document of scheduled jobs.

    {
      "timezone": "Asia/Kolkata",
      "jobs": [
        {"id": "job-alert", "module": "modules.job_alert",
         "trigger": {"interval": {"minutes": 30}},
         "kwargs": {"bot_token_env": "TELEGRAM_BOT_TOKEN", ...}}
      ]
    }

The trigger may also sit at the job's top level ("interval": {...}), never both.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

import pytz
import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config is invalid."""


TRIGGER_KINDS = ("cron", "interval", "date", "daily_time")

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# numeric job fields and their minimum value
_NUMERIC_FIELDS = {
    "timeout_sec": 0,
    "max_instances": 1,
    "misfire_grace_time": 0,
}
_BOOL_WORDS = {
    **dict.fromkeys(("1", "true", "yes", "on"), True),
    **dict.fromkeys(("0", "false", "no", "off"), False),
}


# ---- Public API -------------------------------------------------------------


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration from `path`, else $CONFIG_PATH, else an empty
    default (no jobs). Numeric/boolean job fields are normalized and every job
    gets an "id".
    """
    source = path or os.environ.get("CONFIG_PATH")
    if source:
        cfg = _read_file(source)
    else:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        cfg = {}
    return _normalize(cfg)


def validate(cfg: dict[str, Any]) -> None:
    """Raise ConfigError on the first problem found. No prints, no sys.exit()."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    tz = cfg.get("timezone")
    if tz is not None:
        if not isinstance(tz, str):
            raise ConfigError("'timezone' must be a string if provided.")
        if tz not in pytz.all_timezones_set:
            raise ConfigError(f"Unknown timezone {tz!r}.")

    jobs = cfg.get("jobs")
    if not isinstance(jobs, list):
        raise ConfigError("Config needs a top-level 'jobs' list.")

    seen: set[str] = set()
    for idx, job in enumerate(jobs):
        job_id = _validate_job(job, idx)
        if job_id in seen:
            raise ConfigError(f"Duplicate job id '{job_id}'.")
        seen.add(job_id)


# ---- Per-job checks ---------------------------------------------------------


def _validate_job(job: Any, idx: int) -> str:
    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object.")

    module = job.get("module")
    if not isinstance(module, str) or not module.strip():
        raise ConfigError(f"Job {idx}: 'module' must be a non-empty string.")
    job_id = _job_id(job, idx)

    kind, value = _trigger_of(job, job_id)
    _validate_trigger(kind, value, job_id)

    if "coalesce" in job:
        _as_bool(job["coalesce"], "coalesce", job_id)
    for name, minimum in _NUMERIC_FIELDS.items():
        if name in job:
            _as_int(job[name], name, job_id, minimum)

    kwargs = job.get("kwargs", {})
    if not isinstance(kwargs, dict):
        raise ConfigError(f"Job '{job_id}': 'kwargs' must be an object if provided.")
    for key, env_name in kwargs.items():
        # runner resolves *_env values as environment variable NAMES
        if str(key).endswith("_env") and not (isinstance(env_name, str) and _ENV_NAME_RE.match(env_name)):
            raise ConfigError(f"Job '{job_id}': kwargs.{key} must name an environment variable (got {env_name!r}).")

    for text_field in ("summary", "description"):
        if text_field in job and not isinstance(job[text_field], str):
            raise ConfigError(f"Job '{job_id}': '{text_field}' must be a string if provided.")
    return job_id


def _trigger_of(job: dict[str, Any], job_id: str) -> tuple[str, Any]:
    top_level = [k for k in TRIGGER_KINDS if k in job]
    if "trigger" in job:
        if not isinstance(job["trigger"], dict):
            raise ConfigError(f"Job '{job_id}': 'trigger' must be an object when present.")
        if top_level:
            raise ConfigError(f"Job '{job_id}': do not mix top-level {top_level} with a nested 'trigger'.")
        container = job["trigger"]
    else:
        container = job

    kinds = [k for k in TRIGGER_KINDS if k in container]
    if len(kinds) != 1:
        raise ConfigError(f"Job '{job_id}': exactly one trigger required among {', '.join(TRIGGER_KINDS)}.")
    return kinds[0], container[kinds[0]]


def _validate_trigger(kind: str, value: Any, job_id: str) -> None:
    where = f"Job '{job_id}': {kind}"
    if kind == "interval":
        if not isinstance(value, dict):
            raise ConfigError(f"{where} must be an object of time units.")
        for unit, amount in value.items():
            if unit not in ("timezone", "start_date", "end_date"):
                _as_int(amount, f"interval.{unit}", job_id, 0)
    elif kind == "cron":
        if isinstance(value, str):
            if len(value.split()) != 5:
                raise ConfigError(f"{where} string must have 5 fields.")
        elif not isinstance(value, dict):
            raise ConfigError(f"{where} must be a crontab string or an object.")
    elif kind == "date":
        run_at = value.get("run_at") if isinstance(value, dict) else value
        if isinstance(run_at, bool) or not isinstance(run_at, (str, int, float)) or not str(run_at).strip():
            raise ConfigError(f"{where} must be an ISO-8601 string or epoch seconds.")
    elif kind == "daily_time":
        if not isinstance(value, dict) or "time" not in value:
            raise ConfigError(f"{where} must be an object with a 'time' field.")
        clocks = value["time"]
        if isinstance(clocks, str):
            clocks = [clocks]
        if not isinstance(clocks, list) or not clocks:
            raise ConfigError(f"{where}.time must be a string or a non-empty list of strings.")
        for clock in clocks:
            _check_clock(clock, job_id)


def _check_clock(clock: Any, job_id: str) -> None:
    m = _CLOCK_RE.match(clock.strip()) if isinstance(clock, str) else None
    if not m:
        raise ConfigError(f"Job '{job_id}': daily_time must be 'HH:MM' or 'HH:MM:SS' (24h), got {clock!r}.")
    hour, minute, second = (int(g or 0) for g in m.groups())
    if hour > 23 or minute > 59 or second > 59:
        raise ConfigError(f"Job '{job_id}': daily_time {clock!r} out of range (00:00..23:59:59).")


# ---- Normalization ----------------------------------------------------------


def _normalize(cfg: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(cfg.get("jobs"), list):
        cfg["jobs"] = []
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    jobs = []
    for idx, raw in enumerate(cfg["jobs"]):
        if not isinstance(raw, dict):
            raise ConfigError(f"Job at index {idx} must be an object.")
        job = {**raw, "id": _job_id(raw, idx)}
        if "coalesce" in job:
            job["coalesce"] = _as_bool(job["coalesce"], "coalesce", job["id"])
        for name, minimum in _NUMERIC_FIELDS.items():
            if name in job:
                job[name] = _as_int(job[name], name, job["id"], minimum)
        jobs.append(job)
    cfg["jobs"] = jobs
    return cfg


def _job_id(job: dict[str, Any], idx: int) -> str:
    # id, then name, then module
    for key in ("id", "name", "module"):
        value = job.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return f"job_{idx}"


def _as_bool(value: Any, name: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower() if isinstance(value, str) else None
    if word in _BOOL_WORDS:
        return _BOOL_WORDS[word]
    raise ConfigError(f"Job '{job_id}': '{name}' must be a boolean (or boolean-like string).")


def _as_int(value: Any, name: str, job_id: str, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Job '{job_id}': '{name}' must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{name}' must be an integer.") from err
    if number < minimum:
        raise ConfigError(f"Job '{job_id}': '{name}' must be >= {minimum} (got {number}).")
    return number


# ---- File loading -----------------------------------------------------------


def _read_file(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if path.lower().endswith((".yml", ".yaml")):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be an object.")
    return data
