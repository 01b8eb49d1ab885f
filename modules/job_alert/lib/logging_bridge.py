from __future__ import annotations

import copy
import logging
from typing import Any

# Prefer the service's JSONL writer; default to stdlib logging when the module
# is used on its own. Silent on import.
try:
    from service import logging_utils as _logging_backend  # type: ignore
except ImportError:  # pragma: no cover
    _logging_backend = None

_LOG = logging.getLogger("job_alert")

# Keys that should be redacted from structured logs
_REDACT_KEYS = {
    "password",
    "token",
    "bot_token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "auth",
    "bearer",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact secret-like fields at top level.
    The JSONL backend performs a deep pass on top of this.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_token") or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def _emit(writer_name: str, payload: dict[str, Any]) -> bool:
    writer = getattr(_logging_backend, writer_name, None) if _logging_backend else None
    if not callable(writer):
        return False
    try:
        writer(payload)
        return True
    except (OSError, TypeError, ValueError):
        _LOG.debug("%s failed; falling back to stdlib logging", writer_name, exc_info=True)
        return False


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the JSONL activity log and mirror it to
    the 'job_alert.activity' logger at INFO.
    """
    payload = _redact_record(record)
    _emit("write_activity_log", payload)
    logging.getLogger("job_alert.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the JSONL error log and mirror it to
    the 'job_alert.error' logger at ERROR.
    """
    payload = _redact_record(record)
    _emit("write_error_log", payload)
    logging.getLogger("job_alert.error").error(payload)
