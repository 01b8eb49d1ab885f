# modules/job_alert/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, SearchTarget, Settings, parse_targets
from .db import SeenJobStore, StoreInitError
from .engine import run_once
from .models import JobPosting, RunSummary, SeenRecord, SourceResult
from .notifier import DeliveryError, TelegramNotifier

__all__ = [
    "ConfigError",
    "DeliveryError",
    "JobPosting",
    "RunSummary",
    "SearchTarget",
    "SeenJobStore",
    "SeenRecord",
    "Settings",
    "SourceResult",
    "StoreInitError",
    "TelegramNotifier",
    "parse_targets",
    "run_once",
]
