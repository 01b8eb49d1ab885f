from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .utils import first_nonempty, getenv_str, truthy

DEFAULT_SEARCH_URL = (
    "https://www.naukri.com/react-dot-js-nextjs-jobs-in-delhi-ncr"
    "?k=react.js%2C%20nextjs&l=delhi%20%2F%20ncr%2C%20hyderabad%2C%20pune"
    "&nignbevent_src=jobsearchDeskGNB&jobAge=1&experience=4"
    "&ctcFilter=10to15&ctcFilter=15to25&ctcFilter=6to10&ctcFilter=25to50"
)
DEFAULT_SQLITE_PATH = "/app/local/state/job_alert.db"
DEFAULT_TIMEZONE = "Asia/Kolkata"
DEFAULT_MIN_DELAY_MS = 5000
DEFAULT_MAX_DELAY_MS = 15000


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class SearchTarget:
    """
    One configured search endpoint.
    - url: the listing page to fetch (not validated here; a bad url fails at fetch time)
    - place: display label; None when the entry had no '|' part
    """

    url: str
    place: str | None = None


@dataclass(frozen=True)
class Settings:
    """
    Canonical configuration for one 'job_alert' run.

    Built once from kwargs (runner has already resolved any *_env values) with an
    environment fallback, then passed explicitly to the engine.
    """

    bot_token: str = field(repr=False)
    chat_id: str
    search_urls: str = DEFAULT_SEARCH_URL

    sqlite_path: str = DEFAULT_SQLITE_PATH
    source_kind: str = "naukri"
    source_params: dict[str, Any] = field(default_factory=dict)

    timezone: str = DEFAULT_TIMEZONE
    min_delay_ms: int = DEFAULT_MIN_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS

    # Render + log, but never send or persist
    dry_run: bool = False

    def targets(self) -> list[SearchTarget]:
        return parse_targets(self.search_urls)

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional; env fallbacks in brackets):

            bot_token_env: str   # RESOLVED bot token   [TELEGRAM_BOT_TOKEN]
            chat_id_env: str     # RESOLVED chat id     [TELEGRAM_CHAT_ID]
            search_url_env: str  # RESOLVED target list [SEARCH_URL]
            search_url: str      # literal target list, used when no *_env value is set

            sqlite_path: str = "/app/local/state/job_alert.db"  [JOB_ALERT_SQLITE_PATH]
            source_kind: str = "naukri"
            source_params: dict | JSON string = {}
            timezone: str = "Asia/Kolkata"
            min_delay_ms: int = 5000
            max_delay_ms: int = 15000
            dry_run: bool = false  [SCHEDULED_MODULES_DRY_RUN]

        Raises ConfigError before touching the network or the store.
        """
        kw = dict(kwargs or {})

        bot_token = first_nonempty(kw.get("bot_token_env"), getenv_str("TELEGRAM_BOT_TOKEN"))
        chat_id = first_nonempty(kw.get("chat_id_env"), getenv_str("TELEGRAM_CHAT_ID"))
        if not bot_token or not chat_id:
            raise ConfigError(
                "Telegram bot token or chat id is not set. "
                "Provide TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID (or bot_token_env/chat_id_env)."
            )

        search_urls = first_nonempty(
            kw.get("search_url_env"),
            kw.get("search_url"),
            getenv_str("SEARCH_URL"),
            DEFAULT_SEARCH_URL,
        )
        sqlite_path = first_nonempty(
            kw.get("sqlite_path"),
            getenv_str("JOB_ALERT_SQLITE_PATH"),
            DEFAULT_SQLITE_PATH,
        )

        if "dry_run" in kw:
            dry_run = truthy(kw.get("dry_run"))
        else:
            dry_run = truthy(getenv_str("SCHEDULED_MODULES_DRY_RUN"))

        settings = cls(
            bot_token=bot_token,
            chat_id=chat_id,
            search_urls=search_urls,
            sqlite_path=sqlite_path,
            source_kind=first_nonempty(kw.get("source_kind"), "naukri").lower(),
            source_params=_parse_params(kw.get("source_params")),
            timezone=first_nonempty(kw.get("timezone"), DEFAULT_TIMEZONE),
            min_delay_ms=_to_int(kw.get("min_delay_ms"), DEFAULT_MIN_DELAY_MS, "min_delay_ms"),
            max_delay_ms=_to_int(kw.get("max_delay_ms"), DEFAULT_MAX_DELAY_MS, "max_delay_ms"),
            dry_run=dry_run,
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Target parsing
# -----------------------------
def parse_targets(config: str) -> list[SearchTarget]:
    """
    Parse "url1|Place1, url2|Place2, url3" into SearchTargets, in order.

    Each comma-separated entry splits on the first '|'. Both sides are stripped.
    Entries are not filtered: an empty entry becomes SearchTarget(url="").
    """
    targets: list[SearchTarget] = []
    for entry in (config or "").split(","):
        url, sep, place = entry.partition("|")
        targets.append(SearchTarget(url=url.strip(), place=place.strip() if sep else None))
    return targets


# -----------------------------
# Helpers
# -----------------------------
def _parse_params(value: Any) -> dict[str, Any]:
    if value in (None, ""):
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ConfigError(f"'source_params' is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ConfigError("'source_params' must be an object.")
    return dict(value)


def _to_int(value: Any, default: int, name: str) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be an integer (got {value!r}).") from e


def _validate_settings(s: Settings) -> None:
    if not s.search_urls.strip():
        raise ConfigError("'search_url' cannot be empty.")
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.min_delay_ms < 0 or s.max_delay_ms < 0:
        raise ConfigError("Pacing delays must be >= 0.")
    if s.min_delay_ms > s.max_delay_ms:
        raise ConfigError(f"'min_delay_ms' ({s.min_delay_ms}) cannot exceed 'max_delay_ms' ({s.max_delay_ms}).")
    try:
        ZoneInfo(s.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {s.timezone!r}") from e
