from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

from .models import SourceResult

# Brackets inside link text would close the [title](url) entity early
_LINK_BRACKETS_RE = re.compile(r"[\[\]]")


def link_text(title: str) -> str:
    """
    Title as shown inside `[...]`. Legacy Markdown has no escapes inside an
    entity, so the title is kept verbatim apart from dropping square brackets.
    """
    return _LINK_BRACKETS_RE.sub("", title or "")


def format_timestamp(now: datetime, tz_name: str) -> str:
    """
    Render `now` in `tz_name` the way the en-IN locale does:
        "19/10/2026, 3:04:05 pm"
    Naive datetimes are taken as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt_timezone.utc)
    local = now.astimezone(ZoneInfo(tz_name))
    hour12 = local.hour % 12 or 12
    ampm = "am" if local.hour < 12 else "pm"
    return f"{local:%d/%m/%Y}, {hour12}:{local:%M:%S} {ampm}"


def build_report(
    results: Sequence[SourceResult],
    total_new: int,
    now: datetime,
    *,
    timezone: str = "Asia/Kolkata",
    brand: str = "Naukri",
) -> str:
    """
    Build the consolidated message text, one block per source in order.

        🔔 *Naukri Job Alert* - 3 new job(s) found!
        ⏰ _19/10/2026, 3:04:05 pm_

        *Delhi* -
        1) [Frontend Engineer](https://...)
        2) [React Developer](https://...)

        *Pune* - No New Jobs Found 📉

        *Hyderabad* - ERROR NAUKRI ⚠️

    """
    lines: list[str] = []

    if total_new > 0:
        lines.append(f"🔔 *{brand} Job Alert* - {total_new} new job(s) found!")
    else:
        lines.append(f"✅ *{brand} Job Alert* - No new jobs found")
    lines.append(f"⏰ _{format_timestamp(now, timezone)}_")
    lines.append("")

    for result in results:
        if result.error:
            lines.append(f"*{result.place}* - ERROR {brand.upper()} ⚠️")
        elif result.jobs:
            lines.append(f"*{result.place}* -")
            for i, job in enumerate(result.jobs, 1):
                lines.append(f"{i}) [{link_text(job.title)}]({job.url})")
        else:
            lines.append(f"*{result.place}* - No New Jobs Found 📉")
        lines.append("")

    return "\n".join(lines)
