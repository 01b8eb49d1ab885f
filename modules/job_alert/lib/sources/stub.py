from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..models import JobPosting
from .base import JobSource, SourceFetchError
from .registry import register


@register
class StubSource(JobSource):
    """
    A zero-network source used for tests and dry-runs.

    Params:
      - items: {search_url: [{title: str, url: str}, ...]}
      - fail:  [search_url, ...]  # fetch raises SourceFetchError for these

    Unknown urls yield no postings. Every fetch is recorded in `calls`.
    """

    kind = "stub"

    def __init__(
        self,
        items: Mapping[str, Iterable[Mapping[str, Any]]] | None = None,
        fail: Iterable[str] | None = None,
    ) -> None:
        self.items = {str(k): list(v or []) for k, v in (items or {}).items()}
        self.fail = {str(u) for u in (fail or [])}
        self.calls: list[str] = []

    async def fetch(self, url: str) -> list[JobPosting]:
        self.calls.append(url)
        if url in self.fail:
            raise SourceFetchError(f"stub failure for {url!r}")

        postings: list[JobPosting] = []
        for item in self.items.get(url, []):
            title = str(item.get("title") or "").strip()
            link = str(item.get("url") or "").strip()
            if not link:
                continue  # URL is required to be meaningful
            postings.append(JobPosting(title=title or "(no title)", url=link))
        return postings
