from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import JobPosting


class SourceFetchError(Exception):
    """Base exception for job source failures."""


class JobSource(ABC):
    """
    Abstract job source.

    Contract:
      - fetch(url) returns every posting on the listing page as JobPosting
        (title + url, place left unset). Dedupe happens upstream in the engine.
      - Do NOT retry, sleep between targets, send messages, or touch the store.
      - Raise on failure; the engine isolates the error to this one target.
      - Any timeout is the source's own responsibility.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "naukri", "stub"
    kind: str = ""

    @abstractmethod
    async def fetch(self, url: str) -> list[JobPosting]:
        raise NotImplementedError
