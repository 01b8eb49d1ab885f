from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class JobPosting:
    """
    A single job listing. `url` is the identity used for dedupe.

    Sources create postings without a place; the engine attaches the target's
    place label with `with_place`, which returns a new object. Title and url are
    trimmed here, once, so dedupe and the store see the same url.
    """

    title: str
    url: str
    place: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "title", (self.title or "").strip())
        object.__setattr__(self, "url", (self.url or "").strip())

    def with_place(self, place: str | None) -> JobPosting:
        return replace(self, place=place)


@dataclass(frozen=True)
class SeenRecord:
    """One row of the seen-job store. Only `url` matters to the engine."""

    url: str
    title: str = ""
    place: str | None = None
    first_seen_utc: str = ""


@dataclass
class SourceResult:
    """
    Outcome of one search target within a run.
    - jobs: the NEW postings for that target (already filtered against the seen set).
    - error: True when the fetch failed; jobs is then empty.
    """

    place: str
    jobs: list[JobPosting] = field(default_factory=list)
    error: bool = False
    error_message: str | None = None

    @classmethod
    def ok(cls, place: str, jobs: list[JobPosting]) -> SourceResult:
        return cls(place=place, jobs=list(jobs))

    @classmethod
    def failed(cls, place: str, message: str | None = None) -> SourceResult:
        return cls(place=place, jobs=[], error=True, error_message=message)


@dataclass
class RunSummary:
    results: list[SourceResult]
    new_jobs: list[JobPosting]
    message: str
    delivered: bool = False
    persisted: int = 0

    @property
    def new_total(self) -> int:
        return len(self.new_jobs)

    def by_place(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for r in self.results:
            if not r.error:
                out[r.place] = out.get(r.place, 0) + len(r.jobs)
        return out

    def errored_places(self) -> list[str]:
        return [r.place for r in self.results if r.error]
