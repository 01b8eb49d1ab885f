# job_alert/sources/naukri.py
from __future__ import annotations

import logging
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..models import JobPosting
from .base import JobSource, SourceFetchError
from .registry import register

LOG = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
ROW_SELECTOR = "div.row1"
TITLE_SELECTOR = "h2 > a.title"


def parse_listing(html: str, base_url: str) -> list[JobPosting]:
    """
    Extract postings from a rendered Naukri search page.

    Each `div.row1` card carries its title link at `h2 > a.title`; relative
    hrefs are resolved against the page url. Cards without title or link are skipped.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    out: list[JobPosting] = []
    for row in soup.select(ROW_SELECTOR):
        a = row.select_one(TITLE_SELECTOR)
        if a is None:
            continue
        title = " ".join(a.get_text(" ", strip=True).split())
        href = (a.get("href") or "").strip()
        if not title or not href:
            continue
        out.append(JobPosting(title=title, url=urljoin(base_url, href)))
    return out


@register
class NaukriSource(JobSource):
    """
    Naukri.com search-results scraper driven by headless Chromium.

    Params (all optional):
      headless: bool = True
      nav_timeout_ms: int = 60000       # page.goto, waits for network idle
      selector_timeout_ms: int = 20000  # wait for result cards
      settle_ms: int = 3000             # extra render time after cards appear

    A page whose cards never appear is treated as "no jobs" (logged), not as an error.
    """

    kind = "naukri"

    def __init__(
        self,
        headless: bool = True,
        nav_timeout_ms: int = 60000,
        selector_timeout_ms: int = 20000,
        settle_ms: int = 3000,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.headless = bool(headless)
        self.nav_timeout_ms = int(nav_timeout_ms)
        self.selector_timeout_ms = int(selector_timeout_ms)
        self.settle_ms = int(settle_ms)
        self.user_agent = user_agent

    async def fetch(self, url: str) -> list[JobPosting]:
        LOG.info("Fetching jobs from: %s", url)
        html = await self._render(url)
        if html is None:
            return []
        jobs = parse_listing(html, url)
        LOG.info("Found %d jobs.", len(jobs))
        return jobs

    async def _render(self, url: str) -> str | None:
        """Return the rendered page HTML, or None when no result cards appeared."""
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=self.headless,
                    args=["--no-sandbox", "--disable-setuid-sandbox"],
                )
                try:
                    page = await browser.new_page(user_agent=self.user_agent)
                    await page.goto(url, wait_until="networkidle", timeout=self.nav_timeout_ms)
                    try:
                        await page.wait_for_selector(ROW_SELECTOR, timeout=self.selector_timeout_ms)
                    except PlaywrightTimeoutError:
                        LOG.warning(
                            "Timeout waiting for selector %r on %s. Assuming no jobs found or page structure changed.",
                            ROW_SELECTOR,
                            url,
                        )
                        return None
                    await page.wait_for_timeout(self.settle_ms)
                    return await page.content()
                finally:
                    await browser.close()
        except PlaywrightError as e:
            LOG.error("Failed to fetch or parse jobs with Playwright: %s", e)
            raise SourceFetchError(f"naukri fetch failed for {url!r}: {e}") from e
