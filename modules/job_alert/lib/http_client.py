# job_alert/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """Shared HTTP session for outbound API calls (notification delivery)."""

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "JobAlert/0.1 (+https://example.invalid)",
        retries: int = 3,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "POST", "HEAD"]),
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        resp = self.session.get(url, params=params, timeout=timeout or self.timeout)
        return _decode_json(resp, url)

    def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> tuple[int, Any]:
        """
        POST a JSON body and return (status_code, decoded_body).

        Does NOT raise on HTTP error status: APIs like Telegram put the useful
        reason in the JSON body, so the caller decides.
        """
        resp = self.session.post(url, json=dict(payload), timeout=timeout or self.timeout)
        return resp.status_code, _decode_json(resp, url, strict=False)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _decode_json(resp: requests.Response, url: str, *, strict: bool = True) -> Any:
    if strict:
        resp.raise_for_status()
    try:
        return resp.json()
    except ValueError as e:
        if not strict:
            return None
        preview = resp.text[:200].replace("\n", " ")
        raise ValueError(f"JSON decode failed for {url!r}; body starts: {preview!r}") from e
