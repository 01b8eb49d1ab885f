# job_alert/sources/__init__.py
from __future__ import annotations

from .base import JobSource, SourceFetchError
from .registry import all_kinds, get, register

# Built-in sources register themselves on import.
from . import stub as _stub  # noqa: F401
from . import naukri as _naukri  # noqa: F401

__all__ = ["JobSource", "SourceFetchError", "all_kinds", "get", "register"]
