# Keep this TINY: job sources (and Playwright) are imported on first run, not here.
from .main import run  # so: from modules.job_alert import run

__all__ = ["run"]
