"""Logging setup shared by the API server and the CLI.

LOG_FORMAT selects the handler formatter:
- "json": one JSON object per line (production), via python-json-logger
- "text": human-readable lines (development)
"""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from matchbook.middleware.request_id import get_request_id

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"


class RequestIDFilter(logging.Filter):
    """Attach the current request_id to each record."""

    def filter(self, record):
        record.request_id = get_request_id()
        return True


class PlaywrightPipeFilter(logging.Filter):
    """Drop Playwright's 'pipe closed by peer' warnings.

    They are emitted once per pending write whenever the idle reaper closes
    the shared browser, and carry no information.
    """

    def filter(self, record):
        return "pipe closed by peer" not in record.getMessage()


def configure_logging(
    log_format: str = "json", log_level: str = "INFO", stream=None
) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(RequestIDFilter())
    handler.addFilter(PlaywrightPipeFilter())

    if log_format == "json":
        formatter = JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s %(request_id)s",
            rename_fields={
                "levelname": "level",
                "name": "logger",
                "asctime": "timestamp",
            },
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    logging.getLogger("playwright").setLevel(logging.ERROR)
    logging.getLogger("httpx").setLevel(logging.WARNING)
