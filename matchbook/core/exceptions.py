"""Error taxonomy for the place resolution pipeline.

User-facing errors (``NotAMapLinkError``, ``ExpansionFailedError``,
``UnresolvablePlaceError``) carry an HTTP status and a stable ``error_code``
so the API and CLI can report them uniformly. Stage-local errors
(``ScrapeError``, ``BrowserLaunchError``) are caught by the resolver and
turned into stage results; they never reach a caller.
"""


class MatchbookError(Exception):
    """Base class for reportable pipeline errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotAMapLinkError(MatchbookError):
    """The input never resembled a supported map link."""

    status_code = 422
    error_code = "not_a_map_link"


class ExpansionFailedError(MatchbookError):
    """A shortened link did not resolve to a Google Maps destination."""

    status_code = 502
    error_code = "expansion_failed"

    def __init__(self, message: str, short_url: str | None = None):
        self.short_url = short_url
        super().__init__(message)


class UnresolvablePlaceError(MatchbookError):
    """Every fallback stage was exhausted without usable coordinates."""

    status_code = 404
    error_code = "unresolvable_place"

    def __init__(self, message: str, stages: list | None = None):
        self.stages = stages or []
        super().__init__(message)


class ScrapeError(Exception):
    """Navigation failed or landed outside Google Maps."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Scrape failed for {url}: {reason}")


class BrowserLaunchError(Exception):
    """The headless browser process could not be started."""


class InvalidQueryError(MatchbookError, ValueError):
    """A manual search query too short to send upstream."""

    status_code = 422
    error_code = "invalid_query"
