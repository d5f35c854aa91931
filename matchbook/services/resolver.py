"""Place resolution: shared text in, one NormalizedPlace out.

The resolver classifies the input, expands shortened links, extracts URL
hints and then runs an ordered list of stages, each one cheaper or more
authoritative than the next:

1. ``places_details``: Place Details lookup for an opaque identifier.
2. ``places_search``: Text Search by name (or by coordinates), biased
   towards the extracted coordinates.
3. ``scraper``: render the Maps page in a headless browser.

A stage never raises. It returns a ``StageResult`` whose outcome is
``success``, ``soft_fail`` (ran cleanly, nothing usable) or ``hard_fail``
(an error was caught), and the first success wins. The full trace is kept
on the ``Resolution`` and on ``UnresolvablePlaceError``.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from matchbook.config import Settings, settings as default_settings
from matchbook.core.exceptions import (
    ExpansionFailedError,
    InvalidQueryError,
    NotAMapLinkError,
    ScrapeError,
    UnresolvablePlaceError,
)
from matchbook.core.metrics import resolution_requests_total, resolution_stage_total
from matchbook.schemas.place import (
    Coordinates,
    ExtractedHints,
    NormalizedPlace,
    PlaceSource,
    Resolution,
    StageOutcome,
    StageResult,
)
from matchbook.services.google_places import MIN_QUERY_LENGTH, PlacesClient
from matchbook.services.scraper import MapsScraper, PlaceScraper
from matchbook.services.url_classifier import classify, extract_hints
from matchbook.services.url_expander import LinkExpander

logger = logging.getLogger(__name__)


@dataclass
class ResolutionAttempt:
    """Per-request state shared by the stages."""

    source_url: str
    resolved_url: str
    hints: ExtractedHints
    embedded_name: str | None = None


Stage = Callable[[ResolutionAttempt], Awaitable[StageResult]]


def _soft_fail(stage: str, detail: str) -> StageResult:
    return StageResult(stage=stage, outcome=StageOutcome.SOFT_FAIL, detail=detail)


def _success(stage: str, place: NormalizedPlace) -> StageResult:
    return StageResult(stage=stage, outcome=StageOutcome.SUCCESS, place=place)


class PlaceResolver:
    def __init__(
        self,
        places: PlacesClient | None = None,
        scraper: PlaceScraper | None = None,
        expander: LinkExpander | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or default_settings
        self.places = places or PlacesClient(settings=self._settings)
        self.scraper = scraper or MapsScraper(settings=self._settings)
        self.expander = expander or LinkExpander(settings=self._settings)
        self.stages: list[tuple[str, Stage]] = [
            ("places_details", self._places_details),
            ("places_search", self._places_search),
            ("scraper", self._scrape),
        ]

    async def aclose(self):
        await self.places.aclose()
        await self.expander.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, text: str) -> Resolution:
        """Resolve shared text containing a Google Maps link.

        Raises:
            NotAMapLinkError: the text has no recognisable map link.
            ExpansionFailedError: a shortened link could not be expanded.
            UnresolvablePlaceError: every stage came back empty.
        """
        link = classify(text)
        if not link.is_valid:
            resolution_requests_total.labels(outcome="not_a_map_link").inc()
            raise NotAMapLinkError("No Google Maps link found in the shared text")

        resolved_url = link.canonical_url
        embedded_name = None
        if link.is_shortened:
            try:
                expanded = await self.expander.expand(link.canonical_url)
            except ExpansionFailedError:
                resolution_requests_total.labels(outcome="expansion_failed").inc()
                raise
            resolved_url = expanded.url
            embedded_name = expanded.embedded_name

        hints = extract_hints(resolved_url)
        if hints.is_empty:
            resolution_requests_total.labels(outcome="unresolvable").inc()
            raise UnresolvablePlaceError(
                "Link has no place identifier, coordinates or place name"
            )

        attempt = ResolutionAttempt(
            source_url=link.canonical_url,
            resolved_url=resolved_url,
            hints=hints,
            embedded_name=embedded_name,
        )

        trace: list[StageResult] = []
        for name, stage in self.stages:
            result = await self._run_stage(name, stage, attempt)
            trace.append(result)
            if result.outcome == StageOutcome.SUCCESS and result.place is not None:
                place = result.place
                place.source_url = attempt.source_url
                resolution_requests_total.labels(outcome="resolved").inc()
                logger.info(
                    f"Resolved {attempt.source_url} via {name}: {place.name!r} "
                    f"({place.lat}, {place.lng})"
                )
                return Resolution(
                    place=place, resolved_url=resolved_url, hints=hints, stages=trace
                )

        resolution_requests_total.labels(outcome="unresolvable").inc()
        raise UnresolvablePlaceError(
            "Could not resolve the place from this link", stages=trace
        )

    async def search_text(
        self, query: str, lat: float | None = None, lng: float | None = None
    ) -> NormalizedPlace:
        """Manual entry: best Text Search match for *query*."""
        if not query or len(query.strip()) < MIN_QUERY_LENGTH:
            raise InvalidQueryError(
                f"Search query must be at least {MIN_QUERY_LENGTH} characters"
            )
        bias = Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None
        place = await self.places.search(query, location_bias=bias)
        if place is None:
            raise UnresolvablePlaceError(f"No place found for {query.strip()!r}")
        return place

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stage(
        self, name: str, stage: Stage, attempt: ResolutionAttempt
    ) -> StageResult:
        try:
            result = await stage(attempt)
        except Exception as e:
            logger.warning(f"Stage {name} failed: {e}", exc_info=True)
            result = StageResult(
                stage=name,
                outcome=StageOutcome.HARD_FAIL,
                detail=str(e) or type(e).__name__,
            )

        resolution_stage_total.labels(stage=name, outcome=result.outcome.value).inc()
        if result.outcome != StageOutcome.SUCCESS:
            logger.info(f"Stage {name} {result.outcome.value}: {result.detail}")
        return result

    async def _places_details(self, attempt: ResolutionAttempt) -> StageResult:
        stage = "places_details"
        place_id = attempt.hints.place_id
        if place_id is None or not place_id.is_opaque:
            return _soft_fail(stage, "no opaque place identifier in URL")
        if not self.places.is_configured:
            return _soft_fail(stage, "Places API key not configured")

        place = await self.places.get_details(place_id.value)
        if place is None:
            return _soft_fail(stage, f"no details for {place_id.value}")
        return _success(stage, place)

    async def _places_search(self, attempt: ResolutionAttempt) -> StageResult:
        stage = "places_search"
        hints = attempt.hints
        if not self.places.is_configured:
            return _soft_fail(stage, "Places API key not configured")

        query = hints.name_fragment or attempt.embedded_name
        if not query and hints.coordinates is not None:
            query = hints.coordinates.as_query()
        if not query:
            return _soft_fail(stage, "no name or coordinates to search with")

        place = await self.places.search(query, location_bias=hints.coordinates)
        if place is None:
            return _soft_fail(stage, f"no search results for {query!r}")
        return _success(stage, place)

    async def _scrape(self, attempt: ResolutionAttempt) -> StageResult:
        stage = "scraper"
        hints = attempt.hints
        try:
            fields = await self.scraper.scrape(attempt.resolved_url)
        except ScrapeError as e:
            return StageResult(
                stage=stage, outcome=StageOutcome.HARD_FAIL, detail=e.reason
            )

        if not fields.has_identity:
            return _soft_fail(stage, "page had no name or address")

        coordinates = hints.coordinates or fields.coordinates
        if coordinates is None:
            return _soft_fail(stage, "no coordinates in URL or page")

        place = NormalizedPlace(
            name=fields.name or hints.name_fragment or attempt.embedded_name,
            address=fields.address or hints.address_fragment,
            lat=coordinates.lat,
            lng=coordinates.lng,
            external_id=hints.place_id.value if hints.place_id else None,
            types=[fields.category] if fields.category else [],
            website=fields.website,
            phone=fields.phone,
            rating=fields.rating,
            rating_count=fields.rating_count,
            opening_hours=[fields.opening_hours] if fields.opening_hours else [],
            maps_url=fields.final_url or attempt.resolved_url,
            source=PlaceSource.SCRAPER,
        )
        return _success(stage, place)
