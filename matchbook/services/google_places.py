"""Google Places API (New) client.

Two calls are used: Place Details for opaque ``ChI...`` identifiers and Text
Search for everything else. Field masks keep each request inside the basic
billing tier. Every failure (missing key, HTTP error, transport error,
response without a location) yields ``None`` so the resolver can move on to
the next stage.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from matchbook.config import Settings, settings as default_settings
from matchbook.core.metrics import places_api_requests_total
from matchbook.schemas.place import Coordinates, NormalizedPlace, PlaceSource

logger = logging.getLogger(__name__)

DETAILS_FIELDS = [
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "types",
    "websiteUri",
    "nationalPhoneNumber",
    "rating",
    "userRatingCount",
    "regularOpeningHours",
    "currentOpeningHours",
    "googleMapsUri",
]

SEARCH_FIELDS = [f"places.{field}" for field in DETAILS_FIELDS if field != "currentOpeningHours"]

MIN_QUERY_LENGTH = 2


def is_coordinate_identifier(external_id: str) -> bool:
    """Hex feature ids (``0x..:0x..``, optionally ``cid:``-prefixed) are not
    accepted by Place Details and must go through Text Search instead."""
    value = external_id.strip().lower()
    return value.startswith("cid:") or value.startswith("0x")


def parse_place_response(
    data: dict[str, Any], fallback_id: str | None = None
) -> NormalizedPlace | None:
    """Map a Places API ``Place`` object onto ``NormalizedPlace``.

    Returns None when the response has no usable location.
    """
    location = data.get("location") or {}
    lat = location.get("latitude")
    lng = location.get("longitude")
    if lat is None or lng is None:
        logger.warning("Places API response has no location data")
        return None

    display_name = data.get("displayName") or {}
    regular_hours = data.get("regularOpeningHours") or {}
    current_hours = data.get("currentOpeningHours") or {}

    is_open = current_hours.get("openNow")
    if is_open is None:
        is_open = regular_hours.get("openNow")

    rating = data.get("rating")
    rating_count = data.get("userRatingCount")

    return NormalizedPlace(
        name=display_name.get("text"),
        address=data.get("formattedAddress"),
        lat=lat,
        lng=lng,
        external_id=data.get("id") or fallback_id,
        types=data.get("types") or [],
        website=data.get("websiteUri"),
        phone=data.get("nationalPhoneNumber"),
        rating=rating if isinstance(rating, (int, float)) else None,
        rating_count=rating_count if isinstance(rating_count, int) else None,
        opening_hours=regular_hours.get("weekdayDescriptions") or [],
        is_open=is_open,
        maps_url=data.get("googleMapsUri"),
    )


def _json_object(response: httpx.Response) -> dict[str, Any]:
    """Decoded JSON body; raises ValueError unless it is an object."""
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


class PlacesClient:
    """Thin async wrapper around the Places API (New) endpoints we use."""

    def __init__(
        self,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or default_settings
        self.api_key = api_key if api_key is not None else self._settings.GOOGLE_MAPS_API_KEY
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._settings.PLACES_API_TIMEOUT
        )
        self._base_url = self._settings.PLACES_API_BASE_URL.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _headers(self, api_key: str, fields: list[str]) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": api_key,
            "X-Goog-FieldMask": ",".join(fields),
        }

    def _key(self, override: str | None) -> str | None:
        key = override or self.api_key
        if not key:
            logger.warning("Places API key not configured, skipping request")
            return None
        return key

    async def get_details(
        self, external_id: str, api_key: str | None = None
    ) -> NormalizedPlace | None:
        if not external_id or is_coordinate_identifier(external_id):
            logger.debug(f"Identifier {external_id!r} not usable for Place Details")
            return None

        key = self._key(api_key)
        if key is None:
            return None

        try:
            response = await self._client.get(
                f"{self._base_url}/places/{external_id}",
                headers=self._headers(key, DETAILS_FIELDS),
            )
        except httpx.HTTPError as e:
            places_api_requests_total.labels(endpoint="details", status="error").inc()
            logger.warning(f"Place Details request failed for {external_id}: {e}")
            return None

        places_api_requests_total.labels(
            endpoint="details", status=str(response.status_code)
        ).inc()
        if not response.is_success:
            logger.warning(
                f"Place Details returned {response.status_code} for {external_id}: "
                f"{response.text[:500]}"
            )
            return None

        try:
            place = parse_place_response(_json_object(response), fallback_id=external_id)
        except (ValueError, ValidationError) as e:
            places_api_requests_total.labels(endpoint="details", status="invalid").inc()
            logger.warning(f"Place Details returned an unusable body for {external_id}: {e}")
            return None
        if place is not None:
            place.source = PlaceSource.PLACES_DETAILS
        return place

    async def search(
        self,
        query: str,
        api_key: str | None = None,
        location_bias: Coordinates | None = None,
    ) -> NormalizedPlace | None:
        """Best single Text Search match for *query*, optionally biased
        towards a circle around *location_bias*."""
        if not query or len(query.strip()) < MIN_QUERY_LENGTH:
            return None

        key = self._key(api_key)
        if key is None:
            return None

        body: dict[str, Any] = {"textQuery": query.strip(), "maxResultCount": 1}
        if location_bias is not None:
            body["locationBias"] = {
                "circle": {
                    "center": {
                        "latitude": location_bias.lat,
                        "longitude": location_bias.lng,
                    },
                    "radius": self._settings.PLACES_SEARCH_RADIUS_METERS,
                }
            }

        try:
            response = await self._client.post(
                f"{self._base_url}/places:searchText",
                headers=self._headers(key, SEARCH_FIELDS),
                json=body,
            )
        except httpx.HTTPError as e:
            places_api_requests_total.labels(endpoint="search", status="error").inc()
            logger.warning(f"Text Search request failed for {query!r}: {e}")
            return None

        places_api_requests_total.labels(
            endpoint="search", status=str(response.status_code)
        ).inc()
        if not response.is_success:
            logger.warning(
                f"Text Search returned {response.status_code} for {query!r}: "
                f"{response.text[:500]}"
            )
            return None

        try:
            places = _json_object(response).get("places") or []
            if not places:
                logger.info(f"Text Search found no results for {query!r}")
                return None
            first = places[0]
            if not isinstance(first, dict):
                raise ValueError("result is not an object")
            place = parse_place_response(first, fallback_id=first.get("id"))
        except (ValueError, ValidationError) as e:
            places_api_requests_total.labels(endpoint="search", status="invalid").inc()
            logger.warning(f"Text Search returned an unusable body for {query!r}: {e}")
            return None
        if place is not None:
            place.source = PlaceSource.PLACES_SEARCH
        return place
