"""Duplicate detection against places the caller already stores.

A candidate is a duplicate when its source URL equals a stored one, or when
it lies within ``threshold_meters`` of a stored place. Every call scans all
records linearly: collections are personal-scale (low hundreds of places),
so no spatial index is kept. Revisit this if collections grow past that.
"""

import math
from collections.abc import Iterable

from matchbook.config import settings
from matchbook.schemas.place import Coordinates, DuplicateVerdict, ExistingRecord

EARTH_RADIUS_METERS = 6_371_000


def haversine_meters(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points, in meters."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def check_duplicate(
    candidate_coords: Coordinates | None,
    candidate_url: str | None,
    existing_records: Iterable[ExistingRecord],
    threshold_meters: float | None = None,
) -> DuplicateVerdict:
    if threshold_meters is None:
        threshold_meters = settings.DUPLICATE_THRESHOLD_METERS

    records = list(existing_records)

    if candidate_url:
        for record in records:
            if record.source_url and record.source_url == candidate_url:
                return DuplicateVerdict(
                    is_duplicate=True,
                    matched_record_id=record.id,
                    match_kind="url",
                )

    if candidate_coords is not None:
        for record in records:
            if record.lat is None or record.lng is None:
                continue
            distance = haversine_meters(
                candidate_coords, Coordinates(lat=record.lat, lng=record.lng)
            )
            if distance <= threshold_meters:
                return DuplicateVerdict(
                    is_duplicate=True,
                    matched_record_id=record.id,
                    match_kind="coordinates",
                    distance_meters=round(distance, 2),
                )

    return DuplicateVerdict(is_duplicate=False)
