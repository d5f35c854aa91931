"""Unit tests for matchbook.services.duplicates."""

import pytest

from matchbook.schemas.place import Coordinates, ExistingRecord
from matchbook.services.duplicates import check_duplicate, haversine_meters

# Meters per degree of latitude on a 6 371 km sphere
METERS_PER_DEGREE = 111_194.93

BIG_BEN = Coordinates(lat=51.5007292, lng=-0.1246254)
EIFFEL_TOWER = Coordinates(lat=48.8583701, lng=2.2944813)


def _north_of(point: Coordinates, meters: float) -> Coordinates:
    return Coordinates(lat=point.lat + meters / METERS_PER_DEGREE, lng=point.lng)


def _record(record_id: str, coords: Coordinates | None = None, url: str | None = None):
    return ExistingRecord(
        id=record_id,
        lat=coords.lat if coords else None,
        lng=coords.lng if coords else None,
        source_url=url,
    )


class TestHaversine:
    def test_zero_for_identical_points(self):
        assert haversine_meters(BIG_BEN, BIG_BEN) == 0

    def test_symmetric(self):
        assert haversine_meters(BIG_BEN, EIFFEL_TOWER) == pytest.approx(
            haversine_meters(EIFFEL_TOWER, BIG_BEN)
        )

    def test_known_distance(self):
        # Big Ben to the Eiffel Tower is roughly 340 km
        assert haversine_meters(BIG_BEN, EIFFEL_TOWER) == pytest.approx(340_600, rel=0.01)

    def test_latitude_offset(self):
        assert haversine_meters(BIG_BEN, _north_of(BIG_BEN, 30)) == pytest.approx(30, abs=0.01)


class TestCheckDuplicate:
    def test_within_threshold_is_duplicate(self):
        verdict = check_duplicate(_north_of(BIG_BEN, 30), None, [_record("a", BIG_BEN)])
        assert verdict.is_duplicate is True
        assert verdict.matched_record_id == "a"
        assert verdict.match_kind == "coordinates"
        assert verdict.distance_meters == pytest.approx(30, abs=0.1)

    def test_beyond_threshold_is_not_duplicate(self):
        verdict = check_duplicate(_north_of(BIG_BEN, 60), None, [_record("a", BIG_BEN)])
        assert verdict.is_duplicate is False
        assert verdict.matched_record_id is None

    def test_threshold_is_inclusive(self):
        candidate = _north_of(BIG_BEN, 45)
        distance = haversine_meters(candidate, BIG_BEN)
        verdict = check_duplicate(
            candidate, None, [_record("a", BIG_BEN)], threshold_meters=distance
        )
        assert verdict.is_duplicate is True

    def test_record_matches_itself(self):
        verdict = check_duplicate(BIG_BEN, None, [_record("a", BIG_BEN)])
        assert verdict.is_duplicate is True
        assert verdict.distance_meters == 0

    def test_custom_threshold(self):
        verdict = check_duplicate(
            _north_of(BIG_BEN, 60), None, [_record("a", BIG_BEN)], threshold_meters=100
        )
        assert verdict.is_duplicate is True

    def test_url_match_checked_before_coordinates(self):
        url = "https://maps.app.goo.gl/xYz987"
        records = [
            _record("near", BIG_BEN),
            _record("same-link", EIFFEL_TOWER, url=url),
        ]
        verdict = check_duplicate(BIG_BEN, url, records)
        assert verdict.matched_record_id == "same-link"
        assert verdict.match_kind == "url"

    def test_url_match_without_coordinates(self):
        url = "https://maps.app.goo.gl/xYz987"
        verdict = check_duplicate(None, url, [_record("a", url=url)])
        assert verdict.is_duplicate is True

    def test_records_without_coordinates_skipped(self):
        records = [_record("no-coords"), _record("far", EIFFEL_TOWER)]
        verdict = check_duplicate(BIG_BEN, None, records)
        assert verdict.is_duplicate is False

    def test_first_match_wins(self):
        records = [_record("first", _north_of(BIG_BEN, 20)), _record("second", BIG_BEN)]
        verdict = check_duplicate(BIG_BEN, None, records)
        assert verdict.matched_record_id == "first"

    def test_empty_collection(self):
        assert check_duplicate(BIG_BEN, "https://x", []).is_duplicate is False
