"""
Unit tests for trajectory cleaning.

Tests cover:
- Coordinate and timestamp validity filtering
- Stable ordering by timestamp
- Spike rejection against the last accepted point
- Properties: sorted output, no fast jumps, idempotence
"""

import math
from types import SimpleNamespace

import pytest
from hypothesis import given, strategies as st

from tracking.cleaner import CleanerOptions, TrajectoryCleaner, clean_trajectory
from tracking.geo import haversine_km
from tracking.models import TrackPoint

BASE_TS = 1_700_000_000
NOW = BASE_TS + 3600


def point(lat, lon, ts):
    return {"lat": lat, "lon": lon, "ts": ts}


class TestValidityFiltering:
    """Tests for point-level validity checks."""

    @pytest.fixture
    def cleaner(self):
        return TrajectoryCleaner()

    @pytest.mark.parametrize("raw", [
        point(math.nan, 77.0, BASE_TS),
        point(29.0, math.inf, BASE_TS),
        point(91.0, 77.0, BASE_TS),
        point(29.0, -180.5, BASE_TS),
        point(None, 77.0, BASE_TS),
        point("north", 77.0, BASE_TS),
        point(True, 77.0, BASE_TS),
        {"lon": 77.0, "ts": BASE_TS},
        point(10 ** 400, 77.0, BASE_TS),
        point(29.0, -(10 ** 400), BASE_TS),
    ])
    def test_invalid_coordinates_are_dropped(self, cleaner, raw):
        assert cleaner.clean([raw], now=NOW) == ()

    def test_numeric_strings_are_accepted_as_coordinates(self, cleaner):
        result = cleaner.clean([point("29.866", "77.8905", BASE_TS)], now=NOW)
        assert result == (TrackPoint(lat=29.866, lon=77.8905, ts=BASE_TS),)

    def test_timestamp_before_min_year_is_dropped(self, cleaner):
        # 2008-12-31T23:59:59Z
        assert cleaner.clean([point(29.0, 77.0, 1230767999)], now=NOW) == ()
        # 2009-01-01T00:00:00Z
        assert len(cleaner.clean([point(29.0, 77.0, 1230768000)], now=NOW)) == 1

    def test_timestamp_too_far_in_future_is_dropped(self, cleaner):
        assert cleaner.clean([point(29.0, 77.0, NOW + 86401)], now=NOW) == ()
        assert len(cleaner.clean([point(29.0, 77.0, NOW + 86400)], now=NOW)) == 1

    def test_missing_timestamp_is_dropped(self, cleaner):
        assert cleaner.clean([{"lat": 29.0, "lon": 77.0}], now=NOW) == ()
        assert cleaner.clean([point(29.0, 77.0, "garbage")], now=NOW) == ()

    def test_oversized_integer_timestamp_is_dropped(self, cleaner):
        raw = [point(29.0, 77.0, 10 ** 400), point(29.0, 77.0, BASE_TS)]
        assert cleaner.clean(raw, now=NOW) == (TrackPoint(lat=29.0, lon=77.0, ts=BASE_TS),)

    def test_alternative_timestamp_representations(self, cleaner):
        raw = [
            {"lat": 29.0, "lon": 77.0, "timestamp": BASE_TS},
            point(29.0, 77.0, (BASE_TS + 1) * 1000),
            point(29.0, 77.0, "2023-11-14T22:13:22Z"),
        ]
        assert [p.ts for p in cleaner.clean(raw, now=NOW)] == [BASE_TS, BASE_TS + 1, BASE_TS + 2]

    def test_attribute_holders_are_accepted(self, cleaner):
        raw = [SimpleNamespace(lat=29.0, lon=77.0, ts=BASE_TS)]
        assert cleaner.clean(raw, now=NOW) == (TrackPoint(lat=29.0, lon=77.0, ts=BASE_TS),)

    def test_custom_min_year_option(self):
        cleaner = TrajectoryCleaner(CleanerOptions(min_year=2024))
        assert cleaner.clean([point(29.0, 77.0, BASE_TS)], now=NOW) == ()


class TestMalformedInput:
    """Cleaning never raises on malformed input."""

    @pytest.mark.parametrize("raw_points", [
        None,
        [],
        "not a list",
        b"bytes",
        42,
        {"lat": 29.0, "lon": 77.0, "ts": BASE_TS},
        [None, 1, "x", [], {}],
    ])
    def test_malformed_input_yields_empty_trajectory(self, raw_points):
        assert TrajectoryCleaner().clean(raw_points, now=NOW) == ()

    def test_generator_input_is_accepted(self):
        raw = (point(29.0, 77.0, BASE_TS + i) for i in range(3))
        assert len(TrajectoryCleaner().clean(raw, now=NOW)) == 3


class TestOrdering:
    """Tests for timestamp ordering."""

    def test_points_are_sorted_ascending(self):
        raw = [point(29.0, 77.0, BASE_TS + 20), point(29.0, 77.0, BASE_TS), point(29.0, 77.0, BASE_TS + 10)]
        assert [p.ts for p in clean_trajectory(raw, now=NOW)] == [BASE_TS, BASE_TS + 10, BASE_TS + 20]

    def test_equal_timestamps_keep_input_order(self):
        raw = [point(29.1, 77.0, BASE_TS), point(29.2, 77.0, BASE_TS), point(29.3, 77.0, BASE_TS)]
        assert [p.lat for p in clean_trajectory(raw, now=NOW)] == [29.1, 29.2, 29.3]

    def test_returns_new_immutable_sequence(self):
        raw = [point(29.0, 77.0, BASE_TS)]
        result = clean_trajectory(raw, now=NOW)
        assert isinstance(result, tuple)
        assert raw == [point(29.0, 77.0, BASE_TS)]


class TestSpikeRejection:
    """Tests for isolated spike rejection."""

    def test_spike_is_dropped_and_baseline_stays_on_last_accepted(self):
        raw = [
            point(0.0, 0.0, BASE_TS),
            point(0.1, 0.0, BASE_TS + 10),
            point(10.0, 0.0, BASE_TS + 20),   # ~1100 km away 10 s later
            point(0.2, 0.0, BASE_TS + 30),    # compared against the second point
        ]
        result = clean_trajectory(raw, now=NOW)
        assert [p.ts for p in result] == [BASE_TS, BASE_TS + 10, BASE_TS + 30]

    def test_sustained_movement_with_large_dt_is_kept(self):
        raw = [point(0.0, 0.0, BASE_TS), point(10.0, 0.0, BASE_TS + 60)]
        assert len(clean_trajectory(raw, now=NOW)) == 2

    def test_single_point_is_always_kept(self):
        assert len(clean_trajectory([point(-33.9, 151.2, BASE_TS)], now=NOW)) == 1

    def test_consecutive_spikes_are_all_compared_to_the_same_baseline(self):
        raw = [
            point(0.0, 0.0, BASE_TS),
            point(10.0, 0.0, BASE_TS + 5),
            point(-10.0, 0.0, BASE_TS + 10),
            point(0.01, 0.0, BASE_TS + 15),
        ]
        assert [p.ts for p in clean_trajectory(raw, now=NOW)] == [BASE_TS, BASE_TS + 15]

    def test_jump_threshold_is_configurable(self):
        raw = [point(0.0, 0.0, BASE_TS), point(0.5, 0.0, BASE_TS + 10)]
        strict = CleanerOptions(jump_km_threshold=10.0)
        assert len(clean_trajectory(raw, options=strict, now=NOW)) == 1
        assert len(clean_trajectory(raw, now=NOW)) == 2


raw_points = st.lists(
    st.fixed_dictionaries({
        "lat": st.floats(min_value=-90, max_value=90, allow_nan=False),
        "lon": st.floats(min_value=-180, max_value=180, allow_nan=False),
        "ts": st.integers(min_value=BASE_TS - 600, max_value=BASE_TS + 600),
    }),
    max_size=30,
)


class TestCleanerProperties:
    """Property-based tests for cleaned trajectories."""

    @given(raw_points)
    def test_output_is_sorted_ascending(self, raw):
        result = clean_trajectory(raw, now=NOW)
        assert all(a.ts <= b.ts for a, b in zip(result, result[1:]))

    @given(raw_points)
    def test_no_fast_jumps_between_consecutive_points(self, raw):
        options = CleanerOptions()
        result = clean_trajectory(raw, options=options, now=NOW)
        for a, b in zip(result, result[1:]):
            fast = (b.ts - a.ts) < options.spike_window_sec
            assert not (fast and haversine_km(a.lat, a.lon, b.lat, b.lon) > options.jump_km_threshold)

    @given(raw_points)
    def test_cleaning_is_idempotent(self, raw):
        once = clean_trajectory(raw, now=NOW)
        assert clean_trajectory(once, now=NOW) == once

    @given(raw_points)
    def test_output_is_a_subset_of_input(self, raw):
        result = clean_trajectory(raw, now=NOW)
        inputs = {(p["lat"], p["lon"], p["ts"]) for p in raw}
        assert all((p.lat, p.lon, p.ts) in inputs for p in result)
        assert len(result) <= len(raw)
