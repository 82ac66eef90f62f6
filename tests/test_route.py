"""Tests for timeline repair and the position track."""

from __future__ import annotations

import math
from datetime import timedelta

import numpy as np
import pytest

from conftest import START_TIME, line_xy, make_waypoints
from track_flyover.gpx_parser import Waypoint
from track_flyover.route import (
    PositionTrack,
    Timeline,
    build_timeline,
    estimate_duration_from_distance,
    haversine,
    playable_bounds,
)


# ---------------------------------------------------------------------------
# Distances
# ---------------------------------------------------------------------------

class TestGeodesy:
    def test_haversine_one_degree_latitude(self):
        d = haversine(46.0, 8.0, 47.0, 8.0)
        assert d == pytest.approx(111_195, rel=1e-3)

    def test_haversine_accepts_arrays(self):
        d = haversine(46.0, 8.0, np.array([46.0, 47.0]), np.array([8.0, 8.0]))
        assert d.shape == (2,)
        assert d[0] == pytest.approx(0.0)


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

class TestBuildTimeline:
    def test_increasing_timestamps_are_kept(self, line_route):
        timeline = build_timeline(line_route)
        assert not timeline.synthetic
        assert timeline.start == 0.0
        assert timeline.stop == pytest.approx(590.0)
        assert timeline.warnings == ()

    def test_identical_timestamps_use_minimum_duration(self):
        points = [
            Waypoint(lat=46.5, lon=8.0 + i * 1e-4, elevation=0.0, time=START_TIME)
            for i in range(10)
        ]
        timeline = build_timeline(points)
        assert timeline.synthetic
        assert timeline.duration == pytest.approx(60.0)
        assert "identical" in timeline.warnings[0]

    def test_missing_timestamps_use_walking_pace(self):
        points = make_waypoints(line_xy(n=100), step_s=None)
        timeline = build_timeline(points)
        assert timeline.synthetic
        assert timeline.estimated
        # 1980m at 5 km/h
        assert timeline.duration == pytest.approx(1980.0 / 5.0 * 3.6, rel=1e-2)
        assert timeline.origin is None
        assert "walking pace" in timeline.warnings[0]

    def test_short_route_without_timestamps_scales_with_point_count(self):
        points = make_waypoints(line_xy(n=100, spacing=0.1), step_s=None)
        timeline = build_timeline(points)
        assert not timeline.estimated
        assert timeline.duration == pytest.approx(100.0)

    def test_walking_estimate(self):
        assert estimate_duration_from_distance(5000.0) == pytest.approx(3600.0)
        assert estimate_duration_from_distance(5000.0, speed_kmh=10.0) == pytest.approx(1800.0)
        with pytest.raises(ValueError):
            estimate_duration_from_distance(100.0, speed_kmh=0.0)

    def test_non_monotonic_keeps_span(self):
        points = make_waypoints(line_xy(n=5))
        points[2] = Waypoint(
            lat=points[2].lat, lon=points[2].lon, elevation=points[2].elevation,
            time=START_TIME + timedelta(seconds=5),
        )
        points[3] = Waypoint(
            lat=points[3].lat, lon=points[3].lon, elevation=points[3].elevation,
            time=START_TIME + timedelta(seconds=1),
        )
        timeline = build_timeline(points)
        assert timeline.synthetic
        assert timeline.duration == pytest.approx(40.0)
        assert np.all(np.diff(timeline.seconds) > 0)

    def test_partially_missing_timestamps(self):
        points = make_waypoints(line_xy(n=5))
        points[1] = Waypoint(lat=points[1].lat, lon=points[1].lon, elevation=0.0)
        timeline = build_timeline(points)
        assert timeline.synthetic
        assert "1 of 5" in timeline.warnings[0]

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            build_timeline([])


class TestPlayableBounds:
    def test_valid_bounds_untouched(self):
        assert playable_bounds(0.0, 30.0, 5) == (0.0, 30.0, None)

    def test_degenerate_bounds_get_synthetic_duration(self):
        start, stop, warning = playable_bounds(5.0, 5.0, 10)
        assert (start, stop) == (5.0, 65.0)
        assert warning is not None

    def test_synthetic_duration_scales_with_waypoints(self):
        _, stop, _ = playable_bounds(0.0, -1.0, 500)
        assert stop == 500.0


# ---------------------------------------------------------------------------
# Position track
# ---------------------------------------------------------------------------

class TestPositionTrack:
    def test_sample_at_waypoint_times_is_exact(self, figure_eight_route):
        track = PositionTrack(figure_eight_route, build_timeline(figure_eight_route))
        for i, t in enumerate(track.times):
            np.testing.assert_array_equal(track.sample(t), track.positions[i])

    def test_sample_interpolates_linearly(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        mid = track.sample(5.0)
        np.testing.assert_allclose(mid, (track.positions[0] + track.positions[1]) / 2)

    def test_sample_clamps_outside_bounds(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        np.testing.assert_array_equal(track.sample(-100.0), track.positions[0])
        np.testing.assert_array_equal(track.sample(1e9), track.positions[-1])

    def test_positions_are_read_only(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        with pytest.raises(ValueError):
            track.positions[0, 0] = 1.0

    def test_local_frame_is_meters(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        step = np.linalg.norm(track.positions[1] - track.positions[0])
        assert step == pytest.approx(20.0, rel=1e-6)
        assert track.positions[0, 2] == 100.0

    def test_direction_of_travel(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        np.testing.assert_allclose(track.direction(100.0), [0.0, 1.0], atol=1e-9)

    def test_direction_is_zero_when_stationary(self):
        points = make_waypoints([(0.0, 0.0)] * 4)
        track = PositionTrack(points, build_timeline(points))
        np.testing.assert_array_equal(track.direction(10.0), [0.0, 0.0])

    def test_sample_geodetic(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        lat, lon, ele = track.sample_geodetic(track.times[3])
        assert lat == pytest.approx(line_route[3].lat)
        assert lon == pytest.approx(line_route[3].lon)
        assert ele == 100.0

    def test_nearest_index(self, line_route):
        track = PositionTrack(line_route, build_timeline(line_route))
        assert track.nearest_index(-5.0) == 0
        assert track.nearest_index(14.0) == 1
        assert track.nearest_index(16.0) == 2
        assert track.nearest_index(1e6) == len(line_route) - 1

    def test_mean_radius_of_circle(self, circle_route):
        track = PositionTrack(circle_route, build_timeline(circle_route))
        assert track.mean_radius() == pytest.approx(200.0, rel=1e-3)
        assert math.hypot(*track.centroid()[:2]) < 1.0

    def test_missing_elevation_is_zero(self):
        points = make_waypoints(line_xy(n=3), elevation=None)
        track = PositionTrack(points, build_timeline(points))
        assert np.all(track.positions[:, 2] == 0.0)

    def test_rejects_single_point(self):
        points = make_waypoints(line_xy(n=1))
        with pytest.raises(ValueError):
            PositionTrack(points, build_timeline(points))

    def test_rejects_non_increasing_timeline(self, line_route):
        bad = Timeline(seconds=np.zeros(len(line_route)), origin=None)
        with pytest.raises(ValueError):
            PositionTrack(line_route, bad)
