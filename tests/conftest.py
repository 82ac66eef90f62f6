"""Shared synthetic route builders."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from track_flyover.gpx_parser import Waypoint
from track_flyover.route import M_PER_DEG_LAT

ORIGIN_LAT = 46.5
ORIGIN_LON = 8.0
START_TIME = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test-data helpers
# ---------------------------------------------------------------------------

def to_latlon(x: float, y: float) -> tuple[float, float]:
    """Local east/north meters around the test origin to lat/lon."""
    lat = ORIGIN_LAT + y / M_PER_DEG_LAT
    lon = ORIGIN_LON + x / (M_PER_DEG_LAT * math.cos(math.radians(ORIGIN_LAT)))
    return lat, lon


def make_waypoints(
    xy: list[tuple[float, float]],
    step_s: float | None = 10.0,
    elevation: float | None = 100.0,
) -> list[Waypoint]:
    """Waypoints at the given local coordinates, ``step_s`` seconds apart (None = no times)."""
    points = []
    for i, (x, y) in enumerate(xy):
        lat, lon = to_latlon(x, y)
        time = START_TIME + timedelta(seconds=i * step_s) if step_s is not None else None
        points.append(Waypoint(lat=lat, lon=lon, elevation=elevation, time=time))
    return points


def circle_xy(n: int = 36, radius: float = 200.0, laps: int = 1) -> list[tuple[float, float]]:
    """``laps`` laps of an open circle polygon (the start point is not repeated)."""
    return [
        (radius * math.cos(2 * math.pi * i / n), radius * math.sin(2 * math.pi * i / n))
        for i in range(n * laps)
    ]


def line_xy(n: int = 60, spacing: float = 20.0) -> list[tuple[float, float]]:
    """Straight line heading north."""
    return [(0.0, i * spacing) for i in range(n)]


def figure_eight_xy(n: int = 1000, size: float = 1000.0) -> list[tuple[float, float]]:
    """Lemniscate of Gerono starting at the tip of the eastern lobe.

    The route passes exactly through the crossing at the origin twice.
    """
    points = []
    for k in range(n):
        t = math.pi / 2 + 2 * math.pi * k / n
        points.append((size * math.sin(t), size * math.sin(t) * math.cos(t)))
    return points


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def circle_route() -> list[Waypoint]:
    return make_waypoints(circle_xy())


@pytest.fixture
def out_and_back_route() -> list[Waypoint]:
    xy = circle_xy()
    return make_waypoints(xy + xy[::-1])


@pytest.fixture
def multi_lap_route() -> list[Waypoint]:
    return make_waypoints(circle_xy(n=40, laps=3))


@pytest.fixture
def figure_eight_route() -> list[Waypoint]:
    return make_waypoints(figure_eight_xy(), step_s=1.0)


@pytest.fixture
def line_route() -> list[Waypoint]:
    return make_waypoints(line_xy())
