"""Elevation statistics, terrain and activity classification, and route segments."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

HILLY_GAIN_M = 100.0
MOUNTAINOUS_GAIN_M = 500.0

# Average speed upper bounds (km/h) for each activity
HIKING_MAX_KMH = 6.0
CYCLING_MAX_KMH = 25.0
DRIVING_MAX_KMH = 100.0

CLIMB_THRESHOLD_DEG = 5.0
TURN_THRESHOLD_DEG = 30.0
MAX_CLIMB_INTENSITY_DEG = 45.0
MAX_TURN_INTENSITY_DEG = 90.0


class Terrain(str, Enum):
    FLAT = "flat"
    HILLY = "hilly"
    MOUNTAINOUS = "mountainous"
    UNKNOWN = "unknown"


class RouteType(str, Enum):
    HIKING = "hiking"
    CYCLING = "cycling"
    DRIVING = "driving"
    FLYING = "flying"
    UNKNOWN = "unknown"


class SegmentKind(str, Enum):
    CLIMB = "climb"
    DESCENT = "descent"
    TURN = "turn"


@dataclass(frozen=True)
class ElevationStats:
    gain_m: float
    loss_m: float
    min_m: float
    max_m: float

    @property
    def total_change_m(self) -> float:
        return self.gain_m + self.loss_m


@dataclass(frozen=True)
class RouteSegment:
    kind: SegmentKind
    start_index: int
    end_index: int
    intensity: float  # 0..1


def elevation_stats(
    elevations: Sequence[Optional[float]],
    noise_threshold_m: float = 0.0,
) -> Optional[ElevationStats]:
    """Cumulative gain and loss over the points that carry an elevation.

    Steps smaller than ``noise_threshold_m`` are ignored. Returns None when no
    point has an elevation.
    """
    values = np.array([e for e in elevations if e is not None], dtype=float)
    if len(values) == 0:
        return None
    if len(values) < 2:
        return ElevationStats(gain_m=0.0, loss_m=0.0, min_m=float(values[0]), max_m=float(values[0]))

    steps = np.diff(values)
    steps = steps[np.abs(steps) >= noise_threshold_m]
    return ElevationStats(
        gain_m=float(steps[steps > 0].sum()),
        loss_m=float(-steps[steps < 0].sum()),
        min_m=float(values.min()),
        max_m=float(values.max()),
    )


def classify_terrain(stats: Optional[ElevationStats]) -> Terrain:
    if stats is None:
        return Terrain.UNKNOWN
    if stats.gain_m < HILLY_GAIN_M:
        return Terrain.FLAT
    if stats.gain_m < MOUNTAINOUS_GAIN_M:
        return Terrain.HILLY
    return Terrain.MOUNTAINOUS


def estimate_route_type(distance_m: float, duration_s: Optional[float]) -> RouteType:
    """Guess the activity from its average speed."""
    if not duration_s or duration_s <= 0:
        return RouteType.UNKNOWN
    speed_kmh = (distance_m / 1000) / (duration_s / 3600)
    if speed_kmh < HIKING_MAX_KMH:
        return RouteType.HIKING
    if speed_kmh < CYCLING_MAX_KMH:
        return RouteType.CYCLING
    if speed_kmh < DRIVING_MAX_KMH:
        return RouteType.DRIVING
    return RouteType.FLYING


def detect_segments(positions: np.ndarray) -> tuple[RouteSegment, ...]:
    """Climbs, descents and sharp turns around each interior waypoint.

    ``positions`` are local (east, north, up) meters. Each segment spans the
    waypoint before and after the one it was detected at; a climb or descent
    is listed before a turn at the same waypoint.
    """
    positions = np.asarray(positions, dtype=float)
    n = len(positions)
    if n < 3:
        return ()

    steps = np.diff(positions, axis=0)
    lengths = np.linalg.norm(steps, axis=1)

    # Slope of the step leaving each interior waypoint
    rise = steps[1:, 2]
    slope = np.degrees(np.arctan2(rise, lengths[1:]))

    # Angle between the arriving and leaving steps
    moving = (lengths[:-1] > 0) & (lengths[1:] > 0)
    with np.errstate(invalid="ignore", divide="ignore"):
        unit = steps / lengths[:, None]
        cos_turn = np.einsum("ij,ij->i", unit[:-1], unit[1:])
        turn = np.where(moving, np.degrees(np.arccos(np.clip(cos_turn, -1.0, 1.0))), 0.0)

    segments = []
    for k in range(n - 2):
        i = k + 1
        if abs(slope[k]) > CLIMB_THRESHOLD_DEG:
            segments.append(RouteSegment(
                kind=SegmentKind.CLIMB if slope[k] > 0 else SegmentKind.DESCENT,
                start_index=i - 1,
                end_index=i + 1,
                intensity=min(abs(float(slope[k])) / MAX_CLIMB_INTENSITY_DEG, 1.0),
            ))
        if turn[k] > TURN_THRESHOLD_DEG:
            segments.append(RouteSegment(
                kind=SegmentKind.TURN,
                start_index=i - 1,
                end_index=i + 1,
                intensity=min(float(turn[k]) / MAX_TURN_INTENSITY_DEG, 1.0),
            ))

    logger.debug(
        "Detected %d segments over %d waypoints (%d turns)",
        len(segments), n, sum(s.kind is SegmentKind.TURN for s in segments),
    )
    return tuple(segments)

