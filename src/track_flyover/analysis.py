"""Route analysis: validate, normalize, classify and plan playback speed in one pass."""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from .config import PatternThresholds, SpeedSettings
from .gpx_parser import Waypoint
from .patterns import PatternDescriptor, classify_route
from .route import (
    PositionTrack,
    Timeline,
    build_timeline,
    compute_cumulative_distances,
    waypoint_arrays,
)
from .speed import SpeedPlan, plan_time_scale
from .terrain import (
    ElevationStats,
    RouteSegment,
    RouteType,
    Terrain,
    classify_terrain,
    detect_segments,
    elevation_stats,
    estimate_route_type,
)

logger = logging.getLogger(__name__)

MIN_ROUTE_DISTANCE_M = 1.0


@dataclass(frozen=True)
class RouteValidation:
    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, eq=False)
class RouteProfile:
    """Everything the playback controller needs to know about a route."""

    waypoints: tuple[Waypoint, ...]
    timeline: Timeline
    track: PositionTrack
    pattern: PatternDescriptor
    speed: SpeedPlan
    distance_m: float
    duration_s: float  # simulated seconds, possibly synthetic
    warnings: tuple[str, ...] = ()
    elevation: Optional[ElevationStats] = None
    terrain: Terrain = Terrain.UNKNOWN
    route_type: RouteType = RouteType.UNKNOWN
    segments: tuple[RouteSegment, ...] = ()

    @property
    def start(self) -> float:
        return self.track.start

    @property
    def stop(self) -> float:
        return self.track.stop

    @property
    def duration_estimated(self) -> bool:
        return self.timeline.estimated


def validate_route(waypoints: Sequence[Waypoint]) -> RouteValidation:
    """Check that a route can be played, collecting non-fatal warnings."""
    errors = []
    warnings = []
    if len(waypoints) < 2:
        errors.append("Route must have at least 2 points")
        return RouteValidation(valid=False, errors=tuple(errors))

    lats, lons, _ = waypoint_arrays(waypoints)
    distance = float(compute_cumulative_distances(lats, lons)[-1])
    if distance < MIN_ROUTE_DISTANCE_M:
        warnings.append(f"Route distance is very short (< {MIN_ROUTE_DISTANCE_M:g}m)")
    if all(w.time is None for w in waypoints):
        warnings.append("No timestamps found - using a synthetic timeline")
    if all(w.elevation is None for w in waypoints):
        warnings.append("No elevation data found in route")

    return RouteValidation(valid=True, warnings=tuple(warnings))


def _planning_seconds(timeline: Timeline) -> Optional[float]:
    """Route duration the speed planner should fit, or None when it is only a placeholder."""
    if timeline.synthetic and timeline.origin is None and not timeline.estimated:
        return None
    return timeline.duration


def analyze_route(
    waypoints: Sequence[Waypoint],
    speed_settings: Optional[SpeedSettings] = None,
    thresholds: Optional[PatternThresholds] = None,
) -> RouteProfile:
    """Build the playback profile for a route.

    Routes without timestamps are timed at walking pace from their distance,
    so long routes still get a fitting time-scale. Mountainous terrain
    raises the camera on top of the shape's own adjustment.

    Raises:
        ValueError: if the route fails validation.
    """
    validation = validate_route(waypoints)
    if not validation.valid:
        raise ValueError("; ".join(validation.errors))
    for warning in validation.warnings:
        logger.warning(warning)

    waypoints = tuple(waypoints)
    timeline = build_timeline(waypoints)
    track = PositionTrack(waypoints, timeline)

    lats, lons, _ = waypoint_arrays(waypoints)
    distance = float(compute_cumulative_distances(lats, lons)[-1])

    route_seconds = _planning_seconds(timeline)
    elevation = elevation_stats([w.elevation for w in waypoints])
    terrain = classify_terrain(elevation)
    route_type = estimate_route_type(distance, route_seconds)
    segments = detect_segments(track.positions)

    pattern = replace(classify_route(waypoints, thresholds), terrain=terrain)
    speed = plan_time_scale(route_seconds, speed_settings)

    logger.info(
        "Analyzed %d waypoints: %.2fkm over %.0fs%s, %s on %s terrain at %gx",
        len(waypoints), distance / 1000, timeline.duration,
        " (estimated)" if timeline.estimated else "",
        pattern.type.value, terrain.value, speed.scale,
    )
    return RouteProfile(
        waypoints=waypoints,
        timeline=timeline,
        track=track,
        pattern=pattern,
        speed=speed,
        distance_m=distance,
        duration_s=timeline.duration,
        warnings=validation.warnings + timeline.warnings,
        elevation=elevation,
        terrain=terrain,
        route_type=route_type,
        segments=segments,
    )
