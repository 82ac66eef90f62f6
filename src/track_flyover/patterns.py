"""Route shape classification and the camera hints that go with each shape.

A route is first split into the loop family (it ends near where it started)
or point-to-point. Loop-family routes are then told apart by how much the
second half retraces the first: heavy overlap is an out-and-back, light
overlap a loop, and a loop that crosses itself is a figure eight. Independently, the route is scanned for a repeating segment; when one
is found the base shape is promoted to its repeated variant (multi-lap,
repeated out-and-back, repeated segment).
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional, Sequence

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

from .config import PatternThresholds
from .gpx_parser import Waypoint
from .route import (
    M_PER_DEG_LAT,
    compute_cumulative_distances,
    gps_to_local,
    haversine,
    pairwise_haversine,
    waypoint_arrays,
)
from .terrain import Terrain

logger = logging.getLogger(__name__)

MIN_INTERSECTION_GAP = 10  # points apart before two waypoints count as non-adjacent
REPETITION_STEP = 5
REPETITION_SAMPLE_EVERY = 3
REPETITION_MIN_SCORE = 0.6
FIGURE_EIGHT_MIN_CROSSINGS = 1
CROSSING_RUN_GAP = 3  # index steps between neighboring pairs of one crossing


class PatternType(str, Enum):
    POINT_TO_POINT = "point-to-point"
    OUT_AND_BACK = "out-and-back"
    LOOP = "loop"
    FIGURE_EIGHT = "figure-eight"
    MULTI_LAP = "multi-lap"
    REPEATED_OUT_AND_BACK = "repeated-out-and-back"
    REPEATED_SEGMENT = "repeated-segment"
    UNKNOWN = "unknown"

    @property
    def orbits_centroid(self) -> bool:
        """Whether the camera should circle the route center for this shape."""
        return self in (PatternType.LOOP, PatternType.FIGURE_EIGHT, PatternType.MULTI_LAP)


@dataclass(frozen=True)
class CameraAdjustment:
    distance_multiplier: float = 1.0
    height_multiplier: float = 1.0
    pitch_adjustment_deg: float = 0.0  # negative tilts the view further down
    smoothing_override: Optional[float] = None  # replaces the base smoothing alpha
    look_ahead_multiplier: float = 1.0


# Orbit shapes share one framing, with figure-eights 10% higher. Out-and-back
# shapes tilt 5 degrees down. Other shapes use the identity.
CAMERA_ADJUSTMENTS: Mapping[PatternType, CameraAdjustment] = {
    PatternType.POINT_TO_POINT: CameraAdjustment(),
    PatternType.OUT_AND_BACK: CameraAdjustment(pitch_adjustment_deg=-5.0),
    PatternType.LOOP: CameraAdjustment(
        distance_multiplier=2.5,
        height_multiplier=1.8,
        pitch_adjustment_deg=-25.0,
        smoothing_override=0.08,
        look_ahead_multiplier=0.5,
    ),
    PatternType.FIGURE_EIGHT: CameraAdjustment(
        distance_multiplier=2.5,
        height_multiplier=1.98,
        pitch_adjustment_deg=-25.0,
        smoothing_override=0.08,
        look_ahead_multiplier=0.5,
    ),
    PatternType.MULTI_LAP: CameraAdjustment(
        distance_multiplier=2.5,
        height_multiplier=1.8,
        pitch_adjustment_deg=-25.0,
        smoothing_override=0.08,
        look_ahead_multiplier=0.5,
    ),
    PatternType.REPEATED_OUT_AND_BACK: CameraAdjustment(pitch_adjustment_deg=-5.0),
    PatternType.REPEATED_SEGMENT: CameraAdjustment(),
    PatternType.UNKNOWN: CameraAdjustment(),
}

MOUNTAIN_HEIGHT_MULTIPLIER = 1.3
MOUNTAIN_PITCH_DEG = -10.0


def apply_terrain(adjustment: CameraAdjustment, terrain: Terrain) -> CameraAdjustment:
    """Raise the camera and tilt it further down over mountainous terrain."""
    if terrain is not Terrain.MOUNTAINOUS:
        return adjustment
    return replace(
        adjustment,
        height_multiplier=adjustment.height_multiplier * MOUNTAIN_HEIGHT_MULTIPLIER,
        pitch_adjustment_deg=adjustment.pitch_adjustment_deg + MOUNTAIN_PITCH_DEG,
    )


CAMERA_STRATEGIES: Mapping[PatternType, Mapping[str, str]] = {
    PatternType.POINT_TO_POINT: {
        "beginning": "establish-start",
        "middle": "progressive-journey",
        "ending": "arrival-sequence",
    },
    PatternType.OUT_AND_BACK: {
        "outbound": "forward-view",
        "turnaround": "dramatic-angle-change",
        "return": "alternate-angles",
    },
    PatternType.LOOP: {"general": "continuous-forward", "ending": "show-completion"},
    PatternType.FIGURE_EIGHT: {"general": "continuous-forward", "ending": "show-completion"},
    PatternType.MULTI_LAP: {
        "general": "continuous-forward",
        "per_lap": "vary-height-and-angle",
        "ending": "show-completion",
    },
    PatternType.REPEATED_OUT_AND_BACK: {
        "outbound": "forward-view",
        "turnaround": "dramatic-angle-change",
        "return": "alternate-angles",
        "repetition": "vary-angles-per-lap",
    },
    PatternType.REPEATED_SEGMENT: {
        "beginning": "establish-start",
        "middle": "progressive-journey",
        "ending": "arrival-sequence",
        "repetition": "vary-perspectives",
    },
    PatternType.UNKNOWN: {},
}

SPEED_HINTS: Mapping[PatternType, Mapping[str, float]] = {
    PatternType.POINT_TO_POINT: {"beginning": 0.8, "middle": 1.0, "ending": 0.7},
    PatternType.OUT_AND_BACK: {"outbound": 1.0, "turnaround": 0.5, "return": 1.2},
    PatternType.LOOP: {"general": 1.0, "near_start": 0.8},
    PatternType.FIGURE_EIGHT: {"general": 1.0, "near_start": 0.8},
    PatternType.MULTI_LAP: {"general": 1.0, "near_start": 0.8, "final_lap": 0.85},
    PatternType.REPEATED_OUT_AND_BACK: {
        "outbound": 1.0,
        "turnaround": 0.5,
        "return": 1.2,
        "final_lap": 0.9,
    },
    PatternType.REPEATED_SEGMENT: {
        "beginning": 0.8,
        "middle": 1.0,
        "ending": 0.7,
        "per_repetition": 1.1,
    },
    PatternType.UNKNOWN: {"general": 1.0},
}


@dataclass(frozen=True)
class Turnaround:
    index: int
    distance_from_start_m: float
    percentage_of_route: float


@dataclass(frozen=True)
class Repetition:
    count: int = 1
    segment_length: int = 0
    starts: tuple[int, ...] = ()
    score: float = 0.0

    @property
    def found(self) -> bool:
        return self.count > 1


@dataclass(frozen=True)
class KeyPoint:
    kind: str  # "turnaround", "lap-start", "completion", "segment-repeat"
    index: int
    action: str
    speed_multiplier: float = 1.0
    lap: Optional[int] = None


@dataclass(frozen=True)
class PatternDescriptor:
    type: PatternType
    confidence: float
    reason: str
    base_type: PatternType = PatternType.UNKNOWN
    start_end_distance_m: float = 0.0
    path_overlap_pct: float = 0.0
    route_distance_m: float = 0.0
    linearity_ratio: Optional[float] = None
    enclosed_area_m2: Optional[float] = None
    intersections: Optional[int] = None
    turnaround: Optional[Turnaround] = None
    repetitions: int = 1
    segment_length: Optional[int] = None
    key_points: tuple[KeyPoint, ...] = ()
    terrain: Terrain = Terrain.UNKNOWN

    @property
    def adjustment(self) -> CameraAdjustment:
        return apply_terrain(CAMERA_ADJUSTMENTS[self.type], self.terrain)

    @property
    def strategy(self) -> Mapping[str, str]:
        return CAMERA_STRATEGIES[self.type]

    @property
    def speed_hints(self) -> Mapping[str, float]:
        return SPEED_HINTS[self.type]


UNKNOWN_PATTERN = PatternDescriptor(
    type=PatternType.UNKNOWN,
    confidence=0.0,
    reason="Insufficient points for analysis",
)


# ── Geometry measures ───────────────────────────────────────────────────


def path_overlap(lats: np.ndarray, lons: np.ndarray, proximity_m: float = 10.0) -> float:
    """Percentage of the first half that the reversed second half retraces."""
    n = len(lats)
    if n < 10:
        return 0.0
    mid = n // 2
    first_lats, first_lons = lats[:mid], lons[:mid]
    second_lats, second_lons = lats[mid:][::-1], lons[mid:][::-1]
    m = min(len(first_lats), len(second_lats))
    d = pairwise_haversine(first_lats[:m], first_lons[:m], second_lats[:m], second_lons[:m])
    return float(np.count_nonzero(d < proximity_m)) / m * 100.0


def find_turnaround(lats: np.ndarray, lons: np.ndarray) -> Turnaround:
    """The waypoint farthest from the start."""
    d = haversine(lats[0], lons[0], lats, lons)
    idx = int(np.argmax(d))
    return Turnaround(
        index=idx,
        distance_from_start_m=float(d[idx]),
        percentage_of_route=idx / len(lats) * 100.0,
    )


def find_intersections(
    lats: np.ndarray,
    lons: np.ndarray,
    proximity_m: float = 10.0,
    closed: bool = False,
) -> list[tuple[int, int]]:
    """Pairs of non-adjacent waypoints that lie within ``proximity_m`` of each other.

    For a closed route the index gap wraps around, so the last few points are
    adjacent to the first few.
    """
    n = len(lats)
    if n <= MIN_INTERSECTION_GAP:
        return []
    origin_lat = float((lats.min() + lats.max()) / 2)
    origin_lon = float((lons.min() + lons.max()) / 2)
    xy = gps_to_local(lats, lons, np.zeros(n), origin_lat, origin_lon)[:, :2]
    pairs = cKDTree(xy).query_pairs(r=proximity_m, output_type="ndarray")
    if len(pairs) == 0:
        return []
    gap = np.abs(pairs[:, 1] - pairs[:, 0])
    if closed:
        gap = np.minimum(gap, n - gap)
    kept = pairs[gap >= MIN_INTERSECTION_GAP]
    kept = np.sort(kept, axis=1)
    order = np.lexsort((kept[:, 1], kept[:, 0]))
    return [(int(i), int(j)) for i, j in kept[order]]


def find_crossings(
    lats: np.ndarray,
    lons: np.ndarray,
    proximity_m: float = 10.0,
    closed: bool = False,
    min_loop_m: float = 100.0,
) -> list[tuple[int, int]]:
    """Distinct places where the route passes over itself, one index pair each.

    Neighboring close pairs around the same place collapse into one crossing,
    represented by its closest pair. Pairs joined by less than ``min_loop_m``
    of track, such as a stop where the position barely moves, are ignored.
    """
    pairs = find_intersections(lats, lons, proximity_m, closed)
    if not pairs:
        return []
    pairs = np.array(pairs)
    cum_dist = compute_cumulative_distances(lats, lons)
    along = cum_dist[pairs[:, 1]] - cum_dist[pairs[:, 0]]
    if closed:
        along = np.minimum(along, cum_dist[-1] - along)
    pairs = pairs[along >= min_loop_m]
    if len(pairs) == 0:
        return []

    links = cKDTree(pairs.astype(float)).query_pairs(r=CROSSING_RUN_GAP, p=np.inf, output_type="ndarray")
    graph = coo_matrix(
        (np.ones(len(links)), (links[:, 0], links[:, 1])),
        shape=(len(pairs), len(pairs)),
    )
    count, labels = connected_components(graph, directed=False)
    gaps = pairwise_haversine(lats[pairs[:, 0]], lons[pairs[:, 0]], lats[pairs[:, 1]], lons[pairs[:, 1]])
    crossings = []
    for label in range(count):
        members = np.flatnonzero(labels == label)
        i, j = pairs[members[np.argmin(gaps[members])]]
        crossings.append((int(i), int(j)))
    return sorted(crossings)


def enclosed_area(lats: np.ndarray, lons: np.ndarray) -> float:
    """Area enclosed by the route (shoelace formula), in approximate square meters."""
    if len(lats) < 3:
        return 0.0
    area = np.sum(lons * np.roll(lats, -1) - np.roll(lons, -1) * lats)
    return float(abs(area) / 2 * M_PER_DEG_LAT * M_PER_DEG_LAT)


def detect_repetition(
    lats: np.ndarray,
    lons: np.ndarray,
    thresholds: PatternThresholds,
) -> Repetition:
    """Find the segment length whose copies best match the first segment."""
    n = len(lats)
    min_len = thresholds.min_repetition_length
    if n < min_len * 2:
        return Repetition()

    match_radius = thresholds.proximity_m * 2
    cum_dist = compute_cumulative_distances(lats, lons)
    best = Repetition()

    for length in range(min_len, int(n * 0.4), REPETITION_STEP):
        count = n // length
        if count < 2:
            continue
        if cum_dist[length - 1] < thresholds.min_segment_span_m:
            continue

        matches = 0
        comparisons = 0
        starts = [0]
        for lap in range(1, count):
            lap_start = lap * length
            starts.append(lap_start)
            idx = np.arange(0, min(length, n - lap_start), REPETITION_SAMPLE_EVERY)
            d = pairwise_haversine(lats[idx], lons[idx], lats[lap_start + idx], lons[lap_start + idx])
            matches += int(np.count_nonzero(d < match_radius))
            comparisons += len(idx)

        score = matches / comparisons if comparisons else 0.0
        if score > REPETITION_MIN_SCORE and score > best.score:
            best = Repetition(count=count, segment_length=length, starts=tuple(starts), score=score)

    return best


# ── Key points ──────────────────────────────────────────────────────────


def _key_points(
    pattern: PatternType,
    n_points: int,
    turnaround: Optional[Turnaround],
    repetition: Repetition,
) -> tuple[KeyPoint, ...]:
    points: list[KeyPoint] = []

    if pattern is PatternType.REPEATED_OUT_AND_BACK:
        for lap, index in enumerate(repetition.starts):
            points.append(KeyPoint(
                kind="turnaround",
                index=index,
                action="dramatic-angle-change" if lap == 0 else "quick-pivot",
                speed_multiplier=0.5 if lap == 0 else 0.7,
                lap=lap + 1,
            ))
    elif pattern is PatternType.OUT_AND_BACK and turnaround is not None:
        points.append(KeyPoint(
            kind="turnaround",
            index=turnaround.index,
            action="dramatic-angle-change",
            speed_multiplier=0.5,
        ))

    if pattern.orbits_centroid:
        if pattern is PatternType.MULTI_LAP:
            for lap in range(1, repetition.count):
                points.append(KeyPoint(
                    kind="lap-start",
                    index=lap * repetition.segment_length,
                    action="vary-camera-height",
                    lap=lap + 1,
                ))
        points.append(KeyPoint(
            kind="completion",
            index=n_points - int(n_points * 0.05),
            action="show-approaching-start",
            speed_multiplier=0.8,
        ))

    if pattern is PatternType.REPEATED_SEGMENT:
        for rep in range(1, repetition.count):
            points.append(KeyPoint(
                kind="segment-repeat",
                index=rep * repetition.segment_length,
                action="vary-perspective",
                lap=rep + 1,
            ))

    return tuple(points)


# ── Classification ──────────────────────────────────────────────────────


def _analysis_indices(n: int, cap: int) -> np.ndarray:
    """Evenly strided waypoint indices, at most ``cap`` of them, always keeping both ends."""
    if n <= cap:
        return np.arange(n)
    return np.unique(np.linspace(0, n - 1, cap).round().astype(int))


def classify_route(
    waypoints: Sequence[Waypoint],
    thresholds: Optional[PatternThresholds] = None,
) -> PatternDescriptor:
    """Classify the geometric shape of a route."""
    if thresholds is None:
        thresholds = PatternThresholds()
    if len(waypoints) < 2:
        return UNKNOWN_PATTERN

    all_lats, all_lons, _ = waypoint_arrays(waypoints)
    keep = _analysis_indices(len(all_lats), thresholds.max_analysis_points)
    if len(keep) < len(all_lats):
        logger.info(
            "Downsampled %d waypoints to %d for pattern analysis", len(all_lats), len(keep)
        )
    lats, lons = all_lats[keep], all_lons[keep]
    n = len(lats)

    repetition = detect_repetition(lats, lons, thresholds)
    start_end = haversine(lats[0], lons[0], lats[-1], lons[-1])
    route_distance = float(compute_cumulative_distances(all_lats, all_lons)[-1])

    if start_end < thresholds.close_proximity_m:
        overlap = path_overlap(lats, lons, thresholds.proximity_m)

        if overlap > thresholds.path_overlap_pct:
            turnaround = find_turnaround(lats, lons)
            confidence = min(overlap / 100, 0.95)
            if repetition.found:
                pattern = PatternType.REPEATED_OUT_AND_BACK
                reason = (
                    f"{repetition.count} repeated out-and-back segments "
                    f"with {overlap:.1f}% overlap"
                )
            else:
                pattern = PatternType.OUT_AND_BACK
                reason = f"{overlap:.1f}% path overlap indicates retracing"
            descriptor = PatternDescriptor(
                type=pattern,
                base_type=PatternType.OUT_AND_BACK,
                confidence=confidence,
                reason=reason,
                start_end_distance_m=start_end,
                path_overlap_pct=overlap,
                route_distance_m=route_distance,
                turnaround=turnaround,
                repetitions=repetition.count,
                segment_length=repetition.segment_length or None,
                key_points=_key_points(pattern, n, turnaround, repetition),
            )
        else:
            area = enclosed_area(lats, lons)
            crossings = len(find_crossings(
                lats, lons, thresholds.proximity_m, closed=True,
                min_loop_m=thresholds.min_crossing_loop_m,
            ))
            if repetition.found:
                pattern = PatternType.MULTI_LAP
                reason = f"{repetition.count} laps of loop, {area:.0f}m² area"
            elif crossings >= FIGURE_EIGHT_MIN_CROSSINGS:
                pattern = PatternType.FIGURE_EIGHT
                reason = f"Loop crosses itself ({crossings} crossing{'s' if crossings > 1 else ''})"
            else:
                pattern = PatternType.LOOP
                reason = f"Low overlap ({overlap:.1f}%), circular route"
            descriptor = PatternDescriptor(
                type=pattern,
                base_type=PatternType.LOOP,
                confidence=max(0.7, 1 - overlap / 100),
                reason=reason,
                start_end_distance_m=start_end,
                path_overlap_pct=overlap,
                route_distance_m=route_distance,
                enclosed_area_m2=area,
                intersections=crossings,
                repetitions=repetition.count,
                segment_length=repetition.segment_length or None,
                key_points=_key_points(pattern, n, None, repetition),
            )
    else:
        linearity = start_end / route_distance if route_distance > 0 else 1.0
        if repetition.found:
            pattern = PatternType.REPEATED_SEGMENT
            confidence = min(start_end / 1000, 0.85)
            reason = (
                f"{repetition.count} repeated segments, "
                f"ends {start_end:.0f}m from start"
            )
        else:
            pattern = PatternType.POINT_TO_POINT
            confidence = min(start_end / 1000, 0.95)
            reason = f"Start and end {start_end:.0f}m apart"
        descriptor = PatternDescriptor(
            type=pattern,
            base_type=PatternType.POINT_TO_POINT,
            confidence=confidence,
            reason=reason,
            start_end_distance_m=start_end,
            route_distance_m=route_distance,
            linearity_ratio=linearity,
            repetitions=repetition.count,
            segment_length=repetition.segment_length or None,
            key_points=_key_points(pattern, n, None, repetition),
        )

    if len(keep) < len(all_lats):
        descriptor = _map_indices(descriptor, keep)
    logger.info(
        "Route classified as %s (confidence %.2f): %s",
        descriptor.type.value, descriptor.confidence, descriptor.reason,
    )
    return descriptor


def _map_indices(descriptor: PatternDescriptor, keep: np.ndarray) -> PatternDescriptor:
    """Translate indices found on a downsampled route back to the full route."""
    def full(index: int) -> int:
        return int(keep[min(index, len(keep) - 1)])

    turnaround = descriptor.turnaround
    if turnaround is not None:
        turnaround = replace(turnaround, index=full(turnaround.index))
    segment_length = descriptor.segment_length
    if segment_length:
        segment_length = full(segment_length) - full(0)
    key_points = tuple(replace(kp, index=full(kp.index)) for kp in descriptor.key_points)
    return replace(
        descriptor,
        turnaround=turnaround,
        segment_length=segment_length,
        key_points=key_points,
    )
