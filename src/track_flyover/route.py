"""Route processing: distances, timeline repair and the sampled position track."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from .gpx_parser import Waypoint

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000
# Meters per degree of latitude
M_PER_DEG_LAT = 111_319.0

MIN_SYNTHETIC_DURATION_S = 60.0
SYNTHETIC_STEP_S = 1.0  # seconds per waypoint on a synthetic timeline
DEFAULT_WALKING_SPEED_KMH = 5.0


def haversine(lat1: float, lon1: float, lat2, lon2):
    """Distance in meters between two lat/lon points.

    ``lat2``/``lon2`` may be arrays, in which case an array is returned.
    """
    phi1, phi2 = np.radians(lat1), np.radians(lat2)
    dphi = np.radians(np.subtract(lat2, lat1))
    dlam = np.radians(np.subtract(lon2, lon1))
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlam / 2) ** 2
    d = 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return float(d) if np.ndim(d) == 0 else d


def pairwise_haversine(lats1, lons1, lats2, lons2) -> np.ndarray:
    """Element-wise distance in meters between two equally long point arrays."""
    phi1, phi2 = np.radians(lats1), np.radians(lats2)
    dphi = phi2 - phi1
    dlam = np.radians(np.asarray(lons2) - np.asarray(lons1))
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlam / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def compute_cumulative_distances(lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Compute cumulative arc-length distance along the track."""
    dists = np.zeros(len(lats))
    if len(lats) > 1:
        dists[1:] = np.cumsum(pairwise_haversine(lats[:-1], lons[:-1], lats[1:], lons[1:]))
    return dists


def gps_to_local(
    lat,
    lon,
    elevation,
    origin_lat: float,
    origin_lon: float,
) -> np.ndarray:
    """Convert GPS coordinates to local 3D Cartesian (meters).

    Uses a simple planar approximation centered on origin.
    X = east, Y = north, Z = up. Accepts scalars or equally shaped arrays;
    the result has a trailing axis of size 3.
    """
    x = (np.asarray(lon, dtype=float) - origin_lon) * np.cos(np.radians(origin_lat)) * M_PER_DEG_LAT
    y = (np.asarray(lat, dtype=float) - origin_lat) * M_PER_DEG_LAT
    z = np.asarray(elevation, dtype=float)
    return np.stack([x, y, z], axis=-1)


def waypoint_arrays(waypoints: Sequence[Waypoint]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split waypoints into (lats, lons, elevations) arrays."""
    lats = np.array([w.lat for w in waypoints], dtype=float)
    lons = np.array([w.lon for w in waypoints], dtype=float)
    elevs = np.array(
        [w.elevation if w.elevation is not None else 0.0 for w in waypoints], dtype=float,
    )
    return lats, lons, elevs


def synthetic_duration(n_points: int) -> float:
    """Duration used when a route has no usable time span."""
    return max(MIN_SYNTHETIC_DURATION_S, n_points * SYNTHETIC_STEP_S)


def estimate_duration_from_distance(
    distance_m: float, speed_kmh: float = DEFAULT_WALKING_SPEED_KMH,
) -> float:
    """Seconds needed to cover ``distance_m`` at a constant ``speed_kmh``."""
    if speed_kmh <= 0:
        raise ValueError(f"speed_kmh must be positive, got {speed_kmh}")
    return distance_m / 1000 / speed_kmh * 3600


def playable_bounds(start: float, stop: float, n_points: int) -> tuple[float, float, Optional[str]]:
    """Return usable (start, stop) bounds and a warning if they had to be replaced."""
    if stop > start:
        return start, stop, None
    duration = synthetic_duration(n_points)
    warning = (
        f"Degenerate route duration ({stop - start:.1f}s); "
        f"using synthetic {duration:.0f}s"
    )
    logger.warning(warning)
    return start, start + duration, warning


@dataclass(frozen=True, eq=False)
class Timeline:
    """Simulated time of each waypoint, in seconds since the first one."""

    seconds: np.ndarray
    origin: Optional[datetime]  # wall time of the first waypoint, if known
    synthetic: bool = False
    estimated: bool = False  # duration derived from distance at walking speed
    warnings: tuple[str, ...] = ()

    @property
    def start(self) -> float:
        return float(self.seconds[0])

    @property
    def stop(self) -> float:
        return float(self.seconds[-1])

    @property
    def duration(self) -> float:
        return self.stop - self.start


def build_timeline(waypoints: Sequence[Waypoint]) -> Timeline:
    """Derive a strictly increasing timeline from waypoint timestamps.

    Missing, duplicate or non-monotonic timestamps are replaced by an evenly
    spaced synthetic timeline. The recorded span is kept when the last
    timestamp is later than the first. Otherwise the duration is estimated
    from the route distance at walking speed, never shorter than the
    minimum synthetic duration for the waypoint count.
    """
    n = len(waypoints)
    if n == 0:
        raise ValueError("Cannot build a timeline without waypoints")

    times = [w.time for w in waypoints]
    present = [t for t in times if t is not None]
    origin = present[0] if present else None

    if len(present) == n:
        seconds = np.array([(t - times[0]).total_seconds() for t in times])
        if n == 1 or np.all(np.diff(seconds) > 0):
            return Timeline(seconds=seconds, origin=origin)
        span = seconds[-1]
        if np.all(seconds == seconds[0]):
            reason = "all timestamps are identical"
        else:
            bad = int(np.sum(np.diff(seconds) <= 0))
            reason = f"{bad} duplicate or non-monotonic timestamps"
    elif present:
        span = 0.0
        reason = f"{n - len(present)} of {n} waypoints have no timestamp"
    else:
        span = 0.0
        reason = "no timestamps"

    estimated = False
    if span > 0:
        duration = span
    else:
        lats, lons, _ = waypoint_arrays(waypoints)
        walking = estimate_duration_from_distance(float(compute_cumulative_distances(lats, lons)[-1]))
        duration = synthetic_duration(n)
        if walking > duration:
            duration = walking
            estimated = True
            reason += f", {DEFAULT_WALKING_SPEED_KMH:g} km/h walking pace assumed"
    warning = f"Route has {reason}; using evenly spaced timeline over {duration:.0f}s"
    logger.warning(warning)
    return Timeline(
        seconds=np.linspace(0.0, duration, n),
        origin=origin,
        synthetic=True,
        estimated=estimated,
        warnings=(warning,),
    )


class PositionTrack:
    """Immutable, linearly interpolated position function over simulated time."""

    def __init__(self, waypoints: Sequence[Waypoint], timeline: Timeline):
        if len(waypoints) < 2:
            raise ValueError("A position track needs at least 2 waypoints")
        if len(waypoints) != len(timeline.seconds):
            raise ValueError(
                f"Timeline has {len(timeline.seconds)} entries for {len(waypoints)} waypoints"
            )
        times = np.array(timeline.seconds, dtype=float)
        if np.any(np.diff(times) <= 0):
            raise ValueError("Timeline must be strictly increasing")

        lats, lons, elevs = waypoint_arrays(waypoints)
        # Route center as coordinate origin
        self.origin_lat = float((lats.min() + lats.max()) / 2)
        self.origin_lon = float((lons.min() + lons.max()) / 2)

        self._times = times
        self._geodetic = np.column_stack([lats, lons, elevs])
        self._positions = gps_to_local(lats, lons, elevs, self.origin_lat, self.origin_lon)
        for arr in (self._times, self._geodetic, self._positions):
            arr.setflags(write=False)

    def __len__(self) -> int:
        return len(self._times)

    @property
    def start(self) -> float:
        return float(self._times[0])

    @property
    def stop(self) -> float:
        return float(self._times[-1])

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def positions(self) -> np.ndarray:
        """Local (east, north, up) coordinates of each waypoint in meters."""
        return self._positions

    def clamp(self, t: float) -> float:
        return min(max(float(t), self.start), self.stop)

    def _interp(self, t: float, columns: np.ndarray) -> np.ndarray:
        t = self.clamp(t)
        return np.array([np.interp(t, self._times, columns[:, k]) for k in range(3)])

    def sample(self, t: float) -> np.ndarray:
        """Local 3D position at simulated time ``t``, clamped to the track bounds."""
        return self._interp(t, self._positions)

    def sample_geodetic(self, t: float) -> tuple[float, float, float]:
        """(lat, lon, elevation) at simulated time ``t``."""
        lat, lon, ele = self._interp(t, self._geodetic)
        return float(lat), float(lon), float(ele)

    def direction(self, t: float, window: float = 5.0) -> np.ndarray:
        """Horizontal unit vector of travel around ``t``; zeros when stationary."""
        ahead = self.sample(t + window)
        behind = self.sample(t - window)
        delta = ahead[:2] - behind[:2]
        norm = float(np.hypot(delta[0], delta[1]))
        if norm < 1e-6:
            return np.zeros(2)
        return delta / norm

    def nearest_index(self, t: float) -> int:
        """Index of the waypoint closest in time to ``t``."""
        idx = int(np.searchsorted(self._times, t))
        if idx <= 0:
            return 0
        if idx >= len(self._times):
            return len(self._times) - 1
        before, after = self._times[idx - 1], self._times[idx]
        return idx - 1 if (t - before) <= (after - t) else idx

    def geodetic_at(self, index: int) -> tuple[float, float, float]:
        lat, lon, ele = self._geodetic[index]
        return float(lat), float(lon), float(ele)

    def centroid(self) -> np.ndarray:
        return self._positions.mean(axis=0)

    def mean_radius(self) -> float:
        """Average horizontal distance from the centroid to the waypoints."""
        offsets = self._positions[:, :2] - self.centroid()[:2]
        return float(np.mean(np.hypot(offsets[:, 0], offsets[:, 1])))
