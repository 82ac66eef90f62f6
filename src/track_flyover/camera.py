"""3D camera system: per-frame camera poses following the route.

All positions are local (east, north, up) meters, the same frame as
``PositionTrack.positions``.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from .config import CameraConfig
from .patterns import PatternDescriptor
from .route import PositionTrack

_NORTH = np.array([0.0, 1.0])
_MAX_PITCH_DEG = 89.0


@dataclass(frozen=True)
class CameraPose:
    position: tuple[float, float, float]  # camera (x, y, z) in meters
    focal_point: tuple[float, float, float]  # look-at (x, y, z) in meters

    @property
    def heading_deg(self) -> float:
        """Compass heading of the view direction (0=north, 90=east)."""
        dx = self.focal_point[0] - self.position[0]
        dy = self.focal_point[1] - self.position[1]
        return math.degrees(math.atan2(dx, dy)) % 360

    @property
    def pitch_deg(self) -> float:
        """Elevation angle of the view direction; -90 looks straight down."""
        dx = self.focal_point[0] - self.position[0]
        dy = self.focal_point[1] - self.position[1]
        dz = self.focal_point[2] - self.position[2]
        return math.degrees(math.atan2(dz, math.hypot(dx, dy)))


@dataclass
class CameraState:
    """Smoothing memory carried from one frame to the next."""

    target: Optional[np.ndarray] = None  # smoothed tracked position
    look_ahead: Optional[np.ndarray] = None  # smoothed look-at point
    back_m: Optional[float] = None
    height_m: Optional[float] = None
    heading: Optional[np.ndarray] = None  # last known direction of travel
    azimuth_deg: Optional[float] = None  # orbit angle around the centroid
    azimuth_progress: float = 0.0
    tilt_progress: float = 0.0
    outro_start: Optional[CameraPose] = None
    last_pose: Optional[CameraPose] = None


def ease_in_out_cubic(t: float) -> float:
    """Cubic ease-in-out: 0→1, symmetric about the midpoint."""
    t = max(0.0, min(1.0, t))
    if t < 0.5:
        return 4.0 * t * t * t
    return 1.0 - (-2.0 * t + 2.0) ** 3 / 2.0


def interpolate_pose(start: CameraPose, end: CameraPose, t: float) -> CameraPose:
    """Interpolate two camera poses with ease-in-out."""
    s = ease_in_out_cubic(t)
    pos = tuple(a + (b - a) * s for a, b in zip(start.position, end.position))
    foc = tuple(a + (b - a) * s for a, b in zip(start.focal_point, end.focal_point))
    return CameraPose(position=pos, focal_point=foc)


def _lerp(
    previous: Optional[np.ndarray],
    raw: np.ndarray,
    alpha: float,
    dead_band: float = 0.0,
) -> np.ndarray:
    """Exponential smoothing that holds still while ``raw`` is within ``dead_band`` meters."""
    if previous is None:
        return np.array(raw, dtype=float)
    if dead_band > 0 and np.linalg.norm(raw - previous) < dead_band:
        return previous
    return previous * (1 - alpha) + raw * alpha


def _lerp_scalar(previous: Optional[float], raw: float, alpha: float) -> float:
    if previous is None:
        return raw
    return previous * (1 - alpha) + raw * alpha


def _rotate(vec: np.ndarray, degrees: float) -> np.ndarray:
    """Rotate a 2D vector clockwise (compass direction) by ``degrees``."""
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return np.array([vec[0] * c + vec[1] * s, -vec[0] * s + vec[1] * c])


def _pose(position: np.ndarray, focal: np.ndarray) -> CameraPose:
    return CameraPose(
        position=tuple(float(v) for v in position),
        focal_point=tuple(float(v) for v in focal),
    )


def apply_pitch(pose: CameraPose, adjustment_deg: float) -> CameraPose:
    """Tilt the view direction by ``adjustment_deg`` keeping the camera in place."""
    if adjustment_deg == 0:
        return pose
    cam = np.array(pose.position)
    d = np.array(pose.focal_point) - cam
    horizontal = math.hypot(d[0], d[1])
    if horizontal < 1e-6:
        return pose
    length = float(np.linalg.norm(d))
    pitch = math.atan2(d[2], horizontal) + math.radians(adjustment_deg)
    limit = math.radians(_MAX_PITCH_DEG)
    pitch = max(-limit, min(limit, pitch))
    ux, uy = d[0] / horizontal, d[1] / horizontal
    focal = cam + np.array([
        ux * length * math.cos(pitch),
        uy * length * math.cos(pitch),
        length * math.sin(pitch),
    ])
    return _pose(cam, focal)


class CameraController:
    """Derives a camera pose each frame from the track, the route pattern and smoothing state.

    The follow camera sits behind and above the tracked position, looking
    toward a point ahead along the direction of travel. Loop-shaped routes use
    an orbit camera instead, placed outside the loop and slowly drifting in
    azimuth around the route centroid. Both smooth lazily: the tracked target
    holds still until the position moves past a dead-band, and the dead-band
    and look-ahead shrink as the route nears its end.

    The intro eases from a top-down view onto the pose the first tracking
    frame produces; the outro climbs from the last tracking pose to a high
    top-down view.
    """

    def __init__(
        self,
        track: PositionTrack,
        pattern: PatternDescriptor,
        config: Optional[CameraConfig] = None,
    ):
        self.track = track
        self.pattern = pattern
        self.config = config or CameraConfig()
        self.adjustment = pattern.adjustment
        self.centroid = track.centroid()
        self.radius = track.mean_radius()
        self.state = CameraState()

    @property
    def alpha(self) -> float:
        if self.adjustment.smoothing_override is not None:
            return self.adjustment.smoothing_override
        return self.config.smoothing_alpha

    def reset(self) -> None:
        self.state = CameraState()

    def initialize(self, t: float) -> None:
        """Seed the smoothing state at the position for simulated time ``t``."""
        position = self.track.sample(t)
        self.state = CameraState(
            target=position,
            look_ahead=position.copy(),
            back_m=self.config.back_m,
            height_m=self.config.height_m,
        )
        self._travel_heading(t)

    def _travel_heading(self, t: float) -> np.ndarray:
        direction = self.track.direction(t, self.config.direction_window_s)
        if np.any(direction):
            self.state.heading = direction
        elif self.state.heading is None:
            self.state.heading = _NORTH.copy()
        return self.state.heading

    def route_progress(self, t: float) -> float:
        """Fraction of the track covered at simulated time ``t``."""
        return (self.track.clamp(t) - self.track.start) / (self.track.stop - self.track.start)

    # ── Intro / outro ───────────────────────────────────────────────────

    def _top_down_pose(self, t: float, height: float) -> CameraPose:
        position = self.track.sample(t)
        cam = position.copy()
        cam[2] += height
        return _pose(cam, position)

    def _steady_pose(self, t: float) -> CameraPose:
        """The pose the next tracking frame at ``t`` produces, leaving the state untouched."""
        saved = replace(self.state)
        pose = self.playing_pose(t, advance_azimuth=False)
        self.state = saved
        return pose

    def intro_pose(self, t: float, progress: float) -> CameraPose:
        """Ease from a top-down view onto the first tracking pose; ``progress`` in [0, 1]."""
        start = self._top_down_pose(t, self.config.height_m)
        pose = interpolate_pose(start, self._steady_pose(t), progress)
        eased = ease_in_out_cubic(progress)
        self.state.azimuth_progress = eased
        self.state.tilt_progress = eased
        self.state.last_pose = pose
        return pose

    def outro_pose(self, t: float, progress: float) -> CameraPose:
        """Ease from the last tracking pose up to a high top-down view of the final position."""
        if self.state.outro_start is None:
            self.state.outro_start = self.state.last_pose or self._steady_pose(t)
        end = self._top_down_pose(t, self.config.height_m * self.config.outro_height_factor)
        eased = ease_in_out_cubic(progress)
        self.state.azimuth_progress = 1.0 - eased
        self.state.tilt_progress = 1.0 - eased
        pose = interpolate_pose(self.state.outro_start, end, progress)
        self.state.last_pose = pose
        return pose

    # ── Playing ─────────────────────────────────────────────────────────

    def playing_pose(self, t: float, advance_azimuth: bool = True) -> CameraPose:
        if self.state.target is None:
            self.initialize(t)
        if self.pattern.type.orbits_centroid:
            pose = self._orbit_pose(t, advance_azimuth)
        else:
            pose = self._follow_pose(t)
        pose = apply_pitch(pose, self.adjustment.pitch_adjustment_deg)
        self.state.last_pose = pose
        return pose

    def _smooth_offsets(self, alpha: float) -> tuple[float, float]:
        adj = self.adjustment
        self.state.back_m = _lerp_scalar(
            self.state.back_m, self.config.back_m * adj.distance_multiplier, alpha,
        )
        self.state.height_m = _lerp_scalar(
            self.state.height_m, self.config.height_m * adj.height_multiplier, alpha,
        )
        return self.state.back_m, self.state.height_m

    def _dead_band(self, base: float, progress: float) -> float:
        return base * (1 - progress * self.config.dead_band_shrink)

    def _follow_pose(self, t: float) -> CameraPose:
        alpha = self.alpha
        progress = self.route_progress(t)
        raw = self.track.sample(t)
        heading = self._travel_heading(t)
        look_ahead = (
            self.config.look_ahead_m
            * self.adjustment.look_ahead_multiplier
            * (1 - progress * self.config.look_ahead_shrink)
        )
        look_raw = raw.copy()
        look_raw[:2] += heading * look_ahead

        target = _lerp(self.state.target, raw, alpha, self._dead_band(self.config.dead_band_m, progress))
        look = _lerp(self.state.look_ahead, look_raw, alpha, self.config.look_dead_band_m)
        self.state.target, self.state.look_ahead = target, look
        back, height = self._smooth_offsets(alpha)

        forward = look[:2] - target[:2]
        norm = math.hypot(forward[0], forward[1])
        forward = forward / norm if norm > 1e-6 else heading
        behind = _rotate(-forward, self.config.heading_offset_deg)

        cam = target.copy()
        cam[:2] += behind * back
        cam[2] += height
        focal = target + (look - target) * self.config.look_blend
        return _pose(cam, focal)

    def _orbit_pose(self, t: float, advance: bool) -> CameraPose:
        alpha = self.alpha
        progress = self.route_progress(t)
        target = _lerp(
            self.state.target, self.track.sample(t), alpha,
            self._dead_band(self.config.orbit_dead_band_m, progress),
        )
        self.state.target = target

        if self.state.azimuth_deg is None:
            offset = target[:2] - self.centroid[:2]
            self.state.azimuth_deg = math.degrees(math.atan2(offset[1], offset[0])) % 360
        elif advance:
            self.state.azimuth_deg = (self.state.azimuth_deg + self.config.azimuth_drift_deg) % 360

        back, height = self._smooth_offsets(alpha)
        az = math.radians(self.state.azimuth_deg)
        cam = self.centroid.copy()
        cam[:2] += np.array([math.cos(az), math.sin(az)]) * (self.radius + back)
        cam[2] += height

        centroid_weight = min(1.0, self.config.look_blend * self.adjustment.look_ahead_multiplier)
        look_raw = target + (self.centroid - target) * centroid_weight
        look = _lerp(self.state.look_ahead, look_raw, alpha, self.config.look_dead_band_m)
        self.state.look_ahead = look
        return _pose(cam, look)
