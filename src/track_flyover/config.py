"""Tunable settings for route analysis, speed planning and playback."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class PatternThresholds:
    """Thresholds used by the route classifier."""

    close_proximity_m: float = 50.0  # start/end distance for loop-family routes
    path_overlap_pct: float = 50.0  # overlap above this means out-and-back
    proximity_m: float = 10.0  # distance for overlap and intersection checks
    min_repetition_length: int = 20  # points in the shortest repeated segment
    min_segment_span_m: float = 100.0  # shortest path a repeated segment may cover
    min_crossing_loop_m: float = 100.0  # track between two passes of one crossing
    max_analysis_points: int = 2000  # downsample above this before O(n^2) work

    def __post_init__(self) -> None:
        if self.proximity_m <= 0 or self.close_proximity_m <= 0:
            raise ValueError("Proximity thresholds must be positive")
        if not 0 <= self.path_overlap_pct <= 100:
            raise ValueError("path_overlap_pct must be between 0 and 100")
        if self.min_repetition_length < 2:
            raise ValueError("min_repetition_length must be at least 2")
        if self.max_analysis_points < 10:
            raise ValueError("max_analysis_points must be at least 10")
        if self.min_crossing_loop_m < 0:
            raise ValueError("min_crossing_loop_m must not be negative")


@dataclass(frozen=True)
class SpeedSettings:
    """Inputs to the speed planner."""

    default_scale: float = 2.0
    min_scale: float = 1.0
    max_scale: float = 100.0
    target_video_minutes: float = 10.0
    buffer_minutes: float = 0.5
    adaptive: bool = True

    def __post_init__(self) -> None:
        if self.min_scale <= 0 or self.max_scale < self.min_scale:
            raise ValueError(
                f"Invalid time-scale range [{self.min_scale}, {self.max_scale}]"
            )
        if self.target_video_minutes - self.buffer_minutes <= 0:
            raise ValueError(
                "target_video_minutes must be larger than buffer_minutes "
                f"({self.target_video_minutes} <= {self.buffer_minutes})"
            )


@dataclass(frozen=True)
class CameraConfig:
    """Base camera parameters; pattern adjustments are applied on top."""

    back_m: float = 3000.0  # horizontal distance behind the position
    height_m: float = 1800.0  # height above the position
    look_ahead_m: float = 800.0
    look_blend: float = 0.5  # 0 = look at position, 1 = look at look-ahead point
    smoothing_alpha: float = 0.15
    azimuth_drift_deg: float = 0.05  # per frame, orbit mode only
    heading_offset_deg: float = 25.0  # camera sits this far off directly behind
    outro_height_factor: float = 3.0
    direction_window_s: float = 5.0  # simulated seconds for travel direction
    dead_band_m: float = 25.0  # the tracked target ignores smaller moves
    orbit_dead_band_m: float = 15.0
    look_dead_band_m: float = 40.0
    dead_band_shrink: float = 0.6  # share of the dead-band gone at the end of the route
    look_ahead_shrink: float = 0.7  # share of the look-ahead gone at the end of the route

    def __post_init__(self) -> None:
        if not 0 < self.smoothing_alpha <= 1:
            raise ValueError("smoothing_alpha must be in (0, 1]")
        if not 0 <= self.look_blend <= 1:
            raise ValueError("look_blend must be in [0, 1]")
        if self.back_m < 0 or self.height_m <= 0:
            raise ValueError("Camera offsets must be positive")
        if min(self.dead_band_m, self.orbit_dead_band_m, self.look_dead_band_m) < 0:
            raise ValueError("Dead-band distances must not be negative")
        if not (0 <= self.dead_band_shrink <= 1 and 0 <= self.look_ahead_shrink <= 1):
            raise ValueError("Progress shrink factors must be in [0, 1]")


@dataclass(frozen=True)
class TrailConfig:
    """Trail sampling density and gap detection."""

    base_interval_s: float = 0.1  # wall seconds between samples
    reference_speed_mps: float = 5.0
    gap_multiplier: float = 100.0
    min_gap_m: float = 500.0
    clear_on_gap: bool = False

    def __post_init__(self) -> None:
        if self.base_interval_s <= 0:
            raise ValueError("base_interval_s must be positive")


@dataclass(frozen=True)
class PlaybackConfig:
    """Phase timing and debug switches for the playback controller."""

    intro_seconds: float = 3.0
    outro_seconds: float = 7.0
    settle_seconds: float = 1.0
    race_guard_frames: int = 5
    skip_intro: bool = False
    skip_outro: bool = False
    manual_time_scale: Optional[float] = None
    camera: CameraConfig = field(default_factory=CameraConfig)
    trail: TrailConfig = field(default_factory=TrailConfig)

    def __post_init__(self) -> None:
        if self.intro_seconds <= 0 or self.outro_seconds <= 0:
            raise ValueError("Intro and outro durations must be positive")
        if self.settle_seconds < 0:
            raise ValueError("settle_seconds must not be negative")
        if self.manual_time_scale is not None and self.manual_time_scale <= 0:
            raise ValueError("manual_time_scale must be positive")
