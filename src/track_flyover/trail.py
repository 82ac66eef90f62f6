"""Trail tracking: the rendered path behind the moving marker, with gap detection."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .config import TrailConfig
from .route import PositionTrack

logger = logging.getLogger(__name__)


class GapKind(str, Enum):
    DISTANCE = "distance"
    TIME_JUMP = "time-jump"


@dataclass(frozen=True)
class TrailGap:
    kind: GapKind
    sim_time: float
    distance_m: float
    elapsed_s: float
    threshold_m: float
    cleared: bool


class TrailManager:
    """Accumulates trail positions at a density independent of the time-scale."""

    def __init__(
        self,
        config: Optional[TrailConfig] = None,
        track: Optional[PositionTrack] = None,
        time_scale: float = 1.0,
    ):
        self.config = config or TrailConfig()
        self.track = track  # only used for diagnostics
        self.time_scale = time_scale
        self._positions: list[np.ndarray] = []
        self._last_time: Optional[float] = None
        self.gaps: list[TrailGap] = []

    @property
    def positions(self) -> tuple[np.ndarray, ...]:
        return tuple(self._positions)

    @property
    def last_sample_time(self) -> Optional[float]:
        return self._last_time

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def min_interval(self) -> float:
        """Simulated seconds between trail samples."""
        return self.config.base_interval_s * max(self.time_scale, 1e-9)

    @property
    def gap_threshold_m(self) -> float:
        """Largest plausible jump between consecutive samples at the current time-scale."""
        expected_step = (
            self.config.reference_speed_mps * self.config.base_interval_s * self.time_scale
        )
        return max(self.config.min_gap_m, self.config.gap_multiplier * expected_step)

    def reset(self, start_time: Optional[float] = None) -> None:
        self._positions = []
        self._last_time = start_time
        self.gaps = []

    def detect_gap(self, position: np.ndarray, sim_time: float) -> Optional[TrailGap]:
        """Compare a candidate sample with the last trail point."""
        if self._last_time is None:
            return None
        elapsed = sim_time - self._last_time
        threshold = self.gap_threshold_m
        distance = 0.0
        if self._positions:
            distance = float(np.linalg.norm(np.asarray(position) - self._positions[-1]))
        if elapsed < 0:
            kind = GapKind.TIME_JUMP
        elif distance > threshold:
            kind = GapKind.DISTANCE
        else:
            return None
        return TrailGap(
            kind=kind,
            sim_time=sim_time,
            distance_m=distance,
            elapsed_s=elapsed,
            threshold_m=threshold,
            cleared=self.config.clear_on_gap,
        )

    def update(self, sim_time: float, position: np.ndarray) -> Optional[TrailGap]:
        """Offer the current position; returns the gap if one was detected."""
        gap = self.detect_gap(position, sim_time)
        if gap is not None:
            self._handle_gap(gap, position)
        elif (
            self._positions
            and self._last_time is not None
            and sim_time - self._last_time < self.min_interval
        ):
            return None

        self._positions.append(np.array(position, dtype=float))
        self._last_time = sim_time
        return gap

    def _handle_gap(self, gap: TrailGap, position: np.ndarray) -> None:
        self.gaps.append(gap)
        if gap.kind is GapKind.DISTANCE:
            logger.warning(
                "Large trail gap (%.1fkm > %.1fkm) at t=%.1fs",
                gap.distance_m / 1000, gap.threshold_m / 1000, gap.sim_time,
            )
        else:
            logger.warning("Time jump of %.1fs detected at t=%.1fs", gap.elapsed_s, gap.sim_time)

        if not self.config.clear_on_gap:
            logger.debug("Trail reset suppressed; keeping %d points", len(self._positions))
            return

        self._positions = []
        if self.track is not None:
            idx = self.track.nearest_index(gap.sim_time)
            lat, lon, ele = self.track.geodetic_at(idx)
            dist = float(np.linalg.norm(self.track.positions[idx] - np.asarray(position)))
            logger.info(
                "Nearest waypoint idx=%d t=%.1fs lat=%.6f lon=%.6f ele=%.1f "
                "(dt=%.1fs) distToCurrent=%.3fkm",
                idx, self.track.times[idx], lat, lon, ele,
                abs(self.track.times[idx] - gap.sim_time), dist / 1000,
            )
