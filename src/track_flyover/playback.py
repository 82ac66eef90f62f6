"""Playback state machine: phases, the simulated clock and per-frame orchestration.

A ``PlaybackController`` owns every piece of mutable playback state. The
scene calls ``pre_frame`` and ``post_frame`` once per rendered frame with the
current wall time; all phase timing (intro and outro progress, azimuth drift)
is derived inside those two callbacks.

Phases::

    NOT_STARTED -> INTRO -> PLAYING -> OUTRO -> COMPLETE
         ^__________ restart() from any phase __________|
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .analysis import RouteProfile
from .camera import CameraController, CameraPose, CameraState
from .clock import SimulatedClock
from .config import PlaybackConfig
from .route import playable_bounds
from .scene import SceneRenderer
from .trail import TrailManager

logger = logging.getLogger(__name__)


class Phase(Enum):
    NOT_STARTED = "not-started"
    INTRO = "intro"
    PLAYING = "playing"
    OUTRO = "outro"
    COMPLETE = "complete"


_TRAIL_PHASES = (Phase.INTRO, Phase.PLAYING, Phase.OUTRO)


@dataclass(frozen=True)
class PlaybackState:
    """Read-only snapshot of the controller, taken after a frame."""

    phase: Phase
    sim_time: float
    time_scale: float
    frame: int
    camera: CameraState
    pose: Optional[CameraPose]


class PlaybackController:
    """Drives one route from scene readiness to the end of the outro."""

    def __init__(
        self,
        profile: RouteProfile,
        config: Optional[PlaybackConfig] = None,
        scene: Optional[SceneRenderer] = None,
        bounds: Optional[tuple[float, float]] = None,
    ):
        self.profile = profile
        self.config = config or PlaybackConfig()
        self.scene = scene
        self.track = profile.track
        self.warnings: list[str] = list(profile.warnings)

        start, stop = bounds if bounds is not None else (self.track.start, self.track.stop)
        start, stop, warning = playable_bounds(start, stop, len(self.track))
        if warning:
            self.warnings.append(warning)
        self.clock = SimulatedClock(start, stop)

        if self.config.manual_time_scale is not None:
            self.target_time_scale = self.config.manual_time_scale
            logger.info("Manual time-scale override: %gx", self.target_time_scale)
        else:
            self.target_time_scale = profile.speed.scale

        self.camera = CameraController(self.track, profile.pattern, self.config.camera)
        self.trail = TrailManager(self.config.trail, self.track, self.target_time_scale)

        self.phase = Phase.NOT_STARTED
        self.pose: Optional[CameraPose] = None
        self._frame = 0
        self._ready_at: Optional[float] = None
        self._phase_started: Optional[float] = None
        self._last_wall: Optional[float] = None
        self._intro_finished = False
        self._torn_down = False

    # ── Bounds and signals ──────────────────────────────────────────────

    @property
    def start_time(self) -> float:
        return self.clock.start

    @property
    def stop_time(self) -> float:
        return self.clock.stop

    @property
    def sim_time(self) -> float:
        return self.clock.current_time

    @property
    def time_scale(self) -> float:
        """Current clock multiplier; zero until the intro has finished."""
        return self.clock.multiplier

    @property
    def frame_count(self) -> int:
        return self._frame

    @property
    def ready_for_capture(self) -> bool:
        """The scene is loaded and the camera sequence has begun."""
        return self._ready_at is not None and self.phase is not Phase.NOT_STARTED

    @property
    def intro_finished(self) -> bool:
        return self._intro_finished

    @property
    def playback_complete(self) -> bool:
        return self.phase is Phase.COMPLETE

    def snapshot(self) -> PlaybackState:
        return PlaybackState(
            phase=self.phase,
            sim_time=self.sim_time,
            time_scale=self.time_scale,
            frame=self._frame,
            camera=self.camera.state,
            pose=self.pose,
        )

    # ── Lifecycle ───────────────────────────────────────────────────────

    def _check_alive(self) -> None:
        if self._torn_down:
            raise RuntimeError("Playback controller has been torn down")

    def scene_ready(self, wall_time: float) -> None:
        """Record that imagery and terrain are loaded; the intro starts after the settle delay."""
        self._check_alive()
        if self._ready_at is None:
            self._ready_at = wall_time
            logger.debug("Scene ready at %.2fs, settling for %.1fs", wall_time, self.config.settle_seconds)

    def start(self, wall_time: float) -> None:
        """Begin immediately without waiting for the settle delay."""
        self._check_alive()
        if self.phase is not Phase.NOT_STARTED:
            raise RuntimeError(f"Playback already started ({self.phase.value}); use restart()")
        if self._ready_at is None:
            self._ready_at = wall_time
        self._begin(wall_time)

    def restart(self, wall_time: float) -> None:
        """Return to the start bound and replay from the intro."""
        self._check_alive()
        logger.info("Restarting playback from %s", self.phase.value)
        self.camera.reset()
        self.trail.reset()
        self._intro_finished = False
        self.pose = None
        self.clock.should_animate = False
        self.clock.multiplier = 0.0
        with self.clock.unbounded():
            self.clock.current_time = self.clock.start
        if self._ready_at is None:
            self._ready_at = wall_time
        self._enter_intro(wall_time)

    def teardown(self) -> None:
        """Detach from the scene and drop the trail; the controller is unusable afterwards."""
        if self._torn_down:
            return
        if self.scene is not None:
            self.scene.detach()
            self.scene = None
        self.trail.reset()
        self.clock.should_animate = False
        self._torn_down = True
        logger.debug("Playback torn down after %d frames", self._frame)

    # ── Transitions ─────────────────────────────────────────────────────

    def _begin(self, wall_time: float) -> None:
        if self.config.skip_intro:
            self._enter_intro(wall_time)
            self._enter_playing(wall_time)
        else:
            self._enter_intro(wall_time)

    def _enter_intro(self, wall_time: float) -> None:
        self.phase = Phase.INTRO
        self._phase_started = wall_time
        self.clock.should_animate = False
        self.clock.current_time = self.clock.start
        self.camera.initialize(self.clock.start)
        logger.info("Intro started (%.1fs)", self.config.intro_seconds)

    def _enter_playing(self, wall_time: float) -> None:
        self.phase = Phase.PLAYING
        self._phase_started = wall_time
        self._intro_finished = True
        self.clock.multiplier = self.target_time_scale
        self.clock.should_animate = True
        self.trail.time_scale = self.target_time_scale
        logger.info("Playing at %gx from t=%.1fs", self.target_time_scale, self.clock.current_time)

    def _enter_outro(self, wall_time: float) -> None:
        self.clock.should_animate = False
        if self.config.skip_outro:
            logger.info("Route ended at t=%.1fs, outro skipped", self.clock.current_time)
            self._complete()
            return
        self.phase = Phase.OUTRO
        self._phase_started = wall_time
        logger.info("Route ended at t=%.1fs, outro started (%.1fs)",
                    self.clock.current_time, self.config.outro_seconds)

    def _complete(self) -> None:
        self.phase = Phase.COMPLETE
        logger.info("Playback complete after %d frames", self._frame)

    def _phase_progress(self, wall_time: float, duration: float) -> float:
        if self._phase_started is None:
            return 0.0
        return min(1.0, max(0.0, (wall_time - self._phase_started) / duration))

    # ── Frame callbacks ─────────────────────────────────────────────────

    def pre_frame(self, wall_time: float) -> None:
        """Advance the clock and phase, then update the trail."""
        self._check_alive()
        self._frame += 1
        wall_dt = 0.0 if self._last_wall is None else wall_time - self._last_wall
        self._last_wall = wall_time

        if self.phase is Phase.NOT_STARTED:
            if (
                self._frame <= self.config.race_guard_frames
                and self.clock.current_time >= self.clock.stop
            ):
                warning = (
                    f"Clock at end bound (t={self.clock.current_time:.1f}s) before playback "
                    f"started; reset to {self.clock.start:.1f}s"
                )
                logger.warning(warning)
                self.warnings.append(warning)
                self.clock.current_time = self.clock.start
            if (
                self._ready_at is not None
                and wall_time - self._ready_at >= self.config.settle_seconds
            ):
                self._begin(wall_time)
        elif self.phase is Phase.INTRO:
            if wall_time - self._phase_started >= self.config.intro_seconds:
                self._enter_playing(wall_time)
        elif self.phase is Phase.PLAYING:
            self.clock.tick(wall_dt)
            if self.clock.at_end:
                self._enter_outro(wall_time)
        elif self.phase is Phase.OUTRO:
            if wall_time - self._phase_started >= self.config.outro_seconds:
                self._complete()

        if self.phase in _TRAIL_PHASES:
            t = self.clock.current_time
            before = self.trail.last_sample_time
            self.trail.update(t, self.track.sample(t))
            if self.scene is not None and self.trail.last_sample_time != before:
                self.scene.update_trail(self.trail.positions)

    def post_frame(self, wall_time: float) -> Optional[CameraPose]:
        """Compute this frame's camera pose and hand it to the scene."""
        self._check_alive()
        t = self.clock.current_time
        if self.phase is Phase.INTRO:
            progress = self._phase_progress(wall_time, self.config.intro_seconds)
            pose = self.camera.intro_pose(t, progress)
        elif self.phase is Phase.PLAYING:
            pose = self.camera.playing_pose(t)
        elif self.phase is Phase.OUTRO:
            progress = self._phase_progress(wall_time, self.config.outro_seconds)
            pose = self.camera.outro_pose(t, progress)
        elif self.phase is Phase.COMPLETE:
            pose = self.camera.state.last_pose
        else:
            pose = None

        self.pose = pose
        if pose is not None and self.scene is not None:
            self.scene.apply_camera(pose)
        return pose

    def frame(self, wall_time: float) -> Optional[CameraPose]:
        """Run both frame callbacks for one rendered frame."""
        self.pre_frame(wall_time)
        return self.post_frame(wall_time)
