"""Tests for the playback state machine."""

from __future__ import annotations

import numpy as np
import pytest

from track_flyover.analysis import analyze_route
from track_flyover.config import PlaybackConfig
from track_flyover.playback import Phase, PlaybackController
from track_flyover.scene import HeadlessScene, estimate_frames, run_headless


@pytest.fixture
def profile(line_route):
    return analyze_route(line_route)


def _playing(profile, **config):
    controller = PlaybackController(profile, PlaybackConfig(**config))
    controller.start(0.0)
    controller.frame(3.0)
    assert controller.phase is Phase.PLAYING
    return controller


# ---------------------------------------------------------------------------
# Phase transitions
# ---------------------------------------------------------------------------

class TestPhases:
    def test_starts_not_started(self, profile):
        controller = PlaybackController(profile)
        assert controller.phase is Phase.NOT_STARTED
        assert controller.sim_time == controller.start_time
        assert controller.time_scale == 0.0

    def test_start_enters_intro(self, profile):
        controller = PlaybackController(profile)
        controller.start(0.0)
        assert controller.phase is Phase.INTRO
        assert controller.ready_for_capture
        assert not controller.intro_finished

    def test_intro_elapses_into_playing_at_planned_scale(self, profile):
        controller = PlaybackController(profile)
        controller.start(0.0)
        controller.frame(1.5)
        assert controller.phase is Phase.INTRO
        controller.frame(3.0)
        assert controller.phase is Phase.PLAYING
        assert controller.time_scale == profile.speed.scale
        assert controller.intro_finished

    def test_clock_paused_during_intro(self, profile):
        controller = PlaybackController(profile)
        controller.start(0.0)
        controller.frame(1.0)
        controller.frame(2.0)
        assert controller.sim_time == controller.start_time

    def test_clock_advances_while_playing(self, profile):
        controller = _playing(profile)
        controller.frame(4.0)
        assert controller.sim_time == pytest.approx(profile.speed.scale * 1.0)

    def test_reaching_stop_enters_outro(self, profile):
        controller = _playing(profile)
        controller.clock.current_time = controller.stop_time
        controller.frame(3.1)
        assert controller.phase is Phase.OUTRO
        assert not controller.clock.should_animate
        assert not controller.playback_complete

    def test_outro_elapses_into_complete(self, profile):
        controller = _playing(profile)
        controller.clock.current_time = controller.stop_time
        controller.frame(3.1)
        controller.frame(10.0)
        assert controller.phase is Phase.OUTRO
        controller.frame(10.2)
        assert controller.playback_complete

    def test_skip_outro_completes_immediately(self, profile):
        controller = _playing(profile, skip_outro=True)
        controller.clock.current_time = controller.stop_time
        controller.frame(3.1)
        assert controller.phase is Phase.COMPLETE

    def test_skip_intro_goes_straight_to_playing(self, profile):
        controller = PlaybackController(profile, PlaybackConfig(skip_intro=True))
        controller.start(0.0)
        assert controller.phase is Phase.PLAYING
        assert controller.intro_finished

    def test_manual_time_scale_overrides_plan(self, profile):
        controller = _playing(profile, manual_time_scale=25.0)
        assert controller.time_scale == 25.0

    def test_start_twice_is_an_error(self, profile):
        controller = PlaybackController(profile)
        controller.start(0.0)
        with pytest.raises(RuntimeError):
            controller.start(1.0)


class TestSceneReadiness:
    def test_waits_for_scene(self, profile):
        controller = PlaybackController(profile)
        for i in range(10):
            controller.frame(i * 0.5)
        assert controller.phase is Phase.NOT_STARTED
        assert not controller.ready_for_capture

    def test_settle_delay_after_ready(self, profile):
        controller = PlaybackController(profile)
        controller.scene_ready(0.0)
        controller.frame(0.5)
        assert controller.phase is Phase.NOT_STARTED
        controller.frame(1.0)
        assert controller.phase is Phase.INTRO


# ---------------------------------------------------------------------------
# Restart and teardown
# ---------------------------------------------------------------------------

class TestRestart:
    @pytest.mark.parametrize("advance", [0, 1, 2, 3])
    def test_restart_from_any_phase(self, profile, advance):
        controller = PlaybackController(profile)
        if advance >= 1:
            controller.start(0.0)
        if advance >= 2:
            controller.frame(3.0)
            controller.frame(20.0)
        if advance >= 3:
            controller.clock.current_time = controller.stop_time
            controller.frame(20.1)
            controller.frame(30.0)
            assert controller.playback_complete
        controller.restart(40.0)
        assert controller.phase is Phase.INTRO
        assert controller.sim_time == controller.start_time
        assert not controller.intro_finished
        assert not controller.playback_complete

    def test_restart_clears_trail_and_smoothing(self, profile):
        controller = _playing(profile)
        controller.frame(10.0)
        assert len(controller.trail) > 0
        controller.restart(11.0)
        assert len(controller.trail) == 0
        assert controller.camera.state.target is not None  # re-seeded for the intro
        np.testing.assert_allclose(controller.camera.state.target, controller.track.sample(controller.start_time))
        assert controller.time_scale == 0.0

    def test_restart_leaves_clock_clamped(self, profile):
        controller = _playing(profile)
        controller.restart(5.0)
        controller.clock.current_time = controller.stop_time + 100
        assert controller.sim_time == controller.stop_time

    def test_teardown_refuses_frames(self, profile):
        scene = HeadlessScene()
        controller = PlaybackController(profile, scene=scene)
        controller.teardown()
        assert scene.detached
        with pytest.raises(RuntimeError):
            controller.frame(0.0)
        with pytest.raises(RuntimeError):
            controller.restart(0.0)


# ---------------------------------------------------------------------------
# Clamping and degenerate bounds
# ---------------------------------------------------------------------------

class TestClamping:
    def test_race_guard_resets_early_end_time(self, profile):
        controller = PlaybackController(profile)
        controller.clock.current_time = controller.stop_time
        controller.pre_frame(0.0)
        assert controller.sim_time == controller.start_time
        assert any("before playback started" in w for w in controller.warnings)

    def test_race_guard_only_in_first_frames(self, profile):
        controller = PlaybackController(profile)
        for i in range(5):
            controller.frame(i * 0.1)
        controller.clock.current_time = controller.stop_time
        controller.pre_frame(1.0)
        assert controller.sim_time == controller.stop_time

    def test_time_never_passes_stop(self, profile):
        controller = _playing(profile, manual_time_scale=100.0)
        for i in range(1, 40):
            controller.frame(3.0 + i)
            assert controller.start_time <= controller.sim_time <= controller.stop_time

    def test_bounds_are_simulated_times(self, profile):
        controller = PlaybackController(profile)
        assert isinstance(controller.start_time, float)
        assert isinstance(controller.stop_time, float)
        assert (controller.start_time, controller.stop_time) == (profile.start, profile.stop)
        controller.start(0.0)
        assert controller.phase is Phase.INTRO

    def test_degenerate_bounds_get_synthetic_duration(self, profile):
        controller = PlaybackController(profile, bounds=(10.0, 10.0))
        assert controller.start_time == 10.0
        assert controller.stop_time == 10.0 + max(60.0, len(profile.waypoints))
        assert controller.warnings


# ---------------------------------------------------------------------------
# Frame output
# ---------------------------------------------------------------------------

class TestFrames:
    def test_no_pose_before_start(self, profile):
        controller = PlaybackController(profile)
        assert controller.frame(0.0) is None

    def test_scene_receives_poses_and_trail(self, profile):
        scene = HeadlessScene()
        controller = PlaybackController(profile, scene=scene)
        controller.start(0.0)
        controller.frame(0.0)
        controller.frame(1.0)
        assert len(scene.poses) == 2
        assert scene.trail_updates == 1
        assert len(scene.trail) == 1

    def test_intro_progress_from_wall_time(self, profile):
        controller = PlaybackController(profile)
        controller.start(0.0)
        controller.frame(1.5)
        assert controller.camera.state.tilt_progress == pytest.approx(0.5)

    def test_snapshot(self, profile):
        controller = _playing(profile)
        state = controller.snapshot()
        assert state.phase is Phase.PLAYING
        assert state.time_scale == profile.speed.scale
        assert state.pose is controller.pose

    def test_run_headless_completes(self, profile):
        scene = HeadlessScene()
        controller = PlaybackController(profile, PlaybackConfig(manual_time_scale=50.0), scene=scene)
        progress = []
        frames = run_headless(controller, fps=10, progress_callback=lambda c, t: progress.append((c, t)))
        assert controller.playback_complete
        assert controller.intro_finished
        assert len(progress) == frames
        assert len(scene.poses) > 0
        assert progress[-1][1] == estimate_frames(controller, 10)
        assert len(scene.trail) > 10

    def test_run_headless_stops_at_max_frames(self, profile):
        controller = PlaybackController(profile)
        assert run_headless(controller, fps=10, max_frames=5) == 5
        assert not controller.playback_complete

    def test_estimate_frames(self, profile):
        controller = PlaybackController(profile, PlaybackConfig(manual_time_scale=10.0))
        # 1s settle + 59s of route + 3s intro + 7s outro
        assert estimate_frames(controller, 10) == 701


class TestIntroHandOver:
    @staticmethod
    def _hand_over(route, fps=30):
        controller = PlaybackController(analyze_route(route))
        controller.start(0.0)
        last_intro = None
        frame = 0
        while controller.phase is not Phase.PLAYING:
            pose = controller.frame(frame / fps)
            if controller.phase is Phase.INTRO:
                last_intro = pose
            frame += 1
        return last_intro, controller.pose

    @staticmethod
    def _heading_change(a, b) -> float:
        diff = abs(a.heading_deg - b.heading_deg) % 360
        return min(diff, 360 - diff)

    def test_orbit_route_has_no_jump(self, circle_route):
        last_intro, first_playing = self._hand_over(circle_route)
        jump = np.linalg.norm(np.subtract(first_playing.position, last_intro.position))
        assert jump < 1.0
        assert self._heading_change(last_intro, first_playing) < 0.5
        assert first_playing.pitch_deg == pytest.approx(last_intro.pitch_deg, abs=0.5)

    def test_follow_route_has_no_jump(self, line_route):
        last_intro, first_playing = self._hand_over(line_route)
        jump = np.linalg.norm(np.subtract(first_playing.position, last_intro.position))
        assert jump < 1.0
        assert self._heading_change(last_intro, first_playing) < 0.5
