"""Scene renderer interface and a headless, frame-driven stand-in."""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional, Sequence

import numpy as np

from .camera import CameraPose

if TYPE_CHECKING:
    from .playback import PlaybackController

logger = logging.getLogger(__name__)


class SceneRenderer(ABC):
    """Receives the camera pose and trail every frame; draws the world."""

    @abstractmethod
    def apply_camera(self, pose: CameraPose) -> None:
        """Place the camera for the frame being rendered."""

    @abstractmethod
    def update_trail(self, positions: Sequence[np.ndarray]) -> None:
        """Replace the rendered trail with ``positions``."""

    def detach(self) -> None:
        """Release renderer resources; called once on teardown."""


class HeadlessScene(SceneRenderer):
    """Records what a renderer would have drawn."""

    def __init__(self):
        self.poses: list[CameraPose] = []
        self.trail: tuple[np.ndarray, ...] = ()
        self.trail_updates = 0
        self.detached = False

    def apply_camera(self, pose: CameraPose) -> None:
        self.poses.append(pose)

    def update_trail(self, positions: Sequence[np.ndarray]) -> None:
        self.trail = tuple(positions)
        self.trail_updates += 1

    def detach(self) -> None:
        self.detached = True


def estimate_frames(controller: "PlaybackController", fps: int) -> int:
    """Frames a full playback takes at ``fps``, intro and outro included."""
    cfg = controller.config
    seconds = cfg.settle_seconds + (controller.stop_time - controller.start_time) / controller.target_time_scale
    if not cfg.skip_intro:
        seconds += cfg.intro_seconds
    if not cfg.skip_outro:
        seconds += cfg.outro_seconds
    return int(np.ceil(seconds * fps)) + 1


def run_headless(
    controller: "PlaybackController",
    fps: int = 30,
    max_frames: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> int:
    """Drive ``controller`` on a synthetic wall clock until playback completes.

    Returns the number of frames rendered.
    """
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    total = estimate_frames(controller, fps)
    if max_frames is not None:
        total = min(total, max_frames)

    controller.scene_ready(0.0)
    frame = 0
    while not controller.playback_complete:
        if max_frames is not None and frame >= max_frames:
            logger.warning("Stopped after %d frames before playback completed", frame)
            break
        controller.frame(frame / fps)
        frame += 1
        if progress_callback:
            progress_callback(min(frame, total), total)
    return frame
