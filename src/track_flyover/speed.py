"""Time-scale planning: fit a route's duration into a target video length."""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .config import SpeedSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScaleCheck:
    valid: bool
    message: str
    corrected: float


@dataclass(frozen=True)
class SpeedPlan:
    scale: float
    reason: str
    video_minutes: Optional[float] = None  # expected playback length at this scale
    suggested: bool = False  # the route needed more than the default scale
    corrected: bool = False  # the scale was clamped into the allowed range


def required_scale(route_minutes: float, target_video_minutes: float, buffer_minutes: float) -> int:
    """Smallest whole time-scale that plays the route within the target minus buffer."""
    available = target_video_minutes - buffer_minutes
    if available <= 0:
        raise ValueError(
            f"Target video length {target_video_minutes} min leaves no room "
            f"after a {buffer_minutes} min buffer"
        )
    return math.ceil(route_minutes / available)


def validate_scale(scale: float, settings: SpeedSettings) -> ScaleCheck:
    """Check a time-scale against the allowed range, correcting to the nearest bound."""
    if scale < settings.min_scale:
        return ScaleCheck(
            valid=False,
            message=f"Speed {scale}x is below minimum {settings.min_scale}x",
            corrected=settings.min_scale,
        )
    if scale > settings.max_scale:
        return ScaleCheck(
            valid=False,
            message=f"Speed {scale}x exceeds maximum {settings.max_scale}x",
            corrected=settings.max_scale,
        )
    return ScaleCheck(valid=True, message="Speed is valid", corrected=scale)


def plan_time_scale(route_seconds: Optional[float], settings: Optional[SpeedSettings] = None) -> SpeedPlan:
    """Pick the playback time-scale for a route of ``route_seconds`` simulated seconds."""
    if settings is None:
        settings = SpeedSettings()

    if not settings.adaptive:
        plan = SpeedPlan(scale=settings.default_scale, reason="Adaptive speed disabled")
    elif route_seconds is None or route_seconds <= 0:
        plan = SpeedPlan(scale=settings.default_scale, reason="No valid route duration")
    else:
        route_minutes = route_seconds / 60
        required = required_scale(
            route_minutes, settings.target_video_minutes, settings.buffer_minutes,
        )
        if required > settings.default_scale:
            scale = float(required)
            reason = (
                f"Route is long, increased speed to keep video under "
                f"{settings.target_video_minutes:g} min"
            )
        else:
            scale = settings.default_scale
            reason = f"Using default speed for {route_minutes:.1f} min route"
        plan = SpeedPlan(
            scale=scale,
            reason=reason,
            video_minutes=route_minutes / scale,
            suggested=required > settings.default_scale,
        )

    check = validate_scale(plan.scale, settings)
    if not check.valid:
        logger.warning("%s; using %gx", check.message, check.corrected)
        video_minutes = plan.video_minutes
        if video_minutes is not None:
            video_minutes = video_minutes * plan.scale / check.corrected
        plan = SpeedPlan(
            scale=check.corrected,
            reason=f"{plan.reason} ({check.message}, corrected to {check.corrected:g}x)",
            video_minutes=video_minutes,
            suggested=plan.suggested,
            corrected=True,
        )
    logger.info("Time-scale %gx: %s", plan.scale, plan.reason)
    return plan
