"""CLI entry point for track-flyover."""

import json
import logging

import click
from tqdm import tqdm

from .analysis import analyze_route
from .config import CameraConfig, PlaybackConfig, SpeedSettings, TrailConfig
from .gpx_parser import parse_gpx
from .playback import PlaybackController
from .scene import HeadlessScene, estimate_frames, run_headless


@click.command()
@click.argument("gpx_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--fps", default=30, help="Frames per second of the simulated capture.")
@click.option("--target-minutes", default=10.0, help="Target video length in minutes.")
@click.option("--buffer-minutes", default=0.5, help="Safety margin subtracted from the target.")
@click.option("--default-scale", default=2.0, help="Time-scale used when the route fits the target.")
@click.option("--time-scale", default=None, type=float,
              help="Force a time-scale instead of the planned one.")
@click.option("--adaptive/--no-adaptive", default=True,
              help="Enable/disable fitting the time-scale to the target length.")
@click.option("--camera-distance", default=3000.0, help="Camera distance behind the position (meters).")
@click.option("--camera-height", default=1800.0, help="Camera height above the position (meters).")
@click.option("--intro/--no-intro", default=True, help="Enable/disable the intro transition.")
@click.option("--outro/--no-outro", default=True, help="Enable/disable the outro transition.")
@click.option("--trail-reset/--no-trail-reset", default=False,
              help="Clear the trail when a discontinuity is detected.")
@click.option("--poses", "poses_path", type=click.Path(dir_okay=False), default=None,
              help="Write one camera pose per frame to this JSON Lines file.")
@click.option("--max-frames", default=None, type=int, help="Stop after this many frames.")
@click.option("-v", "--verbose", is_flag=True, help="Log phase transitions and warnings.")
def main(
    gpx_file: str,
    fps: int,
    target_minutes: float,
    buffer_minutes: float,
    default_scale: float,
    time_scale: float | None,
    adaptive: bool,
    camera_distance: float,
    camera_height: float,
    intro: bool,
    outro: bool,
    trail_reset: bool,
    poses_path: str | None,
    max_frames: int | None,
    verbose: bool,
) -> None:
    """Analyze a GPX route and play its camera flyover headlessly."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if fps <= 0:
        raise click.UsageError(f"--fps must be positive, got {fps}")

    try:
        settings = SpeedSettings(
            default_scale=default_scale,
            target_video_minutes=target_minutes,
            buffer_minutes=buffer_minutes,
            adaptive=adaptive,
        )
        config = PlaybackConfig(
            skip_intro=not intro,
            skip_outro=not outro,
            manual_time_scale=time_scale,
            camera=CameraConfig(back_m=camera_distance, height_m=camera_height),
            trail=TrailConfig(clear_on_gap=trail_reset),
        )
        click.echo(f"Parsing GPX file: {gpx_file}")
        waypoints = parse_gpx(gpx_file)
        click.echo(f"  Found {len(waypoints)} track points")
        profile = analyze_route(waypoints, settings)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    pattern = profile.pattern
    click.echo(
        f"Route: {profile.distance_m / 1000:.2f} km over {profile.duration_s / 60:.1f} min"
        + (" (estimated from distance)" if profile.duration_estimated
           else " (synthetic timeline)" if profile.timeline.synthetic else "")
    )
    if profile.elevation is not None:
        click.echo(
            f"Elevation: +{profile.elevation.gain_m:.0f} m / -{profile.elevation.loss_m:.0f} m, "
            f"{profile.terrain.value} terrain"
        )
    click.echo(f"Activity: {profile.route_type.value}, {len(profile.segments)} climb/turn segments")
    click.echo(f"Pattern: {pattern.type.value} ({pattern.confidence:.0%}) - {pattern.reason}")
    click.echo(f"Speed: {profile.speed.scale:g}x - {profile.speed.reason}")
    for warning in profile.warnings:
        click.echo(f"  Warning: {warning}")

    scene = HeadlessScene()
    controller = PlaybackController(profile, config, scene=scene)
    total = estimate_frames(controller, fps)
    if max_frames is not None:
        total = min(total, max_frames)

    render_bar = tqdm(total=total, unit="frame", desc="Playing")
    last_played = [0]

    def on_progress(current: int, total: int) -> None:
        render_bar.update(current - last_played[0])
        last_played[0] = current

    frames = run_headless(controller, fps=fps, max_frames=max_frames, progress_callback=on_progress)
    render_bar.close()

    click.echo(
        f"Played {frames} frames: ready_for_capture={controller.ready_for_capture} "
        f"intro_finished={controller.intro_finished} "
        f"playback_complete={controller.playback_complete}"
    )
    if controller.trail.gaps:
        click.echo(f"  {len(controller.trail.gaps)} trail discontinuities detected")

    if poses_path:
        with open(poses_path, "w") as f:
            for i, pose in enumerate(scene.poses):
                f.write(json.dumps({
                    "index": i,
                    "position": list(pose.position),
                    "focal_point": list(pose.focal_point),
                    "heading_deg": round(pose.heading_deg, 3),
                    "pitch_deg": round(pose.pitch_deg, 3),
                }) + "\n")
        click.echo(f"Camera poses saved to: {poses_path}")

    controller.teardown()


if __name__ == "__main__":
    main()
