"""Read waypoints out of GPX files via gpxpy."""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import gpxpy
import gpxpy.gpx

MAX_GPX_SIZE = 50 * 1024 * 1024  # 50 MB


@dataclass(frozen=True)
class Waypoint:
    lat: float
    lon: float
    elevation: Optional[float]  # meters, None when the source has none
    time: Optional[datetime] = None


def parse_gpx(file_path: str) -> list[Waypoint]:
    """Parse a GPX file and return its track points (or route points) in order."""
    file_size = os.path.getsize(file_path)
    if file_size > MAX_GPX_SIZE:
        raise ValueError(
            f"GPX file too large ({file_size / 1024 / 1024:.1f} MB, max 50 MB)"
        )

    with open(file_path, "r") as f:
        try:
            gpx = gpxpy.parse(f)
        except gpxpy.gpx.GPXXMLSyntaxException:
            raise ValueError(
                f"Failed to parse '{file_path}' as GPX: the file is not valid XML."
            ) from None

    waypoints = [
        Waypoint(
            lat=point.latitude,
            lon=point.longitude,
            elevation=point.elevation,
            time=point.time,
        )
        for track in gpx.tracks
        for segment in track.segments
        for point in segment.points
    ]
    # Planned routes carry <rtept> instead of <trkpt>
    if not waypoints:
        waypoints = [
            Waypoint(
                lat=point.latitude,
                lon=point.longitude,
                elevation=point.elevation,
                time=point.time,
            )
            for route in gpx.routes
            for point in route.points
        ]

    if len(waypoints) < 2:
        raise ValueError("GPX file must contain at least 2 track points")

    return waypoints
