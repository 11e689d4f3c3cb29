"""
Track map projection.

Maps lat/lon fixes onto a fixed 0-100 logical canvas for drawing the
recorded line, the start/finish gate and the live car marker.

Longitude and latitude are scaled independently against the padded
bounding box of everything plotted. That is fine at circuit scale and
wrong over large extents; no map projection is attempted.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from apex_timing.config import (
    MAP_CANVAS_SIZE,
    MAP_MIN_SPAN_DEG,
    MAP_MOVING_SPEED_MPS,
    MAP_PADDING_FRACTION,
)
from apex_timing.data.models import Fix


@dataclass(frozen=True)
class LiveMarker:
    """
    Projected live position.

    Attributes:
        x, y: Canvas coordinates.
        heading: Rotation angle in degrees, passed through from the fix.
        is_moving: True above the moving threshold; callers draw a
            direction arrow when moving and a dot when stationary.
    """
    x: float
    y: float
    heading: float
    is_moving: bool


@dataclass(frozen=True)
class Bounds:
    """Padded lat/lon window mapped onto the canvas."""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float


@dataclass(frozen=True)
class TrackProjection:
    """Drawable geometry for one render request."""
    points: Tuple[Tuple[float, float], ...]
    gate: Optional[Tuple[float, float]]
    live: Optional[LiveMarker]
    bounds: Bounds

    @property
    def has_path(self) -> bool:
        return len(self.points) >= 2

    def polyline(self) -> str:
        """Path points as "x,y x,y ..." with two decimals."""
        return " ".join(f"{x:.2f},{y:.2f}" for x, y in self.points)


class TrackProjector:
    """Projects fixes onto the logical map canvas."""

    def __init__(self, canvas_size: float = MAP_CANVAS_SIZE,
                 padding: float = MAP_PADDING_FRACTION,
                 min_span: float = MAP_MIN_SPAN_DEG,
                 moving_speed: float = MAP_MOVING_SPEED_MPS):
        self.canvas_size = canvas_size
        self.padding = padding
        self.min_span = min_span
        self.moving_speed = moving_speed

    def project(self, path: Sequence[Fix], gate: Optional[Fix] = None,
                live: Optional[Fix] = None) -> Optional[TrackProjection]:
        """
        Project a path with optional gate and live markers.

        Args:
            path: Ordered fixes to draw as a line
            gate: Start/finish gate marker
            live: Current position marker

        Returns:
            TrackProjection, or None when there is too little to draw
            (fewer than two path points and no live position)
        """
        if len(path) < 2 and live is None:
            return None

        markers = [f for f in (gate, live) if f is not None]
        lats = np.array([f.lat for f in path] + [f.lat for f in markers], dtype=float)
        lons = np.array([f.lon for f in path] + [f.lon for f in markers], dtype=float)

        bounds = self.compute_bounds(lats, lons)
        xs, ys = self._to_canvas(lats, lons, bounds)

        n = len(path)
        points = tuple(zip(xs[:n].tolist(), ys[:n].tolist()))

        gate_xy = None
        live_marker = None
        index = n
        if gate is not None:
            gate_xy = (float(xs[index]), float(ys[index]))
            index += 1
        if live is not None:
            live_marker = LiveMarker(
                x=float(xs[index]),
                y=float(ys[index]),
                heading=live.heading or 0.0,
                is_moving=live.speed_or_zero > self.moving_speed,
            )

        return TrackProjection(points=points, gate=gate_xy, live=live_marker, bounds=bounds)

    def compute_bounds(self, lats: np.ndarray, lons: np.ndarray) -> Bounds:
        """Bounding box of all points, padded on each side."""
        min_lat, max_lat = float(lats.min()), float(lats.max())
        min_lon, max_lon = float(lons.min()), float(lons.max())

        # Coincident points have no extent to scale by
        if max_lat == min_lat:
            centre = (min_lat + max_lat) / 2
            min_lat, max_lat = centre - self.min_span / 2, centre + self.min_span / 2
        if max_lon == min_lon:
            centre = (min_lon + max_lon) / 2
            min_lon, max_lon = centre - self.min_span / 2, centre + self.min_span / 2

        lat_range = max_lat - min_lat
        lon_range = max_lon - min_lon

        return Bounds(
            min_lat=min_lat - lat_range * self.padding,
            max_lat=max_lat + lat_range * self.padding,
            min_lon=min_lon - lon_range * self.padding,
            max_lon=max_lon + lon_range * self.padding,
        )

    def _to_canvas(self, lats: np.ndarray, lons: np.ndarray,
                   bounds: Bounds) -> Tuple[np.ndarray, np.ndarray]:
        lat_span = bounds.max_lat - bounds.min_lat
        lon_span = bounds.max_lon - bounds.min_lon

        xs = (lons - bounds.min_lon) / lon_span * self.canvas_size
        # Flip Y axis: latitude grows north, screen y grows down
        ys = self.canvas_size - (lats - bounds.min_lat) / lat_span * self.canvas_size
        return xs, ys


def project_track(path: Sequence[Fix], gate: Optional[Fix] = None,
                  live: Optional[Fix] = None) -> Optional[TrackProjection]:
    """Convenience wrapper using default canvas settings."""
    return TrackProjector().project(path, gate, live)
