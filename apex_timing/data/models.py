"""
Core data structures for the lap timer.

Unit Conventions
----------------
- Time: milliseconds (monotonic, arbitrary epoch, non-decreasing per stream)
- Distance: metres
- Speed: metres per second (m/s)
- Angles: degrees (0-360 for headings, 0=North)
- Coordinates: decimal degrees (WGS84)

Display code converts to km/h or mm:ss.cc; nothing here does.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Fix:
    """
    Single position sample from the position source.

    Attributes:
        lat: Latitude in decimal degrees (WGS84, -90 to +90).
        lon: Longitude in decimal degrees (WGS84, -180 to +180).
        accuracy: Horizontal accuracy estimate in metres. Lower is better.
        timestamp: Capture time in milliseconds (monotonic).
        speed: Ground speed in m/s, None when the sensor has no estimate.
        heading: Course over ground in degrees, None when unknown.
    """
    lat: float
    lon: float
    accuracy: float
    timestamp: float
    speed: Optional[float] = None
    heading: Optional[float] = None

    @property
    def speed_or_zero(self) -> float:
        """Speed with missing values treated as stationary."""
        return self.speed if self.speed is not None else 0.0


# The start/finish gate is a single reference position.
Gate = Fix


def make_gate(lat: float, lon: float, timestamp: float = 0) -> Gate:
    """Build a gate from a bare coordinate."""
    return Fix(lat=lat, lon=lon, accuracy=0.0, timestamp=timestamp, speed=0.0)


@dataclass(frozen=True)
class Lap:
    """
    Completed lap.

    Attributes:
        number: Sequential lap number (1-based) within the session.
        time: Lap time in milliseconds (end_time - start_time).
        start_time: Timestamp (ms) of the gate crossing that opened the lap.
        end_time: Timestamp (ms) of the gate crossing that closed the lap.
        max_speed: Highest speed (m/s) seen between start and end.
    """
    number: int
    time: float
    start_time: float
    end_time: float
    max_speed: float = 0.0


@dataclass(frozen=True)
class Session:
    """
    Archived recording: laps, recorded path and the gate used.

    A session is a value snapshot. It is replaced or deleted as a whole,
    never edited.
    """
    session_id: str
    created_at: str  # ISO-8601
    laps: Tuple[Lap, ...] = field(default_factory=tuple)
    path: Tuple[Fix, ...] = field(default_factory=tuple)
    gate: Optional[Gate] = None

    @property
    def best_lap(self) -> Optional[Lap]:
        return best_lap(self.laps)

    @property
    def duration_ms(self) -> float:
        """Time spanned by the recorded path."""
        if len(self.path) < 2:
            return 0.0
        return self.path[-1].timestamp - self.path[0].timestamp

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'created_at': self.created_at,
            'laps': [lap_to_dict(lap) for lap in self.laps],
            'path': [fix_to_dict(fix) for fix in self.path],
            'gate': fix_to_dict(self.gate) if self.gate else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Session':
        gate = data.get('gate')
        return cls(
            session_id=data['session_id'],
            created_at=data['created_at'],
            laps=tuple(Lap(**lap) for lap in data.get('laps', [])),
            path=tuple(Fix(**fix) for fix in data.get('path', [])),
            gate=Fix(**gate) if gate else None,
        )


def fix_to_dict(fix: Fix) -> dict:
    return {
        'lat': fix.lat,
        'lon': fix.lon,
        'accuracy': fix.accuracy,
        'timestamp': fix.timestamp,
        'speed': fix.speed,
        'heading': fix.heading,
    }


def lap_to_dict(lap: Lap) -> dict:
    return {
        'number': lap.number,
        'time': lap.time,
        'start_time': lap.start_time,
        'end_time': lap.end_time,
        'max_speed': lap.max_speed,
    }


def best_lap(laps) -> Optional[Lap]:
    """Fastest lap, earliest wins a tie. None when there are no laps."""
    best = None
    for lap in laps:
        if best is None or lap.time < best.time:
            best = lap
    return best


def check_session_invariants(laps, path) -> Optional[str]:
    """
    Validate lap and path ordering.

    Returns:
        Description of the first violation found, or None when consistent
    """
    for i, lap in enumerate(laps):
        if lap.number != i + 1:
            return f"lap {i + 1} is numbered {lap.number}"
        if lap.time <= 0:
            return f"lap {lap.number} has no duration"
        if lap.end_time - lap.start_time != lap.time:
            return f"lap {lap.number} time does not match its start/end"
        if i > 0 and laps[i - 1].end_time > lap.start_time:
            return f"lap {lap.number} starts before lap {lap.number - 1} ends"

    for prev, fix in zip(path, path[1:]):
        if fix.timestamp < prev.timestamp:
            return f"path goes back in time at {fix.timestamp}"

    return None

