"""
Start/Finish gate crossing detection.

A crossing is a fix inside the gate radius that arrives more than the
minimum lap time after the previous crossing. The time guard is what
stops a car parked near the line from retriggering on every fix.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from apex_timing.config import (
    ARM_PRIME_MARGIN_MS,
    DETECTION_RADIUS_DEFAULT_M,
    DETECTION_RADIUS_MAX_M,
    DETECTION_RADIUS_MIN_M,
    MIN_LAP_TIME_DEFAULT_S,
    MIN_LAP_TIME_MAX_S,
    MIN_LAP_TIME_MIN_S,
)
from apex_timing.data.models import Fix, Gate, Lap, make_gate
from apex_timing.utils.geometry import distance

logger = logging.getLogger('apexTimer.detector')


class DetectorState(Enum):
    """Geofence detector state machine states."""
    IDLE = "idle"                                  # Not armed
    AWAITING_FIRST_CROSS = "awaiting_first_cross"  # Armed, lap 1 not started
    IN_LAP = "in_lap"                              # Lap in progress


@dataclass(frozen=True)
class DetectorConfig:
    """
    Operator-tunable detection parameters.

    Attributes:
        radius: Distance from the gate that counts as a crossing (metres).
        min_lap_time: Minimum time between crossings (seconds).
    """
    radius: float = DETECTION_RADIUS_DEFAULT_M
    min_lap_time: float = MIN_LAP_TIME_DEFAULT_S

    def validate(self) -> Optional[str]:
        """Return a description of the first out-of-range value, or None."""
        if not DETECTION_RADIUS_MIN_M <= self.radius <= DETECTION_RADIUS_MAX_M:
            return (f"radius {self.radius}m outside "
                    f"{DETECTION_RADIUS_MIN_M:g}-{DETECTION_RADIUS_MAX_M:g}m")
        if not MIN_LAP_TIME_MIN_S <= self.min_lap_time <= MIN_LAP_TIME_MAX_S:
            return (f"min lap time {self.min_lap_time}s outside "
                    f"{MIN_LAP_TIME_MIN_S:g}-{MIN_LAP_TIME_MAX_S:g}s")
        return None

    @property
    def min_lap_time_ms(self) -> float:
        return self.min_lap_time * 1000


class GeofenceDetector:
    """Turns an ordered stream of fixes into completed laps."""

    def __init__(self, config: Optional[DetectorConfig] = None,
                 gate: Optional[Gate] = None):
        self.config = config or DetectorConfig()
        self.gate = gate
        self.state = DetectorState.IDLE

        self.lap_count = 0
        self.current_lap_start: Optional[float] = None
        self.last_cross_time: Optional[float] = None

        self._lap_max_speed = 0.0
        self._last_timestamp: Optional[float] = None

    @property
    def is_armed(self) -> bool:
        return self.state != DetectorState.IDLE

    def configure(self, radius: float, min_lap_time: float) -> bool:
        """
        Replace detection parameters.

        Returns:
            True if accepted, False if out of range (previous config kept)
        """
        candidate = DetectorConfig(radius=float(radius), min_lap_time=float(min_lap_time))
        problem = candidate.validate()
        if problem:
            logger.warning("Detector: Rejected configuration - %s", problem)
            return False

        self.config = candidate
        logger.info("Detector: Radius %.0fm, min lap time %.0fs",
                    candidate.radius, candidate.min_lap_time)
        return True

    def set_gate(self, gate: Optional[Gate]) -> bool:
        """
        Set or clear the gate.

        Returns:
            False if armed (gate changes are refused while recording)
        """
        if self.is_armed:
            logger.warning("Detector: Cannot change gate while armed")
            return False
        self.gate = gate
        return True

    def arm(self, now: float, lap_count: int = 0) -> bool:
        """
        Arm for recording.

        Args:
            now: Current time in milliseconds, same clock as fix timestamps
            lap_count: Laps already recorded in this session (numbering continues)

        Returns:
            False if already armed
        """
        if self.is_armed:
            return False

        self.state = DetectorState.AWAITING_FIRST_CROSS
        self.lap_count = lap_count
        self.current_lap_start = None
        self._lap_max_speed = 0.0

        # Primed in the past so starting on the line counts straight away
        self.last_cross_time = now - self.config.min_lap_time_ms - ARM_PRIME_MARGIN_MS

        if self.gate is None:
            logger.info("Detector: Armed without gate, first fix sets the line")
        else:
            logger.info("Detector: Armed, waiting for first crossing")
        return True

    def disarm(self):
        """Stop detection. An unfinished lap is dropped."""
        if self.is_armed and self.current_lap_start is not None:
            logger.info("Detector: Disarmed, discarding lap %d in progress",
                        self.lap_count + 1)
        self.state = DetectorState.IDLE
        self.current_lap_start = None
        self._lap_max_speed = 0.0

    def on_fix(self, fix: Fix) -> Optional[Lap]:
        """
        Process the next fix.

        Args:
            fix: Position sample, not older than the previous one

        Returns:
            Lap if this fix closed a lap, None otherwise
        """
        if self.state == DetectorState.IDLE:
            return None

        if self._last_timestamp is not None and fix.timestamp < self._last_timestamp:
            logger.warning("Detector: Ignoring out-of-order fix (%.0f < %.0f)",
                           fix.timestamp, self._last_timestamp)
            return None
        self._last_timestamp = fix.timestamp

        if self.gate is None:
            self._bootstrap_gate(fix)
            return None

        if self.state == DetectorState.IN_LAP:
            self._lap_max_speed = max(self._lap_max_speed, fix.speed_or_zero)

        if not self._is_crossing(fix):
            return None

        self.last_cross_time = fix.timestamp

        if self.state == DetectorState.AWAITING_FIRST_CROSS:
            self.state = DetectorState.IN_LAP
            self._open_lap(fix)
            logger.info("Detector: Lap 1 started")
            return None

        lap = self._close_lap(fix)
        self._open_lap(fix)
        return lap

    def _is_crossing(self, fix: Fix) -> bool:
        """Inside the radius and outside the debounce window."""
        d = distance(fix, self.gate)
        if d >= self.config.radius:
            return False
        if fix.timestamp - self.last_cross_time <= self.config.min_lap_time_ms:
            logger.debug("Detector: Inside gate (%.1fm) within debounce window", d)
            return False
        return True

    def _bootstrap_gate(self, fix: Fix):
        """No gate when armed: this fix becomes the line and lap 1 starts here."""
        self.gate = make_gate(fix.lat, fix.lon, fix.timestamp)
        self.last_cross_time = fix.timestamp
        self.state = DetectorState.IN_LAP
        self._open_lap(fix)
        logger.info("Detector: Gate set from current position (%.6f, %.6f), lap %d started",
                    fix.lat, fix.lon, self.lap_count + 1)

    def _open_lap(self, fix: Fix):
        self.current_lap_start = fix.timestamp
        self._lap_max_speed = fix.speed_or_zero

    def _close_lap(self, fix: Fix) -> Lap:
        self.lap_count += 1
        lap = Lap(
            number=self.lap_count,
            time=fix.timestamp - self.current_lap_start,
            start_time=self.current_lap_start,
            end_time=fix.timestamp,
            max_speed=self._lap_max_speed,
        )
        logger.info("Detector: Lap %d - %.0fms", lap.number, lap.time)
        return lap
