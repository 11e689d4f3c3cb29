"""
Automatic recording start/stop from vehicle speed.

Hysteresis controller: recording starts once speed has stayed at or
above the start threshold for the start sustain window, and stops once
speed has stayed below the stop threshold for the stop sustain window.
A single sample on the wrong side of a threshold restarts the window.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from apex_timing.config import (
    AUTO_SPEED_MAX_KMH,
    AUTO_START_SPEED_DEFAULT_KMH,
    AUTO_START_SUSTAIN_DEFAULT_S,
    AUTO_STOP_SPEED_DEFAULT_KMH,
    AUTO_STOP_SUSTAIN_DEFAULT_S,
    AUTO_SUSTAIN_MAX_S,
)
from apex_timing.data.models import Fix
from apex_timing.utils.conversions import mps_to_kph

logger = logging.getLogger('apexTimer.auto_record')


class RecordState(Enum):
    """Auto record state machine states."""
    ARMED = "armed"          # Waiting to start
    RECORDING = "recording"  # Recording, waiting to stop


@dataclass(frozen=True)
class AutoRecordConfig:
    """Speed thresholds (km/h) and sustain windows (seconds)."""
    start_speed: float = AUTO_START_SPEED_DEFAULT_KMH
    start_sustain: float = AUTO_START_SUSTAIN_DEFAULT_S
    stop_speed: float = AUTO_STOP_SPEED_DEFAULT_KMH
    stop_sustain: float = AUTO_STOP_SUSTAIN_DEFAULT_S

    def validate(self) -> Optional[str]:
        """Return a description of the first out-of-range value, or None."""
        for name in ('start_speed', 'stop_speed'):
            value = getattr(self, name)
            if not 0 < value <= AUTO_SPEED_MAX_KMH:
                return f"{name} {value} outside 0-{AUTO_SPEED_MAX_KMH:g} km/h"
        for name in ('start_sustain', 'stop_sustain'):
            value = getattr(self, name)
            if not 0 < value <= AUTO_SUSTAIN_MAX_S:
                return f"{name} {value} outside 0-{AUTO_SUSTAIN_MAX_S:g} s"
        return None


class AutoRecordController:
    """
    Speed hysteresis state machine.

    on_fix() returns the new state when a transition happens so the
    owner can arm or disarm lap detection.
    """

    def __init__(self, config: Optional[AutoRecordConfig] = None, enabled: bool = False):
        self.config = config or AutoRecordConfig()
        self.enabled = enabled
        self.state = RecordState.ARMED

        # Timestamp (ms) of the first sample in the current qualifying run
        self.start_candidate_since: Optional[float] = None
        self.stop_candidate_since: Optional[float] = None

        self._suspended = False

    def configure(self, start_speed: float, start_sustain: float,
                  stop_speed: float, stop_sustain: float) -> bool:
        """
        Replace thresholds.

        Returns:
            True if accepted, False if out of range (previous config kept)
        """
        candidate = AutoRecordConfig(
            start_speed=float(start_speed),
            start_sustain=float(start_sustain),
            stop_speed=float(stop_speed),
            stop_sustain=float(stop_sustain),
        )
        problem = candidate.validate()
        if problem:
            logger.warning("Auto record: Rejected configuration - %s", problem)
            return False

        if candidate.stop_speed >= candidate.start_speed:
            logger.warning("Auto record: Stop speed %.0f is not below start speed %.0f",
                           candidate.stop_speed, candidate.start_speed)

        self.config = candidate
        self._reset_timers()
        return True

    def set_enabled(self, enabled: bool):
        self.enabled = enabled
        self._reset_timers()
        logger.info("Auto record: %s", "enabled" if enabled else "disabled")

    def force(self, state: RecordState):
        """
        Manual start/stop.

        Resets both sustain windows and skips evaluation of the next fix
        so auto mode does not immediately reverse the operator.
        """
        self.state = state
        self._reset_timers()
        self._suspended = True

    def on_fix(self, fix: Fix) -> Optional[RecordState]:
        """
        Evaluate one fix.

        Returns:
            The new state if a transition happened, None otherwise
        """
        if not self.enabled:
            return None

        if self._suspended:
            self._suspended = False
            return None

        speed_kph = mps_to_kph(fix.speed_or_zero)

        if self.state == RecordState.ARMED:
            return self._evaluate_start(fix.timestamp, speed_kph)
        return self._evaluate_stop(fix.timestamp, speed_kph)

    def _evaluate_start(self, timestamp: float, speed_kph: float) -> Optional[RecordState]:
        if speed_kph < self.config.start_speed:
            self.start_candidate_since = None
            return None

        if self.start_candidate_since is None:
            self.start_candidate_since = timestamp

        if timestamp - self.start_candidate_since >= self.config.start_sustain * 1000:
            self.state = RecordState.RECORDING
            self._reset_timers()
            logger.info("Auto record: Start (%.0f km/h held %.1fs)",
                        speed_kph, self.config.start_sustain)
            return self.state
        return None

    def _evaluate_stop(self, timestamp: float, speed_kph: float) -> Optional[RecordState]:
        if speed_kph >= self.config.stop_speed:
            self.stop_candidate_since = None
            return None

        if self.stop_candidate_since is None:
            self.stop_candidate_since = timestamp

        if timestamp - self.stop_candidate_since >= self.config.stop_sustain * 1000:
            self.state = RecordState.ARMED
            self._reset_timers()
            logger.info("Auto record: Stop (%.0f km/h held %.1fs)",
                        speed_kph, self.config.stop_sustain)
            return self.state
        return None

    def _reset_timers(self):
        self.start_candidate_since = None
        self.stop_candidate_since = None
