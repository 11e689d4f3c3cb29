"""
Session recorder - owns the live timing state.

Feeds fixes through auto record, gate detection and the session model,
and executes operator commands. Fix processing and commands run under
one lock so a fix is either fully applied or not applied at all, and a
stop issued mid-fix takes effect from the next fix. Render code reads
immutable snapshots and the timing clock, never the live lists.
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from apex_timing.config import (
    AUTO_RECORD_ENABLED_DEFAULT,
    SPEED_HISTORY_LENGTH,
)
from apex_timing.core.auto_record import AutoRecordConfig, AutoRecordController, RecordState
from apex_timing.core.geofence_detector import DetectorConfig, DetectorState, GeofenceDetector
from apex_timing.core.timing_clock import TimingClock, monotonic_ms
from apex_timing.data.models import (
    Fix,
    Gate,
    Lap,
    Session,
    best_lap,
    check_session_invariants,
    make_gate,
)
from apex_timing.data.track_catalog import get_track
from apex_timing.render.track_projector import TrackProjection, TrackProjector
from apex_timing.utils.conversions import format_speed, mps_to_kph
from apex_timing.utils.geometry import distance
from apex_timing.utils.session_archive import SessionArchive, get_session_archive
from apex_timing.utils.settings import get_settings

logger = logging.getLogger('apexTimer.recorder')

DETECTOR_KEYS = ("detector.radius_m", "detector.min_lap_time_s")
AUTO_THRESHOLD_KEYS = (
    "auto_record.start_speed_kmh",
    "auto_record.start_sustain_s",
    "auto_record.stop_speed_kmh",
    "auto_record.stop_sustain_s",
)


@dataclass(frozen=True)
class FixOutcome:
    """
    Result of processing one fix.

    Attributes:
        accepted: False if the fix was refused (out of order).
        lap: Lap completed by this fix, if any.
        recording_changed: True if auto record started recording on this
            fix, False if it stopped, None if unchanged.
    """
    accepted: bool
    lap: Optional[Lap] = None
    recording_changed: Optional[bool] = None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an operator command. Refusals leave state untouched."""
    accepted: bool
    reason: str = ""


# Operator commands, dispatched by SessionRecorder.on_command()

@dataclass(frozen=True)
class Arm:
    pass


@dataclass(frozen=True)
class Disarm:
    pass


@dataclass(frozen=True)
class SetGate:
    lat: float
    lon: float


@dataclass(frozen=True)
class SetGateToCurrentPosition:
    pass


@dataclass(frozen=True)
class SetGateFromCatalog:
    track_id: str


@dataclass(frozen=True)
class ConfigureDetector:
    radius: float
    min_lap_time: float


@dataclass(frozen=True)
class ConfigureAutoMode:
    enabled: bool
    start_speed: Optional[float] = None
    start_sustain: Optional[float] = None
    stop_speed: Optional[float] = None
    stop_sustain: Optional[float] = None


@dataclass(frozen=True)
class RecorderSnapshot:
    """Immutable view of the recorder for rendering."""
    detector_state: DetectorState
    recording: bool
    auto_enabled: bool
    auto_state: RecordState
    laps: Tuple[Lap, ...]
    path: Tuple[Fix, ...]
    gate: Optional[Gate]
    last_fix: Optional[Fix]
    current_lap_start: Optional[float]
    radius: float
    min_lap_time: float

    @property
    def best_lap(self) -> Optional[Lap]:
        return best_lap(self.laps)

    @property
    def last_lap(self) -> Optional[Lap]:
        return self.laps[-1] if self.laps else None


class SessionRecorder:
    """Single owner of detector, auto record controller and the live session."""

    def __init__(self, settings=None, archive: Optional[SessionArchive] = None,
                 clock: Callable[[], float] = monotonic_ms, persist: bool = True):
        """
        Initialise the recorder.

        Args:
            settings: SettingsManager (defaults to the shared instance)
            archive: SessionArchive for archive_session() (defaults to shared)
            clock: Millisecond clock sharing its epoch with fix timestamps
            persist: Write accepted configuration changes back to settings
        """
        self._settings = settings if settings is not None else get_settings()
        self._persist = persist
        self._archive = archive
        self._clock = clock
        self._lock = threading.RLock()

        self.detector = GeofenceDetector(self._load_detector_config())
        self.auto_record = AutoRecordController(
            self._load_auto_config(),
            enabled=bool(self._settings.get("auto_record.enabled", AUTO_RECORD_ENABLED_DEFAULT)),
        )
        self.timing_clock = TimingClock(clock)
        self.projector = TrackProjector()

        self._laps: List[Lap] = []
        self._path: List[Fix] = []
        self._last_fix: Optional[Fix] = None
        self._speed_history = deque(maxlen=SPEED_HISTORY_LENGTH)

    def _load_detector_config(self) -> DetectorConfig:
        """Detector parameters from settings, defaults if missing or invalid."""
        defaults = DetectorConfig()
        try:
            config = DetectorConfig(
                radius=float(self._settings.get("detector.radius_m", defaults.radius)),
                min_lap_time=float(self._settings.get("detector.min_lap_time_s", defaults.min_lap_time)),
            )
        except (TypeError, ValueError) as e:
            logger.warning("Recorder: Stored detector settings unreadable (%s), using defaults", e)
            self._discard_stored(DETECTOR_KEYS)
            return defaults
        problem = config.validate()
        if problem:
            logger.warning("Recorder: Stored detector settings invalid (%s), using defaults", problem)
            self._discard_stored(DETECTOR_KEYS)
            return defaults
        return config

    def _load_auto_config(self) -> AutoRecordConfig:
        """Auto record thresholds from settings, defaults if missing or invalid."""
        defaults = AutoRecordConfig()
        try:
            config = AutoRecordConfig(
                start_speed=float(self._settings.get("auto_record.start_speed_kmh", defaults.start_speed)),
                start_sustain=float(self._settings.get("auto_record.start_sustain_s", defaults.start_sustain)),
                stop_speed=float(self._settings.get("auto_record.stop_speed_kmh", defaults.stop_speed)),
                stop_sustain=float(self._settings.get("auto_record.stop_sustain_s", defaults.stop_sustain)),
            )
        except (TypeError, ValueError) as e:
            logger.warning("Recorder: Stored auto record settings unreadable (%s), using defaults", e)
            self._discard_stored(AUTO_THRESHOLD_KEYS)
            return defaults
        problem = config.validate()
        if problem:
            logger.warning("Recorder: Stored auto record settings invalid (%s), using defaults", problem)
            self._discard_stored(AUTO_THRESHOLD_KEYS)
            return defaults
        return config

    def _save_settings(self, values: dict):
        if self._persist:
            self._settings.update(values)

    def _discard_stored(self, keys):
        if self._persist:
            for key in keys:
                self._settings.remove(key)

    # Fix processing

    def on_fix(self, fix: Fix) -> FixOutcome:
        """
        Process one fix from the position source.

        Fixes must arrive in timestamp order; older fixes are refused.
        """
        with self._lock:
            latest = self._latest_timestamp()
            if latest is not None and fix.timestamp < latest:
                logger.warning("Recorder: Refusing out-of-order fix (%.0f < %.0f)",
                               fix.timestamp, latest)
                return FixOutcome(accepted=False)

            self._last_fix = fix

            recording_changed = None
            transition = self.auto_record.on_fix(fix)
            if transition == RecordState.RECORDING and not self.detector.is_armed:
                self._arm(fix.timestamp)
                recording_changed = True
            elif transition == RecordState.ARMED and self.detector.is_armed:
                self._disarm()
                recording_changed = False

            if not self.detector.is_armed:
                return FixOutcome(accepted=True, recording_changed=recording_changed)

            self._path.append(fix)
            self._speed_history.append(mps_to_kph(fix.speed_or_zero))

            lap_start = self.detector.current_lap_start
            lap = self.detector.on_fix(fix)
            if lap is not None:
                self._laps.append(lap)
            if self.detector.current_lap_start != lap_start:
                self.timing_clock.start_lap(self.detector.current_lap_start)

            return FixOutcome(accepted=True, lap=lap, recording_changed=recording_changed)

    def _latest_timestamp(self) -> Optional[float]:
        candidates = []
        if self._last_fix is not None:
            candidates.append(self._last_fix.timestamp)
        if self._path:
            candidates.append(self._path[-1].timestamp)
        return max(candidates) if candidates else None

    # Commands

    def on_command(self, command) -> CommandResult:
        """Dispatch an operator command object."""
        if isinstance(command, Arm):
            return self.arm()
        if isinstance(command, Disarm):
            return self.disarm()
        if isinstance(command, SetGate):
            return self.set_gate(command.lat, command.lon)
        if isinstance(command, SetGateToCurrentPosition):
            return self.set_gate_to_current_position()
        if isinstance(command, SetGateFromCatalog):
            return self.set_gate_from_catalog(command.track_id)
        if isinstance(command, ConfigureDetector):
            return self.configure_detector(command.radius, command.min_lap_time)
        if isinstance(command, ConfigureAutoMode):
            return self.configure_auto_mode(
                command.enabled,
                start_speed=command.start_speed,
                start_sustain=command.start_sustain,
                stop_speed=command.stop_speed,
                stop_sustain=command.stop_sustain,
            )
        logger.warning("Recorder: Unknown command %r", command)
        return CommandResult(False, "unknown command")

    def arm(self, now: Optional[float] = None) -> CommandResult:
        """
        Manual start.

        Args:
            now: Arm time in ms (defaults to the recorder clock)
        """
        with self._lock:
            if self.detector.is_armed:
                return CommandResult(False, "already recording")
            self._arm(self._clock() if now is None else now)
            self.auto_record.force(RecordState.RECORDING)
            return CommandResult(True)

    def disarm(self) -> CommandResult:
        """Manual stop. The lap in progress is discarded."""
        with self._lock:
            if not self.detector.is_armed:
                return CommandResult(False, "not recording")
            self._disarm()
            self.auto_record.force(RecordState.ARMED)
            return CommandResult(True)

    def _arm(self, now: float):
        self.detector.arm(now, lap_count=len(self._laps))
        self.timing_clock.reset()
        logger.info("Recorder: Recording started")

    def _disarm(self):
        self.detector.disarm()
        self.timing_clock.reset()
        logger.info("Recorder: Recording stopped (%d laps)", len(self._laps))

    def set_gate(self, lat: float, lon: float) -> CommandResult:
        """Place the start/finish gate at a coordinate."""
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            logger.warning("Recorder: Rejected gate (%s, %s) - not a coordinate", lat, lon)
            return CommandResult(False, "invalid coordinate")
        return self._replace_gate(make_gate(lat, lon, self._clock()))

    def set_gate_to_current_position(self) -> CommandResult:
        """Place the gate at the most recent fix."""
        with self._lock:
            fix = self._last_fix
        if fix is None:
            logger.warning("Recorder: Cannot set gate - no position yet")
            return CommandResult(False, "no position")
        return self._replace_gate(make_gate(fix.lat, fix.lon, fix.timestamp))

    def set_gate_from_catalog(self, track_id: str) -> CommandResult:
        """Place the gate on a catalog circuit's start/finish line."""
        track = get_track(track_id)
        if track is None:
            logger.warning("Recorder: Unknown track '%s'", track_id)
            return CommandResult(False, "unknown track")
        result = self._replace_gate(track.to_gate(self._clock()))
        if result.accepted:
            logger.info("Recorder: Gate set to %s", track.name)
        return result

    def clear_gate(self) -> CommandResult:
        """Remove the gate; the next arm takes the line from the first fix."""
        return self._replace_gate(None)

    def _replace_gate(self, gate: Optional[Gate]) -> CommandResult:
        with self._lock:
            if self.detector.is_armed:
                logger.warning("Recorder: Gate change refused while recording")
                return CommandResult(False, "recording")
            if self._path:
                logger.warning("Recorder: Gate change refused, session has recorded fixes")
                return CommandResult(False, "session in progress")
            self.detector.set_gate(gate)
            return CommandResult(True)

    def configure_detector(self, radius: float, min_lap_time: float) -> CommandResult:
        """Set gate radius (m) and minimum lap time (s)."""
        with self._lock:
            if not self.detector.configure(radius, min_lap_time):
                return CommandResult(False, "out of range")
            self._save_settings({
                "detector.radius_m": self.detector.config.radius,
                "detector.min_lap_time_s": self.detector.config.min_lap_time,
            })
            return CommandResult(True)

    def configure_auto_mode(self, enabled: bool,
                            start_speed: Optional[float] = None,
                            start_sustain: Optional[float] = None,
                            stop_speed: Optional[float] = None,
                            stop_sustain: Optional[float] = None) -> CommandResult:
        """
        Enable/disable auto record and optionally change thresholds.

        Thresholds left as None keep their current values.
        """
        with self._lock:
            current = self.auto_record.config
            accepted = self.auto_record.configure(
                start_speed=current.start_speed if start_speed is None else start_speed,
                start_sustain=current.start_sustain if start_sustain is None else start_sustain,
                stop_speed=current.stop_speed if stop_speed is None else stop_speed,
                stop_sustain=current.stop_sustain if stop_sustain is None else stop_sustain,
            )
            if not accepted:
                return CommandResult(False, "out of range")

            self.auto_record.set_enabled(enabled)
            self.auto_record.state = (
                RecordState.RECORDING if self.detector.is_armed else RecordState.ARMED
            )

            config = self.auto_record.config
            self._save_settings({
                "auto_record.enabled": bool(enabled),
                "auto_record.start_speed_kmh": config.start_speed,
                "auto_record.start_sustain_s": config.start_sustain,
                "auto_record.stop_speed_kmh": config.stop_speed,
                "auto_record.stop_sustain_s": config.stop_sustain,
            })
            return CommandResult(True)

    # Session management

    def clear_session(self) -> CommandResult:
        """Drop recorded laps and path. The gate is kept."""
        with self._lock:
            if self.detector.is_armed:
                return CommandResult(False, "recording")
            self._laps = []
            self._path = []
            self._speed_history.clear()
            self.timing_clock.reset()
            logger.info("Recorder: Session cleared")
            return CommandResult(True)

    def restore_session(self, session: Session) -> CommandResult:
        """
        Load an archived session back into the recorder.

        Later laps continue its numbering. Fixes older than the restored
        path are refused from then on.
        """
        with self._lock:
            if self.detector.is_armed:
                return CommandResult(False, "recording")
            problem = check_session_invariants(session.laps, session.path)
            if problem:
                logger.warning("Recorder: Cannot restore session %s - %s",
                               session.session_id, problem)
                return CommandResult(False, problem)

            self._laps = list(session.laps)
            self._path = list(session.path)
            self._speed_history.clear()
            self._speed_history.extend(mps_to_kph(f.speed_or_zero) for f in self._path)
            self.detector.set_gate(session.gate)
            self.timing_clock.reset()
            logger.info("Recorder: Restored session %s (%d laps)",
                        session.session_id, len(self._laps))
            return CommandResult(True)

    def build_session(self) -> Session:
        """Freeze the current session into an archivable value."""
        with self._lock:
            return Session(
                session_id=uuid.uuid4().hex,
                created_at=datetime.now(timezone.utc).isoformat(timespec='seconds'),
                laps=tuple(self._laps),
                path=tuple(self._path),
                gate=self.detector.gate,
            )

    def archive_session(self, archive: Optional[SessionArchive] = None) -> Optional[Session]:
        """
        Archive the current session.

        The live session is left as it is whether or not the archive
        write succeeds, so a failed archive can be retried.

        Returns:
            The archived Session, or None if there was nothing to archive
            or the archive write failed
        """
        session = self.build_session()
        if not session.path and not session.laps:
            logger.warning("Recorder: Nothing to archive")
            return None

        store = archive or self._archive or get_session_archive()
        if not store.append(session):
            return None
        return session

    # Render-side readers

    @property
    def is_recording(self) -> bool:
        return self.detector.is_armed

    @property
    def laps(self) -> Tuple[Lap, ...]:
        with self._lock:
            return tuple(self._laps)

    @property
    def path(self) -> Tuple[Fix, ...]:
        with self._lock:
            return tuple(self._path)

    def snapshot(self) -> RecorderSnapshot:
        """Immutable copy of the live state."""
        with self._lock:
            return RecorderSnapshot(
                detector_state=self.detector.state,
                recording=self.detector.is_armed,
                auto_enabled=self.auto_record.enabled,
                auto_state=self.auto_record.state,
                laps=tuple(self._laps),
                path=tuple(self._path),
                gate=self.detector.gate,
                last_fix=self._last_fix,
                current_lap_start=self.detector.current_lap_start,
                radius=self.detector.config.radius,
                min_lap_time=self.detector.config.min_lap_time,
            )

    def elapsed_display(self, now: Optional[float] = None) -> str:
        """Running lap time as mm:ss.cc (render tick, lock-free)."""
        return self.timing_clock.display(now)

    def speed_display(self, unit: str = "kph") -> str:
        """Current speed as a whole number, "--" when unknown."""
        fix = self._last_fix
        return format_speed(fix.speed if fix else None, unit)

    def distance_to_gate(self) -> Optional[float]:
        """Metres from the latest fix to the gate, None if either is missing."""
        fix = self._last_fix
        gate = self.detector.gate
        if fix is None or gate is None:
            return None
        return distance(fix, gate)

    def speed_history(self) -> List[float]:
        """Speeds (km/h) of the most recent recorded fixes, oldest first."""
        with self._lock:
            return list(self._speed_history)

    def project(self, path: Optional[Tuple[Fix, ...]] = None,
                include_live: bool = True) -> Optional[TrackProjection]:
        """
        Project the recorded path (or a given subset) for drawing.

        Args:
            path: Fixes to draw; defaults to the whole recorded path
            include_live: Add the latest fix as the live marker
        """
        snapshot = self.snapshot()
        fixes = snapshot.path if path is None else path
        live = snapshot.last_fix if include_live else None
        return self.projector.project(fixes, snapshot.gate, live)
