"""
GPS lap timer for track days.

Detects start/finish gate crossings in a stream of position fixes,
splits the session into laps, starts and stops recording from vehicle
speed, and projects the recorded line for drawing.
"""

from apex_timing.config import APP_VERSION
from apex_timing.core.session_recorder import SessionRecorder
from apex_timing.data.models import Fix, Lap, Session

__version__ = APP_VERSION

__all__ = [
    'Fix',
    'Lap',
    'Session',
    'SessionRecorder',
]
