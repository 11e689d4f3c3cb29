"""
Configuration settings for the apex lap timer.
Contains constants for lap detection, auto recording, projection and storage.

Organised into logical sections:
1. Geodesy & Units (earth radius, speed conversions)
2. Lap Detection (gate radius, debounce)
3. Auto Recording (speed thresholds, sustain windows)
4. Timing Display (speed trace)
5. Track Map Projection (canvas, padding, marker thresholds)
6. Storage (data directory, archive, settings)
"""

import os

# ==============================================================================
# APPLICATION VERSION
# ==============================================================================
APP_VERSION = "0.4.2"

# ==============================================================================
# GEODESY & UNITS
# ==============================================================================

EARTH_RADIUS_M = 6371000  # WGS-84 mean radius (metres)

MPS_TO_KPH = 3.6
MPS_TO_MPH = 2.23694

SPEED_UNKNOWN = "--"  # Shown when the sensor cannot estimate speed

# ==============================================================================
# LAP DETECTION
# ==============================================================================

# Radius around the gate that counts as a crossing (metres)
DETECTION_RADIUS_DEFAULT_M = 25.0
DETECTION_RADIUS_MIN_M = 5.0
DETECTION_RADIUS_MAX_M = 100.0

# Minimum time between crossings (seconds)
# Suppresses retriggering while parked on or near the line
MIN_LAP_TIME_DEFAULT_S = 20.0
MIN_LAP_TIME_MIN_S = 5.0
MIN_LAP_TIME_MAX_S = 180.0

# Extra margin when priming the debounce on arm (milliseconds)
# Lets a vehicle starting on the line register its first crossing at once
ARM_PRIME_MARGIN_MS = 1000

# ==============================================================================
# AUTO RECORDING
# ==============================================================================

AUTO_RECORD_ENABLED_DEFAULT = False

AUTO_START_SPEED_DEFAULT_KMH = 20.0   # Start recording above this speed
AUTO_START_SUSTAIN_DEFAULT_S = 3.0    # ...held for this long
AUTO_STOP_SPEED_DEFAULT_KMH = 10.0    # Stop recording below this speed
AUTO_STOP_SUSTAIN_DEFAULT_S = 10.0    # ...held for this long

AUTO_SPEED_MAX_KMH = 400.0
AUTO_SUSTAIN_MAX_S = 600.0

# ==============================================================================
# TIMING DISPLAY
# ==============================================================================

SPEED_HISTORY_LENGTH = 30  # Fixes kept for the live speed trace

# ==============================================================================
# TRACK MAP PROJECTION
# ==============================================================================

MAP_CANVAS_SIZE = 100.0        # Logical canvas is 0..100 on both axes
MAP_PADDING_FRACTION = 0.20    # Bounding box padding per side (fraction of span)
MAP_MIN_SPAN_DEG = 0.001       # Span used when all points coincide (~111 m)
MAP_MOVING_SPEED_MPS = 1.0     # Live marker shows heading above this speed

# ==============================================================================
# STORAGE
# ==============================================================================

DATA_DIR = os.environ.get(
    "APEX_TIMER_DATA_DIR", os.path.expanduser("~/.apex_timer")
)
SESSION_ARCHIVE_DB = os.path.join(DATA_DIR, "sessions.db")
SETTINGS_FILE = os.path.join(DATA_DIR, "settings.json")
