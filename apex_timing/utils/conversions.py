"""
Unit conversion and display formatting for the lap timer.

Speeds are stored in m/s and times in milliseconds; these helpers
convert for display only.
"""

from typing import Optional

from apex_timing.config import MPS_TO_KPH, MPS_TO_MPH, SPEED_UNKNOWN


# Speed conversions
def mps_to_kph(mps):
    """Convert metres per second to km/h."""
    return mps * MPS_TO_KPH


def mps_to_mph(mps):
    """Convert metres per second to mph."""
    return mps * MPS_TO_MPH


def format_speed(speed_mps: Optional[float], unit: str = "kph") -> str:
    """
    Format a speed for display as a whole number.

    Args:
        speed_mps: Speed in m/s, or None when the sensor has no estimate
        unit: "kph" or "mph"

    Returns:
        Speed string, or "--" when speed is unknown
    """
    if speed_mps is None:
        return SPEED_UNKNOWN
    if unit == "mph":
        value = mps_to_mph(speed_mps)
    elif unit == "kph":
        value = mps_to_kph(speed_mps)
    else:
        raise ValueError(f"Unknown speed unit: {unit}")
    return f"{value:.0f}"


# Time formatting
def format_elapsed(ms) -> str:
    """
    Format elapsed milliseconds as mm:ss.cc.

    Hundredths are truncated, not rounded.
    """
    ms = int(ms)
    total_seconds = ms // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    hundredths = (ms % 1000) // 10
    return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"
