"""
VBO file parser for RaceLogic GPS data.

Reads .vbo files and converts them to a Fix stream for replaying
sessions through the lap timer.
"""

from dataclasses import replace
from typing import Dict, Iterator, List, Optional

from apex_timing.data.models import Fix

DAY_MS = 86_400_000

# A time of day this far behind the previous row is a pass through midnight
MIDNIGHT_JUMP_MS = DAY_MS // 2


class VBOParser:
    """Parser for RaceLogic .vbo GPS log files."""

    def __init__(self, vbo_path: str, negate_longitude: Optional[bool] = None):
        """
        Args:
            vbo_path: Path to .vbo file
            negate_longitude: Force longitude sign handling; None guesses
                from the country metadata
        """
        self.vbo_path = vbo_path
        self.channels = []
        self.metadata = {}
        self._parse_header()

        if negate_longitude is None:
            negate_longitude = self._is_western_hemisphere()
        self._negate_longitude = negate_longitude

    def _parse_header(self):
        """Parse header section to extract channel definitions and metadata."""
        with open(self.vbo_path, 'r', encoding='utf-8', errors='ignore') as f:
            in_header = False

            for line in f:
                line = line.strip()

                if line == '[header]':
                    in_header = True
                    continue
                elif line.startswith('['):
                    in_header = False
                    if line == '[data]':
                        break
                    continue

                if in_header and line:
                    self.channels.append(line)
                elif line:
                    # Metadata lines like "circuit Donington National"
                    parts = line.split(maxsplit=1)
                    if len(parts) == 2:
                        self.metadata[parts[0]] = parts[1]

    def get_metadata(self) -> Dict[str, str]:
        """Return circuit/session metadata."""
        return self.metadata

    def _is_western_hemisphere(self) -> bool:
        """
        Determine if track is in Western hemisphere (negative longitude).

        RaceLogic VBO files appear to store longitude as absolute values,
        so we need to negate for Western hemisphere countries.
        """
        country = self.metadata.get('country', '').lower()

        # Incomplete, but covers the common cases
        western_countries = {
            'united kingdom', 'uk', 'great britain', 'england', 'scotland', 'wales',
            'ireland', 'portugal', 'spain',
            'united states', 'usa', 'canada', 'mexico', 'brazil', 'argentina',
            'chile', 'colombia', 'peru'
        }

        return any(wc in country for wc in western_countries)

    def stream_fixes(self) -> Iterator[Fix]:
        """
        Stream fixes one at a time (memory efficient for large files).

        Malformed data lines are skipped. A log that runs past midnight
        keeps counting from the first day, so timestamps never wrap.

        Yields:
            Fix objects with timestamps in ms since midnight of the
            day the log started
        """
        with open(self.vbo_path, 'r', encoding='utf-8', errors='ignore') as f:
            in_data = False
            day_offset = 0
            last_time_of_day = None

            for line in f:
                line = line.strip()

                if line == '[data]':
                    in_data = True
                    continue

                if not in_data or not line or line.startswith('['):
                    continue

                try:
                    fix = self._parse_data_line(line)
                except (ValueError, IndexError):
                    continue
                if fix is None:
                    continue

                time_of_day = fix.timestamp
                if last_time_of_day is not None and time_of_day < last_time_of_day - MIDNIGHT_JUMP_MS:
                    day_offset += DAY_MS
                last_time_of_day = time_of_day
                if day_offset:
                    fix = replace(fix, timestamp=round(time_of_day + day_offset, 3))
                yield fix

    def parse_fixes(self) -> List[Fix]:
        """Parse all fixes from the file."""
        return list(self.stream_fixes())

    def _parse_data_line(self, line: str) -> Optional[Fix]:
        """
        Parse a single data line into a Fix.

        Format: satellites time lat lon velocity heading height ...
        Example: 009 145858.800 +3169.78349400 +0082.78173000 016.186 332.123 +00089.32
        """
        parts = line.split()

        if len(parts) < 6:
            return None

        satellites = int(parts[0])
        time_str = parts[1]  # HHMMSS.sss
        lat_minutes = float(parts[2])
        lon_minutes = float(parts[3])
        velocity_kmh = float(parts[4])
        heading = float(parts[5])

        hours = int(time_str[0:2])
        minutes = int(time_str[2:4])
        seconds = float(time_str[4:])
        timestamp_ms = ((hours * 60 + minutes) * 60 + seconds) * 1000

        lat = lat_minutes / 60.0
        lon = lon_minutes / 60.0
        if self._negate_longitude:
            lon = -lon

        return Fix(
            lat=lat,
            lon=lon,
            accuracy=5.0 if satellites >= 4 else 10.0,
            timestamp=round(timestamp_ms, 3),
            speed=velocity_kmh / 3.6,
            heading=heading,
        )


def load_vbo_file(vbo_path: str) -> List[Fix]:
    """Convenience function to load a VBO file as a list of fixes."""
    return VBOParser(vbo_path).parse_fixes()
