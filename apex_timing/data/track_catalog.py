"""
Catalog of named circuits used to pre-fill the start/finish gate.

Each circuit exposes a single reference coordinate on its start/finish
line. The catalog is static; circuits are picked by the operator, never
matched from GPS position.
"""

from dataclasses import dataclass
from typing import List, Optional

from apex_timing.data.models import Gate, make_gate


@dataclass(frozen=True)
class CatalogTrack:
    """A named circuit with its start/finish reference point."""
    id: str
    name: str
    location: str
    lat: float
    lon: float

    def to_gate(self, timestamp: float = 0) -> Gate:
        """Gate fix positioned on this circuit's start/finish line."""
        return make_gate(self.lat, self.lon, timestamp)


CIRCUITS = (
    CatalogTrack('mugello', 'Mugello Circuit', 'Italy', 43.996160, 11.371457),
    CatalogTrack('catalunya', 'Circuit de Barcelona-Catalunya', 'Spain', 41.565187, 2.256860),
    CatalogTrack('cota', 'Circuit of the Americas', 'USA', 30.132800, -97.642457),
    CatalogTrack('silverstone', 'Silverstone Circuit', 'UK', 52.069273, -1.022066),
    CatalogTrack('sepang', 'Sepang International Circuit', 'Malaysia', 2.760527, 101.737189),
    CatalogTrack('phillip_island', 'Phillip Island', 'Australia', -38.500755, 145.241556),
    CatalogTrack('jerez', 'Circuito de Jerez', 'Spain', 36.706173, -6.029671),
    CatalogTrack('assen', 'TT Circuit Assen', 'Netherlands', 52.956793, 6.524450),
)


def list_tracks() -> List[CatalogTrack]:
    """All catalog circuits, in catalog order."""
    return list(CIRCUITS)


def get_track(track_id: str) -> Optional[CatalogTrack]:
    """Look up a circuit by id."""
    for track in CIRCUITS:
        if track.id == track_id:
            return track
    return None


def find_track_by_name(name: str) -> Optional[CatalogTrack]:
    """
    Look up a circuit by name (case-insensitive).

    Exact name matches win; otherwise the first circuit whose name
    contains the search text is returned.
    """
    needle = name.strip().lower()
    if not needle:
        return None

    for track in CIRCUITS:
        if track.name.lower() == needle:
            return track
    for track in CIRCUITS:
        if needle in track.name.lower():
            return track
    return None
