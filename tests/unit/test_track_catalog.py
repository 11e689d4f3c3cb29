"""
Unit tests for the circuit catalog.
"""

import pytest

from apex_timing.data.track_catalog import (
    CIRCUITS,
    find_track_by_name,
    get_track,
    list_tracks,
)


class TestCatalog:
    """Tests for catalog contents and lookups."""

    @pytest.mark.unit
    def test_eight_circuits(self):
        assert len(list_tracks()) == 8

    @pytest.mark.unit
    def test_ids_unique(self):
        ids = [track.id for track in CIRCUITS]
        assert len(ids) == len(set(ids))

    @pytest.mark.unit
    def test_coordinates_valid(self):
        for track in CIRCUITS:
            assert -90 <= track.lat <= 90
            assert -180 <= track.lon <= 180

    @pytest.mark.unit
    def test_get_track(self):
        track = get_track('silverstone')
        assert track.name == 'Silverstone Circuit'
        assert track.lat == pytest.approx(52.069273)
        assert track.lon == pytest.approx(-1.022066)

    @pytest.mark.unit
    def test_get_unknown_track(self):
        assert get_track('nurburgring') is None

    @pytest.mark.unit
    def test_list_is_a_copy(self):
        tracks = list_tracks()
        tracks.clear()
        assert len(list_tracks()) == 8

    @pytest.mark.unit
    def test_to_gate(self):
        gate = get_track('assen').to_gate(timestamp=1234)
        assert gate.lat == pytest.approx(52.956793)
        assert gate.lon == pytest.approx(6.524450)
        assert gate.timestamp == 1234
        assert gate.accuracy == 0.0


class TestFindByName:
    """Tests for name search."""

    @pytest.mark.unit
    def test_exact_case_insensitive(self):
        assert find_track_by_name('phillip island').id == 'phillip_island'

    @pytest.mark.unit
    def test_substring(self):
        assert find_track_by_name('Americas').id == 'cota'

    @pytest.mark.unit
    def test_no_match(self):
        assert find_track_by_name('Brands Hatch') is None

    @pytest.mark.unit
    def test_blank(self):
        assert find_track_by_name('   ') is None
