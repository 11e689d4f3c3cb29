"""Tests for utils/vbo_parser.py - RaceLogic VBO replay input."""

import pytest

from apex_timing.utils.vbo_parser import VBOParser, load_vbo_file

DAY_MS = 86_400_000

MIDNIGHT_VBO = """[header]
satellites
time
latitude
longitude
velocity kmh
heading

[comments]
circuit Assen
country Netherlands

[data]
010 235940.000 +3177.40758000 +0391.46700000 036.000 180.000
010 235955.000 +3178.00000000 +0391.46700000 090.000 000.000
010 000010.000 +3177.40758000 +0391.46700000 036.000 180.000
010 000025.000 +3178.00000000 +0391.46700000 072.000 000.000
010 000040.000 +3177.40758000 +0391.46700000 036.000 180.000
"""

VBO_TEMPLATE = """File created on 01/05/2026 at 10:14:58

[header]
satellites
time
latitude
longitude
velocity kmh
heading
height

[comments]
circuit Silverstone
country {country}

[data]
009 101500.000 +3124.15638000 +0061.32396000 108.000 090.000 +00120.00
garbage
abc 101500.500 +3124.15638000 +0061.32396000 108.000 090.000 +00120.00
003 101501.000 +3124.16000000 +0061.33000000 054.000 095.500 +00120.10
"""


@pytest.fixture
def vbo_file(tmp_path):
    def write(country="United Kingdom"):
        path = tmp_path / "session.vbo"
        path.write_text(VBO_TEMPLATE.format(country=country))
        return str(path)
    return write


class TestVBOParser:
    """Test VBO header and data parsing."""

    @pytest.mark.unit
    def test_metadata(self, vbo_file):
        parser = VBOParser(vbo_file())
        metadata = parser.get_metadata()
        assert metadata['circuit'] == 'Silverstone'
        assert metadata['country'] == 'United Kingdom'

    @pytest.mark.unit
    def test_channels(self, vbo_file):
        parser = VBOParser(vbo_file())
        assert parser.channels[:4] == ['satellites', 'time', 'latitude', 'longitude']

    @pytest.mark.unit
    def test_malformed_lines_skipped(self, vbo_file):
        fixes = VBOParser(vbo_file()).parse_fixes()
        assert len(fixes) == 2

    @pytest.mark.unit
    def test_fix_values(self, vbo_file):
        fix = VBOParser(vbo_file()).parse_fixes()[0]
        assert fix.lat == pytest.approx(52.069273)
        assert fix.lon == pytest.approx(-1.022066)
        assert fix.speed == pytest.approx(30.0)
        assert fix.heading == pytest.approx(90.0)
        assert fix.accuracy == 5.0

    @pytest.mark.unit
    def test_timestamp_ms_since_midnight(self, vbo_file):
        fixes = VBOParser(vbo_file()).parse_fixes()
        assert fixes[0].timestamp == 36_900_000
        assert fixes[1].timestamp == 36_901_000

    @pytest.mark.unit
    def test_few_satellites_lower_accuracy(self, vbo_file):
        assert VBOParser(vbo_file()).parse_fixes()[1].accuracy == 10.0

    @pytest.mark.unit
    def test_eastern_country_keeps_longitude(self, vbo_file):
        fix = VBOParser(vbo_file(country="Netherlands")).parse_fixes()[0]
        assert fix.lon == pytest.approx(1.022066)

    @pytest.mark.unit
    def test_explicit_longitude_override(self, vbo_file):
        fix = VBOParser(vbo_file(), negate_longitude=False).parse_fixes()[0]
        assert fix.lon > 0
        fix = VBOParser(vbo_file(country="Netherlands"), negate_longitude=True).parse_fixes()[0]
        assert fix.lon < 0

    @pytest.mark.unit
    def test_stream_matches_parse(self, vbo_file):
        parser = VBOParser(vbo_file())
        assert list(parser.stream_fixes()) == parser.parse_fixes()

    @pytest.mark.unit
    def test_load_vbo_file(self, vbo_file):
        assert len(load_vbo_file(vbo_file())) == 2

    @pytest.mark.unit
    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            VBOParser(str(tmp_path / "absent.vbo"))


class TestMidnightRollover:
    """Logs that run through 00:00 keep increasing timestamps."""

    @pytest.fixture
    def midnight_path(self, tmp_path):
        path = tmp_path / "night.vbo"
        path.write_text(MIDNIGHT_VBO)
        return str(path)

    @pytest.mark.unit
    def test_timestamps_continue_past_midnight(self, midnight_path):
        timestamps = [fix.timestamp for fix in VBOParser(midnight_path).stream_fixes()]
        assert timestamps == [
            DAY_MS - 20_000,
            DAY_MS - 5_000,
            DAY_MS + 10_000,
            DAY_MS + 25_000,
            DAY_MS + 40_000,
        ]

    @pytest.mark.unit
    def test_small_step_back_is_not_a_new_day(self, tmp_path):
        path = tmp_path / "jitter.vbo"
        path.write_text(VBO_TEMPLATE.format(country="Netherlands").replace(
            "003 101501.000", "003 101459.000"))
        timestamps = [fix.timestamp for fix in VBOParser(str(path)).stream_fixes()]
        assert timestamps == [36_900_000, 36_899_000]

    @pytest.mark.unit
    def test_recorder_accepts_every_fix(self, midnight_path, recorder):
        recorder.set_gate(52.956793, 6.52445)
        fixes = VBOParser(midnight_path).parse_fixes()
        recorder.arm(now=fixes[0].timestamp)

        outcomes = [recorder.on_fix(fix) for fix in fixes]

        assert all(outcome.accepted for outcome in outcomes)
        assert [lap.time for lap in recorder.laps] == [30_000, 30_000]
