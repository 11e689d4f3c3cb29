"""
Shared pytest fixtures for apex timer tests.
"""

import json
import os
import sys
import tempfile

import pytest

# Add project root to path for imports
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.fixtures.settings_helpers import make_settings_manager  # noqa: E402


@pytest.fixture
def temp_settings_file():
    """Create a temporary settings file for testing SettingsManager."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
        f.write('{}')
        temp_path = f.name
    yield temp_path
    # Cleanup
    for path in (temp_path, temp_path + '.tmp'):
        if os.path.exists(path):
            os.remove(path)


@pytest.fixture
def temp_settings_with_data():
    """Create a temporary settings file with pre-populated data."""
    test_data = {
        "detector": {
            "radius_m": 40.0,
            "min_lap_time_s": 45.0
        },
        "auto_record": {
            "enabled": True,
            "start_speed_kmh": 30.0,
            "start_sustain_s": 2.0,
            "stop_speed_kmh": 8.0,
            "stop_sustain_s": 5.0
        }
    }
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
        json.dump(test_data, f)
        temp_path = f.name
    yield temp_path
    # Cleanup
    if os.path.exists(temp_path):
        os.remove(temp_path)


@pytest.fixture
def settings_manager(temp_settings_file):
    """Fresh, empty SettingsManager writing to a temp file."""
    return make_settings_manager(temp_settings_file)


@pytest.fixture
def temp_db(tmp_path):
    """Path for a throwaway session archive database."""
    return str(tmp_path / "sessions.db")


@pytest.fixture
def session_archive(temp_db):
    """SessionArchive on a temp database."""
    from apex_timing.utils.session_archive import SessionArchive
    return SessionArchive(temp_db)


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recorder(settings_manager, session_archive, fake_clock):
    """SessionRecorder isolated from the user's settings and archive."""
    from apex_timing.core.session_recorder import SessionRecorder
    return SessionRecorder(
        settings=settings_manager,
        archive=session_archive,
        clock=fake_clock,
    )
