"""Tests for utils/session_archive.py - archived session persistence."""

import sqlite3

import pytest

from apex_timing.data.models import Lap, Session, make_gate
from apex_timing.utils.session_archive import SessionArchive
from tests.fixtures.lap_fixes import make_fix


def make_session(session_id="s1", created_at="2026-05-01T10:00:00+00:00", lap_times=(25000,)):
    laps = []
    t = 0
    for i, time in enumerate(lap_times):
        laps.append(Lap(number=i + 1, time=time, start_time=t, end_time=t + time, max_speed=40.0))
        t += time
    path = tuple(make_fix(ms, 0.0, ms / 1e7, speed=30.0) for ms in range(0, t + 1, 5000))
    return Session(
        session_id=session_id,
        created_at=created_at,
        laps=tuple(laps),
        path=path,
        gate=make_gate(0.0, 0.0),
    )


class TestSessionArchiveInit:
    """Test archive initialisation."""

    def test_creates_database(self, temp_db):
        archive = SessionArchive(temp_db)
        assert archive.db_path == temp_db

        conn = sqlite3.connect(temp_db)
        tables = [row[0] for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )]
        conn.close()
        assert 'sessions' in tables

    def test_creates_missing_directory(self, tmp_path):
        db_path = str(tmp_path / "nested" / "dir" / "sessions.db")
        archive = SessionArchive(db_path)
        assert archive.append(make_session())

    def test_reopen_keeps_sessions(self, temp_db):
        SessionArchive(temp_db).append(make_session())
        assert len(SessionArchive(temp_db).list_sessions()) == 1


class TestSessionArchiveOperations:
    """Test append/get/list/delete/clear."""

    def test_append_and_get(self, session_archive):
        session = make_session(lap_times=(25000, 24000))
        assert session_archive.append(session) is True
        assert session_archive.get("s1") == session

    def test_get_missing(self, session_archive):
        assert session_archive.get("nope") is None

    def test_duplicate_id_refused(self, session_archive):
        assert session_archive.append(make_session()) is True
        assert session_archive.append(make_session(lap_times=(1000,))) is False
        assert session_archive.get("s1").laps[0].time == 25000

    def test_summary_columns(self, session_archive, temp_db):
        session_archive.append(make_session(lap_times=(25000, 24000, 26000)))
        conn = sqlite3.connect(temp_db)
        row = conn.execute(
            "SELECT total_laps, best_lap_time FROM sessions WHERE session_id = 's1'"
        ).fetchone()
        conn.close()
        assert row == (3, 24000)

    def test_session_without_laps(self, session_archive, temp_db):
        session_archive.append(make_session(lap_times=()))
        conn = sqlite3.connect(temp_db)
        row = conn.execute("SELECT total_laps, best_lap_time FROM sessions").fetchone()
        conn.close()
        assert row == (0, None)

    def test_list_newest_first(self, session_archive):
        session_archive.append(make_session("old", "2026-05-01T09:00:00+00:00"))
        session_archive.append(make_session("new", "2026-05-01T11:00:00+00:00"))
        session_archive.append(make_session("mid", "2026-05-01T10:00:00+00:00"))
        ids = [s.session_id for s in session_archive.list_sessions()]
        assert ids == ["new", "mid", "old"]

    def test_same_timestamp_latest_insert_first(self, session_archive):
        session_archive.append(make_session("a"))
        session_archive.append(make_session("b"))
        ids = [s.session_id for s in session_archive.list_sessions()]
        assert ids == ["b", "a"]

    def test_delete(self, session_archive):
        session_archive.append(make_session("a"))
        session_archive.append(make_session("b"))
        assert session_archive.delete("a") is True
        assert [s.session_id for s in session_archive.list_sessions()] == ["b"]

    def test_delete_missing(self, session_archive):
        assert session_archive.delete("nope") is False

    def test_clear_all(self, session_archive):
        for i in range(3):
            session_archive.append(make_session(f"s{i}"))
        assert session_archive.clear_all() == 3
        assert session_archive.list_sessions() == []


class TestSessionArchiveErrors:
    """Test failure handling."""

    def test_unreadable_record_skipped(self, session_archive, temp_db):
        session_archive.append(make_session("good"))
        conn = sqlite3.connect(temp_db)
        conn.execute(
            "INSERT INTO sessions (session_id, created_at, payload) VALUES (?, ?, ?)",
            ("bad", "2026-05-02T00:00:00+00:00", "{not json"),
        )
        conn.commit()
        conn.close()

        assert [s.session_id for s in session_archive.list_sessions()] == ["good"]
        assert session_archive.get("bad") is None

    def test_append_failure_returns_false(self, tmp_path):
        """Unwritable location reports failure instead of raising."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        archive = SessionArchive(str(blocker / "sessions.db"))
        assert archive.append(make_session()) is False
        assert archive.list_sessions() == []
        assert archive.clear_all() == 0
