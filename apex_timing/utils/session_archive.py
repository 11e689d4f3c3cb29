"""
Persistent archive of recorded sessions.

Stores archived sessions (laps, recorded path and gate) in an SQLite
database keyed by session id. Archived sessions are immutable: they are
appended, listed, loaded and deleted whole, never updated.

Failures are logged and reported through return values; the caller's
in-memory session is never touched, so a failed append can be retried.
"""

import json
import logging
import os
import sqlite3
import threading
from typing import List, Optional

from apex_timing.config import SESSION_ARCHIVE_DB
from apex_timing.data.models import Session

logger = logging.getLogger('apexTimer.archive')


class SessionArchive:
    """
    SQLite-backed session store.

    Thread-safe; each operation opens its own connection under a lock.
    """

    def __init__(self, db_path: str = SESSION_ARCHIVE_DB):
        self._db_path = db_path
        self._db_lock = threading.Lock()
        self._ensure_data_dir()
        self._init_database()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _ensure_data_dir(self):
        """Create data directory if it doesn't exist."""
        directory = os.path.dirname(self._db_path)
        if not directory:
            return
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create archive directory %s: %s", directory, e)

    def _init_database(self):
        """Create the sessions table if needed."""
        with self._db_lock:
            try:
                conn = sqlite3.connect(self._db_path)
                try:
                    conn.execute('''
                        CREATE TABLE IF NOT EXISTS sessions (
                            session_id TEXT PRIMARY KEY,
                            created_at TEXT NOT NULL,
                            total_laps INTEGER DEFAULT 0,
                            best_lap_time REAL,
                            payload TEXT NOT NULL
                        )
                    ''')
                    conn.commit()
                finally:
                    conn.close()
                logger.debug("Session archive initialised: %s", self._db_path)

            except sqlite3.Error as e:
                logger.warning("Could not initialise session archive: %s", e)

    def append(self, session: Session) -> bool:
        """
        Add a new archived session.

        Args:
            session: Frozen session snapshot with a unique id

        Returns:
            True if stored, False on I/O failure or duplicate id
        """
        best = session.best_lap
        with self._db_lock:
            try:
                conn = sqlite3.connect(self._db_path)
                try:
                    conn.execute('''
                        INSERT INTO sessions
                        (session_id, created_at, total_laps, best_lap_time, payload)
                        VALUES (?, ?, ?, ?, ?)
                    ''', (
                        session.session_id,
                        session.created_at,
                        len(session.laps),
                        best.time if best else None,
                        json.dumps(session.to_dict()),
                    ))
                    conn.commit()
                finally:
                    conn.close()

            except sqlite3.Error as e:
                logger.warning("Could not archive session %s: %s", session.session_id, e)
                return False

        logger.info("Archived session %s (%d laps, %d points)",
                    session.session_id, len(session.laps), len(session.path))
        return True

    def delete(self, session_id: str) -> bool:
        """
        Delete an archived session.

        Returns:
            True if a session was deleted
        """
        with self._db_lock:
            try:
                conn = sqlite3.connect(self._db_path)
                try:
                    cursor = conn.execute(
                        'DELETE FROM sessions WHERE session_id = ?', (session_id,)
                    )
                    deleted = cursor.rowcount > 0
                    conn.commit()
                finally:
                    conn.close()

            except sqlite3.Error as e:
                logger.warning("Could not delete session %s: %s", session_id, e)
                return False

        if deleted:
            logger.info("Deleted session %s", session_id)
        return deleted

    def get(self, session_id: str) -> Optional[Session]:
        """Load one archived session, or None if missing or unreadable."""
        with self._db_lock:
            try:
                conn = sqlite3.connect(self._db_path)
                try:
                    row = conn.execute(
                        'SELECT payload FROM sessions WHERE session_id = ?', (session_id,)
                    ).fetchone()
                finally:
                    conn.close()

            except sqlite3.Error as e:
                logger.warning("Could not load session %s: %s", session_id, e)
                return None

        if row is None:
            return None
        return self._decode(row[0])

    def list_sessions(self) -> List[Session]:
        """
        All archived sessions, newest first.

        Unreadable records are skipped.
        """
        with self._db_lock:
            try:
                conn = sqlite3.connect(self._db_path)
                try:
                    rows = conn.execute('''
                        SELECT payload FROM sessions
                        ORDER BY created_at DESC, rowid DESC
                    ''').fetchall()
                finally:
                    conn.close()

            except sqlite3.Error as e:
                logger.warning("Could not list sessions: %s", e)
                return []

        sessions = []
        for (payload,) in rows:
            session = self._decode(payload)
            if session is not None:
                sessions.append(session)
        return sessions

    def clear_all(self) -> int:
        """
        Delete every archived session.

        Returns:
            Number of sessions deleted
        """
        with self._db_lock:
            try:
                conn = sqlite3.connect(self._db_path)
                try:
                    cursor = conn.execute('DELETE FROM sessions')
                    deleted = cursor.rowcount
                    conn.commit()
                finally:
                    conn.close()

            except sqlite3.Error as e:
                logger.warning("Could not clear sessions: %s", e)
                return 0

        logger.info("Cleared %d archived sessions", deleted)
        return deleted

    @staticmethod
    def _decode(payload: str) -> Optional[Session]:
        try:
            return Session.from_dict(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Skipping unreadable session record: %s", e)
            return None


_archive: Optional[SessionArchive] = None
_archive_lock = threading.Lock()


def get_session_archive() -> SessionArchive:
    """Get the shared session archive."""
    global _archive
    with _archive_lock:
        if _archive is None:
            _archive = SessionArchive()
    return _archive
