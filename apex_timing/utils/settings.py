"""
Operator preferences that survive a restart.

Detector and auto record parameters accepted by the recorder are written
here under dotted keys ("detector.radius_m", "auto_record.enabled", ...)
and read back when the next recorder starts.

Stored as JSON at $APEX_TIMER_DATA_DIR/settings.json
(default ~/.apex_timer/settings.json). A file that does not parse, or
whose top level is not an object, is removed and the timer starts from
defaults with a warning.
"""

import json
import logging
import os
import threading
from typing import Any, Optional

from apex_timing.config import SETTINGS_FILE

logger = logging.getLogger('apexTimer.settings')


class SettingsManager:
    """
    Process-wide settings store.

    Every SettingsManager() call returns the same instance; writes are
    flushed to disk through a temp file and a rename.
    """

    _instance: Optional['SettingsManager'] = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._initialised = False
                cls._instance = instance
        return cls._instance

    def __init__(self):
        if self._initialised:
            return

        self._file_path = SETTINGS_FILE
        self._save_lock = threading.Lock()
        self._settings = {}
        self._load()
        self._initialised = True

    @property
    def file_path(self) -> str:
        return self._file_path

    def _load(self):
        """Replace in-memory settings with the file contents."""
        self._settings = {}
        if not os.path.exists(self._file_path):
            logger.debug("No settings at %s, using defaults", self._file_path)
            return

        try:
            with open(self._file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Settings file unreadable (%s), starting from defaults", e)
            self._discard_file()
            return
        except OSError as e:
            logger.warning("Could not read settings: %s", e)
            return

        if not isinstance(data, dict):
            logger.warning("Settings file holds %s, not an object; starting from defaults",
                           type(data).__name__)
            self._discard_file()
            return

        self._settings = data
        logger.info("Settings loaded from %s", self._file_path)

    def _discard_file(self):
        try:
            os.remove(self._file_path)
            logger.info("Removed bad settings file %s", self._file_path)
        except OSError as e:
            logger.error("Could not remove bad settings file: %s", e)

    def _save(self):
        """Flush to disk. Failures are logged; in-memory values stay."""
        with self._save_lock:
            temp_path = self._file_path + '.tmp'
            try:
                directory = os.path.dirname(self._file_path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(self._settings, f, indent=2, sort_keys=True)
                os.replace(temp_path, self._file_path)
            except OSError as e:
                logger.warning("Could not save settings to %s: %s", self._file_path, e)
                if os.path.exists(temp_path):
                    try:
                        os.remove(temp_path)
                    except OSError:
                        pass

    def _parent(self, key: str, create: bool):
        """
        Dict holding the last component of a dotted key.

        Returns (parent, leaf), or (None, leaf) when an intermediate
        level is missing and create is False. With create, missing or
        non-dict levels are replaced by empty dicts.
        """
        *path, leaf = key.split('.')
        node = self._settings
        for part in path:
            child = node.get(part)
            if not isinstance(child, dict):
                if not create:
                    return None, leaf
                child = node[part] = {}
            node = child
        return node, leaf

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a dotted key, e.g. "auto_record.stop_speed_kmh".

        Returns default when any level of the key is missing.
        """
        parent, leaf = self._parent(key, create=False)
        if parent is None or leaf not in parent:
            return default
        return parent[leaf]

    def set(self, key: str, value: Any, save: bool = True):
        """
        Store a value under a dotted key, creating levels as needed.

        Args:
            key: Dotted key
            value: JSON-serialisable value
            save: Flush to disk now (default True)
        """
        parent, leaf = self._parent(key, create=True)
        parent[leaf] = value
        if save:
            self._save()

    def update(self, values: dict):
        """Store several dotted keys with a single write."""
        for key, value in values.items():
            self.set(key, value, save=False)
        self._save()

    def remove(self, key: str, save: bool = True) -> bool:
        """Drop a dotted key. Returns False if it was not set."""
        parent, leaf = self._parent(key, create=False)
        if parent is None or leaf not in parent:
            return False
        del parent[leaf]
        if save:
            self._save()
        return True

    def get_all(self) -> dict:
        """Shallow copy of every stored setting."""
        return self._settings.copy()

    def reset(self):
        """Forget everything and write an empty file."""
        self._settings = {}
        self._save()


def get_settings() -> SettingsManager:
    """Shared SettingsManager."""
    return SettingsManager()
