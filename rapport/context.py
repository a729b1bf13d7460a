"""Application context: the runtime paths every service and router shares.

Properties always return the current value, so changing ``data_dir`` at
runtime propagates to every consumer without rebuilding services.
"""

from __future__ import annotations

import os
import threading


class AppContext:
    """Holds all runtime directory paths for the application."""

    def __init__(self, *, cwd: str, data_dir: str, config_path: str) -> None:
        self._lock = threading.Lock()
        self._cwd = cwd
        self._data_dir = data_dir
        self._config_path = config_path
        self._app_dir = os.path.dirname(__file__)

    # ── data_dir ───────────────────────────────────────────────────────

    @property
    def data_dir(self) -> str:
        with self._lock:
            return self._data_dir

    @data_dir.setter
    def data_dir(self, value: str) -> None:
        with self._lock:
            self._data_dir = value

    @property
    def people_dir(self) -> str:
        return os.path.join(self.data_dir, "people")

    @property
    def conversations_dir(self) -> str:
        return os.path.join(self.data_dir, "conversations")

    @property
    def config_path(self) -> str:
        return self._config_path

    # ── App-relative paths ─────────────────────────────────────────────

    @property
    def prompts_dir(self) -> str:
        return os.path.join(self._app_dir, "prompts")

    # ── Logs (stay in cwd, not in data_dir) ────────────────────────────

    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        for d in (self.data_dir, self.people_dir, self.conversations_dir):
            os.makedirs(d, exist_ok=True)
