"""Keep the display awake while the timer runs.

The actual inhibition is delegated to an external command (for example
``systemd-inhibit --what=idle sleep infinity``) that is held open while the
lock is enabled. Without a command the lock state is only tracked.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Optional, Sequence

logger = logging.getLogger("production_timer.wake_lock")


class WakeLockService:
    def __init__(self, command: Optional[Sequence[str]] = None):
        self._command = list(command) if command else []
        self._process: Optional[subprocess.Popen] = None
        self._enabled = False

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        if self._enabled:
            return
        if self._command:
            try:
                self._process = subprocess.Popen(
                    self._command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                logger.warning(f"Wake lock command failed to start: {e}")
                self._process = None
        self._enabled = True
        logger.info("Wake lock enabled")

    def disable(self) -> None:
        if not self._enabled:
            return
        if self._process is not None:
            self._process.terminate()
            try:
                self._process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._process.kill()
            self._process = None
        self._enabled = False
        logger.info("Wake lock disabled")
