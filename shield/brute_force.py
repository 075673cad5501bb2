# shield/brute_force.py
import logging
import threading
import time
from typing import Callable, Dict, Optional

from .config import ShieldConfig
from .models import Action, FailedLoginWindow, Severity, ThreatEvent, ThreatType

logger = logging.getLogger(__name__)

# failures between opportunistic sweeps of emptied windows
PURGE_EVERY = 256


class BruteForceTracker:
    """
    Per-address sliding window of failed logins.

    When an address reaches the threshold inside the window a brute_force
    event goes to the reporter and the window is cleared, so the next
    failure starts counting from one again.
    """

    def __init__(
        self,
        config: ShieldConfig,
        reporter=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.reporter = reporter
        self.clock = clock
        self._windows: Dict[str, FailedLoginWindow] = {}
        self._lock = threading.Lock()
        self._since_purge = 0

    def record_failure(self, address: str) -> Optional[ThreatEvent]:
        """Call after every rejected credential check."""
        window_seconds = self.config.brute_force_window

        with self._lock:
            now = self.clock()
            self._since_purge += 1
            if self._since_purge >= PURGE_EVERY:
                self._purge_locked(now)

            window = self._windows.get(address)
            if window is None:
                window = self._windows[address] = FailedLoginWindow()

            window.prune(now, window_seconds)
            window.append(now)
            count = len(window)

            if count < self.config.brute_force_threshold:
                return None
            del self._windows[address]

        event = ThreatEvent(
            threat_type=ThreatType.BRUTE_FORCE,
            severity=Severity.MEDIUM,
            source_ip=address,
            destination_port=self.config.destination_port,
            protocol=self.config.protocol,
            raw_data=(
                f"Brute force: {count} failed logins in "
                f"{window_seconds / 60:g} min from {address}"
            ),
            action_taken=Action.ALERT,
        )
        logger.warning("Brute force detected from %s (%d failed logins)", address, count)

        # outside the lock, reporting never holds up other logins
        if self.reporter is not None:
            self.reporter.report(event)
        return event

    def record_success(self, address: str) -> None:
        """Call after every accepted login, before issuing a session."""
        with self._lock:
            self._windows.pop(address, None)

    def failure_count(self, address: str) -> int:
        with self._lock:
            window = self._windows.get(address)
            if window is None:
                return 0
            window.prune(self.clock(), self.config.brute_force_window)
            return len(window)

    def purge_stale(self) -> int:
        """Drop addresses whose every failure has aged out. Returns how many."""
        with self._lock:
            return self._purge_locked(self.clock())

    def _purge_locked(self, now: float) -> int:
        self._since_purge = 0
        removed = 0
        for address in list(self._windows):
            window = self._windows[address]
            window.prune(now, self.config.brute_force_window)
            if not len(window):
                del self._windows[address]
                removed += 1
        return removed
