# shield/blocklist.py
import logging
import threading
import time
from typing import Any, Callable, FrozenSet, Optional

import requests

from .config import ShieldConfig
from .models import BlocklistSnapshot

logger = logging.getLogger(__name__)

BLOCKED_IPS_PATH = "/api/blocked-ips"


class BlocklistError(Exception):
    """The monitoring system returned something that is not a blocklist."""


class BlocklistCache:
    """
    Locally cached copy of the monitoring system's blocked addresses.

    The snapshot is immutable and replaced by a single assignment, so readers
    never see a half-built set. A failed refresh leaves both the snapshot and
    its timestamp alone: the previous list stays authoritative and the next
    call after refresh_retry_backoff (0 by default, i.e. the very next
    request) tries again.
    """

    def __init__(
        self,
        config: ShieldConfig,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.clock = clock
        self._snapshot = BlocklistSnapshot()
        self._last_failure: Optional[float] = None
        self._refresh_lock = threading.Lock()

    def close(self) -> None:
        self.session.close()

    @property
    def snapshot(self) -> BlocklistSnapshot:
        return self._snapshot

    def is_blocked(self, address: str) -> bool:
        if not self.config.enabled:
            return False
        self.refresh()
        return address in self._snapshot.addresses

    def refresh(self, force: bool = False) -> bool:
        """
        Refresh the snapshot if it is stale. Returns True when a new snapshot
        was installed. Never raises.
        """
        if not self.config.enabled:
            return False
        if not force and not self._due():
            return False

        # another thread is already fetching; serve what we have
        if not self._refresh_lock.acquire(blocking=False):
            return False
        try:
            if not force and not self._due():
                return False
            try:
                addresses = self._fetch()
            except (requests.RequestException, ValueError, BlocklistError) as e:
                self._last_failure = self.clock()
                logger.warning("Blocklist refresh failed, keeping %d cached entries: %s",
                               len(self._snapshot.addresses), e)
                return False

            self._snapshot = BlocklistSnapshot(addresses=addresses, refreshed_at=self.clock())
            self._last_failure = None
            logger.info("Blocklist refreshed: %d blocked addresses", len(addresses))
            return True
        finally:
            self._refresh_lock.release()

    def _due(self) -> bool:
        now = self.clock()
        refreshed_at = self._snapshot.refreshed_at
        if refreshed_at is not None and now - refreshed_at < self.config.blocklist_refresh_interval:
            return False
        backoff = self.config.refresh_retry_backoff
        if backoff > 0 and self._last_failure is not None and now - self._last_failure < backoff:
            return False
        return True

    def _fetch(self) -> FrozenSet[str]:
        url = f"{self.config.monitoring_url}{BLOCKED_IPS_PATH}"
        resp = self.session.get(url, timeout=self.config.refresh_timeout)
        if not resp.ok:
            raise BlocklistError(f"GET {url} returned {resp.status_code}")
        return parse_blocklist(resp.json())


def parse_blocklist(payload: Any) -> FrozenSet[str]:
    """Accept only a JSON array of objects each carrying a string ipAddress."""
    if not isinstance(payload, list):
        raise BlocklistError(f"expected a list, got {type(payload).__name__}")

    addresses = set()
    for entry in payload:
        if not isinstance(entry, dict) or not isinstance(entry.get("ipAddress"), str):
            raise BlocklistError(f"malformed blocklist entry: {entry!r}")
        addresses.add(entry["ipAddress"].strip())
    return frozenset(addresses)
