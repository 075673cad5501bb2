# shield/reporter.py
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import requests

from .config import ShieldConfig
from .models import ThreatEvent

logger = logging.getLogger(__name__)

THREATS_PATH = "/api/threats"

# queued plus running deliveries allowed per worker thread
IN_FLIGHT_PER_WORKER = 8


class ThreatReporter:
    """
    Fire-and-forget delivery of threat events to the monitoring system.

    report() hands the POST to a worker thread and returns at once. The
    outcome only ever reaches the log; events are dropped on any failure,
    with no retry. At most report_workers * IN_FLIGHT_PER_WORKER deliveries
    may be pending; past that, new events are dropped.
    """

    def __init__(self, config: ShieldConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self._executor = ThreadPoolExecutor(
            max_workers=config.report_workers,
            thread_name_prefix="shield-report",
        )
        self._slots = threading.BoundedSemaphore(config.report_workers * IN_FLIGHT_PER_WORKER)
        self._closed = False

    def report(self, event: ThreatEvent) -> Optional[Future]:
        if not self.config.enabled:
            return None
        if self._closed:
            logger.warning("Reporter closed, dropping %s event from %s",
                           event.threat_type.value, event.source_ip)
            return None
        if not self._slots.acquire(blocking=False):
            logger.warning("Report backlog full, dropping %s event from %s",
                           event.threat_type.value, event.source_ip)
            return None
        try:
            return self._executor.submit(self._deliver, event)
        except RuntimeError as e:
            # executor shut down between the check and the submit
            self._slots.release()
            logger.warning("Could not dispatch threat report: %s", e)
            return None

    def _deliver(self, event: ThreatEvent) -> bool:
        try:
            return self._post(event)
        finally:
            self._slots.release()

    def _post(self, event: ThreatEvent) -> bool:
        url = f"{self.config.monitoring_url}{THREATS_PATH}"
        try:
            resp = self.session.post(url, json=event.to_payload(), timeout=self.config.report_timeout)
        except requests.RequestException as e:
            logger.warning("Failed to report %s threat: %s", event.threat_type.value, e)
            return False
        except Exception:
            logger.exception("Unexpected error reporting %s threat", event.threat_type.value)
            return False

        if not resp.ok:
            logger.warning("Monitoring system rejected %s threat report: HTTP %s",
                           event.threat_type.value, resp.status_code)
            return False

        logger.debug("Reported %s threat from %s", event.threat_type.value, event.source_ip)
        return True

    def close(self, wait: bool = False) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)
        self.session.close()
