# shield/gate.py
import logging
from typing import Optional

from .blocklist import BlocklistCache
from .brute_force import BruteForceTracker
from .config import ShieldConfig
from .models import GateState, InboundRequest, ThreatEvent, Verdict
from .parsers import build_signal, get_client_ip
from .reporter import ThreatReporter
from .rule_engine import RuleEngine

logger = logging.getLogger(__name__)

FORBIDDEN_STATUS = 403
BLOCKED_MESSAGE = "Access denied"
THREAT_MESSAGE = "Forbidden"


class Gate:
    """
    Owns every piece of shield state for one process.

    Build it once at startup and share it between request handlers and the
    login flow. inspect() walks each request through

        START -> BLOCKLIST_CHECK -> {REJECTED | PATTERN_SCAN} -> {REJECTED | ALLOWED}

    and never raises on infrastructure failures.
    """

    def __init__(
        self,
        config: Optional[ShieldConfig] = None,
        rule_engine: Optional[RuleEngine] = None,
        blocklist: Optional[BlocklistCache] = None,
        tracker: Optional[BruteForceTracker] = None,
        reporter: Optional[ThreatReporter] = None,
    ):
        self.config = config or ShieldConfig()

        if rule_engine is None:
            rule_engine = RuleEngine(rule_dir=self.config.rule_dir)
            rule_engine.load_rules()
        self.rule_engine = rule_engine

        self.reporter = reporter or ThreatReporter(self.config)
        self.blocklist = blocklist or BlocklistCache(self.config)
        self.tracker = tracker or BruteForceTracker(self.config, reporter=self.reporter)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def inspect(self, request: InboundRequest) -> Verdict:
        if not self.enabled:
            return Verdict(state=GateState.ALLOWED)

        client_ip = get_client_ip(request.forwarded_for, request.peer)

        # BLOCKLIST_CHECK: already known upstream, nothing new to report
        if self.blocklist.is_blocked(client_ip):
            logger.warning("Rejected blocklisted address %s: %s %s",
                           client_ip, request.method, request.path)
            return Verdict(
                state=GateState.REJECTED,
                client_ip=client_ip,
                status_code=FORBIDDEN_STATUS,
                message=BLOCKED_MESSAGE,
            )

        # PATTERN_SCAN
        rule = self.rule_engine.classify(build_signal(request.url, request.body))
        if rule is None:
            return Verdict(state=GateState.ALLOWED, client_ip=client_ip)

        logger.warning("Rejected %s from %s (rule %s): %s %s",
                       rule.threat_type.value, client_ip, rule.id, request.method, request.path)
        self.reporter.report(ThreatEvent(
            threat_type=rule.threat_type,
            severity=rule.severity,
            source_ip=client_ip,
            destination_port=self.config.destination_port,
            protocol=self.config.protocol,
            raw_data=f"{rule.description}: {request.method} {request.url}",
            action_taken=rule.action,
        ))
        return Verdict(
            state=GateState.REJECTED,
            client_ip=client_ip,
            status_code=FORBIDDEN_STATUS,
            message=THREAT_MESSAGE,
            threat_type=rule.threat_type,
        )

    def record_failure(self, address: str) -> Optional[ThreatEvent]:
        return self.tracker.record_failure(address)

    def record_success(self, address: str) -> None:
        self.tracker.record_success(address)

    def close(self) -> None:
        self.reporter.close()
        self.blocklist.close()
