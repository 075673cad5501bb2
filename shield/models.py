# shield/models.py
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, FrozenSet, List, Optional, Union

MAX_RAW_DATA_LENGTH = 500


class ThreatType(str, Enum):
    SQL_INJECTION = "sql_injection"
    XSS = "xss"
    PATH_TRAVERSAL = "path_traversal"
    COMMAND_INJECTION = "command_injection"
    BRUTE_FORCE = "brute_force"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Action(str, Enum):
    BLOCK = "block"
    ALERT = "alert"


@dataclass(frozen=True)
class Rule:
    id: str
    threat_type: ThreatType
    description: str
    severity: Severity = Severity.HIGH
    action: Action = Action.BLOCK
    match_type: str = "regex"     # "regex" or "contains"
    pattern: str = ""
    regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    def matches(self, signal: str) -> bool:
        if self.match_type == "contains":
            return self.pattern.lower() in signal.lower()
        return self.regex is not None and self.regex.search(signal) is not None


@dataclass(frozen=True)
class ThreatEvent:
    threat_type: ThreatType
    severity: Severity
    source_ip: str
    destination_port: int = 443
    protocol: str = "TCP"
    raw_data: str = ""       # diagnostic text, truncated to MAX_RAW_DATA_LENGTH
    action_taken: Action = Action.ALERT

    def __post_init__(self) -> None:
        if len(self.raw_data) > MAX_RAW_DATA_LENGTH:
            object.__setattr__(self, "raw_data", self.raw_data[:MAX_RAW_DATA_LENGTH])

    def to_payload(self) -> dict:
        """JSON body for POST /api/threats on the monitoring system."""
        return {
            "threatType": self.threat_type.value,
            "severity": self.severity.value,
            "sourceIp": self.source_ip,
            "destinationPort": self.destination_port,
            "protocol": self.protocol,
            "rawData": self.raw_data,
            "actionTaken": self.action_taken.value,
        }


@dataclass
class FailedLoginWindow:
    timestamps: Deque[float] = field(default_factory=deque)

    def prune(self, now: float, window: float) -> None:
        # oldest first, so stop at the first entry still inside the window
        while self.timestamps and now - self.timestamps[0] >= window:
            self.timestamps.popleft()

    def append(self, now: float) -> None:
        self.timestamps.append(now)

    def clear(self) -> None:
        self.timestamps.clear()

    def __len__(self) -> int:
        return len(self.timestamps)


@dataclass(frozen=True)
class BlocklistSnapshot:
    addresses: FrozenSet[str] = frozenset()
    refreshed_at: Optional[float] = None   # None until the first successful refresh


@dataclass(frozen=True)
class InboundRequest:
    method: str = "GET"
    path: str = "/"
    query: str = ""
    body: str = ""                           # already serialized
    forwarded_for: Union[str, List[str], None] = None
    peer: Optional[str] = None

    @property
    def url(self) -> str:
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path


class GateState(Enum):
    START = "start"
    BLOCKLIST_CHECK = "blocklist_check"
    PATTERN_SCAN = "pattern_scan"
    REJECTED = "rejected"
    ALLOWED = "allowed"


@dataclass(frozen=True)
class Verdict:
    state: GateState
    client_ip: str = "unknown"
    status_code: int = 200
    message: str = ""
    # internal only, never put in the response
    threat_type: Optional[ThreatType] = None

    @property
    def allowed(self) -> bool:
        return self.state is GateState.ALLOWED
