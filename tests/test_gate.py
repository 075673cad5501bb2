# tests/test_gate.py
import pytest

from shield.blocklist import BlocklistCache
from shield.gate import Gate
from shield.models import Action, GateState, InboundRequest, Severity, ThreatType

from conftest import FakeSession, blocked, connection_refused

ATTACKER = "203.0.113.66"


@pytest.fixture
def gate(config, session, clock, reporter):
    blocklist = BlocklistCache(config, session=session, clock=clock)
    return Gate(config, blocklist=blocklist, reporter=reporter)


def request(path="/api/bookings", query="", body="", method="GET", **kwargs):
    kwargs.setdefault("peer", ATTACKER)
    return InboundRequest(method=method, path=path, query=query, body=body, **kwargs)


def test_clean_request_is_allowed(gate, reporter):
    verdict = gate.inspect(request(query="page=2", body='{"customer":"Alice"}'))
    assert verdict.state is GateState.ALLOWED
    assert verdict.allowed
    assert verdict.client_ip == ATTACKER
    assert reporter.events == []


def test_blocklisted_address_is_denied_without_report(gate, session, reporter):
    session.queue(blocked(ATTACKER))
    verdict = gate.inspect(request())

    assert verdict.state is GateState.REJECTED
    assert verdict.status_code == 403
    assert verdict.message == "Access denied"
    assert verdict.threat_type is None
    assert reporter.events == []


def test_blocklist_uses_forwarded_address(gate, session):
    session.queue(blocked(ATTACKER))
    assert not gate.inspect(request(forwarded_for=f"{ATTACKER}, 10.0.0.1", peer="10.0.0.1")).allowed
    assert gate.inspect(request(forwarded_for="192.0.2.1", peer=ATTACKER)).allowed


@pytest.mark.parametrize("kwargs, threat_type, severity", [
    (dict(body='{"u":"\' OR 1=1; DROP TABLE users","c":"<script>"}'), ThreatType.SQL_INJECTION, Severity.CRITICAL),
    (dict(query="next=javascript:alert(1)"), ThreatType.XSS, Severity.HIGH),
    (dict(path="/files/../../etc/shadow"), ThreatType.PATH_TRAVERSAL, Severity.HIGH),
    (dict(query="host=x|nc 10.0.0.1 4444"), ThreatType.COMMAND_INJECTION, Severity.CRITICAL),
])
def test_signature_match_rejects_and_reports(gate, reporter, kwargs, threat_type, severity):
    verdict = gate.inspect(request(method="POST", **kwargs))

    assert verdict.state is GateState.REJECTED
    assert verdict.status_code == 403
    assert verdict.message == "Forbidden"
    assert verdict.threat_type is threat_type

    [event] = reporter.events
    assert event.threat_type is threat_type
    assert event.severity is severity
    assert event.action_taken is Action.BLOCK
    assert event.source_ip == ATTACKER
    assert event.destination_port == 443
    assert event.protocol == "TCP"
    assert " attempt: POST " in event.raw_data


def test_event_raw_data_names_method_and_url(gate, reporter):
    gate.inspect(request(path="/search", query="q=1' OR '1'='1"))
    assert reporter.events[0].raw_data == "SQL injection attempt: GET /search?q=1' OR '1'='1"


def test_blocklist_outage_does_not_block_traffic(config, clock, reporter):
    session = FakeSession(connection_refused(), connection_refused())
    gate = Gate(config, blocklist=BlocklistCache(config, session=session, clock=clock), reporter=reporter)

    assert gate.inspect(request()).allowed
    assert not gate.inspect(request(query="id=1'")).allowed


def test_disabled_gate_allows_everything(disabled_config, session, reporter):
    gate = Gate(disabled_config, blocklist=BlocklistCache(disabled_config, session=session), reporter=reporter)

    verdict = gate.inspect(request(query="id=1' OR 1=1"))
    assert verdict.state is GateState.ALLOWED
    assert reporter.events == []
    assert session.calls == []


def test_login_hooks_reach_tracker(gate, reporter):
    for _ in range(4):
        assert gate.record_failure(ATTACKER) is None
    gate.record_success(ATTACKER)
    for _ in range(4):
        gate.record_failure(ATTACKER)
    assert reporter.events == []

    event = gate.record_failure(ATTACKER)
    assert event.threat_type is ThreatType.BRUTE_FORCE
    assert reporter.events == [event]


def test_close_releases_reporter_and_blocklist_session(gate, session, reporter):
    gate.close()
    assert reporter.closed
    assert session.closed
