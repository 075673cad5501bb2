# tests/conftest.py
import pytest
import requests

from shield.config import ShieldConfig

MONITORING_URL = "http://overseer.test"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, bad_json=False):
        self.status_code = status_code
        self.payload = payload
        self.bad_json = bad_json

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload


class FakeSession:
    """Stands in for requests.Session; replies are consumed in order."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []
        self.closed = False

    def queue(self, *replies):
        self.replies.extend(replies)

    def _reply(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        reply = self.replies.pop(0) if self.replies else FakeResponse()
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get(self, url, **kwargs):
        return self._reply("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._reply("POST", url, **kwargs)

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingReporter:
    def __init__(self):
        self.events = []
        self.closed = False

    def report(self, event):
        self.events.append(event)

    def close(self, wait=False):
        self.closed = True


def blocked(*addresses):
    return FakeResponse(payload=[{"ipAddress": a, "reason": "test"} for a in addresses])


def connection_refused():
    return requests.ConnectionError("connection refused")


@pytest.fixture
def config():
    return ShieldConfig(monitoring_url=MONITORING_URL)


@pytest.fixture
def disabled_config():
    return ShieldConfig(monitoring_url="")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def reporter():
    return RecordingReporter()
