"""
Pytest configuration and fixtures for chainstate tests.
"""

import sys
from pathlib import Path

import pytest
import requests

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chainstate.cache import ResultCache  # noqa: E402
from chainstate.rpc import RpcGateway  # noqa: E402


class FakeResponse:
    def __init__(self, body, status_code=200, text=None):
        self._body = body
        self.status_code = status_code
        self.text = text if text is not None else repr(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """
    Stands in for requests.Session.

    `results` maps a method name to its result, an {"error": ...} dict to
    answer with an error envelope, or an exception to raise on post.
    """

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    def _answer(self, request):
        method = request["method"]
        self.calls.append(method)
        missing = f"the method {method} does not exist/is not available"
        value = self.results.get(method, {"error": {"code": -32601, "message": missing}})
        if isinstance(value, dict) and set(value) == {"error"}:
            return {"jsonrpc": "2.0", "id": request["id"], "error": value["error"]}
        if callable(value):
            value = value(request["params"])
        return {"jsonrpc": "2.0", "id": request["id"], "result": value}

    def post(self, url, json=None, headers=None, timeout=None):
        payload = json
        requests_ = payload if isinstance(payload, list) else [payload]
        for request in requests_:
            value = self.results.get(request["method"])
            if isinstance(value, Exception):
                self.calls.append(request["method"])
                raise value
        if isinstance(payload, list):
            return FakeResponse([self._answer(request) for request in payload])
        return FakeResponse(self._answer(payload))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(clock=clock)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def gateway(session):
    return RpcGateway(session=session)


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
