"""Test configuration and utilities for the domain scanner test suite."""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Tuple, Union

import httpx
import pytest

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

TYPE_CODES = {"A": 1, "CNAME": 5, "MX": 15, "TXT": 16, "AAAA": 28}


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DohStub:
    """Google-style DNS JSON answers keyed by (name, type)."""

    def __init__(self):
        self.records: Dict[Tuple[str, str], List[str]] = {}
        self.failing: set = set()

    def add(self, name: str, rtype: str, *data: str) -> "DohStub":
        self.records.setdefault((name, rtype), []).extend(data)
        return self

    def fail(self, name: str, rtype: str) -> "DohStub":
        self.failing.add((name, rtype))
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        name = request.url.params.get("name", "")
        rtype = request.url.params.get("type", "")
        if (name, rtype) in self.failing:
            return httpx.Response(503, text="unavailable")

        body: Dict = {"Status": 0, "Question": [{"name": name + ".", "type": TYPE_CODES.get(rtype, 0)}]}
        data = self.records.get((name, rtype))
        if data:
            body["Answer"] = [
                {"name": name + ".", "type": TYPE_CODES[rtype], "TTL": 300, "data": d}
                for d in data
            ]
        return httpx.Response(200, json=body)


Handler = Callable[[httpx.Request], httpx.Response]


class Router:
    """Dispatches mocked requests by host and records every request seen."""

    def __init__(self):
        self.routes: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []

    def add(self, host: str, handler: Union[Handler, Callable[[], httpx.Response]]) -> "Router":
        self.routes[host] = handler
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"no route to {request.url.host}", request=request)
        return handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def hits(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


def json_response(payload, status: int = 200) -> Handler:
    return lambda request: httpx.Response(status, json=payload)


def offline(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network unreachable", request=request)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fixed_now():
    return lambda: FIXED_NOW


@pytest.fixture
def doh():
    return DohStub()


@pytest.fixture
def router(doh):
    r = Router()
    r.add("dns.google", doh)
    return r
