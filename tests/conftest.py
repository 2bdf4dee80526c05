import asyncio
import time
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest

from parsera import Parsera

API_KEY = "test-api-key-0123456789abcdef0123456789"
BASE_URL = "https://api.parsera.test/v1"

SUCCESS_PAYLOAD = {
    "data": [
        {"title": "Product Name", "price": "$99.99"},
        {"title": "Another Product", "price": "$149.99"}
    ]
}


def json_response(status_code: int, payload: Any = None) -> httpx.Response:
    if payload is None:
        return httpx.Response(status_code)
    return httpx.Response(status_code, json=payload)


class FakeParseraAPI:
    """Scripted stand-in for the Parsera API

    Each call to /extract consumes the next scripted outcome; the last outcome
    repeats once the script runs out. An outcome is an httpx.Response or an
    exception to raise.
    """

    def __init__(self):
        self.outcomes: List[Union[httpx.Response, Exception]] = [json_response(200, SUCCESS_PAYLOAD)]
        self.delay: float = 0.0
        self.extract_requests: List[httpx.Request] = []
        self.call_times: List[float] = []
        self.proxy_countries: Union[Dict[str, str], int, Exception] = {
            "UnitedStates": "United States",
            "Germany": "Germany"
        }

    def script(self, *outcomes: Union[httpx.Response, Exception]):
        self.outcomes = list(outcomes)

    @property
    def attempts(self) -> int:
        return len(self.extract_requests)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/proxy-countries"):
            return self._proxy_countries_response()

        self.extract_requests.append(request)
        self.call_times.append(time.monotonic())
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome.status_code, content=outcome.content, headers=outcome.headers)

    def _proxy_countries_response(self) -> httpx.Response:
        if isinstance(self.proxy_countries, Exception):
            raise self.proxy_countries
        if isinstance(self.proxy_countries, int):
            return httpx.Response(self.proxy_countries)
        return httpx.Response(200, json=self.proxy_countries)


class EventRecorder:
    """Collects every envelope delivered for the subscribed types"""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of(self, event_type: str) -> list:
        return [event for event in self.events if event.type.value == event_type]

    def count(self, event_type: str) -> int:
        return len(self.of(event_type))


@pytest.fixture
def fake_api():
    return FakeParseraAPI()


@pytest.fixture
async def http_client(fake_api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    yield client
    await client.aclose()


@pytest.fixture
def make_client(http_client):
    """Build a client against the fake API with fast defaults"""

    def factory(**overrides) -> Parsera:
        options: Dict[str, Any] = {
            "api_key": API_KEY,
            "base_url": BASE_URL,
            "http_client": http_client,
            "min_request_interval": 0,
            "retry_options": {"max_retries": 3, "initial_delay": 0.0, "backoff_factor": 2},
        }
        options.update(overrides)
        return Parsera(**options)

    return factory


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def recorder(client):
    recorder = EventRecorder()
    for event_type in (
        "request:start",
        "request:end",
        "request:retry",
        "request:error",
        "extract:start",
        "extract:complete",
        "extract:error",
        "rateLimit",
        "timeout",
        "handler:error",
    ):
        client.on(event_type, recorder)
    return recorder
