import json

import httpx
import pytest
from fastapi.testclient import TestClient

from pricescout import app as app_module
from pricescout.config import BASE_DIR, Settings
from pricescout.session_store import ResearchSessionStore

GATEWAY_URL = "https://gateway.test/v1/chat/completions"
AUTH_URL = "https://auth.test"
GOOD_TOKEN = "good-token"

SAMPLE_ANALYSIS = {
    "quotedItems": [
        {
            "name": "Laptop",
            "specifications": "Dell Inspiron 15, 16GB RAM",
            "quotedPrice": 65000,
        }
    ],
    "marketComparisons": [
        {
            "productName": "Laptop",
            "location": "Andheri West, Mumbai",
            "vendorName": "Croma",
            "priceRange": {"min": 58000, "max": 62000},
            "address": "Infiniti Mall, Andheri West",
            "phone": "+91 22 0000 0000",
            "notes": "In stock, bank offers available",
        },
        {
            "productName": "Laptop",
            "location": "Lamington Road, Mumbai",
            "vendorName": "Prime Computers",
            "priceRange": {"min": 55000, "max": 60000},
        },
    ],
    "summary": {
        "totalQuotedAmount": 65000,
        "estimatedMarketRange": {"min": 55000, "max": 62000},
        "recommendation": "The quotation is above the market rate; negotiate.",
    },
}


def fenced(payload: dict) -> str:
    return "Here is the analysis:\n```json\n" + json.dumps(payload) + "\n```\nHope this helps."


class FakeUpstream:
    """Answers the auth service and the AI gateway from canned responses."""

    def __init__(self) -> None:
        self.gateway_calls = []
        self.auth_calls = []
        self.gateway_status = 200
        self.gateway_content = fenced(SAMPLE_ANALYSIS)
        self.gateway_envelope = None
        self.valid_tokens = {GOOD_TOKEN}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/v1/user":
            self.auth_calls.append(request)
            token = request.headers.get("authorization", "").removeprefix("Bearer ")
            if token in self.valid_tokens:
                return httpx.Response(200, json={"id": "user-1", "email": "buyer@example.com"})
            return httpx.Response(401, json={"msg": "invalid JWT"})

        self.gateway_calls.append(json.loads(request.content))
        if self.gateway_status != 200:
            return httpx.Response(self.gateway_status, text="upstream exploded: internal-trace-xyz")
        if self.gateway_envelope is not None:
            return httpx.Response(200, json=self.gateway_envelope)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": self.gateway_content}}]},
        )

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    return Settings(
        gateway_api_key="test-gateway-key",
        gateway_url=GATEWAY_URL,
        model="google/gemini-2.5-flash",
        auth_url=AUTH_URL,
        auth_anon_key="test-anon-key",
        prompts_dir=BASE_DIR / "prompts",
        http_timeout=5.0,
        max_sessions=10,
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def api(settings, upstream, monkeypatch):
    monkeypatch.setattr(app_module, "session_store", ResearchSessionStore(max_sessions=10))

    def http_client_override():
        with upstream.client() as client:
            yield client

    app_module.app.dependency_overrides[app_module.get_settings] = lambda: settings
    app_module.app.dependency_overrides[app_module.get_http_client] = http_client_override
    with TestClient(app_module.app) as client:
        yield client
    app_module.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {GOOD_TOKEN}"}
