"""
Pytest configuration and fixtures for Conversion Backend tests.
"""

import os
import tempfile

import httpx
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["MASTER_API_KEY"] = "test-master-key-12345"
os.environ["DATABASE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="cvt_test_db_"), "import.db")

from conversion_backend.configuration import load_config
from conversion_backend.main import app, build_services, get_services


EXCHANGE_RATE_RESPONSE = {
    "success": True,
    "query": {"from": "USD", "to": "EUR", "amount": 100},
    "info": {"timestamp": 1704067200, "rate": 0.92},
    "date": "2024-01-01",
    "result": 92.0,
}

AI_RESPONSE = {
    "choices": [{"message": {"role": "assistant", "content": "A short summary."}}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
}


def upstream_handler(request: httpx.Request) -> httpx.Response:
    """Stand-in for the exchange-rates API and the AI gateway."""
    if request.url.path.endswith("/convert"):
        return httpx.Response(200, json=EXCHANGE_RATE_RESPONSE)
    if request.url.path.endswith("/chat/completions"):
        return httpx.Response(200, json=AI_RESPONSE)
    return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def make_config(tmp_path):
    """Build a config pointing at a fresh database, with test API keys set."""

    def _make(**overrides):
        values = {
            "database_path": str(tmp_path / "conversions.db"),
            "master_api_key": "test-master-key-12345",
            "exchange_rates": {"api_key": "test-rates-key"},
            "ai": {"api_key": "test-ai-key"},
        }
        values.update(overrides)
        return load_config(values)

    return _make


@pytest.fixture
def upstream():
    """Mock transport shared by every outbound httpx client."""
    return httpx.MockTransport(upstream_handler)


@pytest.fixture
def services(make_config, upstream):
    """Fresh service graph per test, installed as the app's provider."""
    svc = build_services(make_config(), transport=upstream)
    app.dependency_overrides[get_services] = lambda: svc
    yield svc
    app.dependency_overrides.pop(get_services, None)


@pytest.fixture
def client(services):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def master_key():
    """Return the master API key for admin operations."""
    return "test-master-key-12345"


@pytest.fixture
def api_key(client, master_key):
    """Create a test API key for owner ``test-user``."""
    response = client.post(
        "/admin/keys",
        json={"owner": "test-user"},
        headers={"X-API-Key": master_key},
    )
    assert response.status_code == 201
    return response.json()["api_key"]


@pytest.fixture
def auth_headers(api_key):
    return {"Authorization": f"Bearer {api_key}"}


@pytest.fixture
def other_headers(client, master_key):
    """Bearer headers for a second owner."""
    response = client.post(
        "/admin/keys",
        json={"owner": "other-user"},
        headers={"X-API-Key": master_key},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['api_key']}"}


@pytest.fixture
def sample_pdf():
    """Minimal valid PDF bytes."""
    return b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>
endobj
xref
0 4
0000000000 65535 f
0000000009 00000 n
0000000058 00000 n
0000000115 00000 n
trailer
<< /Size 4 /Root 1 0 R >>
startxref
196
%%EOF"""
