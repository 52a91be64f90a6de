"""
Tests for the HTTP client adapter.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from conversion_backend.client import ConversionClient, ErrorKind
from conversion_backend.main import app


def mock_client(handler, notifications=None):
    return ConversionClient(
        "http://api.test",
        "cvt_key",
        notifier=notifications.append if notifications is not None else None,
        transport=httpx.MockTransport(handler),
    )


class TestAgainstApp:
    """Round trips through the real application."""

    @pytest.fixture
    def adapter(self, services, api_key):
        notifications = []
        adapter = ConversionClient(
            "http://testserver",
            api_key,
            notifier=notifications.append,
            http_client=TestClient(app),
        )
        return adapter, notifications

    def test_convert_and_list(self, adapter):
        adapter, notifications = adapter
        result = adapter.convert("text_case", {"text": "abc", "case_type": "uppercase"})

        assert result.ok
        assert result.value["result"] == {"result": "ABC"}
        assert notifications[-1].title == "Conversion Successful"

        jobs = adapter.list_jobs(limit=5)
        assert jobs.ok
        assert [job["id"] for job in jobs.value] == [result.value["job_id"]]

        usage = adapter.usage_stats(days=7)
        assert usage.value["summary"]["total_conversions"] == 1

    def test_conversion_failure(self, adapter):
        adapter, notifications = adapter
        result = adapter.convert("color_convert", {"color": "zzz", "from_format": "hex", "to_format": "rgb"})

        assert result.error is ErrorKind.CONVERSION
        assert "Invalid hex color" in result.message
        assert notifications[-1].title == "Conversion Failed"
        assert notifications[-1].variant == "destructive"

    def test_validation_failure(self, adapter):
        adapter, _ = adapter
        result = adapter.convert("text_case", {"text": "abc"})
        assert result.error is ErrorKind.VALIDATION

    def test_bad_key(self, services):
        adapter = ConversionClient("http://testserver", "cvt_wrong", http_client=TestClient(app))
        result = adapter.list_jobs()
        assert result.error is ErrorKind.UNAUTHORIZED
        assert result.value == []


class TestErrorMapping:
    @pytest.mark.parametrize(
        "status, body, kind",
        [
            (400, {"error": "Invalid request", "details": ["x"]}, ErrorKind.VALIDATION),
            (401, {"error": "Unauthorized"}, ErrorKind.UNAUTHORIZED),
            (402, {"error": "AI credits depleted"}, ErrorKind.CREDITS_EXHAUSTED),
            (429, {"error": "Rate limit exceeded"}, ErrorKind.RATE_LIMITED),
            (500, {"success": False, "error": "Conversion failed", "details": "boom"}, ErrorKind.CONVERSION),
            (500, {"error": "Internal server error"}, ErrorKind.SERVER),
        ],
    )
    def test_status_to_kind(self, status, body, kind):
        result = mock_client(lambda request: httpx.Response(status, json=body)).convert("text_count", {"text": "a"})
        assert result.error is kind
        assert not result.ok

    def test_non_json_error_body(self):
        result = mock_client(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>")).usage_stats()
        assert result.error is ErrorKind.SERVER
        assert result.message == "Bad Gateway"


class TestNeverRaises:
    def _unreachable(self, request):
        raise httpx.ConnectError("connection refused", request=request)

    def test_network_error_on_convert(self):
        notifications = []
        result = mock_client(self._unreachable, notifications).convert("text_count", {"text": "a"})

        assert result.error is ErrorKind.NETWORK
        assert notifications[-1].title == "Network Error"

    def test_network_error_on_reads(self):
        client = mock_client(self._unreachable)
        assert client.list_jobs().value == []
        assert client.usage_stats().error is ErrorKind.NETWORK

    def test_failing_notifier_is_contained(self):
        def notifier(notification):
            raise RuntimeError("toast broke")

        client = ConversionClient(
            "http://api.test",
            "cvt_key",
            notifier=notifier,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"success": True})),
        )
        assert client.convert("text_count", {"text": "a"}).ok


class TestAIConvert:
    @pytest.mark.parametrize(
        "status, title",
        [
            (429, "Rate Limit Exceeded"),
            (402, "AI Credits Depleted"),
            (500, "AI Conversion Failed"),
        ],
    )
    def test_error_notifications(self, status, title):
        notifications = []
        client = mock_client(lambda request: httpx.Response(status, json={"error": "x"}), notifications)

        result = client.ai_convert("text_enhance", "hello")
        assert not result.ok
        assert [n.title for n in notifications] == [title]

    def test_success(self):
        notifications = []
        client = mock_client(
            lambda request: httpx.Response(200, json={"success": True, "result": "Hi!", "type": "text_enhance"}),
            notifications,
        )
        result = client.ai_convert("text_enhance", "hi", {"targetLanguage": "French"})
        assert result.value == "Hi!"
        assert notifications[-1].title == "AI Conversion Successful"

    def test_sends_bearer_and_payload(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"result": "ok"})

        mock_client(handler).ai_convert("ai_query", "2+2")
        assert seen == {"auth": "Bearer cvt_key", "path": "/ai/convert"}
