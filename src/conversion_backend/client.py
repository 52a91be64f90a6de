"""
HTTP client for the conversion API, meant to sit behind a user interface.

No call raises. Each returns a :class:`Result`; failures carry an
:class:`ErrorKind` and a message, and read calls fall back to an empty value.
An optional notifier receives toast-style :class:`Notification` objects so
the UI can decide how to present outcomes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation"
    CONVERSION = "conversion"
    RATE_LIMITED = "rate_limited"
    CREDITS_EXHAUSTED = "credits_exhausted"
    SERVER = "server"
    NETWORK = "network"


_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHORIZED,
    402: ErrorKind.CREDITS_EXHAUSTED,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}


@dataclass
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str = "default"


Notifier = Callable[[Notification], None]


class ConversionClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        notifier: Optional[Notifier] = None,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.notifier = notifier
        self.timeout = timeout
        self._transport = transport
        self._http_client = http_client

    def _notify(self, title: str, description: str, variant: str = "default") -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(Notification(title=title, description=description, variant=variant))
        except Exception:
            logger.exception("Notifier raised while showing %r", title)

    def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Tuple[Optional[Dict[str, Any]], Optional[ErrorKind], Optional[str]]:
        """Send a request; returns (body, error_kind, message)."""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.base_url}{path}"
        try:
            if self._http_client is not None:
                response = self._http_client.request(method, url, headers=headers, **kwargs)
            else:
                with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                    response = client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Network error calling %s %s: %s", method, path, exc)
            return None, ErrorKind.NETWORK, str(exc)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success:
            return body, None, None

        message = body.get("details") or body.get("error") or body.get("detail") or response.reason_phrase
        if not isinstance(message, str):
            message = str(message)
        kind = _STATUS_KINDS.get(response.status_code)
        if kind is None:
            kind = ErrorKind.CONVERSION if body.get("error") == "Conversion failed" else ErrorKind.SERVER
        return body, kind, message

    def convert(
        self,
        conversion_type: str,
        input_data: Optional[Dict[str, Any]] = None,
        file_data: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> Result[Dict[str, Any]]:
        payload: Dict[str, Any] = {"conversion_type": conversion_type}
        if input_data is not None:
            payload["input_data"] = input_data
        if file_data is not None:
            payload["file_data"] = file_data
        if file_name is not None:
            payload["file_name"] = file_name

        body, kind, message = self._request("POST", "/convert", json=payload)
        if kind is ErrorKind.NETWORK:
            self._notify("Network Error", "Failed to connect to conversion service", "destructive")
            return Result(error=kind, message=message)
        if kind is not None:
            self._notify("Conversion Failed", message or "An error occurred during conversion", "destructive")
            return Result(error=kind, message=message)

        self._notify("Conversion Successful", f"Conversion completed in {body.get('processing_time_ms')}ms")
        return Result(value=body)

    def list_jobs(
        self,
        limit: int = 10,
        status: Optional[str] = None,
        conversion_type: Optional[str] = None,
    ) -> Result[List[Dict[str, Any]]]:
        params: Dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        if conversion_type:
            params["type"] = conversion_type

        body, kind, message = self._request("GET", "/jobs", params=params)
        if kind is not None:
            logger.error("Error fetching jobs: %s", message)
            return Result(value=[], error=kind, message=message)
        return Result(value=body.get("jobs") or [])

    def usage_stats(self, days: int = 30) -> Result[Dict[str, Any]]:
        body, kind, message = self._request("GET", "/usage", params={"days": days})
        if kind is not None:
            logger.error("Error fetching usage stats: %s", message)
            return Result(error=kind, message=message)
        return Result(value=body)

    def ai_convert(
        self,
        ai_type: str,
        content: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Result[str]:
        payload = {"type": ai_type, "content": content, "options": options or {}}
        body, kind, message = self._request("POST", "/ai/convert", json=payload)

        if kind is ErrorKind.NETWORK:
            self._notify("Network Error", "Failed to connect to AI service", "destructive")
        elif kind is ErrorKind.RATE_LIMITED:
            self._notify("Rate Limit Exceeded", "Too many requests. Please wait a moment and try again.", "destructive")
        elif kind is ErrorKind.CREDITS_EXHAUSTED:
            self._notify("AI Credits Depleted", "Please add credits to continue using AI features.", "destructive")
        elif kind is not None:
            self._notify("AI Conversion Failed", message or "An error occurred during AI processing", "destructive")

        if kind is not None:
            return Result(error=kind, message=message)

        self._notify("AI Conversion Successful", "Content processed successfully")
        return Result(value=body.get("result"))
