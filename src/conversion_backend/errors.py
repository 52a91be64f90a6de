"""
Error taxonomy shared by the services and the HTTP layer.

Each error carries the HTTP status it maps to and the public message that is
safe to return to callers. Internal detail stays in the logs.
"""

from __future__ import annotations

from typing import Any, Optional


class ServiceError(Exception):
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message or self.public_message)
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"error": self.public_message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class Unauthorized(ServiceError):
    status_code = 401
    public_message = "Unauthorized"

    def to_payload(self) -> dict:
        return {"error": self.public_message}


class ValidationError(ServiceError):
    status_code = 400
    public_message = "Invalid request"


class ConversionFailure(ServiceError):
    status_code = 500
    public_message = "Conversion failed"

    def to_payload(self) -> dict:
        return {"error": self.public_message, "details": self.details if self.details is not None else str(self)}


class RateLimited(ServiceError):
    status_code = 429
    public_message = "Rate limit exceeded. Please try again in a moment."


class CreditsExhausted(ServiceError):
    status_code = 402
    public_message = "AI credits depleted. Please add credits to your workspace."


class InfrastructureFailure(ServiceError):
    status_code = 500
    public_message = "Service temporarily unavailable"

    def to_payload(self) -> dict:
        return {"error": self.public_message}


class NotConfigured(InfrastructureFailure):
    public_message = "Service not configured. Please contact support."

    def to_payload(self) -> dict:
        return {"error": str(self)}
