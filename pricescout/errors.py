from __future__ import annotations

from typing import Dict, List, Optional


class PriceScoutError(Exception):
    """Base error carrying an HTTP status, a stable code, and a caller-safe message.

    The constructor argument is internal detail for logs only; responses are built
    from ``public_message`` so upstream text and config names never leak.
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    public_message = "Something went wrong. Please try again."

    def to_payload(self) -> Dict[str, object]:
        """Purpose: Build the JSON body returned to callers for this error.
        Inputs/Outputs: No inputs; returns a dict with error and code keys.
        Side Effects / State: None.
        Dependencies: Used by the FastAPI exception handler in app.py.
        Failure Modes: None.
        If Removed: Errors would surface as framework defaults with internal text.
        Testing Notes: Raise a subclass and verify the body has the fixed message.
        """
        return {"error": self.public_message, "code": self.code}


class ValidationError(PriceScoutError):
    status_code = 400
    code = "VALIDATION_ERROR"
    public_message = "Invalid request. Please check the highlighted fields."

    def __init__(self, details: List[Dict[str, str]]) -> None:
        super().__init__("; ".join(f"{item['field']}: {item['message']}" for item in details))
        self.details = details

    def to_payload(self) -> Dict[str, object]:
        payload = super().to_payload()
        payload["details"] = self.details
        return payload


class InvalidJson(PriceScoutError):
    status_code = 400
    code = "INVALID_JSON"
    public_message = "Request body must be valid JSON."


class Unauthorized(PriceScoutError):
    status_code = 401
    code = "UNAUTHORIZED"
    public_message = "Authentication required."


class InvalidToken(PriceScoutError):
    status_code = 401
    code = "INVALID_TOKEN"
    public_message = "Invalid or expired session. Please sign in again."


class QuotaExceeded(PriceScoutError):
    status_code = 402
    code = "QUOTA_EXCEEDED"
    public_message = "AI credits exhausted. Please add credits to continue."


class NotFound(PriceScoutError):
    status_code = 404
    code = "NOT_FOUND"
    public_message = "Nothing found for this request."


class DuplicateFavorite(PriceScoutError):
    status_code = 409
    code = "DUPLICATE_FAVORITE"
    public_message = "This vendor is already saved to your favorites."


class RateLimited(PriceScoutError):
    status_code = 429
    code = "RATE_LIMIT"
    public_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamError(PriceScoutError):
    status_code = 500
    code = "UPSTREAM_ERROR"
    public_message = "Price analysis failed. Please try again."

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ServiceUnavailable(PriceScoutError):
    status_code = 500
    code = "SERVICE_UNAVAILABLE"
    public_message = "The analysis service is temporarily unavailable."
