"""
Error types for the remote content API client.

This module defines every exception raised by RemoteClient:
- ApiError: Base exception, any unexpected response
- NotFoundError: 404, the requested resource does not exist
- UnauthorizedError: 401, the access token was rejected
- RateLimitError: 429, retries exhausted while rate limited

Invariants:
    - All errors inherit from ApiError
    - NotFoundError and UnauthorizedError are never retried
    - Errors carry the HTTP status and the parsed response body
"""

from __future__ import annotations

from typing import Any

import httpx


class ApiError(Exception):
    """Base exception for remote API failures.

    Attributes:
        message: Error message
        status: HTTP status code, None for transport failures
        details: Parsed error body from the remote API
    """

    retryable = False

    def __init__(
        self,
        message: str,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details or {}

    @classmethod
    def from_response(cls, response: httpx.Response) -> ApiError:
        """Classify a failed response into the matching error type."""
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {"message": str(body)}

        message = body.get("message") or f"HTTP {response.status_code}"
        message = f"{message} ({response.request.method} {response.request.url})"

        if response.status_code == 404:
            return NotFoundError(message, response.status_code, body)
        if response.status_code == 401:
            return UnauthorizedError(message, response.status_code, body)
        if response.status_code == 429:
            reset = response.headers.get("X-Contentful-RateLimit-Reset")
            return RateLimitError(
                message,
                response.status_code,
                body,
                reset_seconds=float(reset) if reset else None,
            )
        error = cls(message, response.status_code, body)
        if response.status_code >= 500:
            error.retryable = True
        return error


class NotFoundError(ApiError):
    """The requested resource does not exist."""
    pass


class UnauthorizedError(ApiError):
    """The access token is missing, invalid or lacks permission."""
    pass


class RateLimitError(ApiError):
    """The remote API is rate limiting this client.

    Attributes:
        reset_seconds: Seconds until the rate limit resets, when the API says
    """

    retryable = True

    def __init__(
        self,
        message: str,
        status: int | None = 429,
        details: dict[str, Any] | None = None,
        reset_seconds: float | None = None,
    ) -> None:
        super().__init__(message, status, details)
        self.reset_seconds = reset_seconds
