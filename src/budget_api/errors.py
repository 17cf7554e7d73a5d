from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_URL = "invalid_url"
    REQUEST_FAILED = "request_failed"
    INVALID_RESPONSE = "invalid_response"
    DECODING_FAILED = "decoding_failed"
    UNAUTHORIZED = "unauthorized"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"
    # Client-local kinds: no network call was made.
    UNAUTHENTICATED = "unauthenticated"
    INVALID_REQUEST = "invalid_request"


_MESSAGES = {
    ErrorKind.INVALID_URL: "Invalid URL",
    ErrorKind.REQUEST_FAILED: "Request failed",
    ErrorKind.INVALID_RESPONSE: "Invalid response from server",
    ErrorKind.DECODING_FAILED: "Failed to decode response",
    ErrorKind.UNAUTHORIZED: "Unauthorized access",
    ErrorKind.UNKNOWN: "Unknown error occurred",
    ErrorKind.UNAUTHENTICATED: "Not authenticated",
    ErrorKind.INVALID_REQUEST: "Invalid request",
}


class BudgetApiError(RuntimeError):
    """
    Typed failure of a budgeting API call.

    `kind` identifies the failure class; `status` is only set for
    `ErrorKind.SERVER_ERROR`. `detail` keeps the underlying cause text for
    logs and is appended to the user-facing `message` when present.
    Two errors are equal when kind and status match.
    """

    def __init__(
        self,
        kind: ErrorKind,
        *,
        status: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.status = status
        self.detail = detail
        super().__init__(self.message)

    @classmethod
    def server_error(cls, status: int) -> "BudgetApiError":
        return cls(ErrorKind.SERVER_ERROR, status=status)

    @property
    def message(self) -> str:
        if self.kind is ErrorKind.SERVER_ERROR:
            return f"Server error with code: {self.status}"
        base = _MESSAGES[self.kind]
        if self.detail:
            return f"{base}: {self.detail}"
        return base

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BudgetApiError):
            return NotImplemented
        return (self.kind, self.status) == (other.kind, other.status)

    def __hash__(self) -> int:
        return hash((self.kind, self.status))

    def __repr__(self) -> str:
        if self.status is not None:
            return f"BudgetApiError({self.kind.value}, status={self.status})"
        return f"BudgetApiError({self.kind.value})"


__all__ = ["BudgetApiError", "ErrorKind"]
