"""Error taxonomy shared by the identity, fetch and submission paths."""

from __future__ import annotations


class StorkWatchError(Exception):
    """Base exception for all storkwatch errors."""


class AuthFailure(StorkWatchError):
    """The identity provider rejected an exchange or could not be reached."""

    def __init__(self, message: str, code: str = "") -> None:
        self.code = code
        super().__init__(f"{code}: {message}" if code else message)


class Unauthorized(StorkWatchError):
    """The partner API answered 401 for the presented access token."""


class TransientFailure(StorkWatchError):
    """Non-auth HTTP error, timeout or transport failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class MalformedResponse(TransientFailure):
    """A response body was undecodable or lacked required fields."""


__all__ = [
    "AuthFailure",
    "MalformedResponse",
    "StorkWatchError",
    "TransientFailure",
    "Unauthorized",
]
