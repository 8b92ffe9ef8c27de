"""Credential model for the Cognito token triple."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, field_validator


class Credential(BaseModel):
    """Access/id/refresh token triple plus the expiry issued with it.

    ``expires_at`` is fixed when the token exchange answers and is never
    recomputed afterwards.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    id_token: str = ""
    refresh_token: str = ""
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @classmethod
    def issued(
        cls,
        access_token: str,
        id_token: str,
        refresh_token: str,
        expires_in: float,
        issued_at: datetime | None = None,
    ) -> "Credential":
        """Build a credential from a token exchange answer."""
        issued_at = issued_at or datetime.now(timezone.utc)
        return cls(
            access_token=access_token,
            id_token=id_token,
            refresh_token=refresh_token,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )

    def is_expired(self, now: datetime | None = None, min_ttl: float = 0.0) -> bool:
        """True once ``now`` is within ``min_ttl`` seconds of expiry (or past it)."""
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at - timedelta(seconds=min_ttl)

    @property
    def token_hint(self) -> str:
        """Short prefix of the access token, safe for logs."""
        return f"{self.access_token[:10]}..."


__all__ = ["Credential"]
