"""Pydantic models for partner-API payloads and per-cycle bookkeeping.

- Attestation: one signed price record, as fetched
- ValidationVerdict / DispatchResult: local judgment and its submission outcome
- UserStats / StatsSnapshot / CycleOutcome: server counters and per-cycle deltas
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storkwatch.errors import MalformedResponse


# ---------------------------------------------------------------------------
# Attestations
# ---------------------------------------------------------------------------


def _first(d: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if d.get(key) not in (None, ""):
            return d[key]
    return None


def _ns_to_datetime(value: Any) -> datetime | None:
    try:
        ns = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if ns <= 0:
        return None
    try:
        return datetime.fromtimestamp(ns / 1_000_000_000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        # beyond what datetime or the platform clock can represent
        return None


class Attestation(BaseModel):
    """A signed price record for one asset.

    Fields the service omitted stay None; they make the freshness verdict
    invalid rather than rejecting the whole fetch.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: str
    message_hash: str | None = None
    price: str | None = None
    produced_at: datetime | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, asset_id: str, payload: Any) -> "Attestation":
        """Parse one entry of the ``stork_signed_prices`` mapping.

        Accepts both the snake_case keys the API sends today and the
        camelCase spelling used by older deployments.
        """
        if not isinstance(payload, dict):
            return cls(asset_id=asset_id, raw_payload={"value": payload})

        signature = _first(payload, "timestamped_signature", "timestampedSignature")
        if not isinstance(signature, dict):
            signature = {}

        message_hash = _first(signature, "msg_hash", "msgHash")
        if not isinstance(message_hash, str):
            message_hash = None

        price = payload.get("price")
        return cls(
            asset_id=asset_id,
            message_hash=message_hash,
            price=str(price) if price not in (None, "") else None,
            produced_at=_ns_to_datetime(signature.get("timestamp")),
            raw_payload=payload,
        )


class ValidationVerdict(BaseModel):
    """Local judgment of one attestation."""

    message_hash: str | None
    is_valid: bool
    reason: str = ""


class DispatchResult(BaseModel):
    """Outcome of one dispatch unit (verdict + submission)."""

    message_hash: str | None
    asset_id: str = ""
    succeeded: bool
    verdict: bool | None = None
    attempts: int = 0
    error: str | None = None


# ---------------------------------------------------------------------------
# Server counters
# ---------------------------------------------------------------------------


class StatsSnapshot(BaseModel):
    """Server-reported cumulative counters at one point in time."""

    valid_count: int = Field(ge=0)
    invalid_count: int = Field(ge=0)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ValidationStats(BaseModel):
    valid_count: int = 0
    invalid_count: int = 0
    last_verified_at: str | None = None
    referral_usage_count: int = 0


class UserStats(BaseModel):
    """The ``/me`` payload."""

    email: str = ""
    id: str = ""
    referral_code: str = ""
    stats: ValidationStats = Field(default_factory=ValidationStats)

    @classmethod
    def from_payload(cls, payload: Any) -> "UserStats":
        if not isinstance(payload, dict):
            raise MalformedResponse("user payload is not an object")
        raw = payload.get("stats")
        if not isinstance(raw, dict):
            raise MalformedResponse("user payload has no stats")
        valid = _first(raw, "stork_signed_prices_valid_count", "validCount", "valid_count")
        invalid = _first(raw, "stork_signed_prices_invalid_count", "invalidCount", "invalid_count")
        try:
            stats = ValidationStats(
                valid_count=int(valid or 0),
                invalid_count=int(invalid or 0),
                last_verified_at=_first(
                    raw, "stork_signed_prices_last_verified_at", "lastVerifiedAt",
                ),
                referral_usage_count=int(
                    _first(raw, "referral_usage_count", "referralUsageCount") or 0
                ),
            )
        except (TypeError, ValueError) as e:
            raise MalformedResponse(f"user stats not numeric: {e}") from e
        return cls(
            email=str(payload.get("email") or ""),
            id=str(payload.get("id") or ""),
            referral_code=str(_first(payload, "referral_code", "referralCode") or ""),
            stats=stats,
        )

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            valid_count=self.stats.valid_count,
            invalid_count=self.stats.invalid_count,
        )


class CycleOutcome(BaseModel):
    """Counter increments attributable to one cycle.

    Deltas are not clamped: a negative value means the server reset its
    counters and ``counter_reset`` is set.
    """

    valid_delta: int
    invalid_delta: int
    counter_reset: bool = False


__all__ = [
    "Attestation",
    "CycleOutcome",
    "DispatchResult",
    "StatsSnapshot",
    "UserStats",
    "ValidationStats",
    "ValidationVerdict",
]
