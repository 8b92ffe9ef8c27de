"""Freshness policy for a single attestation.

Pure function of one attestation and the wall clock: no cross-attestation
state is consulted.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .models import Attestation, ValidationVerdict

MAX_AGE = timedelta(minutes=60)


def evaluate_freshness(
    attestation: Attestation,
    now: datetime | None = None,
    max_age: timedelta = MAX_AGE,
) -> ValidationVerdict:
    """Invalid if a required field is missing or the record is older than ``max_age``.

    An age of exactly ``max_age`` is still valid.
    """
    now = now or datetime.now(timezone.utc)

    missing = [
        name for name in ("message_hash", "price", "produced_at")
        if getattr(attestation, name) in (None, "")
    ]
    if missing:
        return ValidationVerdict(
            message_hash=attestation.message_hash,
            is_valid=False,
            reason=f"missing:{','.join(missing)}",
        )

    age = now - attestation.produced_at
    if age > max_age:
        return ValidationVerdict(
            message_hash=attestation.message_hash,
            is_valid=False,
            reason=f"stale:{int(age.total_seconds())}s",
        )

    return ValidationVerdict(message_hash=attestation.message_hash, is_valid=True)


__all__ = ["MAX_AGE", "evaluate_freshness"]
