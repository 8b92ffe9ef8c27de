"""Bounded retry-on-expired-credential policy.

Used uniformly by the fetch, submit and stats calls: an operation is run
with a valid credential, and a retryable error (401 by default) triggers
one renewal and one more attempt. With the default two attempts a
misbehaving service can cost at most one renewal per operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

import bittensor as bt

from storkwatch.auth.models import Credential
from storkwatch.errors import Unauthorized

if TYPE_CHECKING:
    from storkwatch.auth.manager import CredentialManager

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """``max_attempts`` tries in total; renew the credential between tries on ``retry_on``."""

    max_attempts: int = 2
    retry_on: tuple[type[BaseException], ...] = field(default=(Unauthorized,))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    async def run(
        self,
        operation: Callable[[Credential], Awaitable[T]],
        credentials: "CredentialManager",
        *,
        label: str = "operation",
    ) -> T:
        """Run ``operation(credential)``; the last retryable error propagates."""
        credential = await credentials.obtain_valid()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation(credential)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    bt.logging.warning({
                        "retry_policy": {
                            "operation": label,
                            "event": "exhausted",
                            "attempts": attempt,
                            "error": type(e).__name__,
                        }
                    })
                    raise
                bt.logging.debug({
                    "retry_policy": {"operation": label, "event": "renew_and_retry", "attempt": attempt}
                })
                credential = await credentials.renew(stale=credential)


DEFAULT_POLICY = RetryPolicy()

__all__ = ["DEFAULT_POLICY", "RetryPolicy"]
