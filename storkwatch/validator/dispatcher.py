"""Fan a fetched batch out into independent validation submissions.

The batch is cut into ceil(N / max_concurrency) contiguous slices of at
most ``max_concurrency`` attestations. Slices run one after another; each
gets one HTTP client and the proxy at its round-robin position, and its
attestations are judged and submitted concurrently, so no more than
``max_concurrency`` submissions are ever in flight. Units never affect
their siblings: the call joins on all of them and reports one
DispatchResult per attestation, in input order.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

import bittensor as bt

from storkwatch.auth.manager import CredentialManager
from storkwatch.auth.models import Credential
from storkwatch.errors import StorkWatchError

from .client import StorkApiClient
from .freshness import MAX_AGE, evaluate_freshness
from .models import Attestation, DispatchResult
from .proxies import ProxyDescriptor, ProxyPool
from .retry import DEFAULT_POLICY, RetryPolicy

ClientFactory = Callable[[ProxyDescriptor | None], StorkApiClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def partition(items: Sequence[Attestation], max_concurrency: int) -> list[list[Attestation]]:
    """ceil(N / max_concurrency) contiguous slices of at most ``max_concurrency`` items."""
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")
    return [
        list(items[i:i + max_concurrency])
        for i in range(0, len(items), max_concurrency)
    ]


class ValidationDispatcher:
    """Judges and submits verdicts for one batch of attestations."""

    def __init__(
        self,
        credentials: CredentialManager,
        client_factory: ClientFactory,
        max_concurrency: int = 10,
        policy: RetryPolicy = DEFAULT_POLICY,
        max_age: timedelta = MAX_AGE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.credentials = credentials
        self.client_factory = client_factory
        self.max_concurrency = max_concurrency
        self.policy = policy
        self.max_age = max_age
        self._clock = clock

    async def dispatch(
        self,
        attestations: Sequence[Attestation],
        proxy_pool: ProxyPool,
    ) -> list[DispatchResult]:
        batches = partition(attestations, self.max_concurrency)
        if not batches:
            bt.logging.debug({"dispatch": "empty_batch"})
            return []

        results: list[DispatchResult] = []
        for i, batch in enumerate(batches):
            results.extend(await self._run_batch(i, batch, proxy_pool.assign(i)))

        succeeded = sum(1 for r in results if r.succeeded)
        bt.logging.info({
            "dispatch": {
                "units": len(results),
                "batches": len(batches),
                "succeeded": succeeded,
                "failed": len(results) - succeeded,
                "valid_verdicts": sum(1 for r in results if r.verdict),
            }
        })
        return results

    async def _run_batch(
        self,
        index: int,
        batch: list[Attestation],
        proxy: ProxyDescriptor | None,
    ) -> list[DispatchResult]:
        bt.logging.debug({
            "dispatch_batch": {"index": index, "size": len(batch), "proxy": str(proxy) if proxy else "direct"}
        })
        try:
            client = self.client_factory(proxy)
        except Exception as e:
            bt.logging.warning({"dispatch_batch": {"index": index, "client_error": str(e)}})
            return [
                DispatchResult(
                    message_hash=a.message_hash, asset_id=a.asset_id,
                    succeeded=False, error=f"client setup failed: {e}",
                )
                for a in batch
            ]

        try:
            return list(await asyncio.gather(*(self._run_unit(client, a) for a in batch)))
        finally:
            await client.close()

    async def _run_unit(self, client: StorkApiClient, attestation: Attestation) -> DispatchResult:
        verdict = evaluate_freshness(attestation, self._clock(), self.max_age)
        message_hash = attestation.message_hash

        if not message_hash:
            # nothing to key the submission on
            return DispatchResult(
                message_hash=None, asset_id=attestation.asset_id,
                succeeded=False, verdict=False, error="missing message hash",
            )

        attempts = 0

        async def submit(credential: Credential) -> None:
            nonlocal attempts
            attempts += 1
            await client.submit_validation(credential, message_hash, verdict.is_valid)

        try:
            await self.policy.run(submit, self.credentials, label="submit")
        except StorkWatchError as e:
            bt.logging.debug({
                "dispatch_unit": {"asset": attestation.asset_id, "attempts": attempts, "error": str(e)}
            })
            return DispatchResult(
                message_hash=message_hash, asset_id=attestation.asset_id,
                succeeded=False, verdict=verdict.is_valid, attempts=attempts,
                error=f"{type(e).__name__}: {e}",
            )
        except Exception as e:
            bt.logging.warning({
                "dispatch_unit": {"asset": attestation.asset_id, "unexpected_error": str(e)}
            })
            return DispatchResult(
                message_hash=message_hash, asset_id=attestation.asset_id,
                succeeded=False, verdict=verdict.is_valid, attempts=attempts,
                error=f"{type(e).__name__}: {e}",
            )

        return DispatchResult(
            message_hash=message_hash, asset_id=attestation.asset_id,
            succeeded=True, verdict=verdict.is_valid, attempts=attempts,
        )


__all__ = ["ClientFactory", "ValidationDispatcher", "partition"]
