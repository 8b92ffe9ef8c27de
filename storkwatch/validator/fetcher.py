"""Retrieve the current attestation batch under a valid credential."""

from __future__ import annotations

import bittensor as bt

from storkwatch.auth.manager import CredentialManager
from storkwatch.errors import TransientFailure

from .client import StorkApiClient
from .models import Attestation
from .retry import DEFAULT_POLICY, RetryPolicy


class AttestationFetcher:
    """Fetch with one renew-and-retry on 401.

    A TransientFailure means "no data this cycle": it is logged and an empty
    batch is returned so reconciliation and keepalive cadence are unaffected.
    A second Unauthorized propagates to the caller.
    """

    def __init__(
        self,
        client: StorkApiClient,
        credentials: CredentialManager,
        policy: RetryPolicy = DEFAULT_POLICY,
    ):
        self.client = client
        self.credentials = credentials
        self.policy = policy

    async def fetch(self) -> list[Attestation]:
        try:
            attestations = await self.policy.run(
                self.client.fetch_attestations, self.credentials, label="fetch",
            )
        except TransientFailure as e:
            bt.logging.warning({"attestation_fetch": {"status": "skipped", "error": str(e)}})
            return []

        bt.logging.info({"attestation_fetch": {"status": "ok", "count": len(attestations)}})
        return attestations


__all__ = ["AttestationFetcher"]
