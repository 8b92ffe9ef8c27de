"""Validator runtime: the cycle loop plus the credential keepalive timer.

Cycle: stats (before) -> fetch -> dispatch -> stats (after) -> reconcile.
Cycles are strictly sequential so two stats windows never overlap. The
keepalive timer runs as its own task and shares no lock with the cycle
loop; it only asks the CredentialManager for a credential that will
outlive the next keepalive tick.
"""

from __future__ import annotations

import asyncio

import bittensor as bt

from storkwatch.auth.manager import CredentialManager
from storkwatch.errors import AuthFailure, TransientFailure

from .client import StorkApiClient
from .dispatcher import ValidationDispatcher
from .fetcher import AttestationFetcher
from .models import CycleOutcome, UserStats
from .proxies import ProxyPool
from .reconciler import RunningTotals, StatsReconciler
from .retry import DEFAULT_POLICY, RetryPolicy


class CycleScheduler:
    """Drives fetch/validate/reconcile cycles until stopped."""

    def __init__(
        self,
        credentials: CredentialManager,
        client: StorkApiClient,
        fetcher: AttestationFetcher,
        dispatcher: ValidationDispatcher,
        proxy_pool: ProxyPool,
        reconciler: StatsReconciler | None = None,
        totals: RunningTotals | None = None,
        interval: float = 10.0,
        keepalive_interval: float = 3000.0,
        policy: RetryPolicy = DEFAULT_POLICY,
        name: str = "",
    ):
        self.credentials = credentials
        self.client = client
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.proxy_pool = proxy_pool
        self.reconciler = reconciler or StatsReconciler()
        self.totals = totals if totals is not None else RunningTotals()
        self.policy = policy
        self.name = name or credentials.username

        self._interval = interval
        self._keepalive_interval = keepalive_interval
        self._running = False
        self._stop_event = asyncio.Event()
        self.cycles_completed = 0

    async def run(self) -> None:
        """Main loop. Runs until stopped or cancelled."""
        self._running = True
        self._stop_event.clear()
        bt.logging.info({
            "validator_runtime": {
                "status": "starting",
                "account": self.name,
                "interval": self._interval,
                "keepalive_interval": self._keepalive_interval,
                "proxies": len(self.proxy_pool),
            }
        })

        keepalive = asyncio.create_task(self._keepalive_loop())
        consecutive_errors = 0
        try:
            while self._running:
                try:
                    await self.run_cycle()
                    consecutive_errors = 0
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    consecutive_errors += 1
                    bt.logging.error({
                        "validator_cycle_error": str(e),
                        "account": self.name,
                        "consecutive": consecutive_errors,
                    })

                try:
                    await self._sleep(self._interval)
                except asyncio.CancelledError:
                    break
        finally:
            self._running = False
            keepalive.cancel()
            await asyncio.gather(keepalive, return_exceptions=True)
            bt.logging.info({"validator_runtime": "stopped", "account": self.name})

    def stop(self) -> None:
        """Signal the runtime to stop; wakes any pending sleep."""
        self._running = False
        self._stop_event.set()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # -- Keepalive --

    async def _keepalive_loop(self) -> None:
        while self._running:
            await self._sleep(self._keepalive_interval)
            if not self._running:
                break
            await self.keepalive()

    async def keepalive(self) -> None:
        """Renew now if the credential would lapse before the next tick."""
        try:
            cred = await self.credentials.obtain_valid(min_ttl=self._keepalive_interval)
            bt.logging.debug({
                "keepalive": {"account": self.name, "expires_at": cred.expires_at.isoformat()}
            })
        except AuthFailure as e:
            bt.logging.error({"keepalive": {"account": self.name, "auth_failure": str(e)}})
        except Exception as e:
            bt.logging.error({"keepalive": {"account": self.name, "error": str(e)}})

    # -- Cycle --

    async def _user_stats(self, phase: str) -> UserStats | None:
        try:
            return await self.policy.run(self.client.get_user_stats, self.credentials, label="stats")
        except TransientFailure as e:
            bt.logging.warning({"user_stats": {"phase": phase, "account": self.name, "error": str(e)}})
            return None

    async def run_cycle(self) -> CycleOutcome | None:
        """Execute one cycle. Returns None when a stats snapshot was unavailable."""
        before = await self._user_stats("before")
        attestations = await self.fetcher.fetch()
        results = await self.dispatcher.dispatch(attestations, self.proxy_pool)
        after = await self._user_stats("after")

        self.cycles_completed += 1
        if before is None or after is None:
            bt.logging.warning({"validator_cycle": "reconcile_skipped", "account": self.name})
            return None

        outcome = self.reconciler.reconcile(before.snapshot(), after.snapshot(), self.totals)
        bt.logging.info({
            "validator_cycle": {
                "account": self.name,
                "cycle": self.cycles_completed,
                "email": after.email,
                "referral_code": after.referral_code,
                "last_verified_at": after.stats.last_verified_at,
                "valid_total": after.stats.valid_count,
                "invalid_total": after.stats.invalid_count,
                "valid_delta": outcome.valid_delta,
                "invalid_delta": outcome.invalid_delta,
                "counter_reset": outcome.counter_reset,
                "submitted": sum(1 for r in results if r.succeeded),
                "failed": sum(1 for r in results if not r.succeeded),
            }
        })
        return outcome


__all__ = ["CycleScheduler"]
