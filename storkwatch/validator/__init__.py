"""Attestation validation runtime.

Fetches signed price attestations from the Stork partner API, judges each
against the freshness policy, submits the verdicts concurrently and
reconciles the server's cumulative counters into per-cycle deltas.
"""

from .client import StorkApiClient
from .dispatcher import ValidationDispatcher
from .fetcher import AttestationFetcher
from .freshness import evaluate_freshness
from .models import (
    Attestation,
    CycleOutcome,
    DispatchResult,
    StatsSnapshot,
    UserStats,
    ValidationVerdict,
)
from .proxies import ProxyDescriptor, ProxyPool
from .reconciler import RunningTotals, StatsReconciler
from .retry import RetryPolicy
from .runtime import CycleScheduler

__all__ = [
    "Attestation",
    "AttestationFetcher",
    "CycleOutcome",
    "CycleScheduler",
    "DispatchResult",
    "ProxyDescriptor",
    "ProxyPool",
    "RetryPolicy",
    "RunningTotals",
    "StatsReconciler",
    "StatsSnapshot",
    "StorkApiClient",
    "UserStats",
    "ValidationDispatcher",
    "ValidationVerdict",
    "evaluate_freshness",
]
