"""Per-cycle deltas from the server's cumulative valid/invalid counters.

The server counters cover the account's whole history, so the local
baseline is seeded from the first snapshot of the process rather than
assumed to be zero.
"""

from __future__ import annotations

from dataclasses import dataclass

import bittensor as bt

from .models import CycleOutcome, StatsSnapshot


@dataclass
class RunningTotals:
    """Last reconciled counters; lives for the whole process."""

    valid_count: int = 0
    invalid_count: int = 0
    seeded: bool = False


class StatsReconciler:
    """Computes CycleOutcome and advances RunningTotals."""

    def reconcile(
        self,
        before: StatsSnapshot,
        after: StatsSnapshot,
        totals: RunningTotals,
    ) -> CycleOutcome:
        if not totals.seeded:
            totals.valid_count = before.valid_count
            totals.invalid_count = before.invalid_count
            totals.seeded = True
            bt.logging.debug({
                "stats_reconciler": {
                    "event": "seeded",
                    "valid": before.valid_count,
                    "invalid": before.invalid_count,
                }
            })

        valid_delta = after.valid_count - totals.valid_count
        invalid_delta = after.invalid_count - totals.invalid_count
        counter_reset = valid_delta < 0 or invalid_delta < 0

        if counter_reset:
            bt.logging.warning({
                "stats_reconciler": {
                    "event": "counter_reset",
                    "previous": {"valid": totals.valid_count, "invalid": totals.invalid_count},
                    "current": {"valid": after.valid_count, "invalid": after.invalid_count},
                }
            })

        totals.valid_count = after.valid_count
        totals.invalid_count = after.invalid_count

        return CycleOutcome(
            valid_delta=valid_delta,
            invalid_delta=invalid_delta,
            counter_reset=counter_reset,
        )


__all__ = ["RunningTotals", "StatsReconciler"]
