"""Tests for counter reconciliation across cycles."""

from storkwatch.validator.models import StatsSnapshot
from storkwatch.validator.reconciler import RunningTotals, StatsReconciler


def _snap(valid: int, invalid: int) -> StatsSnapshot:
    return StatsSnapshot(valid_count=valid, invalid_count=invalid)


class TestStatsReconciler:

    def test_delta_against_seeded_totals(self):
        totals = RunningTotals(valid_count=10, invalid_count=2, seeded=True)

        outcome = StatsReconciler().reconcile(_snap(10, 2), _snap(13, 2), totals)

        assert (outcome.valid_delta, outcome.invalid_delta) == (3, 0)
        assert not outcome.counter_reset
        assert (totals.valid_count, totals.invalid_count) == (13, 2)

    def test_first_cycle_seeds_from_before_snapshot(self):
        totals = RunningTotals()

        outcome = StatsReconciler().reconcile(_snap(500, 40), _snap(503, 41), totals)

        assert (outcome.valid_delta, outcome.invalid_delta) == (3, 1)
        assert totals.seeded

    def test_seeded_totals_ignore_later_before_snapshots(self):
        totals = RunningTotals(valid_count=10, invalid_count=2, seeded=True)

        # counters moved between cycles; they belong to this cycle's delta
        outcome = StatsReconciler().reconcile(_snap(12, 2), _snap(14, 3), totals)

        assert (outcome.valid_delta, outcome.invalid_delta) == (4, 1)

    def test_idle_cycle_has_zero_delta(self):
        totals = RunningTotals(valid_count=7, invalid_count=1, seeded=True)

        outcome = StatsReconciler().reconcile(_snap(7, 1), _snap(7, 1), totals)

        assert (outcome.valid_delta, outcome.invalid_delta) == (0, 0)

    def test_consecutive_cycles_accumulate(self):
        reconciler = StatsReconciler()
        totals = RunningTotals()

        first = reconciler.reconcile(_snap(0, 0), _snap(5, 1), totals)
        second = reconciler.reconcile(_snap(5, 1), _snap(9, 1), totals)

        assert (first.valid_delta, second.valid_delta) == (5, 4)
        assert totals.valid_count == 9

    def test_counter_reset_is_flagged_not_clamped(self):
        totals = RunningTotals(valid_count=100, invalid_count=10, seeded=True)

        outcome = StatsReconciler().reconcile(_snap(100, 10), _snap(3, 0), totals)

        assert outcome.counter_reset
        assert outcome.valid_delta == -97
        assert outcome.invalid_delta == -10
        assert (totals.valid_count, totals.invalid_count) == (3, 0)

    def test_cycle_after_reset_is_normal(self):
        reconciler = StatsReconciler()
        totals = RunningTotals(valid_count=100, invalid_count=10, seeded=True)
        reconciler.reconcile(_snap(100, 10), _snap(0, 0), totals)

        outcome = reconciler.reconcile(_snap(0, 0), _snap(2, 1), totals)

        assert not outcome.counter_reset
        assert (outcome.valid_delta, outcome.invalid_delta) == (2, 1)
