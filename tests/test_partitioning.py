"""
Tests for the dispatcher's search-space partitioners.

Covers range completeness for trial division, Fermat windows, and the four
ways a Pollard p-1 failure report is handled.
"""
import pytest

from conftest import N
from distfactor.config import SearchSettings
from distfactor.constants import Kind
from distfactor.schemas.messages import PollardState
from distfactor.services.partitioning import (
    FermatPartitioner, PollardPartitioner, TrialPartitioner, create_partitioner,
)

ROOT = 7817


def drain(partitioner, workers):
    """All ranges a dispatcher would issue: initial partition, then one per failure."""
    ranges = [(s.lower_bound, s.upper_bound) for s in partitioner.partition(workers)]
    while True:
        state = partitioner.next_state()
        if state is None:
            return ranges
        ranges.append((state.lower_bound, state.upper_bound))


class TestTrialPartitioner:

    @pytest.mark.parametrize("kind", [Kind.TRIAL_UP, Kind.TRIAL_DOWN])
    @pytest.mark.parametrize("workers", [1, 2, 3, 7, 16])
    @pytest.mark.parametrize("max_span", [100, 1000, 10 ** 8])
    def test_ranges_cover_space_exactly(self, kind, workers, max_span):
        ranges = sorted(drain(TrialPartitioner(kind, N, max_span=max_span), workers))
        assert ranges[0][0] == 2
        assert ranges[-1][1] == ROOT
        for (_, upper), (lower, _) in zip(ranges, ranges[1:]):
            assert lower == upper + 1, "gap or overlap between sub-ranges"

    def test_span_is_capped(self):
        partitioner = TrialPartitioner(Kind.TRIAL_UP, N, max_span=1000)
        states = partitioner.partition(2)
        assert [(s.lower_bound, s.upper_bound) for s in states] == [(2, 1001), (1002, 2001)]

    def test_even_split(self):
        states = TrialPartitioner(Kind.TRIAL_UP, N).partition(3)
        # 7816 candidates over 3 workers: span 2606
        assert [(s.lower_bound, s.upper_bound) for s in states] == [
            (2, 2607), (2608, 5213), (5214, ROOT),
        ]

    def test_trial_down_starts_at_root(self):
        states = TrialPartitioner(Kind.TRIAL_DOWN, N, max_span=1000).partition(2)
        assert [(s.lower_bound, s.upper_bound) for s in states] == [(6818, 7817), (5818, 6817)]
        assert all(s.kind == Kind.TRIAL_DOWN for s in states)

    def test_more_workers_than_candidates(self):
        partitioner = TrialPartitioner(Kind.TRIAL_UP, 35)
        states = partitioner.partition(10)
        # isqrt(35) = 5: candidates 2..5, one each
        assert [(s.lower_bound, s.upper_bound) for s in states] == [(2, 2), (3, 3), (4, 4), (5, 5)]
        assert partitioner.exhausted
        assert partitioner.next_state() is None

    def test_rejects_other_kinds(self):
        with pytest.raises(ValueError):
            TrialPartitioner(Kind.FERMAT, N)


class TestFermatPartitioner:

    def test_windows_are_consecutive(self):
        partitioner = FermatPartitioner(N, attempt_budget=1000)
        starts = [s.start_value for s in partitioner.partition(3)]
        assert starts == [7818, 8818, 9818]
        assert partitioner.next_state().start_value == 10818

    def test_ignores_worker_resume_point(self):
        partitioner = FermatPartitioner(N, attempt_budget=10)
        first = partitioner.partition(1)[0]
        advanced = first.model_copy(update={"start_value": first.start_value + 10})
        # Continuation comes from the dispatcher cursor, never re-scanning
        assert partitioner.next_state(advanced).start_value == first.start_value + 10
        assert partitioner.next_state(advanced).start_value == first.start_value + 20

    def test_exhausted_past_half(self):
        partitioner = FermatPartitioner(15, attempt_budget=10)
        assert partitioner.next_state().start_value == 4
        assert partitioner.next_state() is None


class TestPollardPartitioner:

    @pytest.fixture
    def tracker(self):
        return PollardPartitioner(N)

    def worker_state(self, **kwargs):
        values = dict(base=2, accumulated_power=2, exponent_cursor=1, lower_bound=1,
                      upper_bound=100, last_bound_used=None, upper_is_too_large=False)
        values.update(kwargs)
        return PollardState(**values)

    def test_initial_partition(self, tracker):
        states = tracker.partition(3)
        assert [s.upper_bound for s in states] == [100, 1100, 2100]
        assert all(s.lower_bound == 1 and s.base == 2 and s.accumulated_power == 2 for s in states)
        assert all(s.exponent_cursor == 2 for s in states)
        assert tracker.u_bound == 2100

    def test_partition_clamped_to_root(self):
        tracker = PollardPartitioner(N, bound_step=5000)
        assert [s.upper_bound for s in tracker.partition(3)] == [100, 5100, ROOT]

    # (a) the worker changed base

    def test_newer_base_adopted(self, tracker):
        tracker.partition(2)
        worker = self.worker_state(base=3, accumulated_power=3, upper_bound=1100)
        issued = tracker.next_state(worker)
        assert (tracker.base, tracker.l_bound, tracker.power, tracker.u_bound) == (3, 1, 3, 100)
        assert issued == worker

    def test_older_base_reset_to_dispatcher(self, tracker):
        tracker.base, tracker.l_bound, tracker.power, tracker.u_bound = 3, 40, 12345, 100
        issued = tracker.next_state(self.worker_state(base=2, lower_bound=60, last_bound_used=60))
        assert issued.base == 3
        assert issued.lower_bound == 40
        assert issued.accumulated_power == 12345
        assert issued.exponent_cursor == 41
        assert issued.upper_bound == 1100

    # (b) the last bound was too small

    def test_too_small_dispatcher_adopts_worker_bound(self, tracker):
        worker = self.worker_state(lower_bound=50, accumulated_power=777, exponent_cursor=51, last_bound_used=50)
        issued = tracker.next_state(worker)
        assert (tracker.l_bound, tracker.power) == (50, 777)
        assert issued == worker

    def test_too_small_worker_gets_dispatcher_bound(self, tracker):
        tracker.l_bound, tracker.power = 80, 999
        worker = self.worker_state(lower_bound=50, accumulated_power=777, exponent_cursor=51, last_bound_used=50)
        issued = tracker.next_state(worker)
        assert (issued.lower_bound, issued.accumulated_power, issued.exponent_cursor) == (80, 999, 81)
        assert issued.upper_bound == 100

    def test_too_small_without_room_extends_ceiling(self, tracker):
        worker = self.worker_state(lower_bound=100, upper_bound=100, accumulated_power=555,
                                   exponent_cursor=101, last_bound_used=100)
        issued = tracker.next_state(worker)
        assert tracker.l_bound == 100
        assert tracker.u_bound == 1100
        assert issued.upper_bound == 1100
        assert not issued.upper_is_too_large
        assert issued.lower_bound == 100

    # (c) the last bound was too large

    def test_too_large_lowers_dispatcher_ceiling(self, tracker):
        tracker.partition(3)
        worker = self.worker_state(upper_bound=500, upper_is_too_large=True, last_bound_used=500)
        issued = tracker.next_state(worker)
        assert tracker.u_bound == 500
        assert issued == worker

    def test_too_large_hands_over_known_lower_bound(self, tracker):
        tracker.l_bound, tracker.power = 200, 4242
        worker = self.worker_state(upper_bound=500, upper_is_too_large=True, last_bound_used=500)
        issued = tracker.next_state(worker)
        assert (issued.lower_bound, issued.accumulated_power, issued.exponent_cursor) == (200, 4242, 201)
        assert issued.upper_bound == 500
        assert issued.upper_is_too_large

    # (d) anything else

    def test_unrecognized_report_is_reset(self, tracker):
        tracker.l_bound, tracker.power = 30, 31337
        issued = tracker.next_state(self.worker_state(lower_bound=50, upper_bound=100, last_bound_used=77))
        assert (issued.base, issued.lower_bound, issued.accumulated_power) == (2, 30, 31337)
        assert issued.upper_bound == 1100
        assert tracker.u_bound == 1100
        assert issued.last_bound_used is None

    def test_fresh_report_is_reset(self, tracker):
        issued = tracker.next_state(self.worker_state(last_bound_used=None))
        assert issued.lower_bound == 1
        assert issued.upper_bound == 1100


def test_create_partitioner_uses_settings():
    settings = SearchSettings(trial_max_span=10, fermat_attempt_budget=7, pollard_bound_step=3)
    assert create_partitioner(Kind.TRIAL_DOWN, N, settings).max_span == 10
    assert create_partitioner(Kind.FERMAT, N, settings).attempt_budget == 7
    assert create_partitioner(Kind.POLLARD_P1, N, settings).bound_step == 3
    assert isinstance(create_partitioner(Kind.TRIAL_UP, N), TrialPartitioner)
