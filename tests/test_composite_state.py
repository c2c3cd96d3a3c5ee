"""
Tests for the coordinator's CompositeState.
"""
import random

import pytest

from conftest import N, P, Q
from distfactor.services.composite_state import CompositeState


class TestRecordFactor:

    def test_prime_factor_with_prime_cofactor_completes(self):
        state = CompositeState(N)
        update = state.record_factor(P)
        assert update.accepted and update.done
        assert state.done
        assert state.extracted_factors == [P, Q]
        assert state.distinct_factors() == [P, Q]
        assert state.current == 1
        assert state.check_invariant()

    def test_cofactor_found_first(self):
        state = CompositeState(N)
        state.record_factor(Q)
        assert state.extracted_factors == [P, Q]

    def test_composite_cofactor_continues(self):
        state = CompositeState(3 * 5 * 7 * 11)
        update = state.record_factor(3)
        assert update.accepted and not update.done
        assert update.next_number == 385
        assert state.extracted_factors == [3]
        assert state.check_invariant()

    def test_composite_factor_is_queued(self):
        state = CompositeState(3 * 5 * 7 * 11)

        update = state.record_factor(15)
        assert update.next_number == 77
        assert list(state.pending_composites) == [15]
        assert state.extracted_factors == []
        assert state.check_invariant()

        update = state.record_factor(7)
        # 11 is prime, so the queued 15 becomes the search target
        assert update.next_number == 15
        assert state.extracted_factors == [7, 11]
        assert not state.pending_composites
        assert state.check_invariant()

        update = state.record_factor(3)
        assert update.done
        assert state.extracted_factors == [3, 5, 7, 11]
        assert state.check_invariant()

    def test_square_keeps_multiplicity(self):
        state = CompositeState(10007 ** 2)
        assert state.record_factor(10007).done
        assert state.extracted_factors == [10007, 10007]
        assert state.distinct_factors() == [10007]

    @pytest.mark.parametrize("factor", [1, N, 7, P + 2, 0])
    def test_stale_or_trivial_factor_dropped(self, factor):
        state = CompositeState(N)
        update = state.record_factor(factor)
        assert not update.accepted
        assert state.current == N
        assert state.extracted_factors == []

    def test_factor_of_previous_value_dropped(self):
        state = CompositeState(3 * 5 * 7 * 11)
        state.record_factor(3)
        # A slow worker still reporting on 1155
        assert not state.record_factor(3).accepted
        assert state.current == 385

    def test_reports_after_completion_ignored(self):
        state = CompositeState(N)
        state.record_factor(P)
        update = state.record_factor(Q)
        assert not update.accepted and update.done

    def test_invariant_under_random_reports(self):
        rng = random.Random(99)
        primes = [3, 5, 7, 11, 13, 17, 19, 23]
        number = 1
        for p in rng.sample(primes, 5):
            number *= p
        state = CompositeState(number)
        while not state.done:
            factor = rng.choice([
                rng.choice(primes) * rng.choice([1] + primes),
                rng.randrange(1, 50),
            ])
            state.record_factor(factor)
            assert state.check_invariant()
        assert sorted(state.extracted_factors) == state.extracted_factors


class TestSetup:

    def test_prime_input_done_immediately(self):
        state = CompositeState(10007)
        assert state.done
        assert state.extracted_factors == [10007]

    def test_rejects_numbers_below_two(self):
        with pytest.raises(ValueError):
            CompositeState(1)
