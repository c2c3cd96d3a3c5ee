"""
Search-space bookkeeping for the algorithm dispatchers.

Each partitioner owns the cursor for one number and one algorithm kind:
- partition() splits the space over the registered workers for a new round
- next_state() hands a worker that reported failure its next piece of work

Partitioners are not thread-safe; the dispatcher serializes calls behind its
lock.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from ..constants import (
    FERMAT_ATTEMPT_BUDGET, Kind, POLLARD_BOUND_STEP, POLLARD_INITIAL_BASE,
    POLLARD_INITIAL_UPPER, TRIAL_LOWER_BOUND, TRIAL_MAX_SPAN,
)
from ..schemas.messages import FermatState, PollardState, TrialState
from ..utils.number_utils import exact_int_sqrt

logger = logging.getLogger(__name__)


def ceil_div(a: int, b: int) -> int:
    return -(-a // b)


class SearchPartitioner(ABC):
    """Template shared by the per-kind partitioners."""

    def __init__(self, kind: Kind, number: int):
        self.kind = kind
        self.number = number
        self.root = exact_int_sqrt(number)[0]
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def next_state(self, failed_state=None):
        """
        Next piece of work for a worker.

        Args:
            failed_state: State the worker reported with its failure, if any

        Returns:
            A search state, or None when the space is exhausted
        """

    def partition(self, workers: int) -> List:
        """Initial split of the space over ``workers`` workers, in order."""
        states = []
        for _ in range(workers):
            state = self.next_state()
            if state is None:
                break
            states.append(state)
        return states


class TrialPartitioner(SearchPartitioner):
    """
    Contiguous ranges of [2, isqrt(n)].

    Trial-up hands ranges out ascending from 2, trial-down descending from
    isqrt(n). The span is fixed by the first partition() so that a range issued
    on failure is the same size as the initial ones.
    """

    def __init__(self, kind: Kind, number: int, max_span: int = TRIAL_MAX_SPAN):
        super().__init__(kind, number)
        if kind not in (Kind.TRIAL_UP, Kind.TRIAL_DOWN):
            raise ValueError(f"TrialPartitioner cannot handle {kind.value}")
        self.max_span = max_span
        self.span = max_span
        self.next_lower = TRIAL_LOWER_BOUND
        self.next_upper = self.root

    @property
    def size(self) -> int:
        return max(0, self.root - TRIAL_LOWER_BOUND + 1)

    @property
    def exhausted(self) -> bool:
        return self.next_lower > self.next_upper

    def partition(self, workers: int) -> List[TrialState]:
        if workers < 1:
            return []
        self.span = max(1, min(ceil_div(self.size, workers), self.max_span))
        self.logger.debug(
            f"{self.kind.value}: {self.size} candidates over {workers} workers, span {self.span}"
        )
        return super().partition(workers)

    def next_state(self, failed_state=None) -> Optional[TrialState]:
        if self.exhausted:
            return None

        if self.kind == Kind.TRIAL_UP:
            lower = self.next_lower
            upper = min(lower + self.span - 1, self.next_upper)
            self.next_lower = upper + 1
        else:
            upper = self.next_upper
            lower = max(upper - self.span + 1, self.next_lower)
            self.next_upper = lower - 1

        return TrialState(kind=self.kind, lower_bound=lower, upper_bound=upper)


class FermatPartitioner(SearchPartitioner):
    """Consecutive windows of ``attempt_budget`` starting values above isqrt(n)."""

    def __init__(self, number: int, attempt_budget: int = FERMAT_ATTEMPT_BUDGET):
        super().__init__(Kind.FERMAT, number)
        self.attempt_budget = attempt_budget
        self.next_start = self.root + 1
        # a - b with a past (n + 1) / 2 can no longer yield a non-trivial factor
        self.last_start = (number + 1) // 2

    def next_state(self, failed_state=None) -> Optional[FermatState]:
        if self.next_start > self.last_start:
            return None
        state = FermatState(start_value=self.next_start, attempt_budget=self.attempt_budget)
        self.next_start += self.attempt_budget
        return state


class PollardPartitioner(SearchPartitioner):
    """
    Exponent bounds for Pollard's p-1.

    The dispatcher tracks the best knowledge across its workers: the current
    ``base``, the largest bound known to be too small (``l_bound``) with the
    power accumulated up to it, and the ceiling handed out so far
    (``u_bound``). Workers report every probe; the failed state decides how
    the tracker and the worker move.
    """

    def __init__(self, number: int, bound_step: int = POLLARD_BOUND_STEP,
                 initial_upper: int = POLLARD_INITIAL_UPPER):
        super().__init__(Kind.POLLARD_P1, number)
        self.bound_step = bound_step
        self.initial_upper = initial_upper
        self.base = POLLARD_INITIAL_BASE
        self.l_bound = 1
        self.power = self.base
        self.u_bound = min(initial_upper, max(self.root, 1))
        self._issued = 0

    def _clamp(self, bound: int) -> int:
        return max(1, min(bound, self.root))

    def _state(self, upper_bound: int) -> PollardState:
        return PollardState(
            base=self.base,
            accumulated_power=self.power,
            exponent_cursor=self.l_bound + 1,
            lower_bound=self.l_bound,
            upper_bound=upper_bound,
        )

    def _extend(self, floor: int) -> int:
        self.u_bound = self._clamp(max(self.u_bound, floor) + self.bound_step)
        return self.u_bound

    def partition(self, workers: int) -> List[PollardState]:
        if workers < 1:
            return []
        states = []
        upper = self.u_bound
        for i in range(workers):
            upper = self._clamp(self.u_bound + i * self.bound_step)
            states.append(self._state(upper))
        self.u_bound = upper
        return states

    def next_state(self, failed_state: Optional[PollardState] = None) -> PollardState:
        if failed_state is None:
            return self._state(self._extend(self.l_bound))

        worker = failed_state
        last = worker.last_bound_used

        # (a) the worker changed base
        if worker.base != self.base:
            if worker.base > self.base:
                self.logger.debug(f"Adopting Pollard base {worker.base} (was {self.base})")
                self.base = worker.base
                self.l_bound = 1
                self.power = worker.base
                self.u_bound = self._clamp(self.initial_upper)
                if worker.lower_bound >= worker.upper_bound:
                    return worker.model_copy(update={"upper_bound": self.u_bound})
                return worker
            return self._reset(worker)

        # (b) the last bound was too small
        if last is not None and last == worker.lower_bound:
            if self.l_bound > worker.lower_bound:
                worker = worker.model_copy(update={
                    "lower_bound": self.l_bound,
                    "accumulated_power": self.power,
                    "exponent_cursor": self.l_bound + 1,
                })
            else:
                self.l_bound = worker.lower_bound
                self.power = worker.accumulated_power
            if worker.lower_bound >= worker.upper_bound and not worker.upper_is_too_large:
                worker = worker.model_copy(update={
                    "upper_bound": self._extend(worker.lower_bound),
                    "upper_is_too_large": False,
                })
            return worker

        # (c) the last bound was too large
        if last is not None and last == worker.upper_bound:
            if worker.upper_bound < self.u_bound:
                self.u_bound = worker.upper_bound
            if worker.lower_bound < self.l_bound < worker.upper_bound:
                worker = worker.model_copy(update={
                    "lower_bound": self.l_bound,
                    "accumulated_power": self.power,
                    "exponent_cursor": self.l_bound + 1,
                })
            return worker

        # (d) anything else
        return self._reset(worker)

    def _reset(self, worker: PollardState) -> PollardState:
        self.logger.debug(
            f"Resetting worker state (base {worker.base}, last {worker.last_bound_used}) "
            f"to base {self.base}, l_bound {self.l_bound}"
        )
        return self._state(self._extend(self.l_bound))


def create_partitioner(kind: Kind, number: int, search_settings=None) -> SearchPartitioner:
    """
    Build the partitioner for ``kind``.

    Args:
        kind: Algorithm kind
        number: Number being factored
        search_settings: Optional SearchSettings overriding the defaults
    """
    if kind in (Kind.TRIAL_UP, Kind.TRIAL_DOWN):
        max_span = search_settings.trial_max_span if search_settings else TRIAL_MAX_SPAN
        return TrialPartitioner(kind, number, max_span=max_span)
    if kind == Kind.FERMAT:
        budget = search_settings.fermat_attempt_budget if search_settings else FERMAT_ATTEMPT_BUDGET
        return FermatPartitioner(number, attempt_budget=budget)
    if kind == Kind.POLLARD_P1:
        step = search_settings.pollard_bound_step if search_settings else POLLARD_BOUND_STEP
        return PollardPartitioner(number, bound_step=step)
    raise ValueError(f"Unknown algorithm kind: {kind}")
