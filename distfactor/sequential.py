"""
Single-process mode: race the four algorithms on threads.

Each round runs every algorithm against the current composite; the first
factor found wins the round and is folded into a CompositeState, exactly as
the coordinator would. Rounds repeat until the factorization is complete.
"""

import logging
import threading
import time
from collections import deque
from typing import List, Optional, Tuple

from .config import SearchSettings
from .constants import KIND_ORDER, Kind
from .results import FactorizationResult
from .services.composite_state import CompositeState
from .services.partitioning import create_partitioner
from .services.search_algorithms import run_search

logger = logging.getLogger(__name__)

# Trial ranges are cut finer here so threads notice a finished round quickly
SEQUENTIAL_TRIAL_CHUNKS = 64
# Seconds to wait for a losing search to notice the round is over
RACE_JOIN_TIMEOUT = 30.0


class FactorRace:
    """One round: the first algorithm to report a factor of ``number`` wins."""

    def __init__(self, number: int, search_settings: SearchSettings):
        self.number = number
        self.search_settings = search_settings
        self.finished = threading.Event()
        self._lock = threading.Lock()
        self.winner: Optional[Tuple[int, Kind]] = None
        self._running = 0
        self.threads: List[threading.Thread] = []

    def run(self, timeout: Optional[float] = None) -> Optional[Tuple[int, Kind]]:
        """
        Run every algorithm until one finds a factor or all give up.

        Returns:
            (factor, kind) of the winner, or None if no algorithm found one
        """
        with self._lock:
            self._running = len(KIND_ORDER)
        for kind in KIND_ORDER:
            thread = threading.Thread(target=self._search, args=(kind,), name=f"race-{kind.value}", daemon=True)
            self.threads.append(thread)
            thread.start()

        self.finished.wait(timeout)
        self.finished.set()
        for thread in self.threads:
            thread.join(RACE_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning(f"{thread.name} still running after the round for {self.number} ended")
        return self.winner

    def _search(self, kind: Kind) -> None:
        try:
            partitioner = create_partitioner(kind, self.number, self.search_settings)
            chunks = SEQUENTIAL_TRIAL_CHUNKS if kind in (Kind.TRIAL_UP, Kind.TRIAL_DOWN) else 1
            pending = deque(partitioner.partition(chunks))

            while pending and not self.finished.is_set():
                outcome = run_search(self.number, pending.popleft())
                if outcome.found:
                    self._report(outcome.factor, kind)
                    return
                next_state = partitioner.next_state(outcome.state)
                if next_state is not None:
                    pending.append(next_state)
        finally:
            with self._lock:
                self._running -= 1
                if self._running == 0:
                    self.finished.set()

    def _report(self, factor: int, kind: Kind) -> None:
        with self._lock:
            if self.winner is None:
                self.winner = (factor, kind)
                logger.debug(f"{kind.value} wins the round for {self.number} with {factor}")
        self.finished.set()


def factor_sequential(number: int, search_settings: Optional[SearchSettings] = None) -> FactorizationResult:
    """
    Completely factor ``number`` in this process.

    Raises:
        ValueError: If number < 2, or a composite yields no factor
    """
    search_settings = search_settings or SearchSettings()
    started = time.monotonic()
    composite = CompositeState(number)
    winner: Optional[Kind] = None

    while not composite.done:
        current = composite.current
        result = FactorRace(current, search_settings).run()
        if result is None:
            raise ValueError(f"No algorithm found a factor of {current}")
        factor, winner = result
        composite.record_factor(factor)

    return FactorizationResult(
        number=number,
        factors=list(composite.extracted_factors),
        elapsed=time.monotonic() - started,
        algorithm=winner,
    )
