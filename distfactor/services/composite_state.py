"""
Coordinator-owned factorization state.

Tracks the number being factored while factors are divided out of it. The
invariant

    original == prod(extracted_factors) * current * prod(pending_composites)

holds after every call. Not thread-safe: the coordinator holds its lock
around every call.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from ..utils.number_utils import divide_factor, is_probably_prime, is_trivial_factor

logger = logging.getLogger(__name__)


@dataclass
class FactorUpdate:
    """What the coordinator must broadcast after a factor report."""
    accepted: bool
    done: bool = False
    next_number: Optional[int] = None


class CompositeState:
    """Residual composite, extracted prime factors and queued composite factors."""

    def __init__(self, original: int):
        if original < 2:
            raise ValueError(f"Cannot factor {original}: need an integer >= 2")
        self.original = original
        self.current = original
        self.extracted_factors: List[int] = []
        self.pending_composites: Deque[int] = deque()
        self.done = False

        if is_probably_prime(original):
            logger.info(f"{original} is prime, nothing to distribute")
            self._finish()

    def _finish(self) -> None:
        self.extracted_factors.append(self.current)
        self.extracted_factors.sort()
        self.current = 1
        self.done = True

    def record_factor(self, factor: int) -> FactorUpdate:
        """
        Divide a reported factor out of the current composite.

        Trivial and non-dividing factors are dropped without touching the
        state; they come from workers still searching an earlier value.

        Returns:
            FactorUpdate telling whether the run is done or which number to
            search next
        """
        if self.done:
            logger.debug(f"Ignoring factor {factor}, factorization already complete")
            return FactorUpdate(accepted=False, done=True)
        if is_trivial_factor(factor, self.current) or self.current % factor != 0:
            logger.debug(f"Dropping stale factor {factor} for current value {self.current}")
            return FactorUpdate(accepted=False)

        self.current = divide_factor(self.current, factor)
        if is_probably_prime(factor):
            self.extracted_factors.append(factor)
        else:
            self.pending_composites.append(factor)
        logger.info(f"Divided out {factor}, remaining {self.current}")

        if is_probably_prime(self.current):
            if not self.pending_composites:
                self._finish()
                return FactorUpdate(accepted=True, done=True)
            self.extracted_factors.append(self.current)
            self.current = self.pending_composites.popleft()
            logger.info(f"Cofactor is prime, moving on to queued composite {self.current}")

        return FactorUpdate(accepted=True, next_number=self.current)

    def distinct_factors(self) -> List[int]:
        """Sorted distinct prime factors found so far."""
        return sorted(set(self.extracted_factors))

    def check_invariant(self) -> bool:
        product = math.prod(self.extracted_factors) * self.current * math.prod(self.pending_composites)
        return product == self.original
