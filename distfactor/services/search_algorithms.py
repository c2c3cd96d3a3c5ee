"""
Factoring search algorithms.

This module provides:
- Trial division, ascending and descending (gcd based)
- Fermat's difference-of-squares method
- Pollard's p-1 with a resumable accumulated power
- run_search(), which applies the matching algorithm to a search state and
  advances the state for the next round
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ..schemas.messages import FermatState, PollardState, TrialState
from ..constants import Kind
from ..utils.number_utils import exact_int_sqrt, is_perfect_square, is_trivial_factor

logger = logging.getLogger(__name__)

SearchStateType = Union[TrialState, FermatState, PollardState]


def trial_up(n: int, lower_bound: int, upper_bound: int) -> Optional[int]:
    """
    Smallest odd divisor of n in [lower_bound, upper_bound].

    Returns 1 for n == 1 and 2 for even n without scanning.

    Example:
        >>> trial_up(61108093, 6000, 7000)
        6563
    """
    if n == 1:
        return 1
    if n % 2 == 0:
        return 2

    candidate = max(lower_bound, 3)
    if candidate % 2 == 0:
        candidate += 1

    while candidate <= upper_bound:
        if n % candidate == 0:
            return candidate
        candidate += 2
    return None


def trial_down(n: int, lower_bound: int, upper_bound: int) -> Optional[int]:
    """
    Scan odd candidates from upper_bound down to lower_bound.

    Returns the first gcd(n, i) greater than 1, which is always a divisor of n.
    """
    if n == 1:
        return 1
    if n % 2 == 0:
        return 2

    candidate = upper_bound if upper_bound % 2 == 1 else upper_bound - 1
    floor = max(lower_bound, 2)
    while candidate >= floor:
        g = math.gcd(n, candidate)
        if g > 1:
            return g
        candidate -= 2
    return None


def fermat(n: int, start_value: int, attempts: int) -> Optional[int]:
    """
    Fermat's method over a window of candidates.

    Examines a = start_value .. start_value + attempts - 1 and returns
    a - sqrt(a*a - n) at the first a for which a*a - n is a perfect square.
    The caller resumes at start_value + attempts when None is returned.

    Raises:
        ValueError: If start_value is below isqrt(n) + 1
    """
    if n % 2 == 0:
        return 2

    root = math.isqrt(n)
    if is_perfect_square(n):
        return root
    if start_value < root + 1:
        raise ValueError(
            f"Fermat start value {start_value} must be at least isqrt(n) + 1 = {root + 1}"
        )

    for a in range(start_value, start_value + attempts):
        b, rest = exact_int_sqrt(a * a - n)
        if rest == 0:
            return a - b
    return None


def pollard_p1(n: int, power: int, start_exp: int, bound: int) -> Tuple[int, int]:
    """
    Pollard's p-1 from a resumable accumulated power.

    Raises power to every exponent in [start_exp, bound] modulo n and takes
    gcd(power - 1, n).

    Args:
        n: Number to factor
        power: base^((start_exp - 1)!) mod n
        start_exp: First exponent still to apply
        bound: Last exponent to apply (inclusive)

    Returns:
        Tuple (result, power). result == 1 means the bound was too small and
        the search can resume at bound + 1 with the returned power; result == n
        means the bound was too large; anything else is a factor of n.
    """
    shared = math.gcd(power, n)
    if 1 < shared < n:
        return shared, power
    if power == 1:
        return n, power

    for exponent in range(start_exp, bound + 1):
        power = pow(power, exponent, n)
        if power == 1:
            break

    return math.gcd(power - 1, n), power


@dataclass
class SearchOutcome:
    """Result of one search round: a factor, or the state to resume from."""
    factor: Optional[int]
    state: SearchStateType

    @property
    def found(self) -> bool:
        return self.factor is not None


def _advance_pollard(number: int, state: PollardState) -> SearchOutcome:
    """One Pollard p-1 probe, moving the bounds or the base."""
    root = exact_int_sqrt(number)[0]

    exhausted = state.lower_bound >= root or (
        state.upper_is_too_large and state.upper_bound - state.lower_bound <= 1
    )
    if exhausted:
        base = state.base + 1
        logger.debug(f"Pollard base {state.base} exhausted for {number}, moving to {base}")
        return SearchOutcome(None, PollardState(
            base=base,
            accumulated_power=base,
            exponent_cursor=1,
            lower_bound=1,
            upper_bound=state.upper_bound,
            last_bound_used=None,
            upper_is_too_large=False,
        ))

    if state.lower_bound >= state.upper_bound and not state.upper_is_too_large:
        # No room below the ceiling: ask the dispatcher for a larger one
        return SearchOutcome(None, state.model_copy(update={"last_bound_used": state.lower_bound}))

    if state.upper_is_too_large:
        bound = (state.lower_bound + state.upper_bound) // 2
    else:
        bound = state.upper_bound

    result, power = pollard_p1(number, state.accumulated_power, state.exponent_cursor, bound)

    if result == 1:
        return SearchOutcome(None, state.model_copy(update={
            "lower_bound": bound,
            "accumulated_power": power,
            "exponent_cursor": bound + 1,
            "last_bound_used": bound,
        }))
    if result == number:
        return SearchOutcome(None, state.model_copy(update={
            "upper_bound": bound,
            "upper_is_too_large": True,
            "accumulated_power": state.base,
            "exponent_cursor": 1,
            "last_bound_used": bound,
        }))
    return SearchOutcome(result, state)


def run_search(number: int, state: SearchStateType) -> SearchOutcome:
    """
    Run the algorithm matching ``state`` for one round.

    Trivial results (1 or the number itself) count as no factor, so they never
    leave the worker.

    Returns:
        SearchOutcome with either the factor found or the resumable state
    """
    if isinstance(state, PollardState):
        outcome = _advance_pollard(number, state)
    elif isinstance(state, FermatState):
        factor = fermat(number, state.start_value, state.attempt_budget)
        if factor is not None and is_trivial_factor(factor, number):
            factor = None
        next_state = state
        if factor is None:
            next_state = state.model_copy(
                update={"start_value": state.start_value + state.attempt_budget}
            )
        outcome = SearchOutcome(factor, next_state)
    elif isinstance(state, TrialState):
        scan = trial_up if state.kind == Kind.TRIAL_UP else trial_down
        outcome = SearchOutcome(scan(number, state.lower_bound, state.upper_bound), state)
    else:
        raise TypeError(f"Unsupported search state: {type(state).__name__}")

    if outcome.factor is not None and is_trivial_factor(outcome.factor, number):
        logger.debug(f"Discarding trivial result {outcome.factor} for {number}")
        outcome = SearchOutcome(None, outcome.state)
    return outcome
