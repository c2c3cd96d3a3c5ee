"""
Shared constants for the distributed factoring tiers.

This module centralizes the algorithm kinds, well-known ports and search
defaults used by the coordinator, the dispatchers and the workers so that
every tier agrees on them.
"""

from enum import Enum
from typing import Dict, Tuple


class Kind(str, Enum):
    """The four factoring algorithms a worker or dispatcher specializes in."""

    TRIAL_UP = "trial-up"
    TRIAL_DOWN = "trial-down"
    FERMAT = "fermat"
    POLLARD_P1 = "pollard-p1"

    @property
    def label(self) -> str:
        """Human-readable algorithm name for console output."""
        return KIND_LABELS[self]


# Promotion and round-robin order
KIND_ORDER: Tuple[Kind, ...] = (
    Kind.TRIAL_UP,
    Kind.TRIAL_DOWN,
    Kind.FERMAT,
    Kind.POLLARD_P1,
)

KIND_LABELS: Dict[Kind, str] = {
    Kind.TRIAL_UP: "Trial division (ascending)",
    Kind.TRIAL_DOWN: "Trial division (descending, gcd)",
    Kind.FERMAT: "Fermat",
    Kind.POLLARD_P1: "Pollard's p-1",
}

# Well-known listening ports
COORDINATOR_PORT = 10188
DISPATCHER_PORTS: Dict[Kind, int] = {
    Kind.TRIAL_UP: 12486,
    Kind.TRIAL_DOWN: 10897,
    Kind.FERMAT: 12458,
    Kind.POLLARD_P1: 11489,
}

# Search defaults
TRIAL_LOWER_BOUND = 2
TRIAL_MAX_SPAN = 100_000_000
FERMAT_ATTEMPT_BUDGET = 1000
POLLARD_INITIAL_BASE = 2
POLLARD_INITIAL_UPPER = 100
POLLARD_BOUND_STEP = 1000

# Miller-Rabin rounds used for every primality decision
PRIME_TEST_ROUNDS = 25

# Fixed backoff while a freshly spawned dispatcher comes up
DISPATCHER_READY_POLL_SECONDS = 1.0
DISPATCHER_READY_ATTEMPTS = 30
