"""
Big-integer helpers used by the search algorithms and the coordinator.

This module provides:
- Exact integer square roots with remainder
- Primality testing (Miller-Rabin)
- Factor verification and division
- Random test numbers of a given bit length
"""

import math
import random
from typing import Tuple

from ..constants import PRIME_TEST_ROUNDS


def exact_int_sqrt(n: int) -> Tuple[int, int]:
    """
    Exact integer square root with remainder.

    Args:
        n: Non-negative integer of any magnitude

    Returns:
        Tuple (s, r) with n == s*s + r and n < (s + 1)**2

    Raises:
        ValueError: If n is negative

    Example:
        >>> exact_int_sqrt(61108093)
        (7817, 2604)
    """
    if n < 0:
        raise ValueError(f"Cannot take the square root of negative number {n}")
    s = math.isqrt(n)
    return s, n - s * s


def is_perfect_square(n: int) -> bool:
    """Check whether n is a perfect square."""
    return n >= 0 and exact_int_sqrt(n)[1] == 0


def is_probably_prime(n: int, trials: int = PRIME_TEST_ROUNDS) -> bool:
    """
    Miller-Rabin primality test.

    With the default number of rounds the false positive rate is below
    1 in 4^25.

    Args:
        n: Number to test
        trials: Number of random witnesses

    Returns:
        True if probably prime, False if definitely composite
    """
    if n < 2:
        return False
    if n in (2, 3):
        return True
    if n % 2 == 0:
        return False

    # Write n-1 as 2^r * d
    r, d = 0, n - 1
    while d % 2 == 0:
        r += 1
        d //= 2

    for _ in range(trials):
        a = random.randrange(2, n - 1)
        x = pow(a, d, n)

        if x == 1 or x == n - 1:
            continue

        for _ in range(r - 1):
            x = pow(x, 2, n)
            if x == n - 1:
                break
        else:
            return False

    return True


def is_trivial_factor(factor: int, number: int) -> bool:
    """Check if factor is trivial (1 or the number itself)."""
    return factor <= 1 or factor >= number


def verify_factor_divides(factor: int, number: int) -> bool:
    """
    Verify that a factor actually divides the number.

    Args:
        factor: Candidate factor
        number: The number being factored

    Returns:
        True if factor divides number evenly, False otherwise
    """
    if factor <= 0 or number <= 0:
        return False
    if factor > number:
        return False
    return number % factor == 0


def divide_factor(number: int, factor: int) -> int:
    """
    Divide a factor out of a number.

    Raises:
        ValueError: If factor does not divide number
    """
    if not verify_factor_divides(factor, number):
        raise ValueError(f"{factor} does not divide {number}")
    return number // factor


def random_number(bits: int) -> int:
    """Uniformly random non-negative integer below 2**bits."""
    if bits < 1:
        raise ValueError("Bit length must be positive")
    return random.getrandbits(bits)


def random_prime(bits: int) -> int:
    """
    Random probable prime of exactly the given bit length.

    Args:
        bits: Bit length, at least 2

    Returns:
        A probable prime p with p.bit_length() == bits
    """
    if bits < 2:
        raise ValueError("Primes need a bit length of at least 2")
    while True:
        candidate = random.getrandbits(bits) | (1 << (bits - 1))
        if bits > 2:
            candidate |= 1
        if is_probably_prime(candidate):
            return candidate
