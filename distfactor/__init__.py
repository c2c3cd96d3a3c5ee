"""Distributed integer factorization across coordinator, dispatcher and worker tiers."""

__version__ = "1.0.0"
