"""
SPINWHEEL — Outcome Engine

Pure selection logic. Nothing in this package reads or writes storage.

Usage:
    from spinwheel.engine import select_outcome, EXHAUSTED
    winner = select_outcome(config, counts, rng=random.Random(7))
    if winner is EXHAUSTED:
        ...
"""

from spinwheel.engine.selector import (
    EXHAUSTED, EligibilityExhausted, candidate_weights, effective_probabilities,
    select_outcome,
)
from spinwheel.engine.simulator import SimulationResult, simulate_spins

__all__ = [
    "EXHAUSTED", "EligibilityExhausted", "candidate_weights",
    "effective_probabilities", "select_outcome",
    "SimulationResult", "simulate_spins",
]
