"""Outcome Selector — capped weighted draw over the configured outcomes."""

import random
from typing import Mapping, Union

from spinwheel.config.outcomes import OutcomeDefinition


class EligibilityExhausted:
    """Result marker: every outcome has reached its cap. Falsy, singleton."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "EXHAUSTED"


EXHAUSTED = EligibilityExhausted()


def candidate_weights(
    config: Mapping[str, OutcomeDefinition],
    counts: Mapping[str, int],
) -> list[tuple[str, float]]:
    """Outcomes still under their cap, in config order, with their weights."""
    return [
        (oid, cfg.probability)
        for oid, cfg in config.items()
        if counts.get(oid, 0) < cfg.max_limit
    ]


def select_outcome(
    config: Mapping[str, OutcomeDefinition],
    counts: Mapping[str, int],
    rng=None,
) -> Union[str, EligibilityExhausted]:
    """Pick the winning outcome id, or EXHAUSTED when nothing is eligible.

    Capped outcomes are left out of both the candidate walk and the weight
    total, so their share is redistributed proportionally. Pure: reads its
    arguments only and records nothing.

    `rng` needs a `random()` method returning a float in [0, 1).
    """
    candidates = candidate_weights(config, counts)
    if not candidates:
        return EXHAUSTED

    total_weight = sum(w for _, w in candidates)
    r = (rng or random).random() * total_weight

    cumulative = 0.0
    for oid, weight in candidates:
        cumulative += weight
        if r <= cumulative:
            return oid
    # Float drift can leave r a hair above the final sum.
    return candidates[-1][0]


def effective_probabilities(
    config: Mapping[str, OutcomeDefinition],
    counts: Mapping[str, int],
) -> dict[str, float]:
    """Chance of each outcome winning the next spin (0.0 once capped)."""
    result = {oid: 0.0 for oid in config}
    candidates = candidate_weights(config, counts)
    if not candidates:
        return result
    total_weight = sum(w for _, w in candidates)
    if total_weight <= 0:
        # An all-zero draw is always 0, which the walk gives to the first candidate.
        result[candidates[0][0]] = 1.0
        return result
    for oid, weight in candidates:
        result[oid] = weight / total_weight
    return result
