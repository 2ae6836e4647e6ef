"""
SPINWHEEL — Spin Simulator

Monte Carlo preview of upcoming spins. Replays the selector against a
private copy of the counts, so caps bite exactly as they would live, but
nothing is written to history.

Usage:
    from spinwheel.engine.simulator import simulate_spins
    result = simulate_spins(config, counts, rounds=10_000, seed=42)
    print(result.to_dict())
"""

import random
from dataclasses import dataclass, field
from typing import Mapping, Optional

from spinwheel.config.outcomes import OutcomeDefinition
from spinwheel.engine.selector import EXHAUSTED, select_outcome


@dataclass
class SimulationResult:
    """Outcome tallies from a simulated run."""
    rounds_requested: int
    spins_run: int
    seed: int
    tallies: dict = field(default_factory=dict)
    exhausted_after: Optional[int] = None   # spins completed before caps ran out

    @property
    def distribution(self) -> dict:
        if not self.spins_run:
            return {oid: 0.0 for oid in self.tallies}
        return {oid: n / self.spins_run for oid, n in self.tallies.items()}

    def to_dict(self) -> dict:
        return {
            "rounds_requested": self.rounds_requested,
            "spins_run": self.spins_run,
            "seed": self.seed,
            "tallies": dict(self.tallies),
            "distribution": {k: round(v, 4) for k, v in self.distribution.items()},
            "exhausted_after": self.exhausted_after,
        }


def simulate_spins(
    config: Mapping[str, OutcomeDefinition],
    counts: Mapping[str, int],
    rounds: int = 10_000,
    seed: int = 42,
) -> SimulationResult:
    """Run up to `rounds` selections, stopping early once every cap is hit."""
    if rounds < 0:
        raise ValueError(f"rounds must be >= 0, got {rounds}")

    rng = random.Random(seed)
    live_counts = {oid: counts.get(oid, 0) for oid in config}
    tallies = {oid: 0 for oid in config}
    result = SimulationResult(rounds_requested=rounds, spins_run=0, seed=seed, tallies=tallies)

    for _ in range(rounds):
        winner = select_outcome(config, live_counts, rng)
        if winner is EXHAUSTED:
            result.exhausted_after = result.spins_run
            break
        live_counts[winner] += 1
        tallies[winner] += 1
        result.spins_run += 1

    return result
