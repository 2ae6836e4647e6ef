"""
SPINWHEEL — Spin Service

The caller side of the selector: load config, derive counts, select, and
record the winner. Also builds the admin statistics view.

Usage:
    service = SpinService(ConfigStore(storage, bus), HistoryStore(storage, bus))
    result = service.spin()
    if result.exhausted or result.conflict:
        show_error(result.message)
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from spinwheel.config.outcomes import OutcomeDefinition, SpinRecord
from spinwheel.config.settings import Settings
from spinwheel.config.storage import SqliteStorage
from spinwheel.engine.selector import EXHAUSTED, effective_probabilities, select_outcome
from spinwheel.engine.simulator import SimulationResult, simulate_spins
from spinwheel.errors import StaleWriteError
from spinwheel.events import STORAGE, ChangeBus, StorageWatcher
from spinwheel.stores.config_store import ConfigStore
from spinwheel.stores.history_store import HistoryStore, derive_counts

logger = logging.getLogger("spinwheel.service")

LIMITS_REACHED_MESSAGE = "Limits reached! Please reset in Admin."
WRITE_CONFLICT_MESSAGE = "Another spin was being recorded at the same time. Please spin again."


@dataclass
class SpinResult:
    """What a spin produced: a recorded winner, exhaustion, or a lost write race."""
    record: Optional[SpinRecord] = None
    outcome: Optional[OutcomeDefinition] = None
    exhausted: bool = False
    conflict: bool = False
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "exhausted": self.exhausted,
            "conflict": self.conflict,
            "message": self.message,
            "record": self.record.to_json() if self.record else None,
            "outcome": self.outcome.to_json() if self.outcome else None,
        }


class SpinService:

    def __init__(self, config_store: ConfigStore, history_store: HistoryStore, rng=None):
        self.config_store = config_store
        self.history_store = history_store
        self.rng = rng or random.Random()

    def _state(self):
        config = self.config_store.load_config()
        history = self.history_store.get_history()
        # Count every configured outcome, including legacy passthrough ones.
        return config, history, derive_counts(history, config.keys())

    def preview(self):
        """Selector decision for the current state, without recording it."""
        config, _, counts = self._state()
        return select_outcome(config, counts, self.rng)

    def spin(self) -> SpinResult:
        config, _, counts = self._state()
        winner = select_outcome(config, counts, self.rng)
        if winner is EXHAUSTED:
            logger.info("Spin refused: every outcome is at its limit")
            return SpinResult(exhausted=True, message=LIMITS_REACHED_MESSAGE)

        try:
            record = self.history_store.append_spin(winner)
        except StaleWriteError as e:
            logger.warning(f"Spin not recorded, history kept changing underneath: {e}")
            return SpinResult(conflict=True, message=WRITE_CONFLICT_MESSAGE)
        return SpinResult(record=record, outcome=config[winner])

    def simulate(self, rounds: int = 10_000, seed: int = 42) -> SimulationResult:
        config, _, counts = self._state()
        return simulate_spins(config, counts, rounds=rounds, seed=seed)

    def stats(self) -> dict:
        """Per-outcome counts, remaining capacity and live odds."""
        config, history, counts = self._state()
        odds = effective_probabilities(config, counts)
        outcomes = []
        for oid, cfg in config.items():
            count = counts.get(oid, 0)
            outcomes.append({
                "id": oid,
                "label": cfg.label,
                "color": cfg.color,
                "count": count,
                "limit": cfg.max_limit,
                "remaining": max(cfg.max_limit - count, 0),
                "probability": cfg.probability,
                "effective_probability": round(odds[oid], 6),
            })
        return {
            "total_spins": len(history),
            "exhausted": all(o["remaining"] == 0 for o in outcomes),
            "outcomes": outcomes,
        }


# ═══════════════════════════════════════════════════════════════
# Wiring
# ═══════════════════════════════════════════════════════════════

@dataclass
class WheelContext:
    """Stores, service and change plumbing sharing one storage medium."""
    storage: object
    bus: ChangeBus
    config_store: ConfigStore
    history_store: HistoryStore
    service: SpinService
    watcher: StorageWatcher


def _log_foreign_write(event_type: str, data: dict) -> None:
    if event_type == STORAGE:
        logger.info(f"Shared storage changed by another instance (data_version={data.get('data_version')})")


def build_context(settings: Settings, storage=None, rng=None) -> WheelContext:
    storage = storage if storage is not None else SqliteStorage(settings.db_path)
    bus = ChangeBus()
    bus.subscribe(_log_foreign_write)
    config_store = ConfigStore(storage, bus, key=settings.config_key)
    history_store = HistoryStore(storage, bus, key=settings.history_key)
    if rng is None and settings.seed is not None:
        rng = random.Random(settings.seed)
    return WheelContext(
        storage=storage,
        bus=bus,
        config_store=config_store,
        history_store=history_store,
        service=SpinService(config_store, history_store, rng=rng),
        watcher=StorageWatcher(storage, bus),
    )
