"""
SPINWHEEL — Capped Weighted Outcome Engine

Picks a spin winner from a small fixed set of outcomes. Each outcome has an
editable weight and a lifetime cap enforced against recorded history.

Usage:
    from spinwheel import ConfigStore, HistoryStore, SpinService, MemoryStorage

    storage = MemoryStorage()
    service = SpinService(ConfigStore(storage), HistoryStore(storage))
    result = service.spin()
"""

from spinwheel.config.outcomes import (
    OutcomeDefinition, SpinRecord, OUTCOME_CONFIGS, DEFAULT_OUTCOME_IDS,
)
from spinwheel.config.storage import MemoryStorage, SqliteStorage
from spinwheel.engine.selector import EXHAUSTED, EligibilityExhausted, select_outcome
from spinwheel.events import ChangeBus, StorageWatcher
from spinwheel.service import SpinResult, SpinService
from spinwheel.stores.config_store import ConfigStore
from spinwheel.stores.history_store import HistoryStore, derive_counts

__all__ = [
    "OutcomeDefinition", "SpinRecord", "OUTCOME_CONFIGS", "DEFAULT_OUTCOME_IDS",
    "MemoryStorage", "SqliteStorage",
    "EXHAUSTED", "EligibilityExhausted", "select_outcome",
    "ChangeBus", "StorageWatcher",
    "SpinResult", "SpinService",
    "ConfigStore", "HistoryStore", "derive_counts",
]
