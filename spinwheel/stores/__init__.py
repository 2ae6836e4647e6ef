"""Persistent stores: outcome configuration and spin history."""

from spinwheel.stores.config_store import ConfigStore, merge_config
from spinwheel.stores.history_store import HistoryStore, derive_counts

__all__ = ["ConfigStore", "merge_config", "HistoryStore", "derive_counts"]
