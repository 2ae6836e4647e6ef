"""
SPINWHEEL — Config Store

Owns the outcome configuration: persisted admin overrides merged over the
built-in defaults on every load.

Merge policy (load only, never on save):
  - For each built-in outcome, `id`, `label` and `color` always come from the
    defaults. `probability` and `maxLimit` come from storage when present
    there, otherwise from the defaults.
  - Stored outcomes unknown to the defaults pass through as stored.
  - Missing or corrupt storage yields the defaults; a bad store must never
    block a spin.

Usage:
    store = ConfigStore(storage, bus)
    config = store.load_config()
    config["200"] = config["200"].model_copy(update={"probability": 0.9})
    store.save_config(config)
"""

import json
import logging
from collections.abc import Mapping
from typing import Optional, Union

from pydantic import ValidationError

from spinwheel.config.outcomes import OUTCOME_CONFIGS, OutcomeDefinition, config_to_json
from spinwheel.config.settings import CONFIG_KEY
from spinwheel.errors import ConfigValidationError, PersistenceCorrupt
from spinwheel.events import CONFIG_UPDATED, ChangeBus

logger = logging.getLogger("spinwheel.config")

# Fields an admin may edit, as (attribute, persisted name).
EDITABLE_FIELDS = (("probability", "probability"), ("max_limit", "maxLimit"))


def _decode(key: str, raw: str) -> dict:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceCorrupt(key, f"invalid JSON ({e.msg})") from e
    if not isinstance(parsed, dict):
        raise PersistenceCorrupt(key, f"expected an object, got {type(parsed).__name__}")
    return parsed


def _override(base: OutcomeDefinition, entry: dict, attr: str, name: str):
    """Stored value for one editable field, or the default when absent/invalid."""
    if name not in entry:
        return getattr(base, attr)
    try:
        candidate = OutcomeDefinition.model_validate({**base.to_json(), name: entry[name]})
    except ValidationError:
        logger.warning(f"Ignoring invalid stored {name}={entry[name]!r} for outcome {base.id}")
        return getattr(base, attr)
    return getattr(candidate, attr)


def merge_config(stored: Mapping, defaults: Mapping[str, OutcomeDefinition]) -> dict[str, OutcomeDefinition]:
    """Apply stored numeric overrides to `defaults`; pass unknown outcomes through."""
    merged: dict[str, OutcomeDefinition] = {}

    for oid, base in defaults.items():
        entry = stored.get(oid)
        if entry is None:
            merged[oid] = base.model_copy()
            continue
        if not isinstance(entry, dict):
            logger.warning(f"Ignoring non-object stored entry for outcome {oid}")
            merged[oid] = base.model_copy()
            continue
        updates = {attr: _override(base, entry, attr, name) for attr, name in EDITABLE_FIELDS}
        merged[oid] = base.model_copy(update=updates)

    for oid, entry in stored.items():
        if oid in defaults:
            continue
        try:
            merged[oid] = OutcomeDefinition.model_validate(entry)
        except ValidationError as e:
            logger.warning(f"Dropping unreadable legacy outcome {oid}: {e.error_count()} error(s)")

    return merged


def validate_config(new_state: Mapping) -> dict[str, OutcomeDefinition]:
    """Coerce an admin-supplied mapping into definitions, or raise ConfigValidationError."""
    if not isinstance(new_state, Mapping):
        raise ConfigValidationError("Configuration must be a mapping of outcome id to definition")
    validated: dict[str, OutcomeDefinition] = {}
    for oid, entry in new_state.items():
        # model_copy(update=...) skips validation, so instances are re-checked too.
        if isinstance(entry, OutcomeDefinition):
            entry = entry.to_json()
        try:
            cfg = OutcomeDefinition.model_validate(entry)
        except ValidationError as e:
            raise ConfigValidationError(f"Outcome {oid}: {e}") from e
        if cfg.id != oid:
            raise ConfigValidationError(f"Outcome key {oid!r} does not match its id {cfg.id!r}")
        validated[oid] = cfg
    return validated


class ConfigStore:
    """Persisted outcome configuration with default merging."""

    def __init__(
        self,
        storage,
        bus: Optional[ChangeBus] = None,
        defaults: Optional[Mapping[str, OutcomeDefinition]] = None,
        key: str = CONFIG_KEY,
    ):
        self.storage = storage
        self.bus = bus if bus is not None else ChangeBus()
        self.defaults = dict(defaults if defaults is not None else OUTCOME_CONFIGS)
        self.key = key

    def default_config(self) -> dict[str, OutcomeDefinition]:
        return {oid: cfg.model_copy() for oid, cfg in self.defaults.items()}

    def load_config(self) -> dict[str, OutcomeDefinition]:
        """Current configuration. Never raises on bad stored content."""
        raw = self.storage.get(self.key)
        if raw is None:
            return self.default_config()
        try:
            stored = _decode(self.key, raw)
        except PersistenceCorrupt as e:
            logger.error(f"Failed to load config, using defaults: {e}")
            return self.default_config()
        return merge_config(stored, self.defaults)

    def save_config(self, new_state: Mapping[str, Union[OutcomeDefinition, dict]]) -> dict[str, OutcomeDefinition]:
        """Overwrite the persisted configuration with `new_state` as given."""
        validated = validate_config(new_state)
        self.storage.set(self.key, json.dumps(config_to_json(validated)))
        logger.info(f"Config saved ({len(validated)} outcomes)")
        self.bus.emit(CONFIG_UPDATED, action="save")
        return validated

    def reset_config(self) -> dict[str, OutcomeDefinition]:
        """Drop every override; later loads return the defaults."""
        self.storage.delete(self.key)
        logger.info("Config reset to defaults")
        self.bus.emit(CONFIG_UPDATED, action="reset")
        return self.default_config()

    def update_outcome(
        self,
        outcome_id: str,
        probability: Optional[float] = None,
        max_limit: Optional[int] = None,
    ) -> dict[str, OutcomeDefinition]:
        """Edit the numeric fields of one outcome and save the whole config."""
        config = self.load_config()
        if outcome_id not in config:
            raise ConfigValidationError(f"Unknown outcome {outcome_id!r}")
        current = config[outcome_id].to_json()
        if probability is not None:
            current["probability"] = probability
        if max_limit is not None:
            current["maxLimit"] = max_limit
        config[outcome_id] = current
        return self.save_config(config)
