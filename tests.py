#!/usr/bin/env python3
"""
SPINWHEEL — Unit Test Suite (engine & stores)

Run: python tests.py
     python tests.py -v          # verbose
     python tests.py TestSelector  # run specific class

Test categories:
  TestSelector          — candidate filtering, weighted walk, exhaustion
  TestEffectiveOdds     — renormalized next-spin probabilities
  TestSimulator         — preview runs honour caps, never record
  TestHistoryStore      — append order, derived counts, corrupt storage
  TestConfigStore       — merge policy, legacy passthrough, save/reset
"""

import copy
import json
import random
import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from spinwheel.config.outcomes import (
    DEFAULT_OUTCOME_IDS, OUTCOME_CONFIGS, OutcomeDefinition, SpinRecord, slices_for,
)
from spinwheel.config.storage import MemoryStorage
from spinwheel.engine.selector import (
    EXHAUSTED, EligibilityExhausted, candidate_weights, effective_probabilities, select_outcome,
)
from spinwheel.engine.simulator import simulate_spins
from spinwheel.errors import ConfigValidationError, StaleWriteError
from spinwheel.events import CONFIG_UPDATED, HISTORY_UPDATED, ChangeBus
from spinwheel.stores.config_store import ConfigStore
from spinwheel.stores.history_store import APPEND_RETRIES, HistoryStore, derive_counts


class ScriptedRNG:
    """Returns pre-set draws in order."""

    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def outcome(oid, probability, max_limit):
    return OutcomeDefinition(id=oid, label=f"Outcome {oid}", color="#000000",
                             probability=probability, max_limit=max_limit)


def defaults():
    return {oid: cfg.model_copy() for oid, cfg in OUTCOME_CONFIGS.items()}


class Recorder:
    """Bus listener that keeps every event."""

    def __init__(self, bus):
        self.events = []
        bus.subscribe(lambda event, data: self.events.append((event, data)))


# ============================================================
# Selector
# ============================================================

class TestSelector(unittest.TestCase):

    def test_all_caps_reached_is_exhausted(self):
        config = defaults()
        counts = {oid: cfg.max_limit for oid, cfg in config.items()}
        for draw in (0.0, 0.5, 0.999):
            result = select_outcome(config, counts, ScriptedRNG(draw))
            self.assertIs(result, EXHAUSTED)
            self.assertNotIn(result, config)

    def test_exhausted_is_falsy_singleton(self):
        self.assertIs(EligibilityExhausted(), EXHAUSTED)
        self.assertFalse(EXHAUSTED)

    def test_only_remaining_candidate_always_wins(self):
        config = {"A": outcome("A", 0.4, 2), "B": outcome("B", 0.6, 2)}
        counts = {"A": 2, "B": 0}
        for draw in (0.0, 0.1, 0.5, 0.9, 0.999999):
            self.assertEqual(select_outcome(config, counts, ScriptedRNG(draw)), "B")

    def test_zero_cap_exhausted_without_any_spins(self):
        config = {"A": outcome("A", 1.0, 0)}
        self.assertIs(select_outcome(config, {}, ScriptedRNG(0.3)), EXHAUSTED)

    def test_cumulative_walk_in_config_order(self):
        config = defaults()   # weights 0.40, 0.25, 0.25, 0.10
        counts = derive_counts([])
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.0)), "200")
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.2)), "200")
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.5)), "301")
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.8)), "302")
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.95)), "404")

    def test_capped_outcome_weight_is_redistributed(self):
        config = defaults()
        counts = {"200": 50, "301": 0, "302": 0, "404": 0}
        # Candidate total is 0.60: draws scale to 0.06, 0.30, 0.57.
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.1)), "301")
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.5)), "302")
        self.assertEqual(select_outcome(config, counts, ScriptedRNG(0.95)), "404")

    def test_never_returns_capped_outcome(self):
        config = defaults()
        counts = {"200": 50, "301": 25, "302": 3, "404": 20}
        rng = random.Random(7)
        for _ in range(500):
            self.assertEqual(select_outcome(config, counts, rng), "302")

    def test_draw_beyond_total_falls_back_to_last_candidate(self):
        config = {"A": outcome("A", 0.1, 5), "B": outcome("B", 0.1, 5), "C": outcome("C", 0.1, 5)}
        self.assertEqual(select_outcome(config, {}, ScriptedRNG(1.5)), "C")

    def test_zero_total_weight_picks_first_candidate(self):
        config = {"A": outcome("A", 0, 5), "B": outcome("B", 0, 5)}
        self.assertEqual(select_outcome(config, {}, ScriptedRNG(0.7)), "A")

    def test_missing_counts_treated_as_zero(self):
        config = {"A": outcome("A", 1.0, 1)}
        self.assertEqual(select_outcome(config, {}, ScriptedRNG(0.5)), "A")

    def test_selection_does_not_mutate_inputs(self):
        config = defaults()
        counts = {"200": 3, "301": 1}
        config_before = {k: v.model_dump() for k, v in config.items()}
        counts_before = copy.deepcopy(counts)
        select_outcome(config, counts, ScriptedRNG(0.42))
        self.assertEqual({k: v.model_dump() for k, v in config.items()}, config_before)
        self.assertEqual(counts, counts_before)

    def test_candidate_weights_excludes_capped(self):
        config = defaults()
        cands = candidate_weights(config, {"301": 25})
        self.assertEqual([oid for oid, _ in cands], ["200", "302", "404"])

    def test_distribution_tracks_weights(self):
        config = defaults()
        rng = random.Random(1234)
        tally = {oid: 0 for oid in config}
        n = 20_000
        for _ in range(n):
            tally[select_outcome(config, {}, rng)] += 1
        for oid, cfg in config.items():
            self.assertAlmostEqual(tally[oid] / n, cfg.probability, delta=0.02,
                                   msg=f"{oid}: {tally[oid] / n:.3f} vs {cfg.probability}")


class TestEffectiveOdds(unittest.TestCase):

    def test_uncapped_shares_match_normalized_weights(self):
        odds = effective_probabilities(defaults(), {})
        self.assertAlmostEqual(odds["200"], 0.40)
        self.assertAlmostEqual(odds["404"], 0.10)
        self.assertAlmostEqual(sum(odds.values()), 1.0)

    def test_capped_outcome_gets_zero_and_rest_renormalize(self):
        odds = effective_probabilities(defaults(), {"200": 50})
        self.assertEqual(odds["200"], 0.0)
        self.assertAlmostEqual(odds["301"], 0.25 / 0.60)
        self.assertAlmostEqual(sum(odds.values()), 1.0)

    def test_exhausted_config_is_all_zero(self):
        config = {"A": outcome("A", 1.0, 0)}
        self.assertEqual(effective_probabilities(config, {}), {"A": 0.0})


class TestSimulator(unittest.TestCase):

    def test_stops_at_exhaustion(self):
        config = defaults()
        total_caps = sum(cfg.max_limit for cfg in config.values())
        result = simulate_spins(config, {}, rounds=total_caps + 50, seed=3)
        self.assertEqual(result.spins_run, total_caps)
        self.assertEqual(result.exhausted_after, total_caps)
        for oid, cfg in config.items():
            self.assertEqual(result.tallies[oid], cfg.max_limit)

    def test_existing_counts_are_respected_and_not_mutated(self):
        config = {"A": outcome("A", 0.5, 3), "B": outcome("B", 0.5, 3)}
        counts = {"A": 3, "B": 1}
        result = simulate_spins(config, counts, rounds=10, seed=1)
        self.assertEqual(result.tallies, {"A": 0, "B": 2})
        self.assertEqual(counts, {"A": 3, "B": 1})

    def test_same_seed_same_result(self):
        a = simulate_spins(defaults(), {}, rounds=60, seed=99).to_dict()
        b = simulate_spins(defaults(), {}, rounds=60, seed=99).to_dict()
        self.assertEqual(a, b)
        self.assertIsNone(a["exhausted_after"])

    def test_negative_rounds_rejected(self):
        with self.assertRaises(ValueError):
            simulate_spins(defaults(), {}, rounds=-1)


# ============================================================
# History store
# ============================================================

class RacingStorage(MemoryStorage):
    """Lets another writer sneak a record in before our first write lands."""

    def __init__(self, key, foreign_record):
        super().__init__()
        self.key = key
        self.foreign_record = foreign_record
        self.raced = False

    def set(self, key, value, expected_version=None):
        if key == self.key and not self.raced:
            self.raced = True
            existing = json.loads(self.get(key) or "[]")
            super().set(key, json.dumps([self.foreign_record] + existing))
        return super().set(key, value, expected_version=expected_version)


class ContendedStorage(MemoryStorage):
    """Every conditional write loses to some other writer."""

    def __init__(self):
        super().__init__()
        self.attempts = 0

    def set(self, key, value, expected_version=None):
        if expected_version is not None:
            self.attempts += 1
            raise StaleWriteError(key, expected_version, expected_version + 1)
        return super().set(key, value, expected_version=expected_version)


class TestHistoryStore(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage()
        self.bus = ChangeBus()
        self.ticks = iter(range(1_000, 100_000, 1_000))
        self.ids = iter(f"spin-{i}" for i in range(1, 1000))
        self.store = HistoryStore(self.storage, self.bus,
                                  clock=lambda: next(self.ticks),
                                  id_factory=lambda: next(self.ids))

    def test_empty_history(self):
        self.assertEqual(self.store.get_history(), [])
        self.assertEqual(self.store.counts(), {oid: 0 for oid in DEFAULT_OUTCOME_IDS})

    def test_append_returns_record_and_prepends(self):
        first = self.store.append_spin("200")
        second = self.store.append_spin("404")
        self.assertEqual(first, SpinRecord(id="spin-1", timestamp=1_000, outcome_id="200"))
        self.assertEqual(second.id, "spin-2")
        self.assertEqual([r.id for r in self.store.get_history()], ["spin-2", "spin-1"])

    def test_append_increments_exactly_one_count(self):
        self.store.append_spin("301")
        before = self.store.counts()
        self.store.append_spin("302")
        after = self.store.counts()
        for oid in DEFAULT_OUTCOME_IDS:
            expected = before[oid] + (1 if oid == "302" else 0)
            self.assertEqual(after[oid], expected)

    def test_clear_history_zeroes_counts(self):
        for oid in ("200", "200", "404"):
            self.store.append_spin(oid)
        self.store.clear_history()
        self.assertIsNone(self.storage.get(self.store.key))
        self.assertEqual(self.store.counts(), {oid: 0 for oid in DEFAULT_OUTCOME_IDS})

    def test_unknown_outcome_ids_are_ignored_in_counts(self):
        log = [SpinRecord(id="a", timestamp=1, outcome_id="999"),
               SpinRecord(id="b", timestamp=2, outcome_id="200")]
        counts = derive_counts(log)
        self.assertNotIn("999", counts)
        self.assertEqual(counts["200"], 1)

    def test_persisted_format_uses_camel_case(self):
        self.store.append_spin("200")
        stored = json.loads(self.storage.get(self.store.key))
        self.assertEqual(stored, [{"id": "spin-1", "timestamp": 1_000, "outcomeId": "200"}])

    def test_corrupt_json_reads_as_empty(self):
        self.storage.set(self.store.key, "{not json")
        with self.assertLogs("spinwheel.history", level="ERROR"):
            self.assertEqual(self.store.get_history(), [])

    def test_non_list_reads_as_empty(self):
        self.storage.set(self.store.key, json.dumps({"outcomeId": "200"}))
        with self.assertLogs("spinwheel.history", level="ERROR"):
            self.assertEqual(self.store.get_history(), [])

    def test_malformed_entries_are_skipped(self):
        self.storage.set(self.store.key, json.dumps([
            {"id": "ok", "timestamp": 5, "outcomeId": "301"},
            {"id": "broken"},
            "garbage",
        ]))
        with self.assertLogs("spinwheel.history", level="WARNING"):
            history = self.store.get_history()
        self.assertEqual([r.id for r in history], ["ok"])

    def test_append_after_corrupt_storage_starts_fresh(self):
        self.storage.set(self.store.key, "][")
        self.store.append_spin("200")
        self.assertEqual(len(self.store.get_history()), 1)

    def test_events_emitted(self):
        rec = Recorder(self.bus)
        self.store.append_spin("200")
        self.store.clear_history()
        self.assertEqual([e for e, _ in rec.events], [HISTORY_UPDATED, HISTORY_UPDATED])
        self.assertEqual(rec.events[0][1]["action"], "append")
        self.assertEqual(rec.events[1][1]["action"], "clear")

    def test_invalid_outcome_id_rejected(self):
        with self.assertRaises(ValueError):
            self.store.append_spin("")

    def test_concurrent_append_is_retried_not_lost(self):
        foreign = {"id": "other-tab", "timestamp": 500, "outcomeId": "404"}
        storage = RacingStorage(self.store.key, foreign)
        store = HistoryStore(storage, clock=lambda: 900, id_factory=lambda: "mine")
        with self.assertLogs("spinwheel.history", level="WARNING"):
            store.append_spin("200")
        self.assertEqual([r.id for r in store.get_history()], ["mine", "other-tab"])

    def test_append_gives_up_after_bounded_retries(self):
        storage = ContendedStorage()
        store = HistoryStore(storage, self.bus)
        rec = Recorder(self.bus)
        with self.assertLogs("spinwheel.history", level="WARNING"):
            with self.assertRaises(StaleWriteError):
                store.append_spin("200")
        self.assertEqual(storage.attempts, APPEND_RETRIES)
        self.assertEqual(store.get_history(), [])
        self.assertEqual(rec.events, [])


# ============================================================
# Config store
# ============================================================

class TestConfigStore(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage()
        self.bus = ChangeBus()
        self.store = ConfigStore(self.storage, self.bus)

    def _store_raw(self, obj):
        self.storage.set(self.store.key, json.dumps(obj))

    def test_nothing_persisted_returns_defaults(self):
        self.assertEqual(self.store.load_config(), OUTCOME_CONFIGS)

    def test_numeric_overrides_survive_but_display_fields_do_not(self):
        edited = defaults()
        edited["200"] = edited["200"].model_copy(update={
            "probability": 0.9, "max_limit": 5, "label": "Stale label", "color": "#FFFFFF",
        })
        self.store.save_config(edited)

        loaded = self.store.load_config()
        self.assertEqual(loaded["200"].label, OUTCOME_CONFIGS["200"].label)
        self.assertEqual(loaded["200"].color, OUTCOME_CONFIGS["200"].color)
        self.assertEqual(loaded["200"].probability, 0.9)
        self.assertEqual(loaded["200"].max_limit, 5)

    def test_save_writes_state_as_given(self):
        edited = defaults()
        edited["301"] = edited["301"].model_copy(update={"label": "Custom"})
        self.store.save_config(edited)
        stored = json.loads(self.storage.get(self.store.key))
        self.assertEqual(stored["301"]["label"], "Custom")
        self.assertIn("maxLimit", stored["301"])

    def test_partial_entry_falls_back_per_field(self):
        self._store_raw({"404": {"probability": 0.3}})
        loaded = self.store.load_config()
        self.assertEqual(loaded["404"].probability, 0.3)
        self.assertEqual(loaded["404"].max_limit, OUTCOME_CONFIGS["404"].max_limit)
        self.assertEqual(loaded["200"], OUTCOME_CONFIGS["200"])

    def test_stored_id_is_ignored_for_known_outcomes(self):
        self._store_raw({"200": {"id": "999", "probability": 0.1, "maxLimit": 1}})
        self.assertEqual(self.store.load_config()["200"].id, "200")

    def test_invalid_stored_field_uses_default(self):
        self._store_raw({"302": {"probability": -4, "maxLimit": "lots"}})
        with self.assertLogs("spinwheel.config", level="WARNING"):
            loaded = self.store.load_config()
        self.assertEqual(loaded["302"], OUTCOME_CONFIGS["302"])

    def test_legacy_outcome_passes_through(self):
        legacy = {"id": "500", "label": "500 Oops", "color": "#123456",
                  "probability": 0.2, "maxLimit": 3}
        self._store_raw({"500": legacy})
        loaded = self.store.load_config()
        self.assertEqual(list(loaded), [*DEFAULT_OUTCOME_IDS, "500"])
        self.assertEqual(loaded["500"].to_json(), legacy)

    def test_unreadable_legacy_outcome_dropped(self):
        self._store_raw({"500": {"label": "no numbers"}})
        with self.assertLogs("spinwheel.config", level="WARNING"):
            loaded = self.store.load_config()
        self.assertNotIn("500", loaded)

    def test_corrupt_storage_returns_defaults(self):
        for raw in ("{oops", "[1, 2, 3]", "null"):
            self.storage.set(self.store.key, raw)
            with self.assertLogs("spinwheel.config", level="ERROR"):
                self.assertEqual(self.store.load_config(), OUTCOME_CONFIGS)

    def test_reset_restores_defaults(self):
        edited = defaults()
        edited["200"] = edited["200"].model_copy(update={"probability": 0.01})
        self.store.save_config(edited)
        returned = self.store.reset_config()
        self.assertEqual(returned, OUTCOME_CONFIGS)
        self.assertIsNone(self.storage.get(self.store.key))
        self.assertEqual(self.store.load_config(), OUTCOME_CONFIGS)

    def test_save_and_reset_notify(self):
        rec = Recorder(self.bus)
        self.store.save_config(defaults())
        self.store.reset_config()
        self.assertEqual(rec.events, [(CONFIG_UPDATED, {"action": "save"}),
                                      (CONFIG_UPDATED, {"action": "reset"})])

    def test_invalid_save_raises_and_writes_nothing(self):
        bad = {oid: cfg.to_json() for oid, cfg in OUTCOME_CONFIGS.items()}
        bad["200"]["probability"] = -1
        with self.assertRaises(ConfigValidationError):
            self.store.save_config(bad)
        self.assertIsNone(self.storage.get(self.store.key))

    def test_invalid_model_instance_save_raises_and_writes_nothing(self):
        config = self.store.load_config()
        config["200"] = config["200"].model_copy(update={"probability": -1.0, "max_limit": -5})
        with self.assertRaises(ConfigValidationError):
            self.store.save_config(config)
        self.assertIsNone(self.storage.get(self.store.key))

    def test_key_id_mismatch_rejected(self):
        with self.assertRaises(ConfigValidationError):
            self.store.save_config({"200": OUTCOME_CONFIGS["301"]})

    def test_update_outcome_edits_numeric_fields(self):
        self.store.update_outcome("301", probability=0.7)
        self.store.update_outcome("301", max_limit=2)
        loaded = self.store.load_config()
        self.assertEqual(loaded["301"].probability, 0.7)
        self.assertEqual(loaded["301"].max_limit, 2)

    def test_update_unknown_outcome_rejected(self):
        with self.assertRaises(ConfigValidationError):
            self.store.update_outcome("418", probability=1.0)

    def test_loaded_config_is_a_copy(self):
        loaded = self.store.load_config()
        loaded["200"].probability = 0.0
        self.assertEqual(OUTCOME_CONFIGS["200"].probability, 0.40)


class TestOutcomeDefaults(unittest.TestCase):

    def test_reference_outcomes(self):
        self.assertEqual(DEFAULT_OUTCOME_IDS, ("200", "301", "302", "404"))
        self.assertAlmostEqual(sum(c.probability for c in OUTCOME_CONFIGS.values()), 1.0)

    def test_wheel_slices(self):
        self.assertEqual(slices_for("200"), [0, 3])
        self.assertEqual(slices_for("404"), [1, 4])
        self.assertEqual(slices_for("302"), [5])


if __name__ == "__main__":
    unittest.main()
