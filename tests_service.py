#!/usr/bin/env python3
"""
SPINWHEEL — Service, API & CLI Tests

Test categories:
  TestSpinService  — spin flow, exhaustion, stats, preview/simulate
  TestApi          — Flask JSON endpoints via test_client()
  TestCli          — argparse commands against a temp SQLite file
"""

import json
import os
import random
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from spinwheel.config.outcomes import OUTCOME_CONFIGS, config_to_json
from spinwheel.config.settings import Settings
from spinwheel.config.storage import MemoryStorage
from spinwheel.engine.selector import EXHAUSTED
from spinwheel.errors import StaleWriteError
from spinwheel.service import LIMITS_REACHED_MESSAGE, WRITE_CONFLICT_MESSAGE, SpinService, build_context
from spinwheel.stores.config_store import ConfigStore
from spinwheel.stores.history_store import HistoryStore
from spinwheel.web_app import create_app


def make_service(seed=11):
    storage = MemoryStorage()
    config_store = ConfigStore(storage)
    history_store = HistoryStore(storage)
    return SpinService(config_store, history_store, rng=random.Random(seed))


def capped_config(**caps):
    cfg = config_to_json(OUTCOME_CONFIGS)
    for oid, cap in caps.items():
        cfg[oid]["maxLimit"] = cap
    return cfg


class TestSpinService(unittest.TestCase):

    def test_spin_records_winner(self):
        service = make_service()
        result = service.spin()
        self.assertFalse(result.exhausted)
        self.assertIn(result.record.outcome_id, OUTCOME_CONFIGS)
        self.assertEqual(result.outcome.id, result.record.outcome_id)
        self.assertEqual(service.history_store.get_history(), [result.record])

    def test_exhausted_spin_writes_nothing(self):
        service = make_service()
        service.config_store.save_config(capped_config(**{"200": 0, "301": 0, "302": 0, "404": 0}))
        result = service.spin()
        self.assertTrue(result.exhausted)
        self.assertEqual(result.message, LIMITS_REACHED_MESSAGE)
        self.assertIsNone(result.record)
        self.assertEqual(service.history_store.get_history(), [])

    def test_caps_enforced_from_history(self):
        service = make_service()
        service.config_store.save_config(capped_config(**{"200": 1, "301": 1, "302": 1, "404": 1}))
        winners = [service.spin().record.outcome_id for _ in range(4)]
        self.assertEqual(sorted(winners), ["200", "301", "302", "404"])
        self.assertTrue(service.spin().exhausted)

        service.history_store.clear_history()
        self.assertFalse(service.spin().exhausted)

    def test_legacy_outcome_is_capped_too(self):
        service = make_service()
        cfg = capped_config(**{"200": 0, "301": 0, "302": 0, "404": 0})
        cfg["500"] = {"id": "500", "label": "500 Oops", "color": "#111111",
                      "probability": 1.0, "maxLimit": 2}
        service.config_store.save_config(cfg)
        self.assertEqual(service.spin().record.outcome_id, "500")
        self.assertEqual(service.spin().record.outcome_id, "500")
        self.assertTrue(service.spin().exhausted)

    def test_lost_write_race_is_reported_not_raised(self):
        service = make_service()
        stale = StaleWriteError(service.history_store.key, 3, 4)
        with patch.object(service.history_store, "append_spin", side_effect=stale):
            with self.assertLogs("spinwheel.service", level="WARNING"):
                result = service.spin()
        self.assertTrue(result.conflict)
        self.assertFalse(result.exhausted)
        self.assertIsNone(result.record)
        self.assertEqual(result.message, WRITE_CONFLICT_MESSAGE)
        self.assertEqual(service.history_store.get_history(), [])

    def test_preview_does_not_record(self):
        service = make_service()
        self.assertIn(service.preview(), OUTCOME_CONFIGS)
        self.assertEqual(service.history_store.get_history(), [])

        service.config_store.save_config(capped_config(**{"200": 0, "301": 0, "302": 0, "404": 0}))
        self.assertIs(service.preview(), EXHAUSTED)

    def test_stats(self):
        service = make_service()
        service.config_store.save_config(capped_config(**{"200": 1}))
        for _ in range(3):
            service.spin()
        stats = service.stats()
        self.assertEqual(stats["total_spins"], 3)
        self.assertFalse(stats["exhausted"])
        by_id = {o["id"]: o for o in stats["outcomes"]}
        self.assertEqual(sum(o["count"] for o in by_id.values()), 3)
        for o in by_id.values():
            self.assertEqual(o["remaining"], max(o["limit"] - o["count"], 0))
        self.assertAlmostEqual(sum(o["effective_probability"] for o in by_id.values()), 1.0, places=4)

    def test_simulate_reads_live_counts(self):
        service = make_service()
        service.config_store.save_config(capped_config(**{"200": 2, "301": 0, "302": 0, "404": 0}))
        service.spin()
        result = service.simulate(rounds=10)
        self.assertEqual(result.tallies["200"], 1)
        self.assertEqual(result.exhausted_after, 1)
        self.assertEqual(len(service.history_store.get_history()), 1)

    def test_seeded_context_is_reproducible(self):
        settings = Settings(seed=5)
        a = build_context(settings, storage=MemoryStorage())
        b = build_context(settings, storage=MemoryStorage())
        seq_a = [a.service.spin().record.outcome_id for _ in range(10)]
        seq_b = [b.service.spin().record.outcome_id for _ in range(10)]
        self.assertEqual(seq_a, seq_b)


class TestApi(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage()
        self.app = create_app(Settings(log_level="WARNING"), storage=self.storage, rng=random.Random(3))
        self.app.testing = True
        self.client = self.app.test_client()

    def test_health(self):
        self.assertEqual(self.client.get("/health").get_json(), {"status": "ok"})

    def test_get_config_defaults(self):
        data = self.client.get("/api/config").get_json()
        self.assertEqual(data, config_to_json(OUTCOME_CONFIGS))

    def test_put_config_applies_merge_on_next_read(self):
        cfg = capped_config(**{"200": 5})
        cfg["200"]["probability"] = 0.9
        cfg["200"]["label"] = "Renamed"
        resp = self.client.put("/api/config", json=cfg)
        self.assertEqual(resp.status_code, 200)
        data = self.client.get("/api/config").get_json()
        self.assertEqual(data["200"]["label"], "200 OK")
        self.assertEqual(data["200"]["probability"], 0.9)
        self.assertEqual(data["200"]["maxLimit"], 5)

    def test_put_invalid_config(self):
        cfg = capped_config()
        cfg["301"]["maxLimit"] = -3
        resp = self.client.put("/api/config", json=cfg)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "invalid_config")

    def test_put_non_json(self):
        resp = self.client.put("/api/config", data="nope", content_type="text/plain")
        self.assertEqual(resp.status_code, 400)

    def test_reset_config(self):
        self.client.put("/api/config", json=capped_config(**{"404": 1}))
        resp = self.client.delete("/api/config")
        self.assertEqual(resp.get_json(), config_to_json(OUTCOME_CONFIGS))
        self.assertEqual(self.client.get("/api/config").get_json()["404"]["maxLimit"], 20)

    def test_spin_then_history_then_clear(self):
        resp = self.client.post("/api/spin")
        self.assertEqual(resp.status_code, 201)
        record = resp.get_json()["record"]
        self.assertEqual(set(record), {"id", "timestamp", "outcomeId"})

        history = self.client.get("/api/history").get_json()
        self.assertEqual(history, [record])

        self.assertEqual(self.client.delete("/api/history").status_code, 200)
        self.assertEqual(self.client.get("/api/history").get_json(), [])

    def test_spin_when_limits_reached(self):
        self.client.put("/api/config", json=capped_config(**{"200": 0, "301": 0, "302": 0, "404": 0}))
        resp = self.client.post("/api/spin")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["error"], "limits_reached")
        self.assertEqual(self.client.get("/api/history").get_json(), [])

    def test_spin_write_conflict(self):
        ctx = self.app.extensions["spinwheel"]
        stale = StaleWriteError(ctx.history_store.key, 1, 2)
        with patch.object(ctx.history_store, "append_spin", side_effect=stale):
            resp = self.client.post("/api/spin")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["error"], "write_conflict")
        self.assertEqual(self.client.get("/api/history").get_json(), [])

    def test_stats(self):
        self.client.post("/api/spin")
        stats = self.client.get("/api/stats").get_json()
        self.assertEqual(stats["total_spins"], 1)
        self.assertEqual(len(stats["outcomes"]), 4)

    def test_simulate(self):
        data = self.client.get("/api/simulate?rounds=200&seed=9").get_json()
        self.assertEqual(data["spins_run"], 120)
        self.assertEqual(data["exhausted_after"], 120)
        self.assertEqual(self.client.get("/api/history").get_json(), [])

    def test_simulate_bad_params(self):
        self.assertEqual(self.client.get("/api/simulate?rounds=lots").status_code, 400)
        self.assertEqual(self.client.get("/api/simulate?rounds=-5").status_code, 400)


class TestCli(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = os.path.join(self._tmp.name, "cli.db")
        self._env = patch.dict(os.environ, {"LOG_LEVEL": "WARNING"})
        self._env.start()

    def tearDown(self):
        self._env.stop()
        self._tmp.cleanup()

    def run_cli(self, *argv):
        from spinwheel.cli import main
        return main(["--db", self.db, *argv])

    def _history(self):
        ctx = build_context(Settings(db_path=self.db))
        try:
            return ctx.history_store.get_history()
        finally:
            ctx.storage.close()

    def test_spin_and_history(self):
        self.assertEqual(self.run_cli("spin"), 0)
        self.assertEqual(len(self._history()), 1)
        self.assertEqual(self.run_cli("history"), 0)
        self.assertEqual(self.run_cli("history", "--clear"), 0)
        self.assertEqual(self._history(), [])

    def test_config_set_and_exhaustion(self):
        for oid in ("200", "301", "302", "404"):
            self.assertEqual(self.run_cli("config", "set", oid, "--max-limit", "0"), 0)
        self.assertEqual(self.run_cli("spin"), 1)
        self.assertEqual(self.run_cli("config", "reset"), 0)
        self.assertEqual(self.run_cli("spin"), 0)

    def test_config_set_rejects_bad_values(self):
        self.assertEqual(self.run_cli("config", "set", "200", "--probability", "-1"), 2)
        self.assertEqual(self.run_cli("config", "set", "999", "--probability", "1"), 2)
        self.assertEqual(self.run_cli("config", "set"), 2)

    def test_negative_counts_rejected_by_parser(self):
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit) as cm:
                self.run_cli("history", "--limit", "-3")
            self.assertEqual(cm.exception.code, 2)
            with self.assertRaises(SystemExit):
                self.run_cli("simulate", "--rounds", "-1")
        self.assertEqual(self.run_cli("history", "--limit", "0"), 0)

    def test_stats_and_simulate(self):
        self.assertEqual(self.run_cli("stats"), 0)
        self.assertEqual(self.run_cli("simulate", "--rounds", "50"), 0)
        self.assertEqual(self._history(), [])


if __name__ == "__main__":
    unittest.main()
