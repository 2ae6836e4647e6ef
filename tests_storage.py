#!/usr/bin/env python3
"""
SPINWHEEL — Storage & Change Notification Tests

Validates:
1. SqliteStorage get/set/delete and per-key versions
2. Conditional writes reject stale versions
3. Two connections to one file share state (two "tabs")
4. PRAGMA data_version drives StorageWatcher for foreign writes only
5. ChangeBus fan-out, unsubscribe, failing listeners
6. Settings read from the environment
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from spinwheel.config.settings import CONFIG_KEY, HISTORY_KEY, Settings
from spinwheel.config.storage import MemoryStorage, SqliteStorage
from spinwheel.errors import StaleWriteError
from spinwheel.events import STORAGE, ChangeBus, StorageWatcher
from spinwheel.service import build_context
from spinwheel.stores.config_store import ConfigStore
from spinwheel.stores.history_store import HistoryStore


class SqliteCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "wheel.db")
        self.opened = []

    def tearDown(self):
        for s in self.opened:
            s.close()
        self._tmp.cleanup()

    def open(self):
        s = SqliteStorage(self.db_path)
        self.opened.append(s)
        return s


class TestSqliteStorage(SqliteCase):

    def test_roundtrip_and_delete(self):
        s = self.open()
        self.assertIsNone(s.get("k"))
        s.set("k", "v1")
        self.assertEqual(s.get("k"), "v1")
        s.delete("k")
        self.assertIsNone(s.get("k"))
        self.assertEqual(s.version("k"), 0)

    def test_versions_increment(self):
        s = self.open()
        self.assertEqual(s.set("k", "a"), 1)
        self.assertEqual(s.set("k", "b"), 2)
        self.assertEqual(s.version("k"), 2)

    def test_stale_conditional_write_rejected(self):
        s = self.open()
        s.set("k", "a")
        with self.assertRaises(StaleWriteError) as cm:
            s.set("k", "b", expected_version=0)
        self.assertEqual((cm.exception.expected, cm.exception.actual), (0, 1))
        self.assertEqual(s.get("k"), "a")
        self.assertEqual(s.set("k", "c", expected_version=1), 2)

    def test_two_instances_share_state(self):
        tab_a, tab_b = self.open(), self.open()
        HistoryStore(tab_a).append_spin("301")
        self.assertEqual(HistoryStore(tab_b).counts()["301"], 1)

        ConfigStore(tab_b).update_outcome("200", max_limit=1)
        self.assertEqual(ConfigStore(tab_a).load_config()["200"].max_limit, 1)

    def test_survives_reopen(self):
        s = self.open()
        HistoryStore(s).append_spin("404")
        s.close()
        self.opened.remove(s)
        self.assertEqual(len(HistoryStore(self.open()).get_history()), 1)


class TestStorageWatcher(SqliteCase):

    def test_foreign_write_raises_storage_event(self):
        tab_a, tab_b = self.open(), self.open()
        bus = ChangeBus()
        seen = []
        bus.subscribe(lambda event, data: seen.append(event))
        watcher = StorageWatcher(tab_a, bus)

        self.assertFalse(watcher.poll())
        tab_b.set(CONFIG_KEY, "{}")
        self.assertTrue(watcher.poll())
        self.assertEqual(seen, [STORAGE])
        self.assertFalse(watcher.poll())

    def test_context_logs_foreign_writes(self):
        tab_a, tab_b = self.open(), self.open()
        ctx = build_context(Settings(), storage=tab_a)
        tab_b.set(HISTORY_KEY, "[]")
        with self.assertLogs("spinwheel.service", level="INFO") as logs:
            self.assertTrue(ctx.watcher.poll())
        self.assertIn("another instance", logs.output[0])

    def test_own_writes_are_not_foreign(self):
        tab_a = self.open()
        watcher = StorageWatcher(tab_a, ChangeBus())
        tab_a.set(HISTORY_KEY, "[]")
        self.assertFalse(watcher.poll())

    def test_memory_storage_never_signals(self):
        storage = MemoryStorage()
        watcher = StorageWatcher(storage, ChangeBus())
        storage.set("k", "v")
        self.assertFalse(watcher.poll())


class TestChangeBus(unittest.TestCase):

    def test_fan_out_and_unsubscribe(self):
        bus = ChangeBus()
        got_a, got_b = [], []
        unsub_a = bus.subscribe(lambda e, d: got_a.append((e, d)))
        bus.subscribe(lambda e, d: got_b.append(e))
        bus.emit("config_updated", action="save")
        unsub_a()
        bus.emit("config_updated", action="reset")
        self.assertEqual(got_a, [("config_updated", {"action": "save"})])
        self.assertEqual(got_b, ["config_updated", "config_updated"])
        self.assertEqual(len(bus), 1)

    def test_failing_listener_does_not_stop_others(self):
        bus = ChangeBus()
        got = []

        def boom(event, data):
            raise RuntimeError("listener broke")

        bus.subscribe(boom)
        bus.subscribe(lambda e, d: got.append(e))
        with self.assertLogs("spinwheel.events", level="ERROR"):
            bus.emit("history_updated")
        self.assertEqual(got, ["history_updated"])

    def test_store_mutation_survives_failing_listener(self):
        bus = ChangeBus()
        bus.subscribe(lambda e, d: 1 / 0)
        storage = MemoryStorage()
        with self.assertLogs("spinwheel.events", level="ERROR"):
            HistoryStore(storage, bus).append_spin("200")
        self.assertEqual(len(HistoryStore(storage).get_history()), 1)


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            s = Settings.from_env()
        self.assertEqual(s.db_path, "spinwheel.db")
        self.assertEqual(s.config_key, "wheel_config")
        self.assertEqual(s.history_key, "spin_wheel_history")
        self.assertIsNone(s.seed)

    def test_env_overrides(self):
        env = {"SPINWHEEL_DB_PATH": "/tmp/x.db", "SPINWHEEL_SEED": "7", "LOG_LEVEL": "debug"}
        with patch.dict(os.environ, env, clear=True):
            s = Settings.from_env()
        self.assertEqual((s.db_path, s.seed, s.log_level), ("/tmp/x.db", 7, "DEBUG"))

    def test_bad_seed_ignored(self):
        with patch.dict(os.environ, {"SPINWHEEL_SEED": "lucky"}, clear=True):
            with self.assertLogs("spinwheel.settings", level="WARNING"):
                self.assertIsNone(Settings.from_env().seed)


if __name__ == "__main__":
    unittest.main()
