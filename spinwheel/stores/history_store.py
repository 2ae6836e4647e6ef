"""
SPINWHEEL — History Store

Append-only spin log, newest first. Per-outcome counts are always derived
by scanning the log; they are never stored, so clearing the log and
resetting the counts are the same operation.
"""

import json
import logging
import time
import uuid
from typing import Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from spinwheel.config.outcomes import DEFAULT_OUTCOME_IDS, SpinRecord
from spinwheel.config.settings import HISTORY_KEY
from spinwheel.errors import PersistenceCorrupt, StaleWriteError
from spinwheel.events import HISTORY_UPDATED, ChangeBus

logger = logging.getLogger("spinwheel.history")

APPEND_RETRIES = 3


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


def derive_counts(log: Iterable[SpinRecord], known_ids: Iterable[str] = DEFAULT_OUTCOME_IDS) -> dict[str, int]:
    """Tally records per known outcome. Unknown outcome ids are ignored."""
    counts = {oid: 0 for oid in known_ids}
    for record in log:
        if record.outcome_id in counts:
            counts[record.outcome_id] += 1
    return counts


def _decode(key: str, raw: str) -> list[SpinRecord]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceCorrupt(key, f"invalid JSON ({e.msg})") from e
    if not isinstance(parsed, list):
        raise PersistenceCorrupt(key, f"expected a list, got {type(parsed).__name__}")

    records = []
    skipped = 0
    for entry in parsed:
        try:
            records.append(SpinRecord.model_validate(entry))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.warning(f"Skipped {skipped} malformed spin record(s) in '{key}'")
    return records


def _encode(records: Sequence[SpinRecord]) -> str:
    return json.dumps([r.to_json() for r in records])


class HistoryStore:
    """Persisted spin log with derived counts."""

    def __init__(
        self,
        storage,
        bus: Optional[ChangeBus] = None,
        clock: Optional[Callable[[], int]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        key: str = HISTORY_KEY,
    ):
        self.storage = storage
        self.bus = bus if bus is not None else ChangeBus()
        self.clock = clock or _now_ms
        self.id_factory = id_factory or _new_id
        self.key = key

    def get_history(self) -> list[SpinRecord]:
        """Newest-first records. Missing or corrupt storage reads as empty."""
        raw = self.storage.get(self.key)
        if raw is None:
            return []
        try:
            return _decode(self.key, raw)
        except PersistenceCorrupt as e:
            logger.error(f"Failed to parse history, treating as empty: {e}")
            return []

    def append_spin(self, outcome_id: str) -> SpinRecord:
        """Record a completed spin at the head of the log and persist it."""
        if not isinstance(outcome_id, str) or not outcome_id:
            raise ValueError(f"Invalid outcome id: {outcome_id!r}")

        record = SpinRecord(id=self.id_factory(), timestamp=self.clock(), outcome_id=outcome_id)

        # Compare-and-set on the key version so a concurrent append is retried
        # against the fresh log instead of being overwritten.
        for attempt in range(1, APPEND_RETRIES + 1):
            version = self.storage.version(self.key)
            history = self.get_history()
            try:
                self.storage.set(self.key, _encode([record, *history]), expected_version=version)
                break
            except StaleWriteError as e:
                if attempt == APPEND_RETRIES:
                    raise
                logger.warning(f"Concurrent history write, retrying ({attempt}/{APPEND_RETRIES}): {e}")

        logger.info(f"Spin recorded: {outcome_id} ({record.id})")
        self.bus.emit(HISTORY_UPDATED, action="append", outcome_id=outcome_id)
        return record

    def clear_history(self) -> None:
        self.storage.delete(self.key)
        logger.info("History cleared")
        self.bus.emit(HISTORY_UPDATED, action="clear")

    def counts(self, known_ids: Iterable[str] = DEFAULT_OUTCOME_IDS) -> dict[str, int]:
        return derive_counts(self.get_history(), known_ids)
