"""
Record store contract for experiment records.

The engine only reads from a store; persistence belongs to the caller. A store
offers get/put/list semantics keyed by record kind and id, with no transactional
guarantees. ``InMemoryRecordStore`` is the reference implementation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

EXPERIMENTS = "experiments"
VARIANTS = "variants"
METRICS = "metrics"
EXPOSURES = "exposures"
METRIC_VALUES = "metric_values"

RECORD_KINDS = (EXPERIMENTS, VARIANTS, METRICS, EXPOSURES, METRIC_VALUES)


def _check_kind(kind: str) -> None:
    if kind not in RECORD_KINDS:
        raise ValueError(f"Unknown record kind '{kind}', expected one of {RECORD_KINDS}")


class RecordStore(ABC):
    """Key-value store of experiment records."""

    @abstractmethod
    def get(self, kind: str, key: str) -> Optional[Any]:
        """Return the record stored under ``key``, or None."""

    @abstractmethod
    def put(self, kind: str, key: str, record: Any) -> None:
        """Insert or replace a record."""

    @abstractmethod
    def list(self, kind: str, experiment_id: Optional[str] = None) -> List[Any]:
        """
        List records of a kind, optionally only those of one experiment.

        Experiments are matched on ``id``, every other kind on ``experiment_id``.
        """


class InMemoryRecordStore(RecordStore):
    """Dict-backed store guarded by a lock."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {k: {} for k in RECORD_KINDS}
        self._lock = threading.RLock()

    def get(self, kind: str, key: str) -> Optional[Any]:
        _check_kind(kind)
        with self._lock:
            return self._records[kind].get(key)

    def put(self, kind: str, key: str, record: Any) -> None:
        _check_kind(kind)
        with self._lock:
            self._records[kind][key] = record
        logger.debug(f"Stored {kind} record {key}")

    def list(self, kind: str, experiment_id: Optional[str] = None) -> List[Any]:
        _check_kind(kind)
        with self._lock:
            records = list(self._records[kind].values())
        if experiment_id is None:
            return records
        attr = "id" if kind == EXPERIMENTS else "experiment_id"
        return [r for r in records if getattr(r, attr, None) == experiment_id]

    def put_many(self, kind: str, records: List[Any]) -> int:
        """Store records under their own ``id``. Returns number stored."""
        for r in records:
            self.put(kind, r.id, r)
        return len(records)
