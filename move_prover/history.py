"""
history.py — Append-only store of generated proof records.

Insertion-ordered, with an id index for O(1) lookup. Identifiers are unique
for the store's lifetime (evicted ids are remembered and stay reserved).
Statistics are computed on demand. A lock makes append/read safe if records
are produced from more than one thread.

Unbounded by default; ``max_records`` evicts the oldest records first.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from move_prover.models import HistoryStats, ProofMode, ProofRecord


class ProofHistoryStore:
    def __init__(self, max_records: int | None = None):
        if max_records is not None and max_records < 1:
            raise ValueError(f"max_records must be positive, got {max_records}")
        self.max_records = max_records
        self._lock = threading.Lock()
        self._records: OrderedDict[str, ProofRecord] = OrderedDict()
        self._seen_ids: set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def append(self, record: ProofRecord) -> None:
        with self._lock:
            if record.id in self._seen_ids:
                raise ValueError(f"Duplicate proof id: {record.id}")
            self._seen_ids.add(record.id)
            self._records[record.id] = record
            if self.max_records is not None:
                while len(self._records) > self.max_records:
                    self._records.popitem(last=False)

    def all(self) -> list[ProofRecord]:
        """Records in insertion order (a copy)."""
        with self._lock:
            return list(self._records.values())

    def by_id(self, proof_id: str) -> Optional[ProofRecord]:
        with self._lock:
            return self._records.get(proof_id)

    def last(self) -> Optional[ProofRecord]:
        with self._lock:
            if not self._records:
                return None
            return next(reversed(self._records.values()))

    def previous_of(self, proof_id: str) -> Optional[ProofRecord]:
        """The record stored immediately before ``proof_id``."""
        with self._lock:
            previous: ProofRecord | None = None
            for record in self._records.values():
                if record.id == proof_id:
                    return previous
                previous = record
            return None

    def count_by_mode(self, mode: ProofMode) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.mode is mode)

    def stats(self) -> HistoryStats:
        records = self.all()
        count = len(records)
        if count == 0:
            return HistoryStats(
                count=0,
                mean_execution_time_ms=0.0,
                mean_payload_size=0.0,
                real_count=0,
                fallback_count=0,
            )
        real_count = sum(1 for r in records if r.mode is ProofMode.REAL)
        return HistoryStats(
            count=count,
            mean_execution_time_ms=sum(r.execution_time_ms for r in records) / count,
            mean_payload_size=sum(r.payload_size for r in records) / count,
            real_count=real_count,
            fallback_count=count - real_count,
        )
