"""Shared bookkeeping for the per-kind importers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from forum_bridge.importer.metrics import record_importer_batch


@dataclass
class BatchCounters:
    created: int = 0
    skipped: int = 0
    merged: int = 0
    orphaned: int = 0

    @property
    def processed(self) -> int:
        return self.created + self.skipped + self.merged + self.orphaned

    def add(self, other: "BatchCounters") -> None:
        self.created += other.created
        self.skipped += other.skipped
        self.merged += other.merged
        self.orphaned += other.orphaned

    def to_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "skipped": self.skipped,
            "merged": self.merged,
            "orphaned": self.orphaned,
        }


def log_batch_progress(
    logger: logging.Logger,
    *,
    kind: str,
    counters: BatchCounters,
    total_count: int,
    offset: int,
) -> None:
    """Report per-batch progress and feed the importer metrics."""

    done = offset + counters.processed
    logger.info(
        "Imported %s batch %d-%d of %d: %d created, %d skipped, %d merged, %d orphaned",
        kind,
        offset,
        done,
        total_count,
        counters.created,
        counters.skipped,
        counters.merged,
        counters.orphaned,
        extra={
            "importer_entity_kind": kind,
            "importer_batch_offset": offset,
            "importer_total_count": total_count,
            "importer_counts": counters.to_dict(),
        },
    )
    record_importer_batch(kind=kind, counts=counters.to_dict())
