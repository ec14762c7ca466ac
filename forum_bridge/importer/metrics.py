"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from typing import Mapping

from prometheus_client import Counter

_batch_counter = Counter(
    "forum_importer_batches_total",
    "Number of export batches dispatched, by entity kind.",
    ["kind"],
)
_record_counter = Counter(
    "forum_importer_records_total",
    "Records handled by the importer, by entity kind and outcome.",
    ["kind", "outcome"],
)
_cleanup_counter = Counter(
    "forum_importer_cleanup_removed_total",
    "Entities removed by the remove-imported command, by entity kind.",
    ["kind"],
)


def record_importer_batch(*, kind: str, counts: Mapping[str, int]) -> None:
    """Count one processed batch and its per-outcome record totals."""

    _batch_counter.labels(kind=kind).inc()
    for outcome, count in counts.items():
        if count:
            _record_counter.labels(kind=kind, outcome=outcome).inc(count)


def record_cleanup_removed(kind: str, count: int) -> None:
    if count:
        _cleanup_counter.labels(kind=kind).inc(count)
