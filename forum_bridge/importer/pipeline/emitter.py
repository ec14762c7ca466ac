"""
Writer for the correlation stream returned to the source system.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import IO, Any, Mapping

from forum_bridge.importer.utils import ensure_json_serializable


class CorrelationEmitter:
    """
    Append one JSON object per line to the output handle.

    Records are held until :meth:`flush`, which the pipeline calls only after
    the batch that produced them is committed. A rolled back batch calls
    :meth:`discard` instead, so the file never names rows that do not exist.
    """

    def __init__(self, handle: IO[str]):
        self.handle = handle
        self.counts: Counter[str] = Counter()
        self.pending: list[Mapping[str, Any]] = []

    def emit(self, record: Mapping[str, Any]) -> None:
        self.pending.append(ensure_json_serializable(record))

    def flush(self) -> int:
        written = 0
        for record in self.pending:
            self.handle.write(json.dumps(record))
            self.handle.write("\n")
            self.counts[str(record.get("type"))] += 1
            written += 1
        self.handle.flush()
        self.pending.clear()
        return written

    def discard(self) -> int:
        dropped = len(self.pending)
        self.pending.clear()
        return dropped

    @property
    def total(self) -> int:
        return sum(self.counts.values())
