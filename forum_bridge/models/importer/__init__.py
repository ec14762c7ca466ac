"""
Importer-specific SQLAlchemy models.

These models back the importer bookkeeping: runs, external ID mapping,
skipped records and merge history.
"""

from .schema import (
    ExternalIdMap,
    ImportRun,
    ImportRunStatus,
    ImportSkip,
    ImportSkipType,
    MergeLog,
)

__all__ = [
    "ExternalIdMap",
    "ImportRun",
    "ImportRunStatus",
    "ImportSkip",
    "ImportSkipType",
    "MergeLog",
]
