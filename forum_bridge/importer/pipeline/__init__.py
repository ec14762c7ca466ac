"""Importer pipeline helpers."""

from __future__ import annotations

from .categories import FIXED_CATEGORIES, FIXED_CATEGORY_NAMES, CategoryDefinition, bootstrap_categories
from .cleanup import CleanupSummary, remove_all_imported
from .common import BatchCounters, log_batch_progress
from .correlation import (
    ENTITY_TYPE_CATEGORY,
    ENTITY_TYPE_GROUP,
    ENTITY_TYPE_POST,
    ENTITY_TYPE_USER,
    CorrelationEntry,
    CorrelationStore,
)
from .emitter import CorrelationEmitter
from .groups import GroupImporter
from .identifiers import decode_internal_key, encode_external_id
from .runner import ImportPipeline, ImportSummary, run_import
from .stream import (
    Batch,
    EntityKind,
    PostRecord,
    PostType,
    ProjectRecord,
    StreamDemultiplexer,
    UserRecord,
)
from .threads import ThreadImporter, convert_mentions, parse_source_timestamp
from .users import UserImporter

__all__ = [
    "Batch",
    "BatchCounters",
    "CategoryDefinition",
    "CleanupSummary",
    "CorrelationEmitter",
    "CorrelationEntry",
    "CorrelationStore",
    "ENTITY_TYPE_CATEGORY",
    "ENTITY_TYPE_GROUP",
    "ENTITY_TYPE_POST",
    "ENTITY_TYPE_USER",
    "EntityKind",
    "FIXED_CATEGORIES",
    "FIXED_CATEGORY_NAMES",
    "GroupImporter",
    "ImportPipeline",
    "ImportSummary",
    "PostRecord",
    "PostType",
    "ProjectRecord",
    "StreamDemultiplexer",
    "ThreadImporter",
    "UserImporter",
    "UserRecord",
    "bootstrap_categories",
    "convert_mentions",
    "decode_internal_key",
    "encode_external_id",
    "log_batch_progress",
    "parse_source_timestamp",
    "remove_all_imported",
    "run_import",
]
