"""
Correlation store backed by ``external_id_map``.

Every imported entity gets exactly one row per (entity kind, correlation key).
The importers consult it before creating anything, which is what makes a
restarted run skip work that already landed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy.orm import Session

from forum_bridge.models import ExternalIdMap, db

from ..errors import ConsistencyError, DanglingReferenceError
from .identifiers import encode_external_id

ENTITY_TYPE_USER = "user"
ENTITY_TYPE_GROUP = "group"
ENTITY_TYPE_CATEGORY = "category"
ENTITY_TYPE_POST = "post"

ENTITY_TYPES = (ENTITY_TYPE_USER, ENTITY_TYPE_GROUP, ENTITY_TYPE_CATEGORY, ENTITY_TYPE_POST)


@dataclass(frozen=True)
class CorrelationEntry:
    """Association between an external identifier and its destination entity."""

    entity_type: str
    external_id: str
    internal_key: int
    destination_id: int
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: ExternalIdMap) -> "CorrelationEntry":
        return cls(
            entity_type=row.entity_type,
            external_id=row.external_id,
            internal_key=row.internal_key,
            destination_id=row.entity_id,
            metadata=dict(row.metadata_json or {}),
        )


class CorrelationStore:
    """Lookup layer mapping external identifiers to destination identifiers and back."""

    def __init__(self, session: Session | None = None, *, run_id: int | None = None):
        self.session: Session = session or db.session
        self.run_id = run_id

    def _get_row(self, entity_type: str, internal_key: int) -> ExternalIdMap | None:
        _check_entity_type(entity_type)
        return (
            self.session.query(ExternalIdMap)
            .filter_by(entity_type=entity_type, internal_key=internal_key)
            .one_or_none()
        )

    def record_created(
        self,
        entity_type: str,
        external_id: str,
        destination_id: int,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> CorrelationEntry:
        """
        Persist the correlation for a freshly created (or merged) destination entity.

        Recording the same pair again only refreshes ``last_seen_at``; recording
        a different destination for an already correlated key is a mapping bug.
        """

        internal_key = encode_external_id(external_id)
        row = self._get_row(entity_type, internal_key)
        if row is not None:
            if row.entity_id != destination_id:
                raise ConsistencyError(
                    f"{entity_type} {external_id!r} is already correlated with destination id "
                    f"{row.entity_id}, refusing to remap it to {destination_id}"
                )
            row.mark_seen(run_id=self.run_id)
            if metadata:
                row.metadata_json = {**(row.metadata_json or {}), **metadata}
            return CorrelationEntry.from_row(row)

        row = ExternalIdMap(
            run_id=self.run_id,
            entity_type=entity_type,
            entity_id=destination_id,
            external_id=external_id,
            internal_key=internal_key,
            metadata_json=dict(metadata) if metadata else None,
        )
        row.mark_seen(run_id=self.run_id)
        self.session.add(row)
        self.session.flush()
        return CorrelationEntry.from_row(row)

    def lookup_by_external_id(self, entity_type: str, external_id: str) -> CorrelationEntry | None:
        return self.lookup_by_internal_key(entity_type, encode_external_id(external_id))

    def lookup_by_internal_key(self, entity_type: str, internal_key: int) -> CorrelationEntry | None:
        row = self._get_row(entity_type, internal_key)
        return CorrelationEntry.from_row(row) if row is not None else None

    def lookup_destination_id_by_internal_key(self, entity_type: str, internal_key: int) -> int | None:
        entry = self.lookup_by_internal_key(entity_type, internal_key)
        return entry.destination_id if entry is not None else None

    def require(self, entity_type: str, external_id: str, *, referenced_by: str | None = None) -> CorrelationEntry:
        """Resolve a cross reference, raising when the referenced entity was never imported."""

        entry = self.lookup_by_external_id(entity_type, external_id)
        if entry is None:
            raise DanglingReferenceError(entity_type, external_id, referenced_by=referenced_by)
        return entry


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown correlation entity type {entity_type!r}")
