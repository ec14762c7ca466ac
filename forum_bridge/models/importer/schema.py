"""
SQLAlchemy models for importer bookkeeping.

Runs, the external identifier map backing idempotent re-imports, skipped
records and the merge audit trail.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ImportRun(BaseModel):
    """Metadata describing a single importer execution."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.PENDING,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    ingest_params_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Input/output paths and batch size used for the run",
    )

    external_ids = relationship("ExternalIdMap", back_populates="import_run")
    merge_events = relationship(
        "MergeLog",
        back_populates="import_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    import_skips = relationship(
        "ImportSkip",
        back_populates="import_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_import_runs_source_status", "source", "status"),)


class ExternalIdMap(BaseModel):
    """Maps external IDs to destination entities to support idempotency."""

    __tablename__ = "external_id_map"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(db.String(50), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    external_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    internal_key: Mapped[int] = mapped_column(db.BigInteger, nullable=False)
    run_id: Mapped[int | None] = mapped_column(ForeignKey("import_runs.id", ondelete="SET NULL"), nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    metadata_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    import_run = relationship("ImportRun", back_populates="external_ids")

    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "internal_key",
            name="uq_external_id_map_entity",
        ),
        Index(
            "idx_external_id_map_destination",
            "entity_type",
            "entity_id",
        ),
    )

    def mark_seen(
        self,
        *,
        run_id: int | None = None,
        seen_at: datetime | None = None,
    ) -> None:
        """
        Update bookkeeping for an external identifier that was observed again.
        """

        self.last_seen_at = seen_at or datetime.now(timezone.utc)
        if run_id is not None:
            self.run_id = run_id


class ImportSkipType(str, enum.Enum):
    """Reasons a record was dropped without aborting the run."""

    ORPHAN_COMMENT = "orphan_comment"
    OTHER = "other"


class ImportSkip(BaseModel):
    """Records that were skipped during an import run."""

    __tablename__ = "import_skips"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        ForeignKey("import_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(db.String(50), nullable=False, default="post")
    skip_type: Mapped[ImportSkipType] = mapped_column(
        Enum(ImportSkipType, name="import_skip_type_enum"),
        nullable=False,
        index=True,
    )
    skip_reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    record_key: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    details_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    import_run = relationship("ImportRun", back_populates="import_skips")

    __table_args__ = (Index("idx_import_skips_run_type", "run_id", "skip_type"),)


class MergeLog(BaseModel):
    """Auditable record of imported records merged into pre-existing entities."""

    __tablename__ = "merge_log"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_runs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(db.String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    external_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    match_field: Mapped[str] = mapped_column(db.String(50), nullable=False)
    match_value: Mapped[str | None] = mapped_column(db.String(255), nullable=True)

    import_run = relationship("ImportRun", back_populates="merge_events")
