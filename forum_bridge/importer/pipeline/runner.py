"""
End-to-end import run: demultiplex the export, dispatch each batch to the
importer for its kind, commit after every batch and then write that batch's
correlation records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Iterable

from flask import current_app

from forum_bridge.models import ImportRun, ImportRunStatus, db
from forum_bridge.services.forum import ForumService

from ..errors import ProtocolError
from .categories import bootstrap_categories
from .common import BatchCounters
from .correlation import CorrelationStore
from .emitter import CorrelationEmitter
from .groups import GroupImporter
from .stream import DEFAULT_BATCH_SIZE, Batch, EntityKind, StreamDemultiplexer
from .threads import ThreadImporter
from .users import UserImporter

RUN_SOURCE = "forum-export"


@dataclass
class ImportSummary:
    """Aggregated outcome of an import run."""

    run_id: int | None = None
    batches: int = 0
    sso_records_purged: int = 0
    categories: BatchCounters = field(default_factory=BatchCounters)
    by_kind: dict[str, BatchCounters] = field(default_factory=dict)
    records_emitted: int = 0

    def counters_for(self, kind: EntityKind) -> BatchCounters:
        return self.by_kind.setdefault(kind.value, BatchCounters())

    def to_dict(self) -> dict[str, object]:
        return {
            "batches": self.batches,
            "sso_records_purged": self.sso_records_purged,
            "categories": self.categories.to_dict(),
            "records": {kind: counters.to_dict() for kind, counters in self.by_kind.items()},
            "records_emitted": self.records_emitted,
        }


class ImportPipeline:
    """Wire the per-kind importers to one demultiplexed stream and one output handle."""

    def __init__(
        self,
        output: IO[str],
        *,
        run_id: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        forum: ForumService | None = None,
        purge_sso_on_start: bool = True,
        fetch_avatars: bool = True,
        system_username: str = "system",
        logger=None,
    ):
        self.logger = logger or current_app.logger
        self.run_id = run_id
        self.batch_size = batch_size
        self.purge_sso_on_start = purge_sso_on_start
        self.forum = forum or ForumService(logger=self.logger)
        self.store = CorrelationStore(self.forum.session, run_id=run_id)
        self.emitter = CorrelationEmitter(output)
        self.users = UserImporter(
            self.store,
            self.forum,
            self.emitter,
            run_id=run_id,
            fetch_avatars=fetch_avatars,
            logger=self.logger,
        )
        self.groups = GroupImporter(self.store, self.forum, self.emitter, logger=self.logger)
        self.threads = ThreadImporter(
            self.store,
            self.forum,
            self.emitter,
            run_id=run_id,
            system_username=system_username,
            logger=self.logger,
        )

    def run(self, lines: Iterable[str]) -> ImportSummary:
        summary = ImportSummary(run_id=self.run_id)
        session = self.forum.session

        if self.purge_sso_on_start:
            summary.sso_records_purged = self.forum.purge_sso_records()
            self.logger.info(
                "Purged %d single-sign-on records before import",
                summary.sso_records_purged,
                extra={"importer_run_id": self.run_id},
            )
        self.forum.ensure_system_user(self.threads.system_username)
        summary.categories = bootstrap_categories(self.store, self.forum, logger=self.logger)
        session.commit()

        for batch in StreamDemultiplexer(lines, batch_size=self.batch_size):
            try:
                counters = self.dispatch(batch)
                session.commit()
            except Exception:
                dropped = self.emitter.discard()
                self.logger.warning(
                    "Dropped %d correlation records from the failed %s batch at offset %d",
                    dropped,
                    batch.kind.value,
                    batch.offset,
                    extra={"importer_run_id": self.run_id},
                )
                raise
            # Output lines only ever describe committed rows.
            self.emitter.flush()
            summary.counters_for(batch.kind).add(counters)
            summary.batches += 1

        summary.records_emitted = self.emitter.total
        return summary

    def dispatch(self, batch: Batch) -> BatchCounters:
        if batch.kind is EntityKind.USER:
            return self.users.import_batch(batch.records, batch.total_count, batch.offset)
        elif batch.kind is EntityKind.PROJECT:
            return self.groups.import_batch(batch.records, batch.total_count, batch.offset)
        elif batch.kind is EntityKind.POST:
            return self.threads.import_batch(batch.records, batch.total_count, batch.offset)
        raise ProtocolError(f"no importer registered for {batch.kind!r}")


def run_import(input_path: Path, output_path: Path, *, batch_size: int | None = None) -> tuple[ImportRun, ImportSummary]:
    """
    Import ``input_path`` and write correlation records to ``output_path``.

    The run is tracked as an :class:`ImportRun`. Failures roll back the batch
    in flight, mark the run failed and re-raise; batches committed before the
    failure and output lines already written are kept.
    """

    config = current_app.config
    batch_size = batch_size or config.get("IMPORTER_BATCH_SIZE", DEFAULT_BATCH_SIZE)

    run = ImportRun(
        source=RUN_SOURCE,
        status=ImportRunStatus.PENDING,
        counts_json={},
        ingest_params_json={
            "input_path": str(input_path),
            "output_path": str(output_path),
            "batch_size": batch_size,
        },
    )
    db.session.add(run)
    db.session.commit()
    run_id = run.id

    run.status = ImportRunStatus.RUNNING
    run.started_at = datetime.now(timezone.utc)
    db.session.commit()

    try:
        with input_path.open("r", encoding="utf-8") as source, output_path.open("w", encoding="utf-8") as output:
            pipeline = ImportPipeline(
                output,
                run_id=run_id,
                batch_size=batch_size,
                forum=ForumService(
                    avatar_timeout=config.get("IMPORTER_AVATAR_TIMEOUT_SECONDS", 10),
                    logger=current_app.logger,
                ),
                purge_sso_on_start=config.get("IMPORTER_PURGE_SSO_ON_START", True),
                fetch_avatars=config.get("IMPORTER_FETCH_AVATARS", True),
                system_username=config.get("IMPORTER_SYSTEM_USERNAME", "system"),
            )
            summary = pipeline.run(source)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Import run %s failed",
            run_id,
            extra={"importer_run_id": run_id, "importer_input_path": str(input_path)},
        )
        recovery_run = db.session.get(ImportRun, run_id)
        if recovery_run is not None:
            recovery_run.status = ImportRunStatus.FAILED
            recovery_run.error_summary = str(exc)
            recovery_run.finished_at = datetime.now(timezone.utc)
            db.session.commit()
        raise

    run = db.session.get(ImportRun, run_id)
    run.status = ImportRunStatus.SUCCEEDED
    run.finished_at = datetime.now(timezone.utc)
    run.counts_json = summary.to_dict()
    db.session.commit()
    current_app.logger.info(
        "Import run %s succeeded",
        run_id,
        extra={"importer_run_id": run_id, "importer_counts": run.counts_json},
    )
    return run, summary
