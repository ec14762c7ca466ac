"""
CLI commands for the forum importer.

``flask importer run INPUT_PATH OUTPUT_PATH`` imports an export stream and
writes the correlation stream; ``flask importer remove-imported`` undoes it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask import current_app
from flask.cli import AppGroup

from forum_bridge.importer.errors import ImporterError
from forum_bridge.importer.pipeline import ImportSummary, remove_all_imported, run_import
from forum_bridge.models import ImportRun

importer_cli = AppGroup("importer", help="Forum import commands.")


def _format_summary(run: ImportRun, summary: ImportSummary) -> str:
    status_value = run.status.value if hasattr(run.status, "value") else str(run.status)
    lines = [
        f"Run {run.id} completed with status {status_value}.",
        f"  batches            : {summary.batches}",
        f"  sso_records_purged : {summary.sso_records_purged}",
        f"  categories         : created={summary.categories.created} "
        f"existing={summary.categories.skipped} adopted={summary.categories.merged}",
    ]
    for kind, counters in summary.by_kind.items():
        lines.append(
            f"  {kind:<19}: created={counters.created} skipped={counters.skipped} "
            f"merged={counters.merged} orphaned={counters.orphaned}"
        )
    lines.append(f"  records_emitted    : {summary.records_emitted}")
    return "\n".join(lines)


@importer_cli.command("run")
@click.argument("input_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.argument("output_path", type=click.Path(path_type=Path, dir_okay=False, writable=True))
@click.option(
    "--batch-size",
    type=click.IntRange(min=1),
    default=None,
    help="Records per batch (defaults to IMPORTER_BATCH_SIZE).",
)
@click.option(
    "--summary-json",
    is_flag=True,
    help="Emit a machine-readable summary payload after completion.",
)
def importer_run(input_path: Path, output_path: Path, batch_size: Optional[int], summary_json: bool):
    """Import the export stream at INPUT_PATH and write correlations to OUTPUT_PATH."""
    try:
        run, summary = run_import(input_path, output_path, batch_size=batch_size)
    except ImporterError as exc:
        raise click.ClickException(f"Import failed: {exc}") from exc
    except OSError as exc:
        raise click.ClickException(f"Import failed: {exc}") from exc

    click.echo(_format_summary(run, summary))
    if summary_json:
        click.echo(json.dumps({"run_id": run.id, **summary.to_dict()}, indent=2, sort_keys=True))


@importer_cli.command("remove-imported")
def importer_remove_imported():
    """Delete every entity created by previous imports."""
    summary = remove_all_imported(logger=current_app.logger)
    click.echo(f"Removed {summary.posts} posts")
    click.echo(f"Removed {summary.topics} topics")
    click.echo(f"Removed {summary.groups} groups")
    click.echo(f"Removed {summary.categories} categories")
    click.echo(f"Removed {summary.users} users")
    click.echo(f"Removed {summary.sso_records} single-sign-on records")
    click.echo("Done!")
