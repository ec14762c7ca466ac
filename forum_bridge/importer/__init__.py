"""
Importer feature package.

Registers the ``importer`` CLI group and records importer state inside
``app.extensions['importer']``.
"""

from __future__ import annotations

from flask import Flask

from .cli import importer_cli
from .errors import (
    ConsistencyError,
    DanglingReferenceError,
    ImporterError,
    MalformedIdentifier,
    ProtocolError,
    SkippedOrphan,
)
from .pipeline import remove_all_imported, run_import

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "ConsistencyError",
    "DanglingReferenceError",
    "ImporterError",
    "MalformedIdentifier",
    "ProtocolError",
    "SkippedOrphan",
    "remove_all_imported",
    "run_import",
]


def _set_cli(app: Flask) -> None:
    # Avoid duplicate registrations when running tests
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)
    app.cli.add_command(importer_cli)


def init_importer(app: Flask) -> None:
    """Mount the importer CLI and expose the effective importer settings."""
    state = app.extensions.setdefault(IMPORTER_EXTENSION_KEY, {})
    state.update(
        {
            "batch_size": app.config.get("IMPORTER_BATCH_SIZE"),
            "fetch_avatars": bool(app.config.get("IMPORTER_FETCH_AVATARS", True)),
            "purge_sso_on_start": bool(app.config.get("IMPORTER_PURGE_SSO_ON_START", True)),
        }
    )
    _set_cli(app)
    app.logger.debug("Importer CLI registered", extra={"importer_batch_size": state["batch_size"]})
