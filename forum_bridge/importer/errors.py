"""
Exception taxonomy for the import pipeline.

Everything except :class:`SkippedOrphan` halts the run; a halted run can be
restarted from the beginning and skips whatever was already correlated.
"""

from __future__ import annotations


class ImporterError(Exception):
    """Base class for importer failures."""


class ProtocolError(ImporterError):
    """The export stream is malformed or out of order."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class MalformedIdentifier(ImporterError, ValueError):
    """An external identifier cannot be mapped into the correlation key space."""

    def __init__(self, external_id: object, reason: str) -> None:
        super().__init__(f"Malformed external identifier {external_id!r}: {reason}")
        self.external_id = external_id


class DanglingReferenceError(ImporterError):
    """A record references an entity that has not been imported yet."""

    def __init__(self, entity_type: str, external_id: str, *, referenced_by: str | None = None) -> None:
        message = f"No imported {entity_type} found for external id {external_id!r}"
        if referenced_by:
            message += f" (referenced by {referenced_by})"
        message += ". The export must list referenced entities before the records that use them."
        super().__init__(message)
        self.entity_type = entity_type
        self.external_id = external_id
        self.referenced_by = referenced_by


class ConsistencyError(ImporterError):
    """A value read back from the destination differs from what was written."""


class SkippedOrphan(ImporterError):
    """A comment whose reply chain does not reach a topic. Only that record is dropped."""

    def __init__(self, comment_guid: str, missing_guid: str | None) -> None:
        super().__init__(f"Comment {comment_guid} skipped because parent {missing_guid} does not exist.")
        self.comment_guid = comment_guid
        self.missing_guid = missing_guid
