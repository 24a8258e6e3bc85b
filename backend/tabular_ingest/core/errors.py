"""Exception taxonomy shared by decoders, services and routers."""

from __future__ import annotations


class IngestError(Exception):
    """Base class for failures the API reports with a concise reason."""

    kind = "ingest_error"

    def __init__(self, message: str, *, subject: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Dataset id or filename the failure refers to
        self.subject = subject

    def to_detail(self) -> dict[str, str | None]:
        return {"error": self.kind, "message": self.message, "dataset": self.subject}


class UnsupportedFormat(IngestError):
    """File extension is not one of the supported tabular formats."""

    kind = "unsupported_format"


class UploadTooLarge(IngestError):
    """Upload exceeded the configured size ceiling."""

    kind = "upload_too_large"


class FormatError(IngestError):
    """Byte content does not parse as the declared format.

    ``offset`` is a character offset into the decoded text and ``line`` a
    1-based physical line number; either may be unknown.
    """

    kind = "format_error"

    def __init__(
        self,
        format_name: str,
        reason: str,
        *,
        offset: int | None = None,
        line: int | None = None,
        subject: str | None = None,
    ) -> None:
        self.format_name = format_name
        self.reason = reason
        self.offset = offset
        self.line = line
        position = ""
        if line is not None:
            position = f" (line {line})"
        elif offset is not None:
            position = f" (offset {offset})"
        super().__init__(f"{format_name}: {reason}{position}", subject=subject)


class NotFound(IngestError):
    """Referenced dataset (or its stored source) does not exist."""

    kind = "not_found"


class RegistryConflict(IngestError):
    """Attempt to overwrite a set-once field with a different value."""

    kind = "registry_conflict"


class ImportInProgress(IngestError):
    """Another import currently holds the destination table name."""

    kind = "import_in_progress"


class PartialImportFailure(IngestError):
    """Some batches failed to commit or decoding stopped early.

    Carries the rows that were committed so the caller can report them.
    """

    kind = "partial_import_failure"

    def __init__(self, message: str, *, rows_inserted: int, subject: str | None = None) -> None:
        super().__init__(message, subject=subject)
        self.rows_inserted = rows_inserted


class ImportLockLost(IngestError):
    """The table lock expired or was taken over while an import was running."""

    kind = "import_lock_lost"
