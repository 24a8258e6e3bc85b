"""Local filesystem storage for uploaded source files."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import BinaryIO

from tabular_ingest.core.errors import UploadTooLarge

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


def save_upload(
    file_obj: BinaryIO,
    original_name: str,
    uploads_dir: str | Path,
    *,
    max_bytes: int,
) -> tuple[Path, int]:
    """Copy an upload to disk in chunks and return (absolute path, size).

    The stored name is a fresh UUID with the original extension so the
    decoder can still pick a delimiter from it. Copying stops, and the
    partial file is removed, as soon as ``max_bytes`` is exceeded.
    """
    directory = Path(uploads_dir).resolve()
    directory.mkdir(parents=True, exist_ok=True)
    suffix = Path(original_name).suffix.lower()
    target_path = directory / f"{uuid.uuid4()}{suffix}"

    written = 0
    try:
        file_obj.seek(0)
        with target_path.open("wb") as destination:
            while True:
                chunk = file_obj.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLarge(
                        f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
                        subject=original_name,
                    )
                destination.write(chunk)
    except Exception:
        target_path.unlink(missing_ok=True)
        raise

    logger.info(f"Stored upload {original_name} at {target_path} ({written} bytes)")
    return target_path, written


def delete_upload(path: str | Path) -> None:
    """Remove a stored source that never made it into the registry."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to delete stored upload {path}: {e}")
