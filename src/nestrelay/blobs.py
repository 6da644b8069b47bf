"""Image uploads from the local camera."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from nestrelay.exceptions import BadRequestError, StoreUnavailableError

_logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


def blob_path(filename: str, now: datetime | None = None) -> str:
    """Date-partitioned object path, ``YYYY/M/D/<filename>`` in UTC."""
    if not filename or filename in {".", ".."} or "/" in filename or "\\" in filename:
        raise BadRequestError(f"invalid filename {filename!r}")
    if now is None:
        now = datetime.now(UTC)
    now = now.astimezone(UTC)
    return f"{now.year}/{now.month}/{now.day}/{filename}"


class BlobStore(Protocol):
    async def write(self, path: str, content_type: str, data: bytes) -> None:
        ...


class FilesystemBlobStore:
    """Writes blobs below a root directory, one file per object path."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _write_sync(self, path: str, data: bytes) -> None:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def write(self, path: str, content_type: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._write_sync, path, data)
        except OSError as exc:
            raise StoreUnavailableError(f"unable to write file: {exc}") from exc
        _logger.info("Stored %s (%s, %d bytes)", path, content_type, len(data))
