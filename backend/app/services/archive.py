"""ZIP archive assembly for bulk downloads."""

import asyncio
import io
import logging
import zipfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import PurePosixPath

from app.config import settings
from app.services.object_store import ObjectStore

logger = logging.getLogger(__name__)

# Concurrent signed-URL downloads per archive
_MAX_PARALLEL_FETCHES = 8

Fetcher = Callable[[str], Awaitable[bytes]]


@dataclass
class ArchiveEntry:
    file_id: str
    archive_path: str
    storage_path: str
    file_size: int
    mime_type: str


def unique_archive_path(path: str, used: set[str]) -> str:
    """Return ``path``, or ``name (n).ext`` if an earlier entry already took it."""
    candidate = path
    counter = 1
    while candidate in used:
        p = PurePosixPath(path)
        candidate = str(p.with_name(f"{p.stem} ({counter}){p.suffix}"))
        counter += 1
    used.add(candidate)
    return candidate


async def build_zip_archive(entries: list[ArchiveEntry], object_store: ObjectStore, fetch: Fetcher) -> bytes:
    """Sign, download and pack every entry. The first failure aborts the whole archive."""
    semaphore = asyncio.Semaphore(_MAX_PARALLEL_FETCHES)

    async def _load(entry: ArchiveEntry) -> bytes:
        async with semaphore:
            url = await object_store.get_signed_url(
                entry.storage_path, settings.storage_bucket, settings.signed_url_expiry_seconds
            )
            return await fetch(url)

    contents = await asyncio.gather(*(_load(entry) for entry in entries))

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for entry, data in zip(entries, contents):
            archive.writestr(entry.archive_path, data)
    logger.info("Built archive with %d entries (%d bytes)", len(entries), buffer.tell())
    return buffer.getvalue()
