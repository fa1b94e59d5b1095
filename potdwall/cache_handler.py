"""
Cache Handler

Owns everything potdwall keeps on disk between runs, all of it under the cache directory:

    cache.json       the CacheRecord of the last successfully applied image
    wallpaper-0.<ext>, wallpaper-1.<ext>
                     image slots; the applied image lives in one, the next download
                     goes to the other
    potdwall.lock    lock file held for the duration of a run

Every write goes to a temporary file in the same directory and is then renamed into place
with os.replace, which is atomic on POSIX filesystems. A crash at any point leaves either
the old file or the new one, never a partial write. Temporary files are removed when a
write is aborted.
"""

import fcntl
import hashlib
import json
import logging
import os
import tempfile
from contextlib import contextmanager, suppress
from datetime import date
from pathlib import Path
from typing import Iterator, Optional

from potdwall.errors import CacheCorrupt, LockHeld
from potdwall.models import CacheRecord, FeedEntry

logger = logging.getLogger(__name__)

RECORD_FILE = "cache.json"
LOCK_FILE = "potdwall.lock"
IMAGE_STEM = "wallpaper"
IMAGE_SLOTS = 2
RECORD_VERSION = 1


def content_identifier(data: bytes) -> str:
    """Identify image content by its SHA-256 digest."""

    return hashlib.sha256(data).hexdigest()


def already_applied(entry: FeedEntry, record: Optional[CacheRecord]) -> bool:
    """True if the cache says today's entry is already the wallpaper. No I/O."""

    return record is not None and record.last_applied_date == entry.date


def atomic_write(path: Path, data: bytes) -> None:
    """
    Write data to path durably: temp file in the same directory, fsync, rename over
    the target. The temp file is deleted if anything goes wrong before the rename.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")

    try:
        with os.fdopen(fd, "wb") as file:
            file.write(data)
            file.flush()
            os.fsync(file.fileno())

        os.replace(tmp_name, path)

    except BaseException:
        with suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def record_to_json(record: CacheRecord) -> str:
    return json.dumps(
        {
            "version": RECORD_VERSION,
            "last_applied_date": record.last_applied_date.isoformat(),
            "last_content_identifier": record.last_content_identifier,
            "local_image_path": str(record.local_image_path),
            "image_url": record.image_url,
            "title": record.title,
        },
        indent=4,
        sort_keys=True,
    )


def record_from_json(text: str) -> CacheRecord:
    """Inverse of record_to_json. Raises ValueError, KeyError or TypeError on bad input."""

    data = json.loads(text)
    if not isinstance(data, dict):
        raise TypeError("cache record is not a json object")

    identifier = data["last_content_identifier"]
    if not isinstance(identifier, str) or not identifier:
        raise ValueError("cache record has no content identifier")

    return CacheRecord(
        last_applied_date=date.fromisoformat(data["last_applied_date"]),
        last_content_identifier=identifier,
        local_image_path=Path(data["local_image_path"]),
        image_url=data.get("image_url"),
        title=data.get("title"),
    )


class CacheStore:
    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self.record_path = self.cache_dir / RECORD_FILE
        self.lock_path = self.cache_dir / LOCK_FILE

    already_applied = staticmethod(already_applied)

    def load(self) -> Optional[CacheRecord]:
        """
        Return the saved CacheRecord, or None on the first run. Raise CacheCorrupt if a
        record exists but cannot be read back.
        """

        try:
            raw = self.record_path.read_bytes()

        except FileNotFoundError:
            logger.debug("No cache record at %s", self.record_path)
            return None

        except OSError as error:
            raise CacheCorrupt(f"Could not read cache record {self.record_path}: {error}") from error

        try:
            record = record_from_json(raw.decode("utf-8"))

        except (ValueError, KeyError, TypeError) as error:
            raise CacheCorrupt(f"Cache record {self.record_path} is corrupt: {error}") from error

        logger.debug("Loaded cache record for %s", record.last_applied_date.isoformat())
        return record

    def save(self, record: CacheRecord) -> None:
        atomic_write(self.record_path, record_to_json(record).encode("utf-8"))
        logger.debug("Saved cache record for %s", record.last_applied_date.isoformat())

    def image_path(self, suffix: str, slot: int = 0) -> Path:
        return self.cache_dir / f"{IMAGE_STEM}-{slot}{suffix}"

    def write_image(self, data: bytes, suffix: str, previous: Optional[Path] = None) -> Path:
        """
        Atomically write image bytes into the slot not used by previous (the image currently
        applied), so that file stays intact until the new one is applied and recorded. The
        changing path also makes macOS reload the picture instead of serving a cached copy.
        """

        slot = 0
        if previous is not None and Path(previous).parent == self.cache_dir:
            for candidate in range(IMAGE_SLOTS):
                if Path(previous).stem == f"{IMAGE_STEM}-{candidate}":
                    slot = (candidate + 1) % IMAGE_SLOTS

        path = self.image_path(suffix, slot)
        atomic_write(path, data)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return path

    def prune_images(self, keep: Path) -> None:
        """Remove every wallpaper file other than keep. Call only once keep is recorded."""

        for path in self.cache_dir.glob(f"{IMAGE_STEM}*"):
            if path != keep and path.is_file():
                logger.debug("Removing stale image %s", path)
                with suppress(FileNotFoundError):
                    path.unlink()

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold an exclusive lock on the cache directory for the duration of the with block.
        Raise LockHeld immediately (no waiting) if another run holds it.
        """

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        file = open(self.lock_path, "a")

        try:
            fcntl.flock(file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

        except BlockingIOError as error:
            file.close()
            raise LockHeld(f"Another run holds {self.lock_path}") from error

        try:
            # pid for debugging
            file.truncate(0)
            file.write(f"{os.getpid()}\n")
            file.flush()
            logger.debug("Acquired lock %s", self.lock_path)
            yield

        finally:
            fcntl.flock(file.fileno(), fcntl.LOCK_UN)
            file.close()
            logger.debug("Released lock %s", self.lock_path)
