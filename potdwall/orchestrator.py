"""
Orchestrator

One pass of the fetch -> decide -> apply pipeline:

    1) resolve the desktop environment (abort before touching network or cache if unknown)
    2) take the cache directory lock (another run in progress is a benign no-op)
    3) fetch today's feed entry
    4) load the cache record (a corrupt record counts as no record)
    5) stop if today's entry is already applied
    6) download the image, write it next to (never over) the applied one, apply it
    7) save the new cache record, then remove the previous image

Any failure propagates to the caller with the cache record untouched, so the next scheduled
run retries from the same state. The wallpaper and the cache record advance together or not
at all.
"""

import logging
from contextlib import ExitStack
from enum import Enum
from typing import Mapping, Optional

import requests

from potdwall.cache_handler import CacheStore, content_identifier
from potdwall.config import PotdConfig
from potdwall.errors import CacheCorrupt, LockHeld
from potdwall.feed_handler import FeedClient
from potdwall.image_handler import ImageFetcher, image_suffix
from potdwall.models import CacheRecord
from potdwall.wallpaper_handler import WallpaperSetter, build_setter, resolve_target

logger = logging.getLogger(__name__)


class RunOutcome(Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already applied"
    LOCKED = "locked"


def run(
    config: PotdConfig,
    setter: Optional[WallpaperSetter] = None,
    store: Optional[CacheStore] = None,
    session: Optional[requests.Session] = None,
    feed_client: Optional[FeedClient] = None,
    image_fetcher: Optional[ImageFetcher] = None,
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[str] = None,
) -> RunOutcome:
    """
    Run the pipeline once. Collaborators not passed in are built from config; environ and
    platform only matter when no setter is given and the desktop has to be detected.
    """

    if setter is None:
        target = resolve_target(environ=environ, platform=platform)
        logger.debug("Resolved desktop environment: %s", target.value)
        setter = build_setter(target)

    store = store or CacheStore(config.cache_dir)

    with ExitStack() as stack:
        if session is None:
            session = stack.enter_context(requests.Session())

        feed_client = feed_client or FeedClient.from_config(config, session=session)
        image_fetcher = image_fetcher or ImageFetcher.from_config(config, session=session)

        try:
            stack.enter_context(store.lock())

        except LockHeld as error:
            logger.info("%s, nothing to do", error)
            return RunOutcome.LOCKED

        return _run_locked(store, setter, feed_client, image_fetcher)


def _run_locked(
    store: CacheStore,
    setter: WallpaperSetter,
    feed_client: FeedClient,
    image_fetcher: ImageFetcher,
) -> RunOutcome:
    entry = feed_client.fetch_today()

    try:
        record = store.load()

    except CacheCorrupt as error:
        logger.warning("%s; treating as a first run", error)
        record = None

    if store.already_applied(entry, record):
        logger.info("Picture for %s is already applied", entry.date.isoformat())
        return RunOutcome.ALREADY_APPLIED

    data = image_fetcher.fetch(entry.image_url)
    previous = record.local_image_path if record is not None else None
    image_path = store.write_image(data, image_suffix(data), previous=previous)
    setter.apply(image_path)

    store.save(
        CacheRecord(
            last_applied_date=entry.date,
            last_content_identifier=content_identifier(data),
            local_image_path=image_path,
            image_url=entry.image_url,
            title=entry.title,
        )
    )
    store.prune_images(keep=image_path)
    logger.info("Applied picture for %s: %s", entry.date.isoformat(), entry.title or entry.image_url)
    return RunOutcome.APPLIED
