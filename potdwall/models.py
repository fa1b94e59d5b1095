"""Shared data models for potdwall."""

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class FeedEntry:
    """One day's featured image as published by the feed."""

    date: date
    image_url: str
    title: Optional[str] = None
    copyright: Optional[str] = None


@dataclass(frozen=True)
class CacheRecord:
    """
    What the last successful run applied. If last_applied_date is today, the file at
    local_image_path is the image currently set as the wallpaper.
    """

    last_applied_date: date
    last_content_identifier: str
    local_image_path: Path
    image_url: Optional[str] = None
    title: Optional[str] = None
