"""
Feed Handler

Retrieve and parse today's entry from the picture of the day feed. Fields we do not need
are ignored; the ones we do need are validated before a FeedEntry is handed to the rest
of the pipeline.

Two payload shapes are understood:

    Bing HPImageArchive (format=js), the default feed:
        {"images": [{"startdate": "20240301", "url": "/th?id=OHR.Foo.jpg", "title": "..."}]}

    A flat entry, convenient for self-hosted or proxied feeds:
        {"date": "2024-03-01", "imageUrl": "https://example.com/img1.jpg", "title": "..."}

Relative image urls are resolved against the feed url.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

import requests

from potdwall.config import PotdConfig
from potdwall.errors import FeedMalformed, FeedUnavailable
from potdwall.models import FeedEntry
from potdwall.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Bing publishes a url base without a resolution suffix when 'url' is missing
BING_URLBASE_SUFFIX = "_1920x1080.jpg"

URL_KEYS = ("imageUrl", "image_url", "url")


class FeedClient:
    def __init__(
        self,
        feed_url: str,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
    ):
        self.feed_url = feed_url
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json"}
        if user_agent:
            self.headers["User-Agent"] = user_agent

    @classmethod
    def from_config(
        cls,
        config: PotdConfig,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "FeedClient":
        return cls(
            feed_url=config.feed_url,
            timeout=config.download_timeout,
            retry_policy=retry_policy or RetryPolicy.from_config(config),
            session=session,
            user_agent=config.user_agent,
        )

    def fetch_today(self) -> FeedEntry:
        """
        Fetch the feed and return today's entry. Raise FeedUnavailable when the request
        cannot complete (after retrying transient failures) and FeedMalformed when the
        response does not describe an image.
        """

        logger.info("Fetching feed %s", self.feed_url)

        try:
            payload = self.retry_policy.call(self._request)

        except requests.RequestException as error:
            raise FeedUnavailable(
                f"Could not retrieve feed from {self.feed_url}: {error}"
            ) from error

        entry = parse_entry(payload, base_url=self.feed_url)
        logger.info("Feed entry for %s: %s", entry.date.isoformat(), entry.image_url)
        return entry

    def _request(self) -> Any:
        response = self.session.get(self.feed_url, timeout=self.timeout, headers=self.headers)
        response.raise_for_status()

        # requests' JSONDecodeError is also a RequestException; turn it into a parse
        # failure here so it is neither retried nor reported as a network problem.
        try:
            return response.json()

        except ValueError as error:
            raise FeedMalformed(f"Feed at {self.feed_url} did not return JSON: {error}") from error


def parse_entry(payload: Any, base_url: str) -> FeedEntry:
    """Turn a decoded feed payload into a FeedEntry. Raise FeedMalformed if that's not possible."""

    if not isinstance(payload, dict):
        raise FeedMalformed(f"Expected a json object from the feed, got {type(payload).__name__}")

    images = payload.get("images")
    if isinstance(images, list):
        if not images or not isinstance(images[0], dict):
            raise FeedMalformed("Feed did not contain any images")

        item = images[0]
        raw_date = item.get("startdate") or item.get("date")
        raw_url = item.get("url")
        if not raw_url and item.get("urlbase"):
            raw_url = f"{item['urlbase']}{BING_URLBASE_SUFFIX}"

    else:
        item = payload
        raw_date = item.get("date")
        raw_url = next((item[key] for key in URL_KEYS if item.get(key)), None)

    return FeedEntry(
        date=parse_date(raw_date),
        image_url=resolve_url(raw_url, base_url),
        title=_optional_text(item.get("title")),
        copyright=_optional_text(item.get("copyright")),
    )


def parse_date(value: Any) -> date:
    """Parse a feed date given either as YYYYMMDD (Bing) or as an ISO 8601 date/datetime."""

    if not isinstance(value, str) or not value.strip():
        raise FeedMalformed(f"Feed entry has no usable date: {value!r}")

    value = value.strip()

    try:
        if re.fullmatch(r"\d{8}", value):
            return datetime.strptime(value, "%Y%m%d").date()

        return datetime.fromisoformat(value).date()

    except ValueError as error:
        raise FeedMalformed(f"Feed entry date {value!r} is not a valid date") from error


def resolve_url(value: Any, base_url: str) -> str:
    """Resolve a (possibly relative) image url against the feed url and make sure it's absolute http(s)."""

    if not isinstance(value, str) or not value.strip():
        raise FeedMalformed("Feed entry has no image url")

    url = urljoin(base_url, value.strip())
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise FeedMalformed(f"Feed entry image url {url!r} is not an absolute http(s) url")

    return url


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()

    return None
