"""
Image Handler

Utilities for downloading the featured image. Supports only plain GET requests for image
files specified by URL, with no expectation of authentication. Resolving which image to
download is the job of the feed handler.

Downloads are streamed and capped at a maximum size so that a misbehaving (or malicious)
feed cannot make us buffer an unbounded payload. The bytes are then checked with Pillow to
make sure we actually received an image. Pillow only reads the header to identify the
format, and the image is never modified: it is applied exactly as delivered.
"""

import io
import logging
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from potdwall.config import PotdConfig
from potdwall.errors import ImageTooLarge, ImageUnavailable, InvalidImage
from potdwall.retry import RetryPolicy

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Pillow format name -> file suffix, for formats a desktop will reasonably display
SUFFIXES = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "WEBP": ".webp",
    "GIF": ".gif",
    "BMP": ".bmp",
    "TIFF": ".tiff",
}


def validate_image(data: bytes) -> str:
    """
    Determine whether data is a valid image and return its Pillow format name. Image.open
    reads the content header to determine the file type but doesn't decode the pixels,
    so it is safe to use as a validation method.
    """

    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.format

    except UnidentifiedImageError as error:
        raise InvalidImage("Downloaded content does not appear to be an image.") from error


def image_suffix(data: bytes) -> str:
    """File suffix matching the format of the image in data, e.g. '.jpg'."""

    image_format = validate_image(data)
    return SUFFIXES.get(image_format, f".{image_format.lower()}")


class ImageFetcher:
    def __init__(
        self,
        timeout: float = 30.0,
        max_size: int = 50 * 1024 * 1024,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.timeout = timeout
        self.max_size = max_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.chunk_size = chunk_size
        self.headers = {"User-Agent": user_agent} if user_agent else {}

    @classmethod
    def from_config(
        cls,
        config: PotdConfig,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "ImageFetcher":
        return cls(
            timeout=config.download_timeout,
            max_size=config.max_image_size,
            retry_policy=retry_policy or RetryPolicy.from_config(config),
            session=session,
            user_agent=config.user_agent,
        )

    def fetch(self, url: str) -> bytes:
        """
        Download the image at url and return its bytes. Transient network failures are
        retried per the retry policy. Raise ImageUnavailable once that gives up (or right
        away on a permanent failure), ImageTooLarge if the payload exceeds max_size, and
        InvalidImage if what came back is not an image.
        """

        logger.info("Downloading image %s", url)

        try:
            data = self.retry_policy.call(self._download, url)

        except requests.RequestException as error:
            raise ImageUnavailable(f"Could not download image from {url}: {error}") from error

        image_format = validate_image(data)
        logger.info("Downloaded %d bytes (%s)", len(data), image_format)
        return data

    def _download(self, url: str) -> bytes:
        response = self.session.get(
            url, timeout=self.timeout, headers=self.headers, stream=True
        )

        try:
            response.raise_for_status()

            # reject up front when the server is honest about the size
            content_length = response.headers.get("Content-Length", "")
            if content_length.isdigit() and int(content_length) > self.max_size:
                raise ImageTooLarge(
                    f"Image at {url} is {content_length} bytes, more than the {self.max_size} byte limit"
                )

            buffer = bytearray()
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                buffer.extend(chunk)
                if len(buffer) > self.max_size:
                    raise ImageTooLarge(
                        f"Image at {url} exceeded the {self.max_size} byte limit"
                    )

            return bytes(buffer)

        finally:
            response.close()
