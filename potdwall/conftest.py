"""
conftest.py

Test configuration for potdwall tests.

Defines Pytest fixtures for supplying test data to tests across the entire
test suite. Fixtures used within only a single module are defined
directly in that module.

No test is allowed to reach the network, the real desktop settings, or the
user's real config and cache directories: the autouse 'isolated_environment'
fixture points potdwall at temporary directories, and network access goes
through a mocked requests.Session built with 'fake_session'.
"""

import io
import json
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from potdwall.config import PotdConfig
from potdwall.retry import RetryPolicy

FEED_URL = "https://feed.example.com/HPImageArchive.aspx?format=js&idx=0&n=1"


def make_image(image_format: str = "JPEG", size=(16, 9), color="navy") -> bytes:
    """Encode a small solid-color image in memory."""

    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=image_format)
    return buffer.getvalue()


def make_response(
    body: bytes = b"",
    status_code: int = 200,
    headers: dict = None,
    url: str = FEED_URL,
) -> requests.Response:
    """
    Build a real requests.Response backed by an in-memory body, so that
    raise_for_status(), json() and iter_content() all behave as they would
    for a response coming off the wire.
    """

    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.headers.update(headers or {})
    response.raw = io.BytesIO(body)
    return response


def json_response(payload, **kwargs) -> requests.Response:
    return make_response(json.dumps(payload).encode("utf-8"), **kwargs)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep every test away from the user's own configuration and cache."""

    for variable in (
        "POTDWALL_FEED_URL",
        "POTDWALL_DOWNLOAD_TIMEOUT",
        "POTDWALL_MAX_RETRIES",
        "POTDWALL_MAX_IMAGE_SIZE",
    ):
        monkeypatch.delenv(variable, raising=False)

    monkeypatch.setenv("POTDWALL_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("POTDWALL_CACHE_DIR", str(tmp_path / "cache"))


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image("JPEG")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image("PNG", color="orange")


@pytest.fixture
def config(tmp_path) -> PotdConfig:
    """Configuration for a run against the fake feed, with instant retries."""

    return PotdConfig(
        feed_url=FEED_URL,
        cache_dir=tmp_path / "cache",
        download_timeout=5,
        max_retries=3,
        backoff_base=0,
        max_image_size=1024 * 1024,
    )


@pytest.fixture
def sleeps() -> list:
    """Records the delays a RetryPolicy asked for instead of sleeping."""

    return []


@pytest.fixture
def retry_policy(sleeps) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.5, factor=2, sleep=sleeps.append)


@pytest.fixture
def fake_session() -> MagicMock:
    """A requests.Session stand-in; configure session.get.side_effect per test."""

    return MagicMock(spec=requests.Session)
