"""
potdwall Configuration Management

This file handles loading configuration variables for a run. PotdConfig should be built
once at startup, before the pipeline touches the network or the cache directory, and is
never mutated afterwards. Raise a PotdConfigError for any issue that arises in processing
or retrieving these configuration variables.

Values are layered, lowest precedence first:

    1. defaults defined on the PotdConfig dataclass
    2. "config.json" in the config directory ($POTDWALL_CONFIG_DIR, otherwise the
       per-user config directory reported by platformdirs, e.g. ~/.config/potdwall)
    3. POTDWALL_* environment variables

The json object should be fully flat. Keys match the PotdConfig field names.
"""

import json
import os
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path, PurePath
from typing import Mapping, Optional

from platformdirs import user_cache_dir, user_config_dir

from potdwall.errors import PotdConfigError

APP_NAME = "potdwall"

DEFAULT_FEED_URL = "https://www.bing.com/HPImageArchive.aspx?format=js&idx=0&n=1&mkt=en-US"

# environment variable -> (field name, converter)
ENV_OVERRIDES = {
    "POTDWALL_FEED_URL": ("feed_url", str),
    "POTDWALL_CACHE_DIR": ("cache_dir", Path),
    "POTDWALL_DOWNLOAD_TIMEOUT": ("download_timeout", float),
    "POTDWALL_MAX_RETRIES": ("max_retries", int),
    "POTDWALL_MAX_IMAGE_SIZE": ("max_image_size", int),
}


class PathEncoder(json.JSONEncoder):
    """
    custom encoder adds support for serializing pathlib objects as strings
    """

    def default(self, o):
        if isinstance(o, PurePath):
            return str(o)

        else:
            return json.JSONEncoder.default(self, o)


@dataclass(frozen=True)
class PotdConfig:
    """
    Configuration variables for a single potdwall run. Application code references these
    identifiers instead of touching dictionary keys or hard coded filesystem paths.

    max_retries is the total number of attempts made for a network request, so a value of 1
    disables retrying altogether.
    """

    feed_url: str = DEFAULT_FEED_URL
    cache_dir: Path = Path(user_cache_dir(APP_NAME))
    download_timeout: float = 30.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    max_image_size: int = 50 * 1024 * 1024
    user_agent: str = f"{APP_NAME} (+https://pypi.org/project/{APP_NAME}/)"

    def __post_init__(self):
        """
        Handle the case where a PotdConfig is created from JSON, which cannot deserialize a
        str into a Path, then reject values the pipeline cannot work with.
        """

        # frozen dataclass: assignment has to go through object.__setattr__
        object.__setattr__(self, "cache_dir", Path(self.cache_dir).expanduser())

        if self.max_retries < 1:
            raise PotdConfigError(f"max_retries must be at least 1, got {self.max_retries}")

        if self.download_timeout <= 0:
            raise PotdConfigError(
                f"download_timeout must be positive, got {self.download_timeout}"
            )

        if self.max_image_size <= 0:
            raise PotdConfigError(f"max_image_size must be positive, got {self.max_image_size}")

        if self.backoff_base < 0 or self.backoff_factor < 1:
            raise PotdConfigError(
                "backoff_base must be >= 0 and backoff_factor must be >= 1"
            )

        if not isinstance(self.feed_url, str) or not self.feed_url.startswith(("http://", "https://")):
            raise PotdConfigError(f"feed_url must be an http(s) url, got {self.feed_url!r}")

        if not isinstance(self.user_agent, str):
            raise PotdConfigError(f"user_agent must be a string, got {self.user_agent!r}")

    def generate_config_json(self, config_dir: Path) -> Path:
        """
        Write the PotdConfig to config_dir/config.json, serializing to JSON. Returns the
        filepath of the written file. Overwrites any existing config file.
        """

        try:
            to_json = json.dumps(asdict(self), sort_keys=True, indent=4, cls=PathEncoder)

        except TypeError as error:
            raise PotdConfigError(
                f"There was an error trying to serialize config data to JSON: {error}"
            ) from error

        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            dest_file = config_dir / "config.json"
            dest_file.write_text(to_json)

        except OSError as error:
            raise PotdConfigError(
                f"There was an error saving the configuration file: {error}."
            ) from error

        return dest_file


def config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Directory holding config.json: $POTDWALL_CONFIG_DIR, falling back to the user config dir."""

    environ = os.environ if environ is None else environ

    try:
        return Path(environ["POTDWALL_CONFIG_DIR"]).expanduser()

    except KeyError:
        return Path(user_config_dir(APP_NAME))


def read_config_file(config_src: Path) -> dict:
    """
    Read a flat json object from config_src. A missing file yields an empty dict so that a
    fresh install runs on defaults. Unknown keys are an error rather than silently ignored.
    """

    try:
        with config_src.open("r") as file:
            from_json = json.load(file)

    except FileNotFoundError:
        return {}

    except json.JSONDecodeError as error:
        raise PotdConfigError(f"There was an issue reading {config_src}: {error}") from error

    except OSError as error:
        raise PotdConfigError(f"There was an issue opening {config_src}: {error}") from error

    if not isinstance(from_json, dict):
        raise PotdConfigError(f"{config_src} must contain a json object")

    known = {field.name for field in fields(PotdConfig)}
    unknown = set(from_json) - known
    if unknown:
        raise PotdConfigError(
            f"Unknown keys in {config_src}: {', '.join(sorted(unknown))}"
        )

    return from_json


def load_config(
    config_file: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> PotdConfig:
    """
    Build the PotdConfig for this run from defaults, the config file, and the environment.
    Raise PotdConfigError if any layer holds a bad value.
    """

    environ = os.environ if environ is None else environ

    if config_file is None:
        config_file = config_dir(environ) / "config.json"

    try:
        config = PotdConfig(**read_config_file(Path(config_file)))

    except TypeError as error:
        raise PotdConfigError(f"Invalid value in {config_file}: {error}") from error

    overrides = {}
    for variable, (name, convert) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is None or value == "":
            continue

        try:
            overrides[name] = convert(value)

        except ValueError as error:
            raise PotdConfigError(f"Invalid value for {variable}: {value!r}") from error

    return replace(config, **overrides) if overrides else config
