"""
Wallpaper Handler

This module handles updates to the desktop background. Each supported desktop environment
gets one WallpaperSetter subclass that drives the environment's native mechanism:

    GNOME / Cinnamon:   the gsettings CLI, writing a file:// uri to the picture-uri key of
                        org.gnome.desktop.background (or org.cinnamon.desktop.background)
    macOS:              osascript, telling System Events to set the picture of every desktop

Which setter to use is decided once per run by resolve_target(), which checks the platform
and the session environment variables. Nothing else in potdwall branches on the desktop.

More information on the GNOME schema can be found at:
https://github.com/GNOME/gsettings-desktop-schemas/blob/master/schemas/org.gnome.desktop.background.gschema.xml.in
"""

import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Optional
from urllib.parse import unquote, urlparse

from potdwall.errors import SettingApplyFailed, UnsupportedDesktopEnvironment

logger = logging.getLogger(__name__)


class WallpaperTarget(Enum):
    GNOME = "gnome"
    CINNAMON = "cinnamon"
    MACOS = "macos"


# lower-cased XDG_CURRENT_DESKTOP / DESKTOP_SESSION components
GNOME_MARKERS = {"gnome", "gnome-classic", "gnome-xorg", "ubuntu", "ubuntu-xorg", "unity", "pop"}
CINNAMON_MARKERS = {"cinnamon", "x-cinnamon", "cinnamon2d"}

SESSION_VARIABLES = ("XDG_CURRENT_DESKTOP", "XDG_SESSION_DESKTOP", "DESKTOP_SESSION")


def run_command(command: List[str]) -> str:
    """
    Run a desktop settings command and return its stdout. subprocess.CalledProcessError is
    raised by run() when a non-zero exit status is returned, which is our main way of
    telling that the desktop refused the change.
    """

    logger.debug("Running %s", command)

    try:
        process = subprocess.run(
            command,
            check=True,
            text=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

    except subprocess.CalledProcessError as error:
        detail = (error.stderr or "").strip() or f"exit status {error.returncode}"
        raise SettingApplyFailed(f"'{command[0]}' failed: {detail}") from error

    except OSError as error:
        raise SettingApplyFailed(f"Could not run '{command[0]}': {error}") from error

    return process.stdout


def validate_image_path(image_path: Path) -> Path:
    """
    Make sure the path points at an existing file and return it as an absolute path. The
    desktop performs no validation of its own and silently shows no image for a bad path.
    """

    location = Path(image_path).expanduser().resolve()
    if not location.is_file():
        raise SettingApplyFailed(
            f"Invalid path provided for image location: {image_path} does not exist."
        )

    return location


class WallpaperSetter(ABC):
    """Sets a local image file as the desktop background for one desktop environment."""

    target: WallpaperTarget

    @abstractmethod
    def apply(self, image_path: Path) -> None:
        """Set image_path as the wallpaper. Raise SettingApplyFailed if the desktop refuses."""

    @abstractmethod
    def current(self) -> Optional[Path]:
        """The wallpaper the desktop currently reports, if it can tell."""


class GSettingsSetter(WallpaperSetter):
    """Base for desktops configured through a gsettings background schema."""

    schema: str
    key: str = "picture-uri"
    # keys only present on some versions of the schema
    optional_keys: tuple = ()

    def apply(self, image_path: Path) -> None:
        uri = validate_image_path(image_path).as_uri()
        run_command(["gsettings", "set", self.schema, self.key, uri])

        for key in self.optional_keys:
            try:
                run_command(["gsettings", "set", self.schema, key, uri])

            except SettingApplyFailed as error:
                logger.debug("Skipping %s %s: %s", self.schema, key, error)

        logger.info("Set %s %s to %s", self.schema, self.key, uri)

    def current(self) -> Optional[Path]:
        try:
            output = run_command(["gsettings", "get", self.schema, self.key])

        except SettingApplyFailed as error:
            logger.debug("Could not read current wallpaper: %s", error)
            return None

        # gsettings prints the value as a quoted GVariant string, e.g. 'file:///a/b.jpg'
        value = output.strip().strip("'")
        if not value:
            return None

        if value.startswith("file://"):
            return Path(unquote(urlparse(value).path))

        return Path(value)


class GnomeSetter(GSettingsSetter):
    target = WallpaperTarget.GNOME
    schema = "org.gnome.desktop.background"
    # GNOME 42+ keeps a separate image for the dark style
    optional_keys = ("picture-uri-dark",)


class CinnamonSetter(GSettingsSetter):
    target = WallpaperTarget.CINNAMON
    schema = "org.cinnamon.desktop.background"


def applescript_string(value: str) -> str:
    """Quote value as an AppleScript string literal."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class MacosSetter(WallpaperSetter):
    target = WallpaperTarget.MACOS

    def apply(self, image_path: Path) -> None:
        location = validate_image_path(image_path)
        script = (
            'tell application "System Events" to tell every desktop to set picture to '
            f"{applescript_string(str(location))}"
        )
        run_command(["osascript", "-e", script])
        logger.info("Set desktop picture of every display to %s", location)

    def current(self) -> Optional[Path]:
        try:
            output = run_command(
                ["osascript", "-e", 'tell application "System Events" to get picture of desktop 1']
            )

        except SettingApplyFailed as error:
            logger.debug("Could not read current wallpaper: %s", error)
            return None

        value = output.strip()
        return Path(value) if value else None


SETTERS = {
    WallpaperTarget.GNOME: GnomeSetter,
    WallpaperTarget.CINNAMON: CinnamonSetter,
    WallpaperTarget.MACOS: MacosSetter,
}


def resolve_target(
    environ: Optional[Mapping[str, str]] = None, platform: Optional[str] = None
) -> WallpaperTarget:
    """
    Work out which desktop environment we are running under. macOS is recognised by platform;
    on everything else the session variables are checked in order, and each may hold a colon
    separated list such as "ubuntu:GNOME". Raise UnsupportedDesktopEnvironment if nothing matches.
    """

    environ = os.environ if environ is None else environ
    platform = sys.platform if platform is None else platform

    if platform == "darwin":
        return WallpaperTarget.MACOS

    for variable in SESSION_VARIABLES:
        for marker in environ.get(variable, "").lower().split(":"):
            marker = marker.strip()
            if marker in CINNAMON_MARKERS:
                return WallpaperTarget.CINNAMON
            if marker in GNOME_MARKERS:
                return WallpaperTarget.GNOME

    checked = ", ".join(f"{name}={environ.get(name, '')!r}" for name in SESSION_VARIABLES)
    raise UnsupportedDesktopEnvironment(
        f"Could not find a supported desktop environment ({checked})"
    )


def build_setter(target: WallpaperTarget) -> WallpaperSetter:
    return SETTERS[target]()
