"""
potdwall Errors

Every failure the pipeline can surface derives from PotdError so the CLI has a
single type to catch when mapping failures onto an exit code. Modules raise the
most specific subclass and chain the underlying cause with 'raise ... from'.
"""


class PotdError(Exception):
    """Base class for all potdwall failures."""

    pass


class PotdConfigError(PotdError):
    """Raised when configuration cannot be loaded or holds invalid values."""

    pass


class FeedUnavailable(PotdError):
    """Raised when the feed request cannot complete after all retries."""

    pass


class FeedMalformed(PotdError):
    """Raised when the feed response cannot be parsed into a FeedEntry."""

    pass


class ImageUnavailable(PotdError):
    """Raised when the image download cannot complete after all retries."""

    pass


class InvalidImage(ImageUnavailable):
    """Raised when the downloaded payload is not an image."""

    pass


class ImageTooLarge(PotdError):
    """Raised when an image exceeds the configured maximum size."""

    pass


class SettingApplyFailed(PotdError):
    """Raised when the desktop refuses (or fails) to take the new wallpaper."""

    pass


class UnsupportedDesktopEnvironment(PotdError):
    """Raised when no known desktop environment can be detected."""

    pass


class CacheCorrupt(PotdError):
    """
    Raised when the cache record exists but cannot be read. Not fatal: the
    orchestrator treats it as a missing record and the next save overwrites it.
    """

    pass


class LockHeld(PotdError):
    """Raised when another run already holds the cache directory lock."""

    pass


class InstallError(PotdError):
    """Raised when registering or removing the scheduled run fails."""

    pass
