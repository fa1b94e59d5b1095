"""
potdwall

Set today's featured picture as your desktop wallpaper, automatically.

This module defines the entry point to the potdwall CLI. The 'cli' group collects the global
options, loads the configuration for the run and hands it to the invoked subcommand through
the click context object. Invoking the group without a subcommand is the same as 'run', which
is what the scheduled invocation uses.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from potdwall import installer, orchestrator
from potdwall.cache_handler import CacheStore
from potdwall.config import PotdConfig, config_dir, load_config
from potdwall.errors import CacheCorrupt, UnsupportedDesktopEnvironment
from potdwall.orchestrator import RunOutcome
from potdwall.wallpaper_handler import build_setter, resolve_target

from potdwall.cli_utils.console import (
    configure_logging,
    confirm_success,
    console,
    describe,
    warn,
)
from potdwall.cli_utils.decorators import catch_errors


@dataclass
class PotdContext:
    """
    Passed to subcommands as the click context object: the loaded configuration and
    the config file it came from, if one was given on the command line.
    """

    config: PotdConfig
    config_file: Optional[Path] = None


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Read configuration from this json file instead of the default location.",
)
@click.option(
    "--verbose",
    "verbosity",
    flag_value="verbose",
    help="Print debug output, including every step of the run.",
)
@click.option(
    "--quiet",
    "verbosity",
    flag_value="quiet",
    help="Silence all output except warnings and errors.",
)
@click.version_option(package_name="potdwall")
@click.pass_context
@catch_errors
def cli(ctx: click.Context, config_file, verbosity):
    """
    potdwall

    Set today's featured picture as your desktop wallpaper.

    ====================
    Quickstart
    ====================

    Apply today's picture once:

        $ potdwall run

    Keep it up to date automatically (runs hourly and at login):

        $ potdwall install

    Stop the automatic updates:

        $ potdwall uninstall

    ====================
    Configuration
    ====================

    Settings are read from config.json in the potdwall config directory (override the
    directory with POTDWALL_CONFIG_DIR or pass --config), then from the POTDWALL_FEED_URL,
    POTDWALL_CACHE_DIR, POTDWALL_DOWNLOAD_TIMEOUT, POTDWALL_MAX_RETRIES and
    POTDWALL_MAX_IMAGE_SIZE environment variables.
    """

    verbosity = verbosity or "normal"
    configure_logging(verbosity)
    console.quiet = verbosity == "quiet"

    ctx.obj = PotdContext(config=load_config(config_file), config_file=config_file)

    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


def apply_today(config: PotdConfig) -> RunOutcome:
    """Run the pipeline once and report what happened."""

    outcome = orchestrator.run(config)

    if outcome is RunOutcome.APPLIED:
        confirm_success(":white_check_mark-emoji: wallpaper updated to today's picture")

    elif outcome is RunOutcome.ALREADY_APPLIED:
        describe(":desktop_computer-emoji: today's picture is already your wallpaper")

    else:
        describe(":hourglass_flowing_sand-emoji: another run is in progress, skipping")

    return outcome


@cli.command()
@click.pass_obj
@catch_errors
def run(obj: PotdContext):
    """Apply today's picture if it isn't the wallpaper already."""

    apply_today(obj.config)


@cli.command()
@click.pass_obj
@catch_errors
def install(obj: PotdContext):
    """Run potdwall automatically, then apply today's picture right away."""

    # scheduled runs are pointed at this same file
    config_file = obj.config_file
    if config_file is None:
        # leave an editable config behind
        config_file = config_dir() / "config.json"
        if not config_file.exists():
            obj.config.generate_config_json(config_file.parent)
            describe(f":floppy_disk-emoji: wrote default configuration to {config_file}")

    for path in installer.build_installer().install(obj.config, config_file=config_file):
        describe(f":gear-emoji: installed {path}")

    confirm_success(":white_check_mark-emoji: potdwall will keep your wallpaper up to date")

    apply_today(obj.config)


@cli.command()
@click.pass_obj
@catch_errors
def uninstall(obj: PotdContext):
    """Stop running potdwall automatically."""

    removed = installer.build_installer().uninstall()
    for path in removed:
        describe(f":wastebasket-emoji: removed {path}")

    if removed:
        confirm_success(":white_check_mark-emoji: potdwall will no longer run automatically")
    else:
        warn("potdwall was not installed")


@cli.command()
@click.pass_obj
@catch_errors
def status(obj: PotdContext):
    """Show the last applied picture and the detected desktop."""

    config = obj.config
    describe(f"cache directory: {config.cache_dir}")
    describe(f"feed: {config.feed_url}")

    try:
        target = resolve_target()

    except UnsupportedDesktopEnvironment as error:
        warn(str(error))

    else:
        describe(f"desktop: {target.value}")
        current = build_setter(target).current()
        describe(f"current wallpaper: {current or 'unknown'}")

    try:
        record = CacheStore(config.cache_dir).load()

    except CacheCorrupt as error:
        warn(f"{error}; it will be replaced on the next run")
        return

    if record is None:
        describe("no picture applied yet")
        return

    describe(f"last applied: {record.last_applied_date.isoformat()}")
    if record.title:
        describe(f"title: {record.title}")
    describe(f"image: {record.local_image_path}")


def main():
    cli()


if __name__ == "__main__":
    main()
