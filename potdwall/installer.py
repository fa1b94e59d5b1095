"""
Installer

Registers (and removes) the periodic 'potdwall run' invocation with the operating system's
own scheduler. There is no long running potdwall process: the scheduler starts a fresh run
every hour and at login, and each run exits straight away once today's picture is applied.

    GNU/Linux:  a systemd user service + timer in ~/.config/systemd/user
    macOS:      a launchd agent in ~/Library/LaunchAgents
"""

import logging
import os
import plistlib
import subprocess
import sys
from contextlib import suppress
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from potdwall.config import ENV_OVERRIDES, PotdConfig
from potdwall.errors import InstallError

logger = logging.getLogger(__name__)

UNIT_NAME = "potdwall"
AGENT_LABEL = "io.potdwall"
RUN_INTERVAL_SECONDS = 60 * 60

SERVICE_TEMPLATE = """\
[Unit]
Description=Picture of the day wallpaper
After=network-online.target graphical-session.target

[Service]
Type=oneshot
{environment}ExecStart={exec_start}
"""

TIMER_TEMPLATE = """\
[Unit]
Description=Run potdwall hourly

[Timer]
OnStartupSec=2min
OnCalendar=hourly
Persistent=true

[Install]
WantedBy=timers.target
"""


def run_command(command: List[str]) -> None:
    logger.debug("Running %s", command)

    try:
        subprocess.run(
            command,
            check=True,
            text=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

    except subprocess.CalledProcessError as error:
        detail = (error.stderr or "").strip() or f"exit status {error.returncode}"
        raise InstallError(f"'{' '.join(command)}' failed: {detail}") from error

    except OSError as error:
        raise InstallError(f"Could not run '{command[0]}': {error}") from error


def program_arguments(config_file: Optional[Path] = None) -> List[str]:
    """
    Command line the scheduler uses to start a run with this interpreter. Scheduled runs
    read the same config file as the install did, given by absolute path.
    """

    arguments = [sys.executable, "-m", "potdwall"]
    if config_file is not None:
        arguments += ["--config", str(Path(config_file).expanduser().resolve())]

    return arguments + ["run"]


def scheduled_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """POTDWALL_* overrides set at install time, to be passed on to every scheduled run."""

    environ = os.environ if environ is None else environ
    return {name: environ[name] for name in ENV_OVERRIDES if environ.get(name)}


def systemd_quote(value: str) -> str:
    """Quote value for use as one word in a unit file setting."""

    value = value.replace("%", "%%")
    if any(char.isspace() or char in "\"\\'" for char in value):
        value = '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'

    return value


class SystemdInstaller:
    def __init__(self, home: Optional[Path] = None):
        unit_dir = (home or Path.home()) / ".config" / "systemd" / "user"
        self.service_path = unit_dir / f"{UNIT_NAME}.service"
        self.timer_path = unit_dir / f"{UNIT_NAME}.timer"

    def service(
        self, config_file: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
    ) -> str:
        environment = "".join(
            f"Environment={systemd_quote(f'{name}={value}')}\n"
            for name, value in scheduled_environment(environ).items()
        )
        exec_start = " ".join(systemd_quote(arg) for arg in program_arguments(config_file))
        return SERVICE_TEMPLATE.format(environment=environment, exec_start=exec_start)

    def install(
        self,
        config: PotdConfig,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> List[Path]:
        self.service_path.parent.mkdir(parents=True, exist_ok=True)

        self.service_path.write_text(self.service(config_file, environ))
        self.timer_path.write_text(TIMER_TEMPLATE)

        run_command(["systemctl", "--user", "daemon-reload"])
        run_command(["systemctl", "--user", "enable", "--now", self.timer_path.name])
        return [self.service_path, self.timer_path]

    def uninstall(self) -> List[Path]:
        removed = []
        if self.timer_path.exists():
            run_command(["systemctl", "--user", "disable", "--now", self.timer_path.name])

        for path in (self.timer_path, self.service_path):
            with suppress(FileNotFoundError):
                path.unlink()
                removed.append(path)

        if removed:
            run_command(["systemctl", "--user", "daemon-reload"])
        return removed


class LaunchdInstaller:
    def __init__(self, home: Optional[Path] = None):
        self.agent_path = (home or Path.home()) / "Library" / "LaunchAgents" / f"{AGENT_LABEL}.plist"

    def agent(
        self,
        config: PotdConfig,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> dict:
        log_file = str(config.cache_dir / "potdwall.log")
        agent = {
            "Label": AGENT_LABEL,
            "ProgramArguments": program_arguments(config_file),
            "RunAtLoad": True,
            "StartInterval": RUN_INTERVAL_SECONDS,
            "StandardOutPath": log_file,
            "StandardErrorPath": log_file,
        }

        environment = scheduled_environment(environ)
        if environment:
            agent["EnvironmentVariables"] = environment

        return agent

    def install(
        self,
        config: PotdConfig,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> List[Path]:
        self.agent_path.parent.mkdir(parents=True, exist_ok=True)
        config.cache_dir.mkdir(parents=True, exist_ok=True)

        # reloading an agent that is already loaded fails, so unload any previous version first
        if self.agent_path.exists():
            with suppress(InstallError):
                run_command(["launchctl", "unload", str(self.agent_path)])

        with self.agent_path.open("wb") as file:
            plistlib.dump(self.agent(config, config_file, environ), file)

        run_command(["launchctl", "load", "-w", str(self.agent_path)])
        return [self.agent_path]

    def uninstall(self) -> List[Path]:
        if not self.agent_path.exists():
            return []

        run_command(["launchctl", "unload", "-w", str(self.agent_path)])
        self.agent_path.unlink()
        return [self.agent_path]


def build_installer(platform: Optional[str] = None, home: Optional[Path] = None):
    platform = sys.platform if platform is None else platform

    if platform == "darwin":
        return LaunchdInstaller(home=home)

    if platform.startswith("linux"):
        return SystemdInstaller(home=home)

    raise InstallError(f"Scheduling is not supported on platform '{platform}'")
