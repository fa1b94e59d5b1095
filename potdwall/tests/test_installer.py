"""
Tests for installer.py

Validate the scheduler units potdwall writes and the scheduler commands it
runs. subprocess.run is patched in every test, so nothing is registered with
the real systemd or launchd.

*** Fixtures ***
- tmp_path (defined by Pytest), used as the fake home directory
- config (defined in conftest.py)
"""

import plistlib
import subprocess
from unittest.mock import patch

import pytest

from potdwall.errors import InstallError

# following entities are tested in this module:
from potdwall.installer import LaunchdInstaller
from potdwall.installer import SystemdInstaller
from potdwall.installer import build_installer
from potdwall.installer import systemd_quote


def completed() -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")


def commands(fake_run) -> list:
    return [call.args[0] for call in fake_run.call_args_list]


@pytest.mark.parametrize(
    "platform, installer_class",
    [("linux", SystemdInstaller), ("darwin", LaunchdInstaller)],
)
def test_build_installer(tmp_path, platform, installer_class):
    assert isinstance(build_installer(platform=platform, home=tmp_path), installer_class)


def test_build_installer_unsupported_platform(tmp_path):
    with pytest.raises(InstallError):
        build_installer(platform="win32", home=tmp_path)


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_systemd_install(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    installer = SystemdInstaller(home=tmp_path)

    written = installer.install(config)

    unit_dir = tmp_path / ".config" / "systemd" / "user"
    assert written == [unit_dir / "potdwall.service", unit_dir / "potdwall.timer"]

    service = (unit_dir / "potdwall.service").read_text()
    assert "Type=oneshot" in service
    assert "ExecStart=" in service
    assert service.rstrip().endswith("-m potdwall run")

    timer = (unit_dir / "potdwall.timer").read_text()
    assert "OnCalendar=hourly" in timer
    assert "Persistent=true" in timer

    assert commands(fake_run) == [
        ["systemctl", "--user", "daemon-reload"],
        ["systemctl", "--user", "enable", "--now", "potdwall.timer"],
    ]


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_systemd_uninstall(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    installer = SystemdInstaller(home=tmp_path)
    installer.install(config)
    fake_run.reset_mock()

    removed = installer.uninstall()

    assert set(removed) == {installer.service_path, installer.timer_path}
    assert not installer.service_path.exists()
    assert not installer.timer_path.exists()
    assert commands(fake_run) == [
        ["systemctl", "--user", "disable", "--now", "potdwall.timer"],
        ["systemctl", "--user", "daemon-reload"],
    ]


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_systemd_uninstall_when_not_installed(fake_run, tmp_path):
    fake_run.return_value = completed()

    assert SystemdInstaller(home=tmp_path).uninstall() == []
    fake_run.assert_not_called()


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_systemd_install_failure(fake_run, tmp_path, config):
    fake_run.side_effect = subprocess.CalledProcessError(
        returncode=1, cmd="systemctl", stderr="Failed to connect to bus"
    )

    with pytest.raises(InstallError, match="Failed to connect to bus"):
        SystemdInstaller(home=tmp_path).install(config)


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_launchd_install(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    installer = LaunchdInstaller(home=tmp_path)

    written = installer.install(config)

    agent_path = tmp_path / "Library" / "LaunchAgents" / "io.potdwall.plist"
    assert written == [agent_path]

    with agent_path.open("rb") as file:
        agent = plistlib.load(file)

    assert agent["Label"] == "io.potdwall"
    assert agent["ProgramArguments"][1:] == ["-m", "potdwall", "run"]
    assert agent["RunAtLoad"] is True
    assert agent["StartInterval"] == 3600
    assert agent["StandardOutPath"] == str(config.cache_dir / "potdwall.log")
    assert commands(fake_run) == [["launchctl", "load", "-w", str(agent_path)]]


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_launchd_reinstall_unloads_previous_agent(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    installer = LaunchdInstaller(home=tmp_path)
    installer.install(config)
    fake_run.reset_mock()

    installer.install(config)

    assert commands(fake_run) == [
        ["launchctl", "unload", str(installer.agent_path)],
        ["launchctl", "load", "-w", str(installer.agent_path)],
    ]


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_launchd_uninstall(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    installer = LaunchdInstaller(home=tmp_path)
    installer.install(config)
    fake_run.reset_mock()

    assert installer.uninstall() == [installer.agent_path]
    assert not installer.agent_path.exists()
    assert commands(fake_run) == [["launchctl", "unload", "-w", str(installer.agent_path)]]

    # second uninstall is a no-op
    fake_run.reset_mock()
    assert installer.uninstall() == []
    fake_run.assert_not_called()


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_systemd_install_uses_config_file(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    config_file = tmp_path / "custom.json"
    installer = SystemdInstaller(home=tmp_path)

    installer.install(config, config_file=config_file, environ={})

    service = installer.service_path.read_text()
    assert f"-m potdwall --config {config_file.resolve()} run" in service
    assert "Environment=" not in service


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_systemd_install_passes_environment(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    installer = SystemdInstaller(home=tmp_path)
    environ = {
        "POTDWALL_CACHE_DIR": "/srv/my pictures",
        "POTDWALL_MAX_RETRIES": "5",
        "POTDWALL_FEED_URL": "",
        "HOME": "/home/me",
    }

    installer.install(config, environ=environ)

    service = installer.service_path.read_text()
    assert 'Environment="POTDWALL_CACHE_DIR=/srv/my pictures"\n' in service
    assert "Environment=POTDWALL_MAX_RETRIES=5\n" in service
    assert "POTDWALL_FEED_URL" not in service
    assert "HOME" not in service


@patch("potdwall.installer.subprocess.run", autospec=True)
def test_launchd_install_uses_config_file_and_environment(fake_run, tmp_path, config):
    fake_run.return_value = completed()
    config_file = tmp_path / "custom.json"
    installer = LaunchdInstaller(home=tmp_path)

    installer.install(config, config_file=config_file, environ={"POTDWALL_MAX_RETRIES": "5"})

    with installer.agent_path.open("rb") as file:
        agent = plistlib.load(file)

    assert agent["ProgramArguments"][1:] == ["-m", "potdwall", "--config", str(config_file.resolve()), "run"]
    assert agent["EnvironmentVariables"] == {"POTDWALL_MAX_RETRIES": "5"}


def test_launchd_agent_without_overrides(tmp_path, config):
    agent = LaunchdInstaller(home=tmp_path).agent(config, environ={})

    assert "EnvironmentVariables" not in agent


@pytest.mark.parametrize(
    "value, expected",
    [
        ("/usr/bin/python3", "/usr/bin/python3"),
        ("/home/me/my venv/bin/python", '"/home/me/my venv/bin/python"'),
        ("100%", "100%%"),
        ('say "hi"', '"say \\"hi\\""'),
    ],
)
def test_systemd_quote(value, expected):
    assert systemd_quote(value) == expected
