"""Tests for CommandRunner and the doctor checks."""

import subprocess
from io import StringIO

import pytest
from rich.console import Console

from hostplane.core.errors import CommandNotFound, CommandTimeout, ErrorKind
from vpstool.core import doctor, tools
from vpstool.core.tools import CommandResult, CommandRunner


class Completed:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class TestCommandRunner:
    def test_returns_nonzero_without_raising(self, monkeypatch):
        seen = {}

        def fake_run(command, **kwargs):
            seen.update(kwargs)
            return Completed(3, "inactive\n", "")

        monkeypatch.setattr(tools.subprocess, "run", fake_run)
        result = CommandRunner(timeout=12).run(["systemctl", "is-active", "xray"], input_text="x")
        assert result.returncode == 3
        assert not result.ok
        assert seen["timeout"] == 12
        assert seen["input"] == "x"
        assert seen["env"] is None

    def test_timeout_is_command_timeout(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        monkeypatch.setattr(tools.subprocess, "run", fake_run)
        with pytest.raises(CommandTimeout) as exc:
            CommandRunner(timeout=5).run(["apt-get", "install", "-y", "nginx"])
        assert exc.value.kind == ErrorKind.TIMEOUT
        assert exc.value.timeout == 5

    def test_secret_arguments_hidden(self, monkeypatch, caplog):
        def fake_run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        monkeypatch.setattr(tools.subprocess, "run", fake_run)
        with caplog.at_level("DEBUG", logger=tools.__name__):
            with pytest.raises(CommandTimeout) as exc:
                CommandRunner().run(["tailscale", "up", "--authkey", "tskey-secret"], secret=True)
        assert "tskey-secret" not in str(exc.value)
        assert "tskey-secret" not in caplog.text

    def test_missing_binary(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise FileNotFoundError(command[0])

        monkeypatch.setattr(tools.subprocess, "run", fake_run)
        with pytest.raises(CommandNotFound) as exc:
            CommandRunner().run(["warp-cli", "status"])
        assert exc.value.binary == "warp-cli"

    def test_env_merged_over_environment(self, monkeypatch):
        seen = {}

        def fake_run(command, **kwargs):
            seen.update(kwargs)
            return Completed()

        monkeypatch.setenv("PATH", "/usr/bin")
        monkeypatch.setattr(tools.subprocess, "run", fake_run)
        CommandRunner().run(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"})
        assert seen["env"]["DEBIAN_FRONTEND"] == "noninteractive"
        assert seen["env"]["PATH"] == "/usr/bin"


def test_result_output_joins_and_truncates():
    result = CommandResult(["x"], 1, "out\n", "err\n")
    assert result.output == "out\nerr"
    long = CommandResult(["x"], 1, "a" * 5000)
    assert len(long.output) == 2000


class TestDoctor:
    def test_check_tool_missing(self, monkeypatch, fake_runner):
        monkeypatch.setattr(doctor, "which", lambda name: None)
        assert doctor.check_tool("ufw", fake_runner) == (False, None)
        assert fake_runner.calls == []

    def test_check_tool_version(self, monkeypatch, fake_runner):
        monkeypatch.setattr(doctor, "which", lambda name: f"/usr/bin/{name}")
        fake_runner.on("systemctl", "--version", stdout="systemd 252 (252.22-1~deb12u1)\n+PAM +AUDIT")
        assert doctor.check_tool("systemctl", fake_runner) == (True, "systemd 252 (252.22-1~deb12u1)")

    def test_doctor_ok_requires_every_required_tool(self):
        results = {"tool_apt-get": True, "tool_dpkg-query": True, "tool_systemctl": True, "tool_ufw": False}
        assert not doctor.doctor_ok(results)
        results["tool_ufw"] = True
        assert doctor.doctor_ok(results)

    def test_run_doctor(self, monkeypatch, fake_runner):
        monkeypatch.setattr(doctor, "which", lambda name: None if name == "ufw" else f"/usr/bin/{name}")
        console = Console(file=StringIO(), width=200, color_system=None)
        results = doctor.run_doctor(console, required_tools=["systemctl", "ufw"], optional_tools=[],
                                    runner=fake_runner)
        assert results["tool_systemctl"] is True
        assert results["tool_ufw"] is False
        assert "Faltan: ufw" in console.file.getvalue()
