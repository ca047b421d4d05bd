"""Tests for the apt, ufw, users and guarded-command providers."""

import pytest

from hostplane.core.errors import ApplyFailed, CommandNotFound, CommandTimeout, ErrorKind, FirewallUnavailable
from hostplane.core.reconciler import reconcile
from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import OutcomeStatus, RunPolicy
from vpstool.providers import commands as commands_mod
from vpstool.providers import default_registry, users
from vpstool.providers.commands import GuardedCommandHandler
from vpstool.providers.firewall import UfwHandler, rule_tokens
from vpstool.providers.packages import APT_ENV, AptPackageHandler
from vpstool.providers.users import UserHandler

UFW_ADDED = """Added user rules (see 'ufw status' for running firewall):
ufw allow 22/tcp
ufw allow 80/tcp
ufw allow in on tailscale0
"""


class TestAptPackageHandler:
    def test_installed_package_is_satisfied(self, fake_runner):
        fake_runner.on("dpkg-query", stdout="install ok installed")
        assert AptPackageHandler(fake_runner).probe(rb.package("nginx")).satisfied

    def test_unknown_package_is_missing(self, fake_runner):
        fake_runner.on("dpkg-query", rc=1, stderr="no packages found matching ufw")
        result = AptPackageHandler(fake_runner).probe(rb.package("ufw"))
        assert not result.satisfied
        assert result.detail == "Faltan: ufw"

    def test_deinstalled_is_missing(self, fake_runner):
        fake_runner.on("dpkg-query", stdout="deinstall ok config-files")
        assert not AptPackageHandler(fake_runner).probe(rb.package("nginx")).satisfied

    def test_apply_installs_only_missing(self, fake_runner):
        fake_runner.on("dpkg-query", stdout=lambda argv: "install ok installed" if argv[-1] == "curl" else "")
        handler = AptPackageHandler(fake_runner)
        handler.apply(rb.package("curl", "btop", update=True))

        assert fake_runner.ran("apt-get", "update", "-y")
        assert fake_runner.ran("apt-get", "install", "-y", "btop")
        install = [c for c in fake_runner.calls if c.argv[:2] == ["apt-get", "install"]][0]
        assert install.argv == ["apt-get", "install", "-y", "btop"]
        assert install.env == APT_ENV

    def test_apply_failure_keeps_output(self, fake_runner):
        fake_runner.on("apt-get", "install", rc=100, stderr="E: Unable to locate package nope")
        with pytest.raises(ApplyFailed) as exc:
            AptPackageHandler(fake_runner).apply(rb.package("nope"))
        assert "Unable to locate" in exc.value.output


class TestUfwHandler:
    def test_rule_tokens(self):
        assert rule_tokens(rb.firewall_allow(8388, "udp")) == ["8388/udp"]
        assert rule_tokens(rb.firewall_allow("ssh")) == ["ssh"]
        assert rule_tokens(rb.firewall_allow(interface="tailscale0")) == ["in", "on", "tailscale0"]

    def test_present_rule_is_satisfied(self, fake_runner):
        fake_runner.on("ufw", "show", "added", stdout=UFW_ADDED)
        handler = UfwHandler(fake_runner)
        assert handler.probe(rb.firewall_allow(22, "tcp")).satisfied
        assert handler.probe(rb.firewall_allow(interface="tailscale0")).satisfied
        assert not handler.probe(rb.firewall_allow(443, "tcp")).satisfied

    def test_apply_adds_rule(self, fake_runner):
        fake_runner.on("ufw", "show", "added", stdout=UFW_ADDED)
        detail = UfwHandler(fake_runner).apply(rb.firewall_allow(8388, "tcp"))
        assert fake_runner.ran("ufw", "allow", "8388/tcp")
        assert detail == "Regla añadida: 8388/tcp"

    def test_missing_ufw_is_firewall_unavailable(self, fake_runner):
        fake_runner.on("ufw", raises=CommandNotFound("ufw"))
        report = reconcile([rb.firewall_allow(8388, "tcp")], [UfwHandler(fake_runner)])
        outcome = report.by_key("ufw:8388/tcp")
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.kind == ErrorKind.FIREWALL_UNAVAILABLE

    def test_require_active(self, fake_runner):
        fake_runner.on("ufw", "show", "added", stdout=UFW_ADDED)
        fake_runner.on("ufw", "status", stdout="Status: inactive")
        with pytest.raises(FirewallUnavailable):
            UfwHandler(fake_runner).apply(rb.firewall_allow(8388, "tcp", require_active=True))
        assert not fake_runner.ran("ufw", "allow")


class TestUserHandler:
    def test_missing_user_not_satisfied(self, fake_runner, monkeypatch):
        monkeypatch.setattr(users, "user_exists", lambda name: False)
        assert not UserHandler(fake_runner).probe(rb.user("alice")).satisfied

    def test_missing_group_not_satisfied(self, fake_runner, monkeypatch):
        monkeypatch.setattr(users, "user_exists", lambda name: True)
        monkeypatch.setattr(users, "missing_groups", lambda name, groups: ["sudo"])
        result = UserHandler(fake_runner).probe(rb.user("alice", groups=["sudo"]))
        assert not result.satisfied
        assert "sudo" in result.detail

    def test_create_sends_password_on_stdin(self, fake_runner, monkeypatch):
        monkeypatch.setattr(users, "user_exists", lambda name: False)
        monkeypatch.setattr(users, "missing_groups", lambda name, groups: list(groups))
        UserHandler(fake_runner).apply(rb.user("alice", password="hunter2pass", groups=["sudo"]))

        assert fake_runner.commands() == [
            ["useradd", "-m", "-s", "/bin/bash", "alice"],
            ["chpasswd"],
            ["usermod", "-aG", "sudo", "alice"],
        ]
        assert fake_runner.calls[1].input_text == "alice:hunter2pass\n"
        assert all("hunter2pass" not in " ".join(argv) for argv in fake_runner.commands())

    def test_existing_user_only_gets_groups(self, fake_runner, monkeypatch):
        monkeypatch.setattr(users, "user_exists", lambda name: True)
        monkeypatch.setattr(users, "missing_groups", lambda name, groups: ["sudo"])
        UserHandler(fake_runner).apply(rb.user("alice", password="x", groups=["sudo"]))
        assert fake_runner.commands() == [["usermod", "-aG", "sudo", "alice"]]

    def test_useradd_failure(self, fake_runner, monkeypatch):
        monkeypatch.setattr(users, "user_exists", lambda name: False)
        fake_runner.on("useradd", rc=9, stderr="useradd: user 'alice' already exists")
        with pytest.raises(ApplyFailed):
            UserHandler(fake_runner).apply(rb.user("alice"))


class TestGuardedCommandHandler:
    def test_check_with_expected_value(self, fake_runner):
        fake_runner.on("hostnamectl", "--static", stdout="vps1\n")
        handler = GuardedCommandHandler(fake_runner)
        resource = rb.command("hostname", check=["hostnamectl", "--static"], expect="vps1",
                              attempts=[["hostnamectl", "set-hostname", "vps1"]])
        assert handler.probe(resource).satisfied

        other = rb.command("hostname", check=["hostnamectl", "--static"], expect="vps2",
                           attempts=[["hostnamectl", "set-hostname", "vps2"]])
        assert handler.probe(other).detail == "Valor actual: 'vps1'"

    def test_missing_check_binary_is_unsatisfied(self, fake_runner):
        fake_runner.on("tailscale", raises=CommandNotFound("tailscale"))
        resource = rb.command("tailscale:up", check=["tailscale", "status"], attempts=[["true"]])
        assert not GuardedCommandHandler(fake_runner).probe(resource).satisfied

    def test_ladder_falls_back_and_reports_label(self, fake_runner):
        fake_runner.on("tailscale", "status", rc=[1, 0])
        fake_runner.on("tailscale", "up", "--authkey", rc=1, stderr="invalid key")
        resource = rb.command(
            "tailscale:up",
            check=["tailscale", "status"],
            attempts=[
                {"label": "auth key", "argv": ["tailscale", "up", "--authkey", "tskey-abc"]},
                {"label": "autenticación manual", "argv": ["tailscale", "up", "--ssh"]},
            ],
            sensitive=True,
        )
        report = reconcile([resource], [GuardedCommandHandler(fake_runner)])
        outcome = report.by_key("tailscale:up")
        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.detail == "Aplicado vía autenticación manual"
        attempts = [c for c in fake_runner.calls if c.argv[:2] == ["tailscale", "up"]]
        assert all(c.secret for c in attempts)

    def test_timeout_falls_back_to_next_attempt(self, fake_runner):
        fake_runner.on("tailscale", "status", rc=[1, 0])
        fake_runner.on("tailscale", "up", "--authkey",
                       raises=CommandTimeout(["tailscale", "up", "--authkey", "****"], 300))
        resource = rb.command(
            "tailscale:up",
            check=["tailscale", "status"],
            attempts=[
                {"label": "auth key", "argv": ["tailscale", "up", "--authkey", "tskey-abc"]},
                {"label": "autenticación manual", "argv": ["tailscale", "up", "--ssh"]},
            ],
            sensitive=True,
        )
        report = reconcile([resource], [GuardedCommandHandler(fake_runner)])
        outcome = report.by_key("tailscale:up")
        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.detail == "Aplicado vía autenticación manual"
        assert fake_runner.ran("tailscale", "up", "--ssh")

    def test_timeout_on_last_attempt_keeps_timeout_kind(self, fake_runner):
        fake_runner.on("test", "-d", rc=1)
        fake_runner.on("certbot", rc=1, stderr="too many requests")
        fake_runner.on("certbot", "--nginx", raises=CommandTimeout(["certbot", "--nginx"], 300))
        resource = rb.command(
            "certbot",
            check=["test", "-d", "/etc/letsencrypt/live/vpn.example.com"],
            attempts=[["certbot", "certonly", "--standalone"], ["certbot", "--nginx"]],
        )
        report = reconcile([resource], [GuardedCommandHandler(fake_runner)])
        outcome = report.by_key("certbot")
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.kind == ErrorKind.TIMEOUT

    def test_all_attempts_fail(self, fake_runner):
        fake_runner.on("new", rc=1, stderr="unknown command")
        fake_runner.on("old", raises=CommandNotFound("old"))
        resource = rb.command("warp", check=["false"], attempts=[["new"], ["old"]])
        with pytest.raises(ApplyFailed) as exc:
            GuardedCommandHandler(fake_runner).apply(resource)
        assert "intento 1" in exc.value.output
        assert "intento 2" in exc.value.output

    def test_logger_never_sees_secret_argv(self, fake_runner, caplog):
        fake_runner.on("tailscale", "up", rc=1)
        resource = rb.command("tailscale:up", check=["false"],
                              attempts=[["tailscale", "up", "--authkey", "tskey-secret"]], sensitive=True)
        with caplog.at_level("DEBUG", logger=commands_mod.__name__):
            with pytest.raises(ApplyFailed):
                GuardedCommandHandler(fake_runner).apply(resource)
        assert "tskey-secret" not in caplog.text


class TestSecondRun:
    """Once the first run converges, the next one only reads state."""

    def test_apt(self, fake_runner):
        installed = {"curl"}
        fake_runner.on("dpkg-query", stdout=lambda argv: "install ok installed" if argv[-1] in installed else "")
        fake_runner.on("apt-get", "install", effect=lambda argv: installed.update(argv[3:]))
        resources = [rb.package("curl", "btop", update=True), rb.package("nginx")]
        handler = AptPackageHandler(fake_runner)

        first = reconcile(resources, [handler])
        apt_calls = [argv for argv in fake_runner.commands() if argv[0] == "apt-get"]
        second = reconcile(resources, [handler])

        assert first.count(OutcomeStatus.APPLIED) == 2
        assert second.noop
        assert [argv for argv in fake_runner.commands() if argv[0] == "apt-get"] == apt_calls

    def test_ufw(self, fake_runner):
        added = ["ufw allow 22/tcp"]
        fake_runner.on("ufw", "show", "added",
                       stdout=lambda argv: "Added user rules (see 'ufw status' for running firewall):\n"
                       + "\n".join(added) + "\n")
        fake_runner.on("ufw", "allow", effect=lambda argv: added.append(" ".join(argv)))
        resources = [
            rb.firewall_allow(22, "tcp"),
            rb.firewall_allow(8388, "tcp"),
            rb.firewall_allow(8388, "udp"),
            rb.firewall_allow(interface="tailscale0"),
        ]
        handler = UfwHandler(fake_runner)

        first = reconcile(resources, [handler])
        second = reconcile(resources, [handler])

        assert first.count(OutcomeStatus.SATISFIED) == 1
        assert first.count(OutcomeStatus.APPLIED) == 3
        assert second.noop
        assert len([argv for argv in fake_runner.commands() if argv[:2] == ["ufw", "allow"]]) == 3

    def test_users(self, fake_runner, monkeypatch):
        accounts = {}
        monkeypatch.setattr(users, "user_exists", lambda name: name in accounts)
        monkeypatch.setattr(users, "missing_groups",
                            lambda name, groups: [g for g in groups if g not in accounts.get(name, set())])
        fake_runner.on("useradd", effect=lambda argv: accounts.setdefault(argv[-1], set()))
        fake_runner.on("usermod", effect=lambda argv: accounts[argv[-1]].update(argv[2].split(",")))
        resources = [rb.user("alice", password="hunter2pass", groups=["sudo", "docker"])]
        handler = UserHandler(fake_runner)

        first = reconcile(resources, [handler])
        calls = fake_runner.commands()
        second = reconcile(resources, [handler])

        assert first.by_key("user:alice").status == OutcomeStatus.APPLIED
        assert accounts == {"alice": {"sudo", "docker"}}
        assert second.noop
        assert fake_runner.commands() == calls


def test_default_registry_covers_every_kind(fake_runner):
    registry = default_registry(RunPolicy(), runner=fake_runner)
    from hostplane.core.resources.models import ResourceKind
    assert set(registry.kinds()) == set(ResourceKind)
