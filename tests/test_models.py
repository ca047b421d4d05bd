"""Tests for resource models and builders."""

import dataclasses

import pytest

from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import (
    OutcomeStatus,
    ReconcileOutcome,
    Resource,
    ResourceKind,
    RunReport,
)


class TestResource:
    def test_params_are_frozen(self):
        resource = rb.package("nginx", "curl")
        with pytest.raises(TypeError):
            resource.params["packages"] = ["vim"]
        assert resource.param("packages") == ("nginx", "curl")

    def test_resource_is_immutable(self):
        resource = rb.package("nginx")
        with pytest.raises(dataclasses.FrozenInstanceError):
            resource.key = "other"

    def test_repr_hides_params(self):
        resource = rb.user("alice", password="s3cr3t-pass")
        assert "s3cr3t-pass" not in repr(resource)
        assert "password" in resource.sensitive

    def test_kind_coerced_from_string(self):
        resource = Resource(kind="package", key="package:x", params={"packages": ["x"]})
        assert resource.kind is ResourceKind.PACKAGE_INSTALLED

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            Resource(kind=ResourceKind.PACKAGE_INSTALLED, key="")

    def test_with_dependencies_adds_keys(self):
        base = rb.service_running("nginx", depends_on=["enabled:nginx"])
        resource = base.with_dependencies(["package:nginx"])
        assert resource.depends_on == frozenset({"enabled:nginx", "package:nginx"})
        assert base.depends_on == frozenset({"enabled:nginx"})


class TestBuilders:
    def test_namespaced_keys(self):
        assert rb.package("nginx").key == "package:nginx"
        assert rb.file_content("/etc/x", "").key == "file:/etc/x"
        assert rb.service_enabled("nginx").key == "enabled:nginx"
        assert rb.service_running("nginx").key == "running:nginx"
        assert rb.firewall_allow(8388, "tcp").key == "ufw:8388/tcp"
        assert rb.firewall_allow(interface="tailscale0").key == "ufw:in-on-tailscale0"
        assert rb.user("alice").key == "user:alice"

    def test_command_ladder_labels(self):
        resource = rb.command("x", check=["true"], attempts=[["a"], {"label": "fallback", "argv": ["b"]}])
        labels = [a["label"] for a in resource.param("attempts")]
        assert labels == ["intento 1", "fallback"]

    def test_command_requires_attempts(self):
        with pytest.raises(ValueError):
            rb.command("x", check=["true"], attempts=[])

    def test_firewall_requires_port_or_interface(self):
        with pytest.raises(ValueError):
            rb.firewall_allow()


class TestRunReport:
    def _report(self, *statuses):
        return RunReport([ReconcileOutcome(f"r{i}", s) for i, s in enumerate(statuses)])

    def test_noop(self):
        report = self._report(OutcomeStatus.SATISFIED, OutcomeStatus.SATISFIED)
        assert report.noop
        assert not report.changed
        assert not report.needs_attention

    def test_changed(self):
        report = self._report(OutcomeStatus.SATISFIED, OutcomeStatus.APPLIED)
        assert report.changed
        assert not report.noop
        assert not report.needs_attention

    def test_needs_attention(self):
        report = self._report(OutcomeStatus.APPLIED, OutcomeStatus.SKIPPED)
        assert report.needs_attention
        assert report.summary() == (0, 1, 0, 1)

    def test_by_key(self):
        report = self._report(OutcomeStatus.FAILED)
        assert report.by_key("r0").status == OutcomeStatus.FAILED
        assert report.by_key("nope") is None
