"""Tests for the Reconciler state machine."""

import threading

import pytest

from conftest import SpyHandler, step
from hostplane.core.errors import (
    ApplyFailed,
    CommandTimeout,
    DeclarationConflict,
    DependencyCycle,
    ErrorKind,
    ProbeFailed,
    UnknownDependency,
)
from hostplane.core.reconciler import Reconciler, reconcile
from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import OutcomeStatus, ResourceKind, RunPolicy


def statuses(report):
    return {o.key: o.status for o in report}


class TestIdempotence:
    def test_second_run_applies_nothing(self, spy):
        resources = [
            rb.package("nginx"),
            rb.line_in_file("/etc/hosts", "127.0.1.1 host"),
            rb.file_content("/etc/x.conf", "x=1\n"),
            rb.service_enabled("nginx", depends_on=["package:nginx"]),
            rb.service_running("nginx", depends_on=["enabled:nginx"]),
            rb.firewall_allow(443, "tcp"),
            rb.user("alice", password="pw"),
            step("hostname"),
        ]
        first = reconcile(resources, [spy])
        assert first.changed
        assert first.count(OutcomeStatus.APPLIED) == len(resources)

        spy.applies.clear()
        second = reconcile(resources, [spy])
        assert second.noop
        assert second.count(OutcomeStatus.APPLIED) == 0
        assert spy.applies == []

    def test_applied_only_after_verification(self, spy):
        report = reconcile([step("a")], [spy])
        assert report.by_key("a").status == OutcomeStatus.APPLIED
        # check, apply, re-check
        assert spy.probes == ["a", "a"]


class TestDeclarationErrors:
    def test_conflict_never_touches_host(self, spy):
        resources = [
            rb.line_in_file("/etc/hosts", "a", key="hosts"),
            rb.line_in_file("/etc/hosts", "b", key="hosts"),
        ]
        with pytest.raises(DeclarationConflict):
            reconcile(resources, [spy])
        assert spy.probes == []
        assert spy.applies == []

    def test_cycle_never_touches_host(self, spy):
        with pytest.raises(DependencyCycle):
            reconcile([step("free"), step("a", "b"), step("b", "a")], [spy])
        assert spy.probes == []
        assert spy.applies == []

    def test_unknown_dependency_never_touches_host(self, spy):
        with pytest.raises(UnknownDependency):
            reconcile([step("a", "ghost")], [spy])
        assert spy.probes == []

    def test_missing_handler_is_a_declaration_error(self):
        packages_only = SpyHandler(kinds=[ResourceKind.PACKAGE_INSTALLED])
        with pytest.raises(DeclarationConflict):
            reconcile([rb.package("nginx"), step("a")], [packages_only])
        assert packages_only.probes == []


class TestFailures:
    def test_failed_dependency_skips_dependents(self, spy):
        spy.fail_apply["package"] = ApplyFailed("apt-get install falló", output="E: Unable to locate")
        resources = [step("package"), step("config", "package"), step("service", "config"), step("other")]
        report = reconcile(resources, [spy])

        assert statuses(report) == {
            "package": OutcomeStatus.FAILED,
            "config": OutcomeStatus.SKIPPED,
            "service": OutcomeStatus.SKIPPED,
            "other": OutcomeStatus.APPLIED,
        }
        assert report.by_key("package").error.kind == ErrorKind.APPLY_FAILED
        assert report.by_key("package").error.output == "E: Unable to locate"
        config = report.by_key("config").error
        assert config.kind == ErrorKind.DEPENDENCY_FAILED
        assert config.blocking_key == "package"
        assert report.by_key("service").error.blocking_key == "config"
        assert "config" not in spy.probes
        assert report.needs_attention

    def test_timeout_is_distinct_from_failure(self, spy):
        spy.fail_apply["slow"] = CommandTimeout(["apt-get", "install", "-y", "x"], 5)
        report = reconcile([step("slow")], [spy])
        outcome = report.by_key("slow")
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.kind == ErrorKind.TIMEOUT

    def test_check_timeout_keeps_timeout_kind(self, spy):
        spy.fail_probe["slow"] = CommandTimeout(["dpkg-query"], 5)
        report = reconcile([step("slow")], [spy])
        assert report.by_key("slow").error.kind == ErrorKind.TIMEOUT

    def test_check_failure(self, spy):
        spy.fail_probe["secret"] = ProbeFailed("Sin permisos para leer /etc/shadow")
        report = reconcile([step("secret")], [spy])
        assert report.by_key("secret").error.kind == ErrorKind.PROBE_FAILED
        assert spy.applies == []

    def test_host_oserror_is_captured(self, spy):
        spy.fail_apply["disk"] = OSError(28, "No space left on device")
        report = reconcile([step("disk"), step("next")], [spy])
        assert report.by_key("disk").error.kind == ErrorKind.APPLY_FAILED
        assert report.by_key("next").status == OutcomeStatus.APPLIED

    def test_verification_mismatch(self, spy):
        spy.ineffective.add("flaky")
        report = reconcile([step("flaky")], [spy])
        outcome = report.by_key("flaky")
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.kind == ErrorKind.VERIFICATION_MISMATCH


class TestPolicyAndCancellation:
    def test_halt_on_first_failure(self, spy):
        spy.fail_apply["b"] = ApplyFailed("boom")
        policy = RunPolicy(halt_on_first_failure=True)
        report = reconcile([step("a"), step("b"), step("c"), step("d")], [spy], policy)
        assert [o.status for o in report] == [
            OutcomeStatus.APPLIED,
            OutcomeStatus.FAILED,
            OutcomeStatus.SKIPPED,
            OutcomeStatus.SKIPPED,
        ]
        halted = report.by_key("c").error
        assert halted.kind == ErrorKind.HALTED
        assert halted.blocking_key == "b"
        assert spy.applies == ["a", "b"]

    def test_continue_by_default(self, spy):
        spy.fail_apply["b"] = ApplyFailed("boom")
        report = reconcile([step("a"), step("b"), step("c")], [spy])
        assert report.by_key("c").status == OutcomeStatus.APPLIED

    def test_cancel_between_resources(self, spy):
        cancel = threading.Event()

        class CancellingSpy(SpyHandler):
            def apply(self, resource):
                detail = super().apply(resource)
                if resource.key == "a":
                    cancel.set()
                return detail

        handler = CancellingSpy()
        report = Reconciler([handler]).run([step("a"), step("b"), step("c")], cancel=cancel)
        assert report.by_key("a").status == OutcomeStatus.APPLIED
        for key in ("b", "c"):
            outcome = report.by_key(key)
            assert outcome.status == OutcomeStatus.SKIPPED
            assert outcome.error.kind == ErrorKind.CANCELLED
        assert handler.applies == ["a"]


class TestPlan:
    def test_plan_only_inspects(self, spy):
        spy.state.add("a")
        spy.fail_probe["c"] = ProbeFailed("denegado")
        results = Reconciler([spy]).plan([step("a"), step("b", "a"), step("c")])
        assert [(r.key, p.satisfied) for r, p in results] == [("a", True), ("b", False), ("c", False)]
        assert results[2][1].detail.startswith("ProbeFailed")
        assert spy.applies == []
