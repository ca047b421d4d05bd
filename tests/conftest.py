"""Shared test fixtures: fake command runner and in-memory spy handler."""

from dataclasses import dataclass
from typing import List, Optional

import pytest

from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from vpstool.core.tools import CommandResult


@dataclass
class Call:
    argv: List[str]
    input_text: Optional[str] = None
    env: Optional[dict] = None
    secret: bool = False


class FakeRunner:
    """
    Stand-in for CommandRunner. Rules match by argv prefix; the most recently
    added rule wins. `rc` may be a list: each call consumes one value and the
    last one repeats.
    """

    def __init__(self, default_rc: int = 0):
        self.default_rc = default_rc
        self.calls: List[Call] = []
        self._rules = []

    def on(self, *prefix, rc=0, stdout="", stderr="", raises=None, effect=None):
        self._rules.insert(0, {
            "prefix": tuple(prefix),
            "rc": list(rc) if isinstance(rc, (list, tuple)) else [rc],
            "stdout": stdout,
            "stderr": stderr,
            "raises": raises,
            "effect": effect,
        })
        return self

    def __call__(self, command, input_text=None, cwd=None, env=None, timeout=None, secret=False):
        argv = [str(c) for c in command]
        self.calls.append(Call(argv, input_text, env, secret))
        for rule in self._rules:
            if tuple(argv[:len(rule["prefix"])]) == rule["prefix"]:
                if rule["effect"] is not None:
                    rule["effect"](argv)
                if rule["raises"] is not None:
                    raise rule["raises"]
                rc = rule["rc"].pop(0) if len(rule["rc"]) > 1 else rule["rc"][0]
                stdout = rule["stdout"](argv) if callable(rule["stdout"]) else rule["stdout"]
                return CommandResult(argv, rc, stdout, rule["stderr"])
        return CommandResult(argv, self.default_rc, "", "")

    run = __call__

    def commands(self) -> List[List[str]]:
        return [c.argv for c in self.calls]

    def ran(self, *prefix) -> bool:
        return any(tuple(c.argv[:len(prefix)]) == prefix for c in self.calls)


class SpyHandler(BaseHandler):
    """In-memory handler: a key is satisfied once it is in `state`."""

    name = "spy"

    def __init__(self, kinds=tuple(ResourceKind), state=()):
        self.kinds = tuple(kinds)
        self.state = set(state)
        self.probes: List[str] = []
        self.applies: List[str] = []
        self.fail_probe = {}
        self.fail_apply = {}
        self.ineffective = set()

    def probe(self, resource: Resource) -> ProbeResult:
        self.probes.append(resource.key)
        if resource.key in self.fail_probe:
            raise self.fail_probe[resource.key]
        satisfied = resource.key in self.state
        return ProbeResult(satisfied, "presente" if satisfied else "ausente")

    def apply(self, resource: Resource) -> Optional[str]:
        self.applies.append(resource.key)
        if resource.key in self.fail_apply:
            raise self.fail_apply[resource.key]
        if resource.key not in self.ineffective:
            self.state.add(resource.key)
        return f"{resource.key} aplicado"


def step(key: str, *deps: str) -> Resource:
    """Guarded command resource used as a generic graph node."""
    return rb.command(key, check=["true"], attempts=[["true"]], depends_on=deps)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def spy():
    return SpyHandler()


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch, tmp_path):
    """Keep HOSTPLANE_* settings from the developer's shell out of the tests."""
    monkeypatch.setenv("HOSTPLANE_STATE_ROOT", str(tmp_path / "state"))
    monkeypatch.delenv("HOSTPLANE_COMMAND_TIMEOUT", raising=False)
    monkeypatch.delenv("HOSTPLANE_HALT_ON_FAILURE", raising=False)
