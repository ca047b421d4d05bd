"""
Provider ufw: FirewallRuleAllow.

El probe usa `ufw show added`, que lista las reglas aunque ufw esté
inactivo; así las reglas se pueden preparar antes de `ufw enable` sin
cortar la sesión SSH.
"""

import logging
from typing import List, Optional

from hostplane.core.errors import ApplyFailed, CommandNotFound, FirewallUnavailable
from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from vpstool.core.tools import CommandRunner

logger = logging.getLogger(__name__)


def rule_tokens(resource: Resource) -> List[str]:
    """Argumentos tras `ufw allow` (p. ej. ['8388/tcp'] o ['in', 'on', 'tailscale0'])."""
    interface = resource.param("interface")
    if interface:
        tokens = ["in", "on", str(interface)]
        port = resource.param("port")
        if port is not None:
            tokens += ["to", "any", "port", str(port)]
            if resource.param("proto"):
                tokens += ["proto", str(resource.param("proto"))]
        return tokens
    port = resource.param("port")
    proto = resource.param("proto")
    return [f"{port}/{proto}" if proto else str(port)]


class UfwHandler(BaseHandler):
    """Reglas allow de UFW; duplicar una regla existente es un no-op"""

    name = "ufw"
    kinds = (ResourceKind.FIREWALL_RULE_ALLOW,)

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _added_rules(self) -> Optional[List[str]]:
        """Reglas añadidas (normalizadas) o None si ufw no está instalado."""
        try:
            result = self.runner(["ufw", "show", "added"])
        except CommandNotFound:
            return None
        if not result.ok:
            return None
        return [" ".join(line.split()) for line in result.stdout.splitlines() if line.startswith("ufw ")]

    def _is_active(self) -> bool:
        result = self.runner(["ufw", "status"])
        return result.ok and "Status: active" in result.stdout

    def probe(self, resource: Resource) -> ProbeResult:
        rules = self._added_rules()
        if rules is None:
            return ProbeResult(False, "ufw no disponible")
        wanted = " ".join(["ufw", "allow", *rule_tokens(resource)])
        if wanted in rules:
            return ProbeResult(True, f"Regla presente: {' '.join(rule_tokens(resource))}")
        return ProbeResult(False, f"Falta regla: {' '.join(rule_tokens(resource))}")

    def apply(self, resource: Resource) -> Optional[str]:
        if self._added_rules() is None:
            raise FirewallUnavailable("ufw no está instalado; no se puede añadir la regla")
        if resource.param("require_active") and not self._is_active():
            raise FirewallUnavailable("ufw está inactivo y la regla exige firewall activo")

        tokens = rule_tokens(resource)
        result = self.runner(["ufw", "allow", *tokens])
        if not result.ok:
            raise ApplyFailed(f"ufw allow {' '.join(tokens)} falló", output=result.output)
        return f"Regla añadida: {' '.join(tokens)}"
