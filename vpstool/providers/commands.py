"""
Provider de comandos con guarda (CommandGuarded).

Cubre los pasos de los scripts que no encajan en los otros kinds: hostname,
timezone, instaladores de terceros, `tailscale up`, certbot, warp-cli...

- check: comando de solo lectura; satisfecho si rc 0 (y stdout == expect).
- attempts: escalera explícita de intentos. Se prueba el primero; si falla
  o agota el tiempo, el siguiente. Si el último agota el tiempo el error es
  Timeout. No hay reintentos más allá de la escalera declarada.
"""

import logging
from typing import Optional

from hostplane.core.errors import ApplyFailed, CommandNotFound, CommandTimeout
from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from vpstool.core.tools import CommandRunner

logger = logging.getLogger(__name__)


class GuardedCommandHandler(BaseHandler):
    """Comando idempotente por guarda explícita"""

    name = "command"
    kinds = (ResourceKind.COMMAND_GUARDED,)

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def probe(self, resource: Resource) -> ProbeResult:
        self.require(resource, "check")
        check = list(resource.param("check"))
        try:
            result = self.runner(check)
        except CommandNotFound:
            return ProbeResult(False, f"{check[0]} no encontrado")
        if not result.ok:
            return ProbeResult(False, f"Guarda no cumplida (rc={result.returncode})")
        expect = resource.param("expect")
        if expect is not None and result.stdout.strip() != expect:
            return ProbeResult(False, f"Valor actual: {result.stdout.strip()!r}")
        return ProbeResult(True, "Guarda cumplida")

    def apply(self, resource: Resource) -> Optional[str]:
        self.require(resource, "attempts")
        secret = "attempts" in resource.sensitive
        failures = []
        attempts = resource.param("attempts")
        for idx, attempt in enumerate(attempts, 1):
            label = attempt.get("label") or "intento"
            argv = list(attempt["argv"])
            try:
                result = self.runner(argv, secret=secret)
            except CommandNotFound as e:
                failures.append(f"{label}: {e.message}")
                logger.warning("⚠ %s: %s falló (%s)", resource.key, label, e.message)
                continue
            except CommandTimeout as e:
                if idx == len(attempts):
                    raise
                failures.append(f"{label}: {e.message}")
                logger.warning("⚠ %s: %s agotó el tiempo, se prueba el siguiente", resource.key, label)
                continue
            if result.ok:
                if failures:
                    logger.info("%s: '%s' funcionó tras fallo previo", resource.key, label)
                return f"Aplicado vía {label}"
            failures.append(f"{label}: rc={result.returncode} {result.output[-300:]}".strip())
            logger.warning("⚠ %s: %s falló (rc=%d)", resource.key, label, result.returncode)

        raise ApplyFailed(f"{resource.key}: fallaron todos los intentos", output="\n".join(failures))
