"""
Provider systemd: ServiceEnabled y ServiceRunning.
"""

import logging
import time
from typing import Callable, Optional

from hostplane.core.errors import ApplyFailed, ServiceStartFailed
from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from vpstool.core.tools import CommandRunner

logger = logging.getLogger(__name__)


class SystemdHandler(BaseHandler):
    """
    Unidades systemd habilitadas / activas.

    Tras start/restart se espera (acotado) a que la unidad reporte activa; si
    no llega, ServiceStartFailed con la salida de `systemctl status`.
    """

    name = "systemd"
    kinds = (ResourceKind.SERVICE_ENABLED, ResourceKind.SERVICE_RUNNING)

    def __init__(
        self,
        runner: CommandRunner,
        poll_interval: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runner = runner
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.clock = clock

    @staticmethod
    def _unit(resource: Resource) -> str:
        return resource.param("unit") or resource.key

    def is_enabled(self, unit: str) -> bool:
        return self.runner(["systemctl", "is-enabled", unit]).ok

    def is_active(self, unit: str) -> bool:
        return self.runner(["systemctl", "is-active", unit]).ok

    def probe(self, resource: Resource) -> ProbeResult:
        unit = self._unit(resource)
        if resource.kind == ResourceKind.SERVICE_ENABLED:
            if self.is_enabled(unit):
                return ProbeResult(True, f"{unit} habilitado")
            return ProbeResult(False, f"{unit} no habilitado")
        if self.is_active(unit):
            return ProbeResult(True, f"{unit} activo")
        return ProbeResult(False, f"{unit} inactivo")

    def apply(self, resource: Resource) -> Optional[str]:
        unit = self._unit(resource)
        if resource.kind == ResourceKind.SERVICE_ENABLED:
            result = self.runner(["systemctl", "enable", unit])
            if not result.ok:
                raise ApplyFailed(f"systemctl enable {unit} falló", output=result.output)
            return f"{unit} habilitado"

        action = "restart" if resource.param("restart") else "start"
        result = self.runner(["systemctl", action, unit])
        if not result.ok:
            raise ServiceStartFailed(f"systemctl {action} {unit} falló", output=self._status(unit) or result.output)

        wait = float(resource.param("start_wait", 10.0))
        if not self._wait_active(unit, wait):
            raise ServiceStartFailed(
                f"{unit} no quedó activo tras {wait:g}s", output=self._status(unit)
            )
        return f"{unit} {'reiniciado' if action == 'restart' else 'iniciado'}"

    def _wait_active(self, unit: str, wait: float) -> bool:
        deadline = self.clock() + wait
        while True:
            if self.is_active(unit):
                return True
            if self.clock() >= deadline:
                return False
            self.sleep(self.poll_interval)

    def _status(self, unit: str) -> str:
        result = self.runner(["systemctl", "status", unit, "--no-pager", "-n", "20"])
        return result.output
