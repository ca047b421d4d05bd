"""
Provider apt: PackageInstalled.

Probe con dpkg-query (registro local del gestor de paquetes); apply con
apt-get install en modo no interactivo.
"""

import logging
from typing import List, Optional

from hostplane.core.errors import ApplyFailed, ProbeFailed
from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from vpstool.core.tools import CommandRunner

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptPackageHandler(BaseHandler):
    """Paquetes instalados vía apt/dpkg"""

    name = "apt"
    kinds = (ResourceKind.PACKAGE_INSTALLED,)

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _packages(self, resource: Resource) -> List[str]:
        packages = list(resource.param("packages") or ())
        if not packages:
            raise ProbeFailed(f"{resource.key}: no hay paquetes declarados")
        return packages

    def is_installed(self, package: str) -> bool:
        result = self.runner(["dpkg-query", "-W", "-f=${Status}", package])
        # rc 1 = paquete desconocido para dpkg; no es un error del probe
        return result.ok and result.stdout.strip().endswith("install ok installed")

    def probe(self, resource: Resource) -> ProbeResult:
        missing = [p for p in self._packages(resource) if not self.is_installed(p)]
        if missing:
            return ProbeResult(False, f"Faltan: {' '.join(missing)}")
        return ProbeResult(True, "Instalado")

    def apply(self, resource: Resource) -> Optional[str]:
        packages = self._packages(resource)
        if resource.param("update"):
            result = self.runner(["apt-get", "update", "-y"], env=APT_ENV)
            if not result.ok:
                raise ApplyFailed("apt-get update falló", output=result.output)

        # Solo los que faltan; "ya está en su versión más reciente" es éxito
        missing = [p for p in packages if not self.is_installed(p)] or packages
        result = self.runner(["apt-get", "install", "-y", *missing], env=APT_ENV)
        if not result.ok:
            raise ApplyFailed(f"apt-get install {' '.join(missing)} falló", output=result.output)
        return f"Instalado: {' '.join(missing)}"
