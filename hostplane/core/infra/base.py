"""
Base opcional para handlers: implementación por defecto de métodos comunes.

Los handlers pueden heredar de aquí o implementar solo el contrato (Protocol).
"""

from typing import Optional, Tuple

from hostplane.core.errors import ApplyFailed
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind


class BaseHandler:
    """Base opcional para handlers; no obligatorio usar herencia."""

    name: str = "base"
    kinds: Tuple[ResourceKind, ...] = ()

    def probe(self, resource: Resource) -> ProbeResult:
        """Por defecto: nunca satisfecho."""
        return ProbeResult(False, "Sin probe definido")

    def apply(self, resource: Resource) -> Optional[str]:
        """Por defecto: no sabe aplicar nada."""
        raise ApplyFailed(f"{self.name}: apply no implementado para {resource.kind.value}")

    def require(self, resource: Resource, *names: str) -> None:
        """Falla si faltan params obligatorios."""
        missing = [n for n in names if resource.param(n) in (None, "", ())]
        if missing:
            raise ApplyFailed(f"{resource.key}: faltan parámetros {', '.join(missing)}")
