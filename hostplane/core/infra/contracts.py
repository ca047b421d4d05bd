"""
Contratos que deben implementar los handlers de recursos.

El core solo define interfaces; la implementación vive en vpstool/providers/*.
"""

from typing import Dict, Iterable, Optional, Protocol, Tuple

from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind


class ResourceHandler(Protocol):
    """
    Contrato mínimo de un handler (probe + apply) para uno o más kinds.

    - probe: sin efectos secundarios; lee solo el estado relevante a la key.
    - apply: solo se invoca si probe dijo "no satisfecho". Debe ser inocuo si
      el estado ya se cumple. Lanza ResourceError en caso de fallo y puede
      devolver un detalle (p. ej. qué camino de la escalera funcionó).
    """

    @property
    def kinds(self) -> Tuple[ResourceKind, ...]:
        """Kinds que atiende este handler."""
        ...

    def probe(self, resource: Resource) -> ProbeResult:
        ...

    def apply(self, resource: Resource) -> Optional[str]:
        ...


class HandlerRegistry:
    """Mapa kind -> handler que consulta el Reconciler."""

    def __init__(self, handlers: Iterable[ResourceHandler] = ()):
        self._handlers: Dict[ResourceKind, ResourceHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ResourceHandler) -> None:
        for kind in handler.kinds:
            self._handlers[ResourceKind(kind)] = handler

    def get(self, kind: ResourceKind) -> Optional[ResourceHandler]:
        return self._handlers.get(kind)

    def __contains__(self, kind: ResourceKind) -> bool:
        return kind in self._handlers

    def kinds(self) -> Tuple[ResourceKind, ...]:
        return tuple(self._handlers)
