"""
Core: lógica de negocio pura del reconciliador.

ENFORCEMENT (arquitectura limpia):
- Este paquete NO debe importar: hostplane.cli ni vpstool (implementaciones).
- Permitido: typing, pathlib.Path, hostplane.core.* (errors, resources, infra, runtime).
- Los providers y la CLI importan desde core; nunca al revés.
"""

from hostplane.core.errors import (
    HostplaneError,
    DeclarationError,
    DeclarationConflict,
    DependencyCycle,
    UnknownDependency,
    ResourceError,
)

__all__ = [
    "HostplaneError",
    "DeclarationError",
    "DeclarationConflict",
    "DependencyCycle",
    "UnknownDependency",
    "ResourceError",
]
