"""
Errores del reconciliador.

El core solo define excepciones y la taxonomía (ErrorKind); las capas
(CLI/report) se encargan del formato de salida.

Dos familias:
- DeclarationError: el plan es inválido. Se detecta antes de tocar el host y
  aborta la ejecución completa.
- ResourceError: falla de un recurso concreto (probe, apply, timeout...). El
  Reconciler la captura y la convierte en el outcome de ese recurso.
"""

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    """Taxonomía de errores visible en los outcomes"""
    PROBE_FAILED = "ProbeFailed"
    APPLY_FAILED = "ApplyFailed"
    VERIFICATION_MISMATCH = "VerificationMismatch"
    TIMEOUT = "Timeout"
    DEPENDENCY_FAILED = "DependencyFailed"
    DECLARATION_CONFLICT = "DeclarationConflict"
    DEPENDENCY_CYCLE = "DependencyCycle"
    UNKNOWN_DEPENDENCY = "UnknownDependency"
    SERVICE_START_FAILED = "ServiceStartFailed"
    FIREWALL_UNAVAILABLE = "FirewallUnavailable"
    CANCELLED = "Cancelled"
    HALTED = "Halted"


class HostplaneError(Exception):
    """Error base de hostplane."""
    pass


class DeclarationError(HostplaneError):
    """El plan declarado es inválido; no se aplica nada."""
    kind = ErrorKind.DECLARATION_CONFLICT


class DeclarationConflict(DeclarationError):
    """Dos recursos comparten key con parámetros distintos."""

    kind = ErrorKind.DECLARATION_CONFLICT

    def __init__(self, key: str, reason: str = "parámetros distintos"):
        super().__init__(f"Conflicto de declaración en '{key}': {reason}")
        self.key = key
        self.reason = reason


class DependencyCycle(DeclarationError):
    """El grafo dependsOn contiene un ciclo."""

    kind = ErrorKind.DEPENDENCY_CYCLE

    def __init__(self, keys: List[str]):
        super().__init__(f"Ciclo de dependencias entre: {', '.join(keys)}")
        self.keys = keys


class UnknownDependency(DeclarationError):
    """Un recurso depende de una key que no está en el plan."""

    kind = ErrorKind.UNKNOWN_DEPENDENCY

    def __init__(self, key: str, missing: str):
        super().__init__(f"'{key}' depende de '{missing}', que no está declarado")
        self.key = key
        self.missing = missing


class ResourceError(HostplaneError):
    """Error de un recurso concreto; termina en su ReconcileOutcome."""

    kind = ErrorKind.APPLY_FAILED

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.message = message
        self.output = output


class ProbeFailed(ResourceError):
    """La inspección del estado falló (p. ej. permiso denegado)."""
    kind = ErrorKind.PROBE_FAILED


class ApplyFailed(ResourceError):
    """El comando externo devolvió error."""
    kind = ErrorKind.APPLY_FAILED


class CommandTimeout(ResourceError):
    """Un comando externo excedió el timeout del run."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, command: List[str], timeout: float):
        super().__init__(f"Timeout ({timeout:g}s) ejecutando: {' '.join(command)}")
        self.command = command
        self.timeout = timeout


class CommandNotFound(ApplyFailed):
    """El binario del comando no existe en el host."""

    def __init__(self, binary: str):
        super().__init__(f"Comando no encontrado: {binary}")
        self.binary = binary


class ServiceStartFailed(ResourceError):
    """La unidad no llegó a estado activo dentro de la espera acotada."""
    kind = ErrorKind.SERVICE_START_FAILED


class FirewallUnavailable(ResourceError):
    """La herramienta de firewall no está instalada o activa."""
    kind = ErrorKind.FIREWALL_UNAVAILABLE


def describe(error: Optional[BaseException]) -> str:
    """Mensaje corto para mostrar en CLI/report."""
    if error is None:
        return ""
    return getattr(error, "message", None) or str(error)
