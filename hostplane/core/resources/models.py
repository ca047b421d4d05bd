"""
Modelos de datos del reconciliador (agnósticos de interfaz y filesystem).

Resource es un valor inmutable que describe estado deseado; ProbeResult y
ReconcileOutcome son los registros que produce una ejecución.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from hostplane.core.errors import ErrorKind


class ResourceKind(str, Enum):
    """Tipo de recurso (qué parte del host describe)"""
    PACKAGE_INSTALLED = "package"
    LINE_PRESENT_IN_FILE = "line"
    FILE_CONTENT_EXACT = "file"
    SERVICE_ENABLED = "service_enabled"
    SERVICE_RUNNING = "service_running"
    FIREWALL_RULE_ALLOW = "firewall_allow"
    USER_EXISTS = "user"
    COMMAND_GUARDED = "command"


class OutcomeStatus(str, Enum):
    """Estado terminal de un recurso dentro de un run"""
    SATISFIED = "Satisfied"
    APPLIED = "Applied"
    FAILED = "Failed"
    SKIPPED = "Skipped"


def _freeze(value: Any) -> Any:
    """Congela dicts/listas anidados para que los params no se puedan mutar."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverso de _freeze: devuelve estructuras planas (dict/list)."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Resource:
    """
    Unidad declarada de estado deseado.

    `params` no aparece en repr: puede contener contraseñas o contenidos de
    archivos. `sensitive` lista los params que el report debe redactar.
    """
    kind: ResourceKind
    key: str
    params: Mapping[str, Any] = field(default_factory=dict, repr=False)
    depends_on: FrozenSet[str] = frozenset()
    sensitive: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not self.key or not self.key.strip():
            raise ValueError("Resource.key no puede estar vacío")
        object.__setattr__(self, "kind", ResourceKind(self.kind))
        object.__setattr__(self, "params", _freeze(dict(self.params)))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))
        object.__setattr__(self, "sensitive", frozenset(self.sensitive))

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)

    def same_declaration(self, other: "Resource") -> bool:
        """True si ambos describen exactamente lo mismo (misma key)."""
        return (
            self.kind == other.kind
            and thaw(self.params) == thaw(other.params)
            and self.depends_on == other.depends_on
        )

    def with_dependencies(self, keys: Iterable[str]) -> "Resource":
        """Copia del recurso con dependencias adicionales."""
        return Resource(
            kind=self.kind,
            key=self.key,
            params=thaw(self.params),
            depends_on=self.depends_on | frozenset(keys),
            sensitive=self.sensitive,
        )


@dataclass(frozen=True)
class ProbeResult:
    """Resultado de inspeccionar el host; nunca se cachea entre runs."""
    satisfied: bool
    detail: str = ""


@dataclass(frozen=True)
class ErrorDetail:
    """Error capturado en un outcome"""
    kind: ErrorKind
    message: str
    blocking_key: Optional[str] = None
    output: str = ""


@dataclass(frozen=True)
class ReconcileOutcome:
    """Registro terminal de un recurso dentro de un run"""
    key: str
    status: OutcomeStatus
    detail: str = ""
    error: Optional[ErrorDetail] = None


@dataclass(frozen=True)
class RunPolicy:
    """Política de ejecución que suministra quien llama"""
    halt_on_first_failure: bool = False
    per_command_timeout: float = 300.0


@dataclass
class RunReport:
    """
    Secuencia ordenada de outcomes de un run.

    Distingue "nada que hacer" (todo Satisfied), "cambió el host" (algún
    Applied) y "requiere atención" (algún Failed/Skipped).
    """
    outcomes: List[ReconcileOutcome] = field(default_factory=list)

    def __iter__(self):
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def by_key(self, key: str) -> Optional[ReconcileOutcome]:
        for outcome in self.outcomes:
            if outcome.key == key:
                return outcome
        return None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def noop(self) -> bool:
        return all(o.status == OutcomeStatus.SATISFIED for o in self.outcomes)

    @property
    def changed(self) -> bool:
        return any(o.status == OutcomeStatus.APPLIED for o in self.outcomes)

    @property
    def needs_attention(self) -> bool:
        return any(
            o.status in (OutcomeStatus.FAILED, OutcomeStatus.SKIPPED)
            for o in self.outcomes
        )

    def summary(self) -> Tuple[int, int, int, int]:
        """(satisfied, applied, failed, skipped)"""
        return (
            self.count(OutcomeStatus.SATISFIED),
            self.count(OutcomeStatus.APPLIED),
            self.count(OutcomeStatus.FAILED),
            self.count(OutcomeStatus.SKIPPED),
        )
