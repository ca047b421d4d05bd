"""
InstanceTemplate: expande una declaración "N instancias" en N conjuntos de
recursos con valores derivados (puertos secuenciales, secretos generados).

Determinista salvo la generación de secretos, que usa `secrets` (fuente
criptográfica). Los secretos se devuelven junto a los recursos para que
quien llama los muestre o guarde; este módulo nunca los registra en logs.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from hostplane.core.errors import DeclarationConflict
from hostplane.core.resources.models import Resource

logger = logging.getLogger(__name__)

# Igual que `tr -dc 'A-Za-z0-9' </dev/urandom | head -c 16`
DEFAULT_SECRET_ALPHABET = string.ascii_letters + string.digits
DEFAULT_SECRET_LENGTH = 16


def generate_secret(length: int = DEFAULT_SECRET_LENGTH, alphabet: str = DEFAULT_SECRET_ALPHABET) -> str:
    """Secreto aleatorio de `length` caracteres tomados de `alphabet`."""
    if length <= 0:
        raise ValueError("La longitud del secreto debe ser mayor que 0")
    if not alphabet:
        raise ValueError("El alfabeto del secreto no puede estar vacío")
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class InstanceGroup:
    """
    Entrada del expander. Se construye, se expande una vez y se descarta.

    - ports: puertos explícitos por instancia; si se dan, mandan sobre el
      secuencial desde port_range_start.
    - secrets: secretos explícitos por instancia (None = generar).
    """
    base_name: str
    count: int
    port_range_start: int
    fixed_params: Dict[str, Any] = field(default_factory=dict)
    ports: Optional[Sequence[int]] = None
    secrets: Optional[Sequence[Optional[str]]] = None
    needs_secret: bool = True
    secret_length: int = DEFAULT_SECRET_LENGTH
    secret_alphabet: str = DEFAULT_SECRET_ALPHABET


@dataclass(frozen=True)
class Instance:
    """Una instancia concreta derivada del grupo"""
    index: int
    name: str
    port: int
    secret: Optional[str] = field(default=None, repr=False)
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Expansion:
    """Resultado de expand(): instancias + recursos en orden"""
    instances: List[Instance] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)

    def secrets(self) -> Dict[str, Optional[str]]:
        """Secretos por nombre de instancia (para mostrar/guardar)."""
        return {i.name: i.secret for i in self.instances}


InstanceBuilder = Callable[[Instance], Sequence[Resource]]


def _validate_group(group: InstanceGroup) -> None:
    if not group.base_name or not group.base_name.strip():
        raise DeclarationConflict("<instance-group>", "base_name no puede estar vacío")
    if group.count < 1:
        raise DeclarationConflict(group.base_name, "count debe ser al menos 1")
    if group.ports is not None and len(group.ports) != group.count:
        raise DeclarationConflict(
            group.base_name, f"se dieron {len(group.ports)} puertos para {group.count} instancias"
        )
    if group.secrets is not None and len(group.secrets) != group.count:
        raise DeclarationConflict(
            group.base_name, f"se dieron {len(group.secrets)} secretos para {group.count} instancias"
        )
    ports = list(group.ports) if group.ports is not None else [
        group.port_range_start + i for i in range(group.count)
    ]
    for port in ports:
        if not 1 <= int(port) <= 65535:
            raise DeclarationConflict(group.base_name, f"puerto fuera de rango: {port}")
    if len(set(ports)) != len(ports):
        raise DeclarationConflict(group.base_name, "puertos repetidos entre instancias")


def instances(group: InstanceGroup) -> List[Instance]:
    """Deriva las instancias (nombre, puerto, secreto) sin construir recursos."""
    _validate_group(group)
    out: List[Instance] = []
    for i in range(1, group.count + 1):
        if group.ports is not None:
            port = int(group.ports[i - 1])
        else:
            port = group.port_range_start + (i - 1)

        secret = None
        if group.secrets is not None:
            secret = group.secrets[i - 1]
        if secret is None and group.needs_secret:
            secret = generate_secret(group.secret_length, group.secret_alphabet)

        params = dict(group.fixed_params)
        params["port"] = port
        out.append(Instance(
            index=i,
            name=f"{group.base_name}{i}",
            port=port,
            secret=secret,
            params=params,
        ))
    return out


def expand(group: InstanceGroup, builder: InstanceBuilder) -> Expansion:
    """
    Expande el grupo: un conjunto de recursos por instancia, en orden.

    `builder` recibe cada Instance y devuelve sus recursos; el recurso
    principal de cada conjunto debe llevar la key `<base_name><i>`.
    """
    expansion = Expansion()
    for instance in instances(group):
        built = list(builder(instance))
        if not any(r.key == instance.name for r in built):
            raise DeclarationConflict(
                instance.name, "el builder no produjo un recurso con la key de la instancia"
            )
        expansion.instances.append(instance)
        expansion.resources.extend(built)
    logger.debug(
        "Grupo %s expandido: %d instancias, %d recursos",
        group.base_name, len(expansion.instances), len(expansion.resources),
    )
    return expansion
