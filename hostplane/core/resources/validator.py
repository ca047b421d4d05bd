"""
Validación del plan (lógica pura).

Sin I/O; solo reglas sobre la lista de recursos. Todo lo que se detecta aquí
aborta el run antes de tocar el host.
"""

import heapq
from collections import defaultdict
from typing import Dict, List, Sequence

from hostplane.core.errors import DeclarationConflict, DependencyCycle, UnknownDependency
from hostplane.core.resources.models import Resource


def validate_key(key: str) -> None:
    """Valida que la key sea usable como identificador estable."""
    if not key or not key.strip():
        raise DeclarationConflict(key or "<vacía>", "la key no puede estar vacía")
    if key != key.strip():
        raise DeclarationConflict(key, "la key no puede tener espacios al inicio o al final")


def dedupe(resources: Sequence[Resource]) -> List[Resource]:
    """
    Colapsa declaraciones idénticas y rechaza conflictos.

    Dos recursos con la misma key deben ser idénticos (kind, params,
    dependsOn); si no, DeclarationConflict. Se conserva la primera posición.
    """
    seen: Dict[str, Resource] = {}
    out: List[Resource] = []
    for resource in resources:
        validate_key(resource.key)
        previous = seen.get(resource.key)
        if previous is None:
            seen[resource.key] = resource
            out.append(resource)
            continue
        if previous.kind != resource.kind:
            raise DeclarationConflict(
                resource.key, f"tipos distintos ({previous.kind.value} vs {resource.kind.value})"
            )
        if not previous.same_declaration(resource):
            raise DeclarationConflict(resource.key)
    return out


def topological_order(resources: Sequence[Resource]) -> List[Resource]:
    """
    Ordena por dependsOn (dependencias antes que dependientes).

    Algoritmo de Kahn; los empates se resuelven por orden de declaración para
    que el orden sea determinista y coincida con el que escribió el usuario
    cuando no hay aristas.
    """
    index = {r.key: i for i, r in enumerate(resources)}
    in_degree: Dict[str, int] = {}
    dependents: Dict[str, List[str]] = defaultdict(list)

    for resource in resources:
        for dep in sorted(resource.depends_on):
            if dep not in index:
                raise UnknownDependency(resource.key, dep)
            if dep == resource.key:
                raise DependencyCycle([resource.key])
            dependents[dep].append(resource.key)
        in_degree[resource.key] = len(resource.depends_on)

    heap = [index[k] for k, degree in in_degree.items() if degree == 0]
    heapq.heapify(heap)
    ordered: List[Resource] = []

    while heap:
        resource = resources[heapq.heappop(heap)]
        ordered.append(resource)
        for dependent in dependents[resource.key]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(heap, index[dependent])

    if len(ordered) != len(resources):
        done = {r.key for r in ordered}
        remaining = [r.key for r in resources if r.key not in done]
        raise DependencyCycle(remaining)

    return ordered


def validate_plan(resources: Sequence[Resource]) -> List[Resource]:
    """dedupe + topological_order: devuelve el orden de ejecución."""
    return topological_order(dedupe(resources))
