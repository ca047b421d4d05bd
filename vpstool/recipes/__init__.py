"""
Recetas: planes declarativos equivalentes a los scripts de aprovisionamiento.

Cada receta devuelve un RecipeResult: recursos en orden de declaración más
los secretos generados (para el resumen final) y datos informativos.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from hostplane.core.resources.models import Resource


@dataclass
class RecipeResult:
    """Salida de una receta"""
    name: str
    resources: List[Resource] = field(default_factory=list)
    secrets: Dict[str, str] = field(default_factory=dict)
    facts: Dict[str, str] = field(default_factory=dict)

    def extend(self, other: "RecipeResult") -> "RecipeResult":
        """Combina dos recetas (p. ej. basic + xray = vless)."""
        return RecipeResult(
            name=f"{self.name}+{other.name}",
            resources=self.resources + other.resources,
            secrets={**self.secrets, **other.secrets},
            facts={**self.facts, **other.facts},
        )
