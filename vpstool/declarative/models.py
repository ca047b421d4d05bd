"""
Modelos del plan declarativo (YAML).
Usa Pydantic para validación; el loader los convierte a Resource.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from hostplane.core.resources.models import ResourceKind


class PolicyConfig(BaseModel):
    """Política del run; None = usar variables de entorno / defaults"""
    halt_on_first_failure: Optional[bool] = None
    per_command_timeout: Optional[float] = Field(None, gt=0, description="Timeout por comando (s)")


class ResourceConfig(BaseModel):
    """
    Un recurso del plan.

    Los campos no declarados aquí son los parámetros del kind (packages, path,
    line, unit, port...) y se pasan tal cual al constructor correspondiente.
    """
    kind: ResourceKind = Field(..., description="package | line | file | service_enabled | ...")
    key: Optional[str] = Field(None, description="Key única; por defecto la del constructor")
    depends_on: List[str] = Field(default_factory=list)

    class Config:
        extra = "allow"

    @model_validator(mode="before")
    @classmethod
    def accept_dependson_alias(cls, data: Any) -> Any:
        """Compatibilidad: `dependsOn` se mapea a `depends_on`."""
        if isinstance(data, dict) and "dependsOn" in data and "depends_on" not in data:
            data = dict(data)
            data["depends_on"] = data.pop("dependsOn") or []
        return data

    def params(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class InstanceGroupConfig(BaseModel):
    """Grupo de instancias expandido desde una plantilla"""
    template: Literal["shadowsocks"] = "shadowsocks"
    base_name: str = "ss"
    count: int = Field(1, ge=1)
    port_range_start: int = Field(8388, ge=1, le=65535)
    ports: Optional[List[int]] = None
    secrets: Optional[List[Optional[str]]] = None
    params: Dict[str, Any] = Field(default_factory=dict, description="Parámetros fijos (method, timeout...)")
    depends_on: List[str] = Field(default_factory=list)


class PlanConfig(BaseModel):
    """Archivo de plan completo"""
    version: int = 1
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    resources: List[ResourceConfig] = Field(default_factory=list)
    instance_groups: List[InstanceGroupConfig] = Field(default_factory=list)

    class Config:
        extra = "forbid"
