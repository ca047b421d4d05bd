"""
Loader del plan declarativo
Carga YAML, lo valida con los modelos Pydantic y lo convierte a Resource
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

import yaml
from pydantic import ValidationError

from hostplane.core.errors import DeclarationError
from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import Resource, ResourceKind
from vpstool.declarative.models import InstanceGroupConfig, PlanConfig, PolicyConfig, ResourceConfig
from vpstool.recipes import RecipeResult
from vpstool.recipes import shadowsocks

logger = logging.getLogger(__name__)

# Parámetros fijos que acepta la plantilla shadowsocks
SHADOWSOCKS_PARAMS = {
    "server", "method", "timeout", "fast_open", "firewall", "config_dir",
    "install_template", "template_path", "vendor_templates",
}


class PlanLoadError(DeclarationError):
    """El archivo de plan no se puede leer o no es válido."""
    pass


@dataclass
class LoadedPlan:
    """Plan listo para el Reconciler"""
    source: str
    policy: PolicyConfig
    resources: List[Resource] = field(default_factory=list)
    secrets: Dict[str, str] = field(default_factory=dict)
    facts: Dict[str, str] = field(default_factory=dict)


def _package(key, depends_on, params):
    names = params.pop("packages", None) or params.pop("names", None)
    if names is None and "name" in params:
        names = [params.pop("name")]
    if isinstance(names, str):
        names = names.split()
    return rb.package(*(names or []), key=key, depends_on=depends_on, **params)


def _file(key, depends_on, params):
    mode = params.get("mode")
    if isinstance(mode, str):
        params["mode"] = int(mode, 8)
    return rb.file_content(key=key, depends_on=depends_on, **params)


def _command(key, depends_on, params):
    if not key:
        raise ValueError("un recurso command necesita key explícita")
    return rb.command(key, depends_on=depends_on, **params)


def _simple(builder: Callable[..., Resource]):
    def build(key, depends_on, params):
        return builder(key=key, depends_on=depends_on, **params)
    return build


_BUILDERS: Dict[ResourceKind, Callable[..., Resource]] = {
    ResourceKind.PACKAGE_INSTALLED: _package,
    ResourceKind.LINE_PRESENT_IN_FILE: _simple(rb.line_in_file),
    ResourceKind.FILE_CONTENT_EXACT: _file,
    ResourceKind.SERVICE_ENABLED: _simple(rb.service_enabled),
    ResourceKind.SERVICE_RUNNING: _simple(rb.service_running),
    ResourceKind.FIREWALL_RULE_ALLOW: _simple(rb.firewall_allow),
    ResourceKind.USER_EXISTS: _simple(rb.user),
    ResourceKind.COMMAND_GUARDED: _command,
}


def build_resource(config: ResourceConfig, position: int) -> Resource:
    """Convierte un ResourceConfig en Resource usando el constructor de su kind."""
    kind = ResourceKind(config.kind)
    try:
        return _BUILDERS[kind](config.key, config.depends_on, config.params())
    except (TypeError, ValueError) as e:
        label = config.key or f"resources[{position}]"
        raise PlanLoadError(f"Recurso {label} ({kind.value}) inválido: {e}")


def build_group(group: InstanceGroupConfig) -> RecipeResult:
    """Expande un instance group con su plantilla."""
    unknown = set(group.params) - SHADOWSOCKS_PARAMS
    if unknown:
        raise PlanLoadError(
            f"Parámetros no soportados en el grupo {group.base_name}: {', '.join(sorted(unknown))}"
        )
    options = shadowsocks.ShadowsocksOptions(
        count=group.count,
        port_start=group.port_range_start,
        ports=group.ports,
        passwords=group.secrets,
        base_name=group.base_name,
        depends_on=group.depends_on,
        **group.params,
    )
    return shadowsocks.build(options)


def parse_plan(data: Dict[str, Any], source: str = "<plan>") -> LoadedPlan:
    """Valida un plan ya cargado (dict) y construye sus recursos."""
    try:
        config = PlanConfig(**(data or {}))
    except ValidationError as e:
        raise PlanLoadError(f"{source}: plan inválido\n{e}")
    if config.version != 1:
        raise PlanLoadError(f"{source}: versión de plan no soportada: {config.version}")

    plan = LoadedPlan(source=source, policy=config.policy)
    for position, item in enumerate(config.resources):
        resource = build_resource(item, position)
        plan.resources.append(resource)
        if resource.kind == ResourceKind.USER_EXISTS and resource.param("password"):
            plan.secrets[f"Contraseña de {resource.param('name')}"] = resource.param("password")

    for group in config.instance_groups:
        expanded = build_group(group)
        plan.resources += expanded.resources
        plan.secrets.update(expanded.secrets)
        plan.facts.update(expanded.facts)

    logger.debug("Plan %s: %d recursos", source, len(plan.resources))
    return plan


def load_plan(path: Union[str, Path]) -> LoadedPlan:
    """Carga un archivo YAML de plan."""
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise PlanLoadError(f"No existe el plan: {path}")
    except yaml.YAMLError as e:
        raise PlanLoadError(f"YAML inválido en {path}: {e}")
    if not isinstance(data, dict):
        raise PlanLoadError(f"{path}: se esperaba un mapeo en la raíz del YAML")
    return parse_plan(data, source=str(path))
