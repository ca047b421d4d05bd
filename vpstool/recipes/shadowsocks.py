"""
Receta shadowsocks: Shadowsocks-libev multi-instancia.

Cada instancia `ss<i>` tiene su JSON en /etc/shadowsocks-libev/, su unidad
`shadowsocks-libev@ss<i>` (plantilla systemd) y, si hay ufw, reglas tcp+udp
para su puerto. Las contraseñas existentes se reutilizan para que volver a
ejecutar la receta no cambie nada.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import Resource
from hostplane.core.templates import (
    DEFAULT_SECRET_ALPHABET,
    DEFAULT_SECRET_LENGTH,
    Instance,
    InstanceGroup,
    expand,
)
from vpstool.recipes import RecipeResult

logger = logging.getLogger(__name__)

PACKAGE_KEY = "package:shadowsocks-libev"
CONFIG_DIR = "/etc/shadowsocks-libev"
TEMPLATE_UNIT = "/etc/systemd/system/shadowsocks-libev@.service"
VENDOR_TEMPLATES = (
    "/lib/systemd/system/shadowsocks-libev@.service",
    "/etc/systemd/system/shadowsocks-libev@.service",
)

DEFAULT_METHOD = "chacha20-ietf-poly1305"
DEFAULT_PORT = 8388

TEMPLATE_UNIT_CONTENT = """[Unit]
Description=Shadowsocks-libev custom instance %I
After=network.target

[Service]
Type=simple
User=nobody
CapabilityBoundingSet=CAP_NET_BIND_SERVICE
NoNewPrivileges=true
ExecStart=/usr/bin/ss-server -c /etc/shadowsocks-libev/%i.json
ExecReload=/bin/kill -HUP $MAINPID
Restart=on-failure
LimitNOFILE=65535

[Install]
WantedBy=multi-user.target
"""


@dataclass
class ShadowsocksOptions:
    """Parámetros de la receta shadowsocks"""
    count: int = 1
    server: str = "0.0.0.0"
    port_start: int = DEFAULT_PORT
    ports: Optional[Sequence[int]] = None
    method: str = DEFAULT_METHOD
    timeout: int = 60
    fast_open: bool = False
    base_name: str = "ss"
    firewall: bool = True
    secret_length: int = DEFAULT_SECRET_LENGTH
    secret_alphabet: str = DEFAULT_SECRET_ALPHABET
    config_dir: str = CONFIG_DIR
    install_template: Optional[bool] = None
    template_path: str = TEMPLATE_UNIT
    vendor_templates: Sequence[str] = VENDOR_TEMPLATES
    passwords: Optional[Sequence[Optional[str]]] = None
    depends_on: Sequence[str] = ()


def render_config(server: str, port: int, password: str, timeout: int, method: str, fast_open: bool) -> str:
    """JSON de una instancia; el orden de claves es el que espera ss-server."""
    config = {
        "server": server,
        "server_port": port,
        "password": password,
        "timeout": timeout,
        "method": method,
        "fast_open": fast_open,
        "mode": "tcp_and_udp",
    }
    return json.dumps(config, indent=4) + "\n"


def existing_passwords(config_dir: str, base_name: str, count: int) -> List[Optional[str]]:
    """Contraseñas ya desplegadas (None donde no hay config legible)."""
    out: List[Optional[str]] = []
    for i in range(1, count + 1):
        path = Path(config_dir) / f"{base_name}{i}.json"
        password = None
        try:
            password = json.loads(path.read_text()).get("password") or None
        except FileNotFoundError:
            pass
        except (ValueError, OSError) as e:
            logger.warning("⚠ No se pudo leer %s: %s; se genera contraseña nueva", path, e)
        out.append(password)
    return out


def initial_passwords(options: ShadowsocksOptions) -> List[Optional[str]]:
    """Contraseñas explícitas; los huecos se rellenan con las ya desplegadas."""
    on_disk = existing_passwords(options.config_dir, options.base_name, options.count)
    if options.passwords is None:
        return on_disk
    explicit = list(options.passwords)
    if len(explicit) != options.count:
        return explicit
    return [explicit[i] or on_disk[i] for i in range(options.count)]


def unit_name(instance_name: str) -> str:
    return f"shadowsocks-libev@{instance_name}"


def instance_builder(options: ShadowsocksOptions, base_deps: List[str]):
    """Builder para expand(): recursos de una instancia."""

    def build_instance(instance: Instance) -> List[Resource]:
        unit = unit_name(instance.name)
        params = instance.params
        config = rb.file_content(
            str(Path(options.config_dir) / f"{instance.name}.json"),
            render_config(
                params["server"], instance.port, instance.secret,
                params["timeout"], params["method"], params["fast_open"],
            ),
            key=instance.name,
            post_commands=[["systemctl", "try-restart", unit]],
            depends_on=base_deps,
            sensitive=True,
        )
        resources = [
            config,
            rb.service_enabled(unit, depends_on=[config.key]),
            rb.service_running(unit, depends_on=[f"enabled:{unit}"]),
        ]
        if options.firewall:
            for proto in ("tcp", "udp"):
                resources.append(rb.firewall_allow(instance.port, proto, depends_on=[config.key]))
        return resources

    return build_instance


def template_unit(options: ShadowsocksOptions) -> Optional[Resource]:
    """
    Plantilla systemd propia.

    Por defecto solo se escribe si, al llegar su turno (tras instalar el
    paquete), no hay ya una plantilla del paquete. install_template=True la
    fuerza y False la omite.
    """
    if options.install_template is False:
        return None
    guard = () if options.install_template else options.vendor_templates
    return rb.file_content(
        options.template_path,
        TEMPLATE_UNIT_CONTENT,
        key=f"file:{TEMPLATE_UNIT}",
        post_commands=[["systemctl", "daemon-reload"]],
        depends_on=[PACKAGE_KEY],
        unless_exists=guard,
    )


def build(options: ShadowsocksOptions) -> RecipeResult:
    """Plan completo de la receta shadowsocks."""
    result = RecipeResult(name="shadowsocks")
    resources: List[Resource] = [
        rb.package("shadowsocks-libev", key=PACKAGE_KEY, update=True, depends_on=options.depends_on),
    ]
    base_deps = [PACKAGE_KEY]

    template = template_unit(options)
    if template is not None:
        resources.append(template)
        base_deps.append(template.key)

    group = InstanceGroup(
        base_name=options.base_name,
        count=options.count,
        port_range_start=options.port_start,
        ports=options.ports,
        secrets=initial_passwords(options),
        fixed_params={
            "server": options.server,
            "method": options.method,
            "timeout": options.timeout,
            "fast_open": options.fast_open,
        },
        secret_length=options.secret_length,
        secret_alphabet=options.secret_alphabet,
    )
    expansion = expand(group, instance_builder(options, base_deps))
    resources += expansion.resources

    result.resources = resources
    for instance in expansion.instances:
        result.facts[f"Instancia {instance.name}"] = (
            f"IP={options.server}, Puerto={instance.port}, Cifrado={options.method}, "
            f"Timeout={options.timeout}, TCP Fast Open={str(options.fast_open).lower()}"
        )
        result.secrets[f"Contraseña {instance.name}"] = instance.secret
    return result
