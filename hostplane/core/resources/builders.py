"""
Constructores de Resource con keys con espacio de nombres.

Las keys siguen la convención `<tipo>:<identificador>` para que un paquete y
un servicio con el mismo nombre (nginx) no colisionen dentro de un run.
"""

from typing import Iterable, List, Optional, Sequence, Union

from hostplane.core.resources.models import Resource, ResourceKind


Deps = Iterable[str]


def _deps(depends_on: Optional[Deps]) -> frozenset:
    return frozenset(depends_on or ())


def package(
    *names: str,
    key: Optional[str] = None,
    update: bool = False,
    depends_on: Optional[Deps] = None,
) -> Resource:
    """Paquetes instalados (a cualquier versión)."""
    if not names:
        raise ValueError("package() requiere al menos un paquete")
    return Resource(
        kind=ResourceKind.PACKAGE_INSTALLED,
        key=key or f"package:{' '.join(names)}",
        params={"packages": list(names), "update": update},
        depends_on=_deps(depends_on),
    )


def line_in_file(
    path: str,
    line: str,
    pattern: Optional[str] = None,
    key: Optional[str] = None,
    create: bool = True,
    append: bool = True,
    post_commands: Sequence[Sequence[str]] = (),
    depends_on: Optional[Deps] = None,
) -> Resource:
    """
    Línea presente en un archivo.

    Sin `pattern` la línea debe existir literalmente (append si falta). Con
    `pattern` la primera línea que coincide se reemplaza por `line` y el resto
    de coincidencias se eliminan. Con append=False solo se reemplaza: si nada
    coincide, el apply falla.
    """
    return Resource(
        kind=ResourceKind.LINE_PRESENT_IN_FILE,
        key=key or f"line:{path}:{pattern or line}",
        params={
            "path": path,
            "line": line,
            "pattern": pattern,
            "create": create,
            "append": append,
            "post_commands": [list(c) for c in post_commands],
        },
        depends_on=_deps(depends_on),
    )


def file_content(
    path: str,
    content: Union[str, bytes],
    key: Optional[str] = None,
    mode: Optional[int] = None,
    replace: bool = True,
    post_commands: Sequence[Sequence[str]] = (),
    depends_on: Optional[Deps] = None,
    sensitive: bool = False,
    unless_exists: Sequence[str] = (),
) -> Resource:
    """
    Archivo con contenido exacto (escritura atómica).

    replace=False: solo se crea si no existe (archivos que luego edita otra
    herramienta, como los sites que modifica certbot).
    unless_exists: rutas que, si alguna existe al sondear, dan el recurso por
    satisfecho sin escribir nada (p. ej. una unit que trae el paquete).
    """
    return Resource(
        kind=ResourceKind.FILE_CONTENT_EXACT,
        key=key or f"file:{path}",
        params={
            "path": path,
            "content": content,
            "mode": mode,
            "replace": replace,
            "unless_exists": list(unless_exists),
            "post_commands": [list(c) for c in post_commands],
        },
        depends_on=_deps(depends_on),
        sensitive=frozenset({"content"}) if sensitive else frozenset(),
    )


def service_enabled(unit: str, key: Optional[str] = None, depends_on: Optional[Deps] = None) -> Resource:
    return Resource(
        kind=ResourceKind.SERVICE_ENABLED,
        key=key or f"enabled:{unit}",
        params={"unit": unit},
        depends_on=_deps(depends_on),
    )


def service_running(
    unit: str,
    key: Optional[str] = None,
    restart: bool = False,
    start_wait: float = 10.0,
    depends_on: Optional[Deps] = None,
) -> Resource:
    """Unidad activa; `restart` usa `systemctl restart` en lugar de `start`."""
    return Resource(
        kind=ResourceKind.SERVICE_RUNNING,
        key=key or f"running:{unit}",
        params={"unit": unit, "restart": restart, "start_wait": start_wait},
        depends_on=_deps(depends_on),
    )


def firewall_allow(
    port: Union[int, str, None] = None,
    proto: Optional[str] = None,
    interface: Optional[str] = None,
    key: Optional[str] = None,
    require_active: bool = False,
    depends_on: Optional[Deps] = None,
) -> Resource:
    """
    Regla allow de ufw.

    `port` puede ser número o nombre de servicio (ssh, http); `interface`
    genera `allow in on <iface>`.
    """
    if port is None and interface is None:
        raise ValueError("firewall_allow() requiere port o interface")
    if interface:
        ident = f"in-on-{interface}"
    else:
        ident = f"{port}/{proto}" if proto else str(port)
    return Resource(
        kind=ResourceKind.FIREWALL_RULE_ALLOW,
        key=key or f"ufw:{ident}",
        params={
            "port": port,
            "proto": proto,
            "interface": interface,
            "require_active": require_active,
        },
        depends_on=_deps(depends_on),
    )


def user(
    name: str,
    password: Optional[str] = None,
    groups: Sequence[str] = (),
    shell: str = "/bin/bash",
    key: Optional[str] = None,
    depends_on: Optional[Deps] = None,
) -> Resource:
    """Usuario del sistema con home, shell y grupos suplementarios."""
    return Resource(
        kind=ResourceKind.USER_EXISTS,
        key=key or f"user:{name}",
        params={"name": name, "password": password, "groups": list(groups), "shell": shell},
        depends_on=_deps(depends_on),
        sensitive=frozenset({"password"}),
    )


def command(
    key: str,
    check: Sequence[str],
    attempts: Sequence[Union[Sequence[str], dict]],
    expect: Optional[str] = None,
    depends_on: Optional[Deps] = None,
    sensitive: bool = False,
) -> Resource:
    """
    Comando con guarda.

    `check` decide si el estado ya se cumple (rc 0 y, si se da, stdout ==
    `expect`). `attempts` es la escalera de intentos: el primero que termina
    bien gana y su etiqueta queda en el detail del outcome.
    """
    ladder: List[dict] = []
    for idx, attempt in enumerate(attempts, 1):
        if isinstance(attempt, dict):
            ladder.append({"label": attempt.get("label") or f"intento {idx}", "argv": list(attempt["argv"])})
        else:
            ladder.append({"label": f"intento {idx}", "argv": list(attempt)})
    if not ladder:
        raise ValueError("command() requiere al menos un intento")
    return Resource(
        kind=ResourceKind.COMMAND_GUARDED,
        key=key,
        params={"check": list(check), "expect": expect, "attempts": ladder},
        depends_on=_deps(depends_on),
        sensitive=frozenset({"attempts"}) if sensitive else frozenset(),
    )
