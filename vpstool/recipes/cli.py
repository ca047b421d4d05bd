"""
Comando recipes: aprovisionamiento de VPS con las recetas predefinidas.

Cada comando construye la receta a partir de opciones (o prompts) y la
reconcilia; con --dry-run solo muestra qué cambiaría.
"""

from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from hostplane.core.errors import HostplaneError
from hostplane.core.runtime.resolver import default_policy
from vpstool import orchestration
from vpstool.core.permissions import require_root
from vpstool.core.tools import which
from vpstool.recipes import RecipeResult, basic, shadowsocks, xray
from vpstool.recipes.system import debian_codename, debian_version

app = typer.Typer(
    name="recipes",
    help="Recetas de aprovisionamiento (basic, shadowsocks, xray, vless)",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def parse_ports(raw: Optional[str]) -> Optional[List[int]]:
    """Convierte "8388,8390" en [8388, 8390]."""
    if not raw:
        return None
    try:
        return [int(p) for p in raw.replace(" ", "").split(",") if p]
    except ValueError:
        raise typer.BadParameter(f"Lista de puertos inválida: {raw!r}")


def run_recipe(
    result: RecipeResult,
    dry_run: bool,
    show_secrets: bool,
    halt: bool,
    timeout: Optional[float],
    lock: bool,
) -> None:
    """Reconcilia la receta y termina con el código de salida del run."""
    if not dry_run and not require_root(console):
        raise typer.Exit(code=orchestration.EXIT_INVALID)

    console.print(Panel.fit(
        f"[bold cyan]Receta {result.name}[/bold cyan]\n"
        f"[dim]{len(result.resources)} recursos declarados[/dim]",
        border_style="cyan",
    ))
    try:
        policy = default_policy(halt_on_first_failure=True if halt else None, per_command_timeout=timeout)
        code = orchestration.execute(
            result.resources,
            policy,
            console,
            dry_run=dry_run,
            use_lock=lock,
            facts=result.facts,
            secrets=result.secrets,
            show_secrets=show_secrets,
            show_public_ip=not dry_run,
        )
    except HostplaneError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)
    raise typer.Exit(code=code)


def _basic_options(
    hostname: str,
    username: str,
    password: str,
    timezone: str,
    tailscale_authkey: Optional[str],
    tailscale: bool,
    healthcheck_id: Optional[str],
    restart_ssh: bool,
) -> basic.BasicOptions:
    return basic.BasicOptions(
        hostname=hostname,
        username=username,
        password=password or None,
        timezone=timezone,
        tailscale_authkey=tailscale_authkey or None,
        tailscale=tailscale,
        debian_version=debian_version(),
        healthcheck_id=healthcheck_id or None,
        restart_ssh=restart_ssh,
    )


@app.command("basic")
def basic_command(
    hostname: str = typer.Option(..., "--hostname", prompt="Hostname", help="Nuevo hostname"),
    username: str = typer.Option(..., "--username", prompt="Usuario sudo", help="Usuario a crear"),
    password: str = typer.Option(
        ..., "--password", prompt="Contraseña", hide_input=True, confirmation_prompt=True,
        help="Contraseña del usuario",
    ),
    timezone: str = typer.Option("Asia/Singapore", "--timezone", help="Zona horaria"),
    tailscale_authkey: Optional[str] = typer.Option(None, "--tailscale-authkey", help="Auth key de Tailscale"),
    tailscale: bool = typer.Option(True, "--tailscale/--no-tailscale", help="Instalar Tailscale"),
    healthcheck_id: Optional[str] = typer.Option(None, "--healthcheck-id", help="ID de hc-ping.com"),
    restart_ssh: bool = typer.Option(False, "--restart-ssh", help="Recargar ssh tras PermitRootLogin"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Solo mostrar qué cambiaría"),
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Mostrar secretos en el resumen"),
    halt: bool = typer.Option(False, "--halt", help="Detener tras el primer fallo"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Timeout por comando (s)"),
    lock: bool = typer.Option(True, "--lock/--no-lock", help="Serializar runs con lock"),
):
    """Aprovisionamiento base: usuario, SSH, Tailscale, UFW, Fail2Ban"""
    options = _basic_options(
        hostname, username, password, timezone, tailscale_authkey, tailscale, healthcheck_id, restart_ssh,
    )
    run_recipe(basic.build(options), dry_run, show_secrets, halt, timeout, lock)


@app.command("shadowsocks")
def shadowsocks_command(
    count: int = typer.Option(..., "--count", "-n", prompt="¿Cuántas instancias?", min=1, help="Instancias"),
    port_start: int = typer.Option(shadowsocks.DEFAULT_PORT, "--port-start", min=1, max=65535),
    ports: Optional[str] = typer.Option(None, "--ports", help="Puertos explícitos: 8388,9000,..."),
    server: str = typer.Option("0.0.0.0", "--server", help="Dirección de escucha"),
    method: str = typer.Option(shadowsocks.DEFAULT_METHOD, "--method", help="Cifrado"),
    timeout_s: int = typer.Option(60, "--ss-timeout", help="Timeout de Shadowsocks (s)"),
    fast_open: bool = typer.Option(False, "--fast-open", help="TCP Fast Open"),
    no_firewall: bool = typer.Option(False, "--no-firewall", help="No crear reglas ufw"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Solo mostrar qué cambiaría"),
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Mostrar contraseñas en el resumen"),
    halt: bool = typer.Option(False, "--halt", help="Detener tras el primer fallo"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Timeout por comando (s)"),
    lock: bool = typer.Option(True, "--lock/--no-lock", help="Serializar runs con lock"),
):
    """Shadowsocks-libev multi-instancia (ss1..ssN)"""
    options = shadowsocks.ShadowsocksOptions(
        count=count,
        server=server,
        port_start=port_start,
        ports=parse_ports(ports),
        method=method,
        timeout=timeout_s,
        fast_open=fast_open,
        firewall=not no_firewall and which("ufw") is not None,
    )
    try:
        result = shadowsocks.build(options)
    except HostplaneError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)
    run_recipe(result, dry_run, show_secrets, halt, timeout, lock)


def _xray_options(domain: str, path: str, email: str, warp: bool, clients: int, http2: bool) -> xray.XrayOptions:
    if not path.startswith("/"):
        path = "/" + path
    return xray.XrayOptions(
        domain=domain,
        path=path,
        email=email,
        warp=warp,
        codename=debian_codename() if warp else None,
        client_count=clients,
        http2=http2,
    )


@app.command("xray")
def xray_command(
    domain: str = typer.Option(..., "--domain", prompt="Dominio", help="Dominio del servidor"),
    path: str = typer.Option(..., "--path", prompt="Ruta WebSocket (ej: /vless)", help="Ruta VLESS"),
    email: str = typer.Option(..., "--email", prompt="Email para Let's Encrypt"),
    warp: bool = typer.Option(False, "--warp/--no-warp", help="Salida por Cloudflare Warp"),
    clients: int = typer.Option(xray.CLIENT_COUNT, "--clients", min=1, help="UUIDs de cliente"),
    http2: bool = typer.Option(True, "--http2/--no-http2", help="Activar http2 en nginx"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Solo mostrar qué cambiaría"),
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Mostrar UUIDs en el resumen"),
    halt: bool = typer.Option(False, "--halt", help="Detener tras el primer fallo"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Timeout por comando (s)"),
    lock: bool = typer.Option(True, "--lock/--no-lock", help="Serializar runs con lock"),
):
    """Xray VLESS sobre WebSocket detrás de Nginx + Let's Encrypt"""
    try:
        result = xray.build(_xray_options(domain, path, email, warp, clients, http2))
    except ValueError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)
    run_recipe(result, dry_run, show_secrets, halt, timeout, lock)


@app.command("vless")
def vless_command(
    hostname: str = typer.Option(..., "--hostname", prompt="Hostname"),
    username: str = typer.Option(..., "--username", prompt="Usuario sudo"),
    password: str = typer.Option(
        ..., "--password", prompt="Contraseña", hide_input=True, confirmation_prompt=True,
    ),
    domain: str = typer.Option(..., "--domain", prompt="Dominio"),
    path: str = typer.Option(..., "--path", prompt="Ruta WebSocket (ej: /vless)"),
    email: str = typer.Option(..., "--email", prompt="Email para Let's Encrypt"),
    timezone: str = typer.Option("Asia/Singapore", "--timezone"),
    tailscale_authkey: Optional[str] = typer.Option(None, "--tailscale-authkey"),
    tailscale: bool = typer.Option(True, "--tailscale/--no-tailscale"),
    warp: bool = typer.Option(True, "--warp/--no-warp", help="Salida por Cloudflare Warp"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Solo mostrar qué cambiaría"),
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Mostrar secretos en el resumen"),
    halt: bool = typer.Option(False, "--halt", help="Detener tras el primer fallo"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Timeout por comando (s)"),
    lock: bool = typer.Option(True, "--lock/--no-lock", help="Serializar runs con lock"),
):
    """basic + xray con Warp: VPS completo con VLESS"""
    base = basic.build(_basic_options(
        hostname, username, password, timezone, tailscale_authkey, tailscale, None, False,
    ))
    try:
        extra = xray.build(
            _xray_options(domain, path, email, warp, xray.CLIENT_COUNT, True),
            base_deps=[basic.BASE_PACKAGES_KEY],
        )
    except ValueError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)
    run_recipe(base.extend(extra), dry_run, show_secrets, halt, timeout, lock)
