"""
Módulo Doctor - Verificación de herramientas y requisitos del host
"""

import os
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostplane.core.errors import HostplaneError
from hostplane.core.runtime.resolver import state_root
from vpstool.core.tools import CommandRunner, which
from vpstool.recipes.system import debian_version, read_os_release

# Binarios que usan los handlers por defecto
REQUIRED_TOOLS = ["apt-get", "dpkg-query", "systemctl", "ufw"]
OPTIONAL_TOOLS = ["curl", "useradd", "chpasswd", "hostnamectl", "timedatectl"]


def check_tool(tool_name: str, runner: Optional[CommandRunner] = None) -> Tuple[bool, Optional[str]]:
    """
    Verifica si una herramienta está instalada y disponible

    Args:
        tool_name: Nombre del comando a verificar
        runner: CommandRunner para obtener la versión

    Returns:
        Tuple (is_available, version_info)
    """
    if which(tool_name) is None:
        return False, None

    runner = runner or CommandRunner(timeout=2)
    try:
        result = runner([tool_name, "--version"])
    except HostplaneError:
        return True, None
    if not result.ok or not result.stdout:
        return True, None
    return True, result.stdout.split("\n")[0][:50]


def check_permissions() -> Dict[str, bool]:
    """
    Verifica permisos del usuario actual

    Returns:
        Dict con tipo de permiso como clave y bool como valor
    """
    root = state_root()
    existing = root if root.exists() else root.parent
    return {
        "root": os.geteuid() == 0,
        "state_root": os.access(existing, os.W_OK),
    }


def run_doctor(
    console: Console,
    required_tools: Optional[List[str]] = None,
    optional_tools: Optional[List[str]] = None,
    runner: Optional[CommandRunner] = None,
) -> Dict[str, bool]:
    """
    Ejecuta verificación completa del host (doctor)

    Args:
        console: Console de Rich para salida
        required_tools: Herramientas sin las que los handlers no funcionan
        optional_tools: Herramientas que solo usan algunas recetas
        runner: CommandRunner para consultar versiones

    Returns:
        Dict con resultados de verificación
    """
    if required_tools is None:
        required_tools = REQUIRED_TOOLS
    if optional_tools is None:
        optional_tools = OPTIONAL_TOOLS

    console.print(Panel.fit("[bold cyan]Doctor - Verificación del Host[/bold cyan]", border_style="cyan"))

    results: Dict[str, bool] = {}

    release = read_os_release()
    is_debian = release.get("ID") == "debian" or "debian" in release.get("ID_LIKE", "").split()
    version = debian_version() if is_debian else None
    pretty = release.get("PRETTY_NAME", "desconocido")
    console.print(f"\n[bold]Sistema:[/bold] {pretty}")
    if version is None:
        console.print("[yellow]⚠ No es Debian: las recetas asumen apt + systemd[/yellow]")
    results["debian"] = version is not None

    console.print("\n[bold]Herramientas[/bold]")
    tool_table = Table(show_header=True, header_style="bold cyan")
    tool_table.add_column("Herramienta", style="cyan")
    tool_table.add_column("Estado", style="green")
    tool_table.add_column("Versión", style="dim")

    for tool in required_tools + optional_tools:
        available, tool_version = check_tool(tool, runner)
        if available:
            status = "[green]✔ Disponible[/green]"
        elif tool in required_tools:
            status = "[red]✘ No encontrado[/red]"
        else:
            status = "[yellow]⚠ No encontrado[/yellow]"
        tool_table.add_row(tool, status, tool_version or "[dim]N/A[/dim]")
        results[f"tool_{tool}"] = available

    console.print(tool_table)

    console.print("\n[bold]Permisos[/bold]")
    perm_table = Table(show_header=True, header_style="bold cyan")
    perm_table.add_column("Permiso", style="cyan")
    perm_table.add_column("Estado", style="green")

    for perm_name, has_perm in check_permissions().items():
        status = "[green]✔ Disponible[/green]" if has_perm else "[yellow]⚠ No disponible[/yellow]"
        perm_table.add_row(perm_name.replace("_", " ").title(), status)
        results[f"perm_{perm_name}"] = has_perm

    console.print(perm_table)

    missing = [tool for tool in required_tools if not results.get(f"tool_{tool}", False)]
    if not missing:
        console.print("\n[bold green]✅ Todas las herramientas requeridas están disponibles[/bold green]")
    else:
        console.print("\n[yellow]⚠️ Algunas herramientas faltan[/yellow]")
        console.print(f"[dim]Faltan: {', '.join(missing)}[/dim]")

    return results


def doctor_ok(results: Dict[str, bool], required_tools: Optional[List[str]] = None) -> bool:
    required_tools = required_tools if required_tools is not None else REQUIRED_TOOLS
    return all(results.get(f"tool_{tool}", False) for tool in required_tools)
